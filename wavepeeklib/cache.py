from __future__ import annotations

from typing import Iterator

import numpy as np

from .log import dbg
from .models import CacheKey, WaveformData

LIVENESS_THRESHOLD = 0.001
LIVENESS_SAMPLES = 10


class PeakCache:
    """Memoizes finalized peak buffers by :class:`CacheKey`.

    Entries are checked on the way out rather than on the way in:
    ``put`` stores whatever it is given, and ``get`` refuses to serve a
    placeholder or a buffer whose leading max values are all near zero.
    Such entries are dropped so the caller recomputes them.
    """

    def __init__(self, liveness_samples: int = LIVENESS_SAMPLES):
        self.liveness_samples = max(1, int(liveness_samples))
        self._entries: dict[CacheKey, WaveformData] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __iter__(self) -> Iterator[CacheKey]:
        return iter(list(self._entries))

    def is_live(self, data: WaveformData) -> bool:
        """True if any of the first few max values of any channel is audible."""
        if data.is_placeholder or not data.channels:
            return False
        n = self.liveness_samples
        for ch in data.channels:
            head = np.abs(np.asarray(ch.max[:n], dtype=np.float64))
            if head.size and bool(np.any(head > LIVENESS_THRESHOLD)):
                return True
        return False

    def get(self, key: CacheKey) -> WaveformData | None:
        data = self._entries.get(key)
        if data is None:
            return None
        if not self.is_live(data):
            dbg(f"dropping degenerate entry {key}")
            del self._entries[key]
            return None
        return data

    def put(self, key: CacheKey, data: WaveformData) -> None:
        self._entries[key] = data

    def discard(self, key: CacheKey) -> bool:
        return self._entries.pop(key, None) is not None

    def invalidate(self, substring: str) -> int:
        """Drop every entry whose key string contains *substring*.

        Matching is a plain substring test on ``str(key)``, so a file
        path also matches entries of other files whose path contains it.
        Returns the number of entries removed.
        """
        if not substring:
            return 0
        stale = [k for k in self._entries if substring in str(k)]
        for k in stale:
            del self._entries[k]
        if stale:
            dbg(f"invalidated {len(stale)} entries matching {substring!r}")
        return len(stale)

    def clear(self) -> None:
        self._entries.clear()

from __future__ import annotations

import logging
import os
import time
from typing import Callable, Iterable

from .host import PeakHost
from .log import dbg

log = logging.getLogger(__name__)

MIN_INDEX_BYTES = 100
INDEX_WAIT_SECONDS = 0.05
_POLL_INTERVAL = 0.005


class PeakIndexManager:
    """Keeps the host's on-disk sidecar peak index usable.

    A sidecar that is missing, or smaller than ``min_index_bytes`` (a
    truncated or corrupt write), is removed and rebuilt synchronously by
    the host.  Rebuild failures are logged, never raised: extraction then
    simply proceeds and may come back empty, which the extractor and the
    cache are prepared to handle.
    """

    def __init__(self, host: PeakHost, *,
                 min_index_bytes: int = MIN_INDEX_BYTES,
                 sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], float] = time.monotonic):
        self._host = host
        self.min_index_bytes = min_index_bytes
        self._sleep = sleep
        self._clock = clock

    def index_size(self, path: str) -> int | None:
        """Size of the sidecar in bytes, or ``None`` when absent."""
        try:
            return os.path.getsize(self._host.peak_index_path(path))
        except OSError:
            return None

    def ensure_index(self, path: str) -> bool:
        """Make sure a plausible index exists.  Returns True if a rebuild
        was requested."""
        size = self.index_size(path)
        if size is not None and size >= self.min_index_bytes:
            return False
        if size is not None:
            dbg(f"peak index for {path} is {size} bytes, discarding")
            self.discard(path)
        self._build(path)
        return True

    def wait_until_ready(self, path: str,
                         timeout: float = INDEX_WAIT_SECONDS) -> bool:
        """Bounded wait for the host to report the index as ready.

        Hosts that build indexes in the background may not have finished
        by the time ``build_peak_index`` returns.  This is the only place
        the engine blocks on that: it polls ``host.index_ready`` and gives
        up after *timeout* seconds.  Returns the final readiness.
        """
        deadline = self._clock() + max(0.0, timeout)
        while True:
            if self._host.index_ready(path):
                return True
            remaining = deadline - self._clock()
            if remaining <= 0:
                dbg(f"index for {path} not ready after {timeout * 1000:.0f} ms")
                return False
            self._sleep(min(_POLL_INTERVAL, remaining))

    def discard(self, path: str) -> bool:
        """Delete the sidecar.  Returns True if a file was removed."""
        index_path = self._host.peak_index_path(path)
        try:
            os.remove(index_path)
        except FileNotFoundError:
            return False
        except OSError as e:
            log.warning("Cannot remove peak index %s: %s", index_path, e)
            return False
        return True

    def regenerate(self, path: str) -> bool:
        """Force a fresh index.  Returns True if the host built one."""
        self.discard(path)
        return self._build(path)

    def generate_missing(self, paths: Iterable[str]) -> int:
        """Build indexes for files that have none.  Returns how many were
        built."""
        generated = 0
        for path in paths:
            if not path or not os.path.isfile(path):
                continue
            if self.index_size(path) is not None:
                continue
            if self._build(path):
                generated += 1
        return generated

    def _build(self, path: str) -> bool:
        try:
            ok = bool(self._host.build_peak_index(path))
        except OSError as e:
            log.warning("Peak index rebuild failed for %s: %s", path, e)
            return False
        if not ok:
            log.warning("Peak index rebuild failed for %s", path)
        else:
            dbg(f"peak index rebuilt for {path}")
        return ok

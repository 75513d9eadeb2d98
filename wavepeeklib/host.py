"""Host capability boundaries.

The core never decodes audio, builds peak indexes or drives an audio
device itself.  It calls into a *peak host* and a *preview host*
described by the protocols below.  :mod:`wavepeeklib.hosts` ships
soundfile- and sounddevice-backed implementations.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

import numpy as np

# get_peaks() packs the returned sample count into the low 20 bits of its
# integer result; higher bits carry host-specific flags.
SAMPLE_COUNT_BITS = 20
SAMPLE_COUNT_MASK = (1 << SAMPLE_COUNT_BITS) - 1
FLAG_FROM_INDEX = 1 << 24


def pack_peak_result(sample_count: int, flags: int = 0) -> int:
    """Encode a returned sample count (plus flags) the way hosts report it."""
    return (int(sample_count) & SAMPLE_COUNT_MASK) | int(flags)


def unpack_sample_count(packed: int) -> int:
    """Extract the returned sample count from a packed peak result."""
    return int(packed) & SAMPLE_COUNT_MASK


@runtime_checkable
class PeakHost(Protocol):
    """Decoding, peak-index and batched peak-retrieval capability."""

    def open_source(self, path: str) -> Any | None:
        """Open *path*; return an opaque source handle or ``None``."""
        ...

    def close_source(self, source: Any) -> None: ...

    def sample_rate(self, source: Any) -> float | None: ...

    def channel_count(self, source: Any) -> int | None: ...

    def duration(self, source: Any) -> float | None: ...

    def peak_index_path(self, path: str) -> str:
        """Location of the on-disk sidecar peak index for *path*."""
        ...

    def build_peak_index(self, path: str) -> bool:
        """Synchronously (re)build the sidecar index.  ``True`` on success."""
        ...

    def index_ready(self, path: str) -> bool:
        """Whether a usable index for *path* is available right now."""
        ...

    def open_reader(self, source: Any) -> Any | None:
        """Acquire a scratch peak reader bound to *source*."""
        ...

    def close_reader(self, reader: Any) -> None:
        """Release a scratch reader; must tolerate repeated calls."""
        ...

    def get_peaks(self, reader: Any, peak_rate: float, start_time: float,
                  channel_count: int, sample_count: int,
                  ) -> tuple[np.ndarray, int]:
        """Batched peak retrieval.

        Returns ``(buffer, packed)``.  *buffer* is block-structured: all
        maxima (sample-major, channel-minor) followed by all minima.
        ``unpack_sample_count(packed)`` is the number of peaks returned.
        *peak_rate* is the number of source frames summarised per peak.
        """
        ...

    def read_samples(self, path: str, start: float,
                     length: float | None) -> tuple[np.ndarray, int]:
        """Decode ``(frames, channels)`` float samples and the sample rate."""
        ...


@runtime_checkable
class PreviewHost(Protocol):
    """Isolated preview-playback capability."""

    def create_preview(self, path: str) -> Any | None: ...

    def destroy_preview(self, handle: Any) -> None: ...

    def set_volume(self, handle: Any, volume: float) -> None: ...

    def get_volume(self, handle: Any) -> float: ...

    def set_position(self, handle: Any, seconds: float) -> None: ...

    def get_position(self, handle: Any) -> float | None:
        """Absolute playback position in seconds, ``None`` if unknown."""
        ...

    def set_loop(self, handle: Any, loop: bool) -> None: ...

    def play(self, handle: Any) -> None: ...

    def stop(self, handle: Any) -> None: ...

    def is_playing(self, handle: Any) -> bool: ...

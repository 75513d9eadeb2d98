from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

import numpy as np


class WaveformError(Exception):
    """Base class for recoverable waveform subsystem failures."""
    pass


class MissingFile(WaveformError):
    """Raised by the source probe when a file cannot be opened."""

    def __init__(self, path: str, reason: str = "cannot be opened"):
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class PlaybackState(Enum):
    STOPPED = "stopped"
    PLAYING = "playing"


class ResizeEdge(str, Enum):
    LEFT = "left"
    RIGHT = "right"


@dataclass(frozen=True)
class AudioSource:
    """Basic facts about an audio file, as reported by the host."""
    path: str
    sample_rate: int
    channel_count: int
    duration: float


@dataclass(frozen=True)
class PeakWindowRequest:
    """Everything needed to produce one finalized peak buffer.

    Attributes:
        file_path:      Audio file on disk.
        channel_count:  Channels to extract.  ``None`` uses the source's count.
        start_offset:   Window start in seconds.
        display_length: Window length in seconds.  ``None`` runs to the end.
        pixel_width:    Exact length of every output array.
        amplify_quiet:  Extra boost factor for quiet material (> 1 enables).
        use_log_scale:  Compress large gains with ``1 + sqrt(gain - 1)``.
    """
    file_path: str
    pixel_width: int = 400
    channel_count: int | None = None
    start_offset: float = 0.0
    display_length: float | None = None
    amplify_quiet: float = 3.0
    use_log_scale: bool = True


@dataclass(eq=False)
class ChannelPeaks:
    """Per-pixel min/max/rms envelope of one channel.

    ``rms`` is an envelope approximation,
    ``(|max| + |min|) / 2 * 0.7``, not a true root-mean-square.
    """
    min: np.ndarray
    max: np.ndarray
    rms: np.ndarray

    def __len__(self) -> int:
        return len(self.max)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ChannelPeaks):
            return NotImplemented
        return (np.array_equal(self.min, other.min)
                and np.array_equal(self.max, other.max)
                and np.array_equal(self.rms, other.rms))

    @classmethod
    def zeros(cls, length: int) -> ChannelPeaks:
        return cls(
            min=np.zeros(length, dtype=np.float64),
            max=np.zeros(length, dtype=np.float64),
            rms=np.zeros(length, dtype=np.float64),
        )


@dataclass(eq=False)
class WaveformData:
    """A finalized peak buffer, ready for a rendering surface.

    Attributes:
        channels:       One :class:`ChannelPeaks` per channel, each of
                        exactly the requested pixel width.
        length:         Duration of the displayed window in seconds.
        sample_rate:    Source sample rate.
        channel_count:  Number of entries in ``channels``.
        start_offset:   Window start within the file, in seconds.
        is_placeholder: True for the flat fallback returned when no real
                        peak data could be produced.
    """
    channels: list[ChannelPeaks]
    length: float
    sample_rate: int
    channel_count: int
    start_offset: float = 0.0
    is_placeholder: bool = False

    @property
    def width(self) -> int:
        return len(self.channels[0]) if self.channels else 0

    # First channel, for mono consumers
    @property
    def min(self) -> np.ndarray:
        return self.channels[0].min

    @property
    def max(self) -> np.ndarray:
        return self.channels[0].max

    @property
    def rms(self) -> np.ndarray:
        return self.channels[0].rms

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, WaveformData):
            return NotImplemented
        return (self.length == other.length
                and self.sample_rate == other.sample_rate
                and self.channel_count == other.channel_count
                and self.start_offset == other.start_offset
                and self.is_placeholder == other.is_placeholder
                and self.channels == other.channels)


@dataclass
class RawPeaks:
    """Deinterleaved host peaks before resampling.

    Arrays have shape ``(channels, sample_count)``.
    """
    min: np.ndarray
    max: np.ndarray
    rms: np.ndarray
    sample_count: int
    mono_fallback: bool = False

    @property
    def channel_count(self) -> int:
        return int(self.max.shape[0])

    def is_silent(self, threshold: float = 0.001) -> bool:
        if self.sample_count == 0:
            return True
        return bool(np.all(np.abs(self.max) <= threshold)
                    and np.all(np.abs(self.min) <= threshold))


@dataclass(frozen=True)
class CacheKey:
    """Cache identity of a peak buffer.

    Normalization flags are deliberately absent; see DESIGN.md.
    Offsets are kept at millisecond resolution so that requests which
    differ only by float noise share an entry.
    """
    file_path: str
    pixel_width: int
    start_offset: float = 0.0
    display_length: float = -1.0

    @classmethod
    def for_request(cls, request: PeakWindowRequest) -> CacheKey:
        length = request.display_length
        return cls(
            file_path=request.file_path,
            pixel_width=int(request.pixel_width),
            start_offset=round(float(request.start_offset or 0.0), 3),
            display_length=-1.0 if length is None else round(float(length), 3),
        )

    def __str__(self) -> str:
        return (f"{self.file_path}_{self.pixel_width}"
                f"_{self.start_offset:.3f}_{self.display_length:.3f}")


@dataclass
class PlaybackSession:
    file: str
    window_start: float
    window_length: float
    absolute_position: float
    is_playing: bool = True
    volume: float = 0.7

    @property
    def window_end(self) -> float:
        return self.window_start + self.window_length


@dataclass
class Region:
    """A named time span over a file's timeline (seconds)."""
    start_pos: float
    end_pos: float
    name: str = ""

    @property
    def length(self) -> float:
        return self.end_pos - self.start_pos

    def contains(self, position: float) -> bool:
        return self.start_pos <= position <= self.end_pos

    def to_record(self) -> dict[str, Any]:
        return {"startPos": self.start_pos, "endPos": self.end_pos,
                "name": self.name}


@dataclass
class GateParams:
    """Gate settings for automatic region detection.

    Attributes:
        open_threshold_db:  RMS level (dBFS) that opens the gate.
        close_threshold_db: RMS level (dBFS) below which the gate closes.
        min_length_ms:      Minimum open time before the gate may close.
        start_offset_ms:    Move each region start earlier by this much.
        end_offset_ms:      Move each region end later by this much.
    """
    open_threshold_db: float = -20.0
    close_threshold_db: float = -30.0
    min_length_ms: float = 100.0
    start_offset_ms: float = 0.0
    end_offset_ms: float = 0.0

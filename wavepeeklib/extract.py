from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

import numpy as np

from .host import PeakHost, unpack_sample_count
from .log import dbg
from .models import AudioSource, RawPeaks

RMS_ENVELOPE_FACTOR = 0.7


def envelope_rms(max_vals: np.ndarray, min_vals: np.ndarray) -> np.ndarray:
    """Cheap rms stand-in: ``(|max| + |min|) / 2 * 0.7``."""
    return (np.abs(max_vals) + np.abs(min_vals)) / 2.0 * RMS_ENVELOPE_FACTOR


def clamp_window(source: AudioSource, start_offset: float | None,
                 display_length: float | None) -> tuple[float, float]:
    """Clamp ``[start, start + length)`` into ``[0, duration)``.

    An offset at or past the end of the file falls back to the start;
    a missing length runs to the end.
    """
    total = source.duration
    start = max(0.0, float(start_offset or 0.0))
    if start >= total:
        start = 0.0
    remaining = total - start
    if display_length is None:
        length = remaining
    else:
        length = min(float(display_length), remaining)
    return start, max(0.0, length)


def deinterleave(buf: np.ndarray, count: int,
                 channels: int) -> tuple[np.ndarray, np.ndarray]:
    """Split a block-structured peak buffer into per-channel arrays.

    The buffer holds every maximum first (sample-major, channel-minor),
    followed by every minimum.  Returns ``(max, min)`` with shape
    ``(channels, count)``.  Positions past the end of a short buffer
    read as zero.
    """
    n = count * channels
    flat = np.zeros(2 * n, dtype=np.float64)
    avail = min(len(buf), 2 * n)
    flat[:avail] = buf[:avail]
    max_vals = np.ascontiguousarray(flat[:n].reshape(count, channels).T)
    min_vals = np.ascontiguousarray(flat[n:].reshape(count, channels).T)
    return max_vals, min_vals


class WindowExtractor:
    """Reads raw per-channel peaks for a time window from the host.

    The host is asked for a number of peaks chosen from the target pixel
    width: short clips (fewer than ``width * short_clip_ratio`` audio
    samples) are read coarsely and stretched later by the resampler,
    longer windows are read close to one peak per pixel.
    """

    def __init__(self, host: PeakHost, *,
                 min_samples: int = 50,
                 max_samples: int = 2000,
                 short_clip_ratio: int = 100):
        self._host = host
        self.min_samples = min_samples
        self.max_samples = max_samples
        self.short_clip_ratio = short_clip_ratio

    def resolution(self, sample_rate: int, length: float,
                   width: int) -> tuple[int, float, int]:
        """Return ``(samples_needed, peak_rate, request_count)``.

        *peak_rate* is the number of source frames per peak;
        *request_count* never exceeds what the window can yield at that
        rate.
        """
        total = sample_rate * length
        if total < width * self.short_clip_ratio:
            needed = max(self.min_samples, width // 4)
        else:
            needed = width
        needed = int(min(max(needed, self.min_samples), self.max_samples))
        peak_rate = max(1.0, total / needed)
        available = int(total / peak_rate + 1e-9)
        return needed, peak_rate, min(needed, available)

    def extract(self, source: AudioSource, channel_count: int,
                start_offset: float, length: float,
                width: int) -> RawPeaks | None:
        """Fetch and deinterleave the peaks of one window.

        Falls back to a single mono request (replicated across all
        channels) when the multi-channel request returns nothing.
        Returns ``None`` if both attempts come back empty.
        """
        channels = max(1, int(channel_count))
        _needed, peak_rate, request = self.resolution(
            source.sample_rate, length, width)
        if request <= 0:
            return None

        with self._reader(source.path) as reader:
            if reader is None:
                return None

            buf, count = self._fetch(reader, peak_rate, start_offset,
                                     channels, request)
            if count > 0:
                max_vals, min_vals = deinterleave(buf, count, channels)
                return RawPeaks(min=min_vals, max=max_vals,
                                rms=envelope_rms(max_vals, min_vals),
                                sample_count=count)

            dbg(f"no peaks for {source.path} with {channels} ch, retrying mono")
            buf, count = self._fetch(reader, peak_rate, start_offset, 1, request)
            if count <= 0:
                return None
            max_mono, min_mono = deinterleave(buf, count, 1)
            max_vals = np.repeat(max_mono, channels, axis=0)
            min_vals = np.repeat(min_mono, channels, axis=0)
            return RawPeaks(min=min_vals, max=max_vals,
                            rms=envelope_rms(max_vals, min_vals),
                            sample_count=count, mono_fallback=True)

    def _fetch(self, reader, peak_rate: float, start_offset: float,
               channels: int, request: int) -> tuple[np.ndarray, int]:
        buf, packed = self._host.get_peaks(
            reader, peak_rate, start_offset, channels, request)
        count = min(unpack_sample_count(packed), request)
        return np.asarray(buf, dtype=np.float64).ravel(), count

    @contextmanager
    def _reader(self, path: str) -> Iterator[object | None]:
        """Scratch peak reader scoped to a single extraction.

        The host source and reader are released on every exit path,
        including early returns and exceptions.
        """
        source = self._host.open_source(path)
        if source is None:
            yield None
            return
        reader = None
        try:
            reader = self._host.open_reader(source)
            yield reader
        finally:
            if reader is not None:
                self._host.close_reader(reader)
            self._host.close_source(source)

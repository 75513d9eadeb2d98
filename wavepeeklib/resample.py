from __future__ import annotations

import numpy as np

from .models import RawPeaks


def stretch(values: np.ndarray, width: int) -> np.ndarray:
    """Linearly stretch or decimate ``(channels, n)`` rows to *width*.

    Pixel ``p`` (0-based) samples the fractional source position
    ``p / (width - 1) * (n - 1)``; the last pixel lands exactly on the
    last source value, so nothing is extrapolated.
    """
    values = np.atleast_2d(np.asarray(values, dtype=np.float64))
    channels, n = values.shape
    if n == 0:
        return np.zeros((channels, width), dtype=np.float64)
    if width <= 1 or n == 1:
        return np.repeat(values[:, :1], width, axis=1)

    pos = np.arange(width, dtype=np.float64) / (width - 1) * (n - 1)
    idx = np.minimum(np.floor(pos).astype(np.intp), n - 1)
    frac = pos - idx
    nxt = np.minimum(idx + 1, n - 1)
    out = values[:, idx] * (1.0 - frac) + values[:, nxt] * frac
    out[:, -1] = values[:, -1]
    return out


class Resampler:
    """Maps raw peaks onto an exact pixel width."""

    def resample(self, raw: RawPeaks, width: int) -> RawPeaks:
        """Return peaks whose arrays are exactly *width* long.

        A buffer that already has *width* samples is returned as is.
        """
        width = int(width)
        if raw.sample_count == width:
            return raw
        return RawPeaks(
            min=stretch(raw.min, width),
            max=stretch(raw.max, width),
            rms=stretch(raw.rms, width),
            sample_count=width,
            mono_fallback=raw.mono_fallback,
        )

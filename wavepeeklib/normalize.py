"""Adaptive per-channel display gain with soft limiting.

Waveforms of quiet material are hard to read at their true scale, so
each channel gets a display gain picked from its own peak level:

=================  ==============
max peak           target ceiling
=================  ==============
< 0.05             0.4
< 0.1              0.5
< 0.3              0.6
< 0.7              0.8
otherwise          1.0
=================  ==============

``gain = target / max_peak``, optionally boosted further for quiet
material (``amplify_quiet``), compressed with ``1 + sqrt(gain - 1)``
(``use_log_scale``), and capped at ``max_gain``.  After gain, every value
goes through :func:`soft_clip` so nothing exceeds the ceiling.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

from .models import ChannelPeaks, RawPeaks

SILENCE_THRESHOLD = 0.001
MIN_ACTIVE_SAMPLES = 10
QUIET_LEVEL = 0.3
LOG_SCALE_KNEE = 1.5
MAX_GAIN = 8.0
SOFT_CLIP_LIMIT = 0.95

_GAIN_BRACKETS: list[tuple[float, float]] = [
    (0.05, 0.4),
    (0.1, 0.5),
    (0.3, 0.6),
    (0.7, 0.8),
]


def target_ceiling(max_peak: float) -> float:
    """Normalization target for a channel peaking at *max_peak*."""
    for upper, target in _GAIN_BRACKETS:
        if max_peak < upper:
            return target
    return 1.0


def soft_clip(values, limit: float = SOFT_CLIP_LIMIT):
    """Limit *values* to ``±limit`` with a quadratic knee.

    Magnitudes up to ``0.9 * limit`` pass unchanged.  Above that, the
    excess ``x`` (in units of the remaining ``0.1 * limit`` headroom) maps
    to ``x - x²/4``, which leaves the threshold with slope 1 and meets the
    limit with slope 0 at ``x = 2``; larger inputs stay at the limit.
    Sign is preserved.  Accepts scalars or arrays.
    """
    v = np.asarray(values, dtype=np.float64)
    threshold = 0.9 * limit
    headroom = limit - threshold
    mag = np.abs(v)
    x = np.clip((mag - threshold) / headroom, 0.0, 2.0)
    knee = threshold + headroom * (x - x * x / 4.0)
    out = np.where(mag <= threshold, v, np.sign(v) * knee)
    if out.ndim == 0:
        return float(out)
    return out


@dataclass
class ChannelGain:
    """Outcome of gain selection for one channel."""
    max_peak: float
    active_samples: int
    gain: float
    skipped: bool = False


class Normalizer:
    """Applies adaptive display gain to resampled peaks, per channel."""

    def __init__(self, *, amplify_quiet: float = 3.0,
                 use_log_scale: bool = True,
                 max_gain: float = MAX_GAIN,
                 limit: float = SOFT_CLIP_LIMIT):
        self.amplify_quiet = amplify_quiet
        self.use_log_scale = use_log_scale
        self.max_gain = max_gain
        self.limit = limit

    def compute_gain(self, max_peak: float) -> float:
        """Display gain for a channel with the given peak (no silence check)."""
        gain = target_ceiling(max_peak) / max_peak
        aq = self.amplify_quiet
        if aq is not None and aq > 1.0 and max_peak < QUIET_LEVEL:
            gain *= 1.0 + (aq - 1.0) * (QUIET_LEVEL - max_peak) / QUIET_LEVEL
        if self.use_log_scale and gain > LOG_SCALE_KNEE:
            gain = 1.0 + math.sqrt(gain - 1.0)
        return min(gain, self.max_gain)

    def plan(self, min_vals: np.ndarray, max_vals: np.ndarray) -> ChannelGain:
        """Decide the gain for one channel.  Does not modify the data."""
        abs_max = np.abs(max_vals)
        abs_min = np.abs(min_vals)
        if abs_max.size == 0:
            return ChannelGain(0.0, 0, 1.0, skipped=True)
        max_peak = float(max(abs_max.max(), abs_min.max()))
        active = int(np.count_nonzero((abs_max > SILENCE_THRESHOLD)
                                      | (abs_min > SILENCE_THRESHOLD)))
        if max_peak <= SILENCE_THRESHOLD or active <= MIN_ACTIVE_SAMPLES:
            return ChannelGain(max_peak, active, 1.0, skipped=True)
        return ChannelGain(max_peak, active, self.compute_gain(max_peak))

    def apply(self, peaks: RawPeaks) -> list[ChannelPeaks]:
        """Normalize every channel of *peaks* independently."""
        out: list[ChannelPeaks] = []
        for ch in range(peaks.channel_count):
            min_vals = np.array(peaks.min[ch], dtype=np.float64)
            max_vals = np.array(peaks.max[ch], dtype=np.float64)
            rms_vals = np.array(peaks.rms[ch], dtype=np.float64)
            decision = self.plan(min_vals, max_vals)
            if not decision.skipped:
                g = decision.gain
                min_vals = soft_clip(min_vals * g, self.limit)
                max_vals = soft_clip(max_vals * g, self.limit)
                rms_vals = soft_clip(rms_vals * g, self.limit)
            out.append(ChannelPeaks(min=min_vals, max=max_vals, rms=rms_vals))
        return out

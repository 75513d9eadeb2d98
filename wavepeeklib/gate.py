"""Automatic region detection and region splitting.

Positions returned here are relative to the start of the analysed
samples, in seconds.
"""

from __future__ import annotations

import math

import numpy as np

from .models import GateParams, Region

RMS_WINDOW_MS = 10.0
RMS_HOP_MS = 5.0
CLOSE_WINDOWS = 3
MERGE_GAP = 0.05
MAX_REGIONS = 100


def db_to_linear(db: float) -> float:
    return 10 ** (db / 20.0)


def windowed_rms(samples: np.ndarray, sample_rate: int,
                 window_ms: float = RMS_WINDOW_MS,
                 hop_ms: float = RMS_HOP_MS) -> tuple[np.ndarray, int]:
    """RMS of overlapping windows, all channels pooled.

    Returns ``(rms, hop)`` where ``rms[k]`` covers frames
    ``[k * hop, k * hop + window)``.  Uses a cumulative sum of the
    per-frame channel mean of squares.
    """
    data = np.asarray(samples, dtype=np.float64)
    if data.ndim > 1:
        squared = np.mean(data ** 2, axis=1)
    else:
        squared = data ** 2

    window = max(1, int(math.floor(sample_rate * window_ms / 1000.0)))
    hop = max(1, int(math.floor(sample_rate * hop_ms / 1000.0)))
    if len(squared) < window:
        return np.zeros(0, dtype=np.float64), hop

    cumsum = np.concatenate(([0.0], np.cumsum(squared, dtype=np.float64)))
    starts = np.arange(0, len(squared) - window + 1, hop)
    means = (cumsum[starts + window] - cumsum[starts]) / window
    return np.sqrt(np.maximum(means, 0.0)), hop


def detect_regions(samples: np.ndarray, sample_rate: int,
                   params: GateParams | None = None,
                   max_regions: int = MAX_REGIONS) -> list[Region]:
    """Find regions where the signal rises above a hysteresis gate.

    The gate opens when a window's RMS exceeds the open threshold and,
    once it has been open for ``min_length_ms``, closes after three
    consecutive windows below the close threshold.  Start/end offsets
    widen each region.  Regions less than 50 ms apart are merged and the
    survivors are named ``Variation 1``, ``Variation 2`` and so on.
    """
    params = params or GateParams()
    sample_rate = int(sample_rate)
    if sample_rate <= 0:
        return []
    data = np.asarray(samples, dtype=np.float64)
    total = data.shape[0] / sample_rate

    open_level = db_to_linear(params.open_threshold_db)
    close_level = db_to_linear(params.close_threshold_db)
    min_length = params.min_length_ms / 1000.0
    start_offset = params.start_offset_ms / 1000.0
    end_offset = params.end_offset_ms / 1000.0

    rms, hop = windowed_rms(data, sample_rate)

    spans: list[tuple[float, float]] = []
    gate_open = False
    span_start = 0.0
    opened_at = 0.0
    below = 0

    for k, level in enumerate(rms):
        if len(spans) >= max_regions:
            break
        now = k * hop / sample_rate
        if not gate_open:
            if level > open_level:
                gate_open = True
                span_start = max(0.0, now - start_offset)
                opened_at = now
                below = 0
            continue
        if now - opened_at < min_length:
            continue
        if level < close_level:
            below += 1
            if below >= CLOSE_WINDOWS:
                span_end = min(total, now + end_offset)
                if span_end > span_start:
                    spans.append((span_start, span_end))
                gate_open = False
                below = 0
        else:
            below = 0

    if gate_open and len(spans) < max_regions and total - opened_at >= min_length:
        if total > span_start:
            spans.append((span_start, total))

    merged: list[list[float]] = []
    for start, end in spans:
        if merged and start - merged[-1][1] < MERGE_GAP:
            merged[-1][1] = max(merged[-1][1], end)
        else:
            merged.append([start, end])

    return [Region(s, e, f"Variation {i}")
            for i, (s, e) in enumerate(merged, start=1)]


def split_count(total_length: float, count: int) -> list[Region]:
    """*count* equal regions covering ``[0, total_length]``."""
    if count is None or count < 1 or total_length <= 0:
        return []
    count = int(count)
    step = total_length / count
    regions = []
    for i in range(count):
        end = total_length if i == count - 1 else (i + 1) * step
        regions.append(Region(i * step, end, f"Area {i + 1}"))
    return regions


def split_time(total_length: float, duration: float) -> list[Region]:
    """As many whole regions of *duration* seconds as fit; the remainder
    is left uncovered."""
    if duration is None or duration <= 0 or total_length <= 0:
        return []
    n = int(math.floor(total_length / duration + 1e-9))
    return [Region(i * duration, min(total_length, (i + 1) * duration),
                   f"Area {i + 1}")
            for i in range(n)]

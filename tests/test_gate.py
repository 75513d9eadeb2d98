# tests/test_gate.py
import numpy as np
import pytest

from wavepeeklib.gate import detect_regions, split_count, split_time, windowed_rms
from wavepeeklib.models import GateParams

SR = 8000


def _signal(duration, bursts, channels=1, amp=0.5):
    n = int(duration * SR)
    t = np.arange(n) / SR
    mono = np.zeros(n)
    for start, end in bursts:
        mask = (t >= start) & (t < end)
        mono[mask] = amp * np.sin(2 * np.pi * 440 * t[mask])
    if channels == 1:
        return mono
    return np.stack([mono] * channels, axis=1)


def test_windowed_rms_of_sine():
    rms, hop = windowed_rms(_signal(1.0, [(0.0, 1.0)]), SR)
    assert hop == 40
    assert np.median(rms) == pytest.approx(0.5 / np.sqrt(2), rel=0.05)


def test_detects_separate_bursts():
    samples = _signal(2.0, [(0.5, 0.9), (1.3, 1.6)])
    regions = detect_regions(samples, SR)
    assert len(regions) == 2
    assert regions[0].start_pos == pytest.approx(0.5, abs=0.02)
    assert regions[0].end_pos == pytest.approx(0.9, abs=0.03)
    assert regions[1].start_pos == pytest.approx(1.3, abs=0.02)
    assert regions[1].end_pos == pytest.approx(1.6, abs=0.03)
    assert [r.name for r in regions] == ["Variation 1", "Variation 2"]


def test_channels_are_pooled():
    samples = _signal(2.0, [(0.5, 0.9)], channels=2)
    assert len(detect_regions(samples, SR)) == 1


def test_close_gaps_are_merged():
    samples = _signal(1.5, [(0.2, 0.5), (0.53, 0.9)])
    regions = detect_regions(samples, SR)
    assert len(regions) == 1
    assert regions[0].start_pos == pytest.approx(0.2, abs=0.02)
    assert regions[0].end_pos == pytest.approx(0.9, abs=0.03)


def test_offsets_widen_regions():
    samples = _signal(2.0, [(0.5, 0.9)])
    plain = detect_regions(samples, SR)[0]
    wide = detect_regions(samples, SR, GateParams(start_offset_ms=20,
                                                  end_offset_ms=30))[0]
    assert wide.start_pos == pytest.approx(plain.start_pos - 0.02, abs=1e-9)
    assert wide.end_pos == pytest.approx(plain.end_pos + 0.03, abs=1e-9)


def test_gate_open_at_end_closes_at_end():
    samples = _signal(1.0, [(0.6, 1.0)])
    regions = detect_regions(samples, SR)
    assert len(regions) == 1
    assert regions[0].end_pos == pytest.approx(1.0)


def test_quiet_signal_finds_nothing():
    samples = _signal(1.0, [(0.2, 0.8)], amp=0.01)  # about -43 dBFS RMS
    assert detect_regions(samples, SR) == []


def test_max_regions():
    samples = _signal(2.0, [(0.2, 0.5), (1.3, 1.6)])
    assert len(detect_regions(samples, SR, max_regions=1)) == 1


def test_split_count():
    regions = split_count(10.0, 3)
    assert [r.name for r in regions] == ["Area 1", "Area 2", "Area 3"]
    assert regions[0].start_pos == 0.0
    assert regions[-1].end_pos == 10.0
    for a, b in zip(regions, regions[1:]):
        assert a.end_pos == pytest.approx(b.start_pos)
    assert split_count(10.0, 0) == []


def test_split_time():
    regions = split_time(10.0, 3.0)
    assert [(r.start_pos, r.end_pos) for r in regions] == [
        (0.0, 3.0), (3.0, 6.0), (6.0, 9.0)]
    assert split_time(2.0, 3.0) == []
    assert split_time(2.0, 0.0) == []
    assert len(split_time(1.0, 0.1)) == 10
    assert split_time(1.0, 0.1)[-1].end_pos <= 1.0

# tests/test_extract.py
import numpy as np
import pytest

from wavepeeklib.extract import WindowExtractor, clamp_window, deinterleave
from wavepeeklib.models import AudioSource


def _source(path, duration=10.0, sr=44100, channels=1):
    return AudioSource(path, sr, channels, duration)


def test_deinterleave_block_layout():
    # 3 samples x 2 channels: maxima block then minima block
    buf = np.array([1, 10, 2, 20, 3, 30, -1, -10, -2, -20, -3, -30], dtype=float)
    max_vals, min_vals = deinterleave(buf, 3, 2)
    assert max_vals.tolist() == [[1, 2, 3], [10, 20, 30]]
    assert min_vals.tolist() == [[-1, -2, -3], [-10, -20, -30]]


def test_deinterleave_short_buffer_reads_zero():
    max_vals, min_vals = deinterleave(np.array([0.5, 0.25, -0.5]), 2, 1)
    assert max_vals.tolist() == [[0.5, 0.25]]
    assert min_vals.tolist() == [[-0.5, 0.0]]


@pytest.mark.parametrize("sr, length, width, expected", [
    (44100, 10.0, 100, (100, 4410.0, 100)),     # long window: one peak per px
    (44100, 0.1, 400, (100, 44.1, 100)),        # short clip: coarse
    (44100, 60.0, 5000, (2000, 1323.0, 2000)),  # clamped high
    (44100, 10.0, 10, (50, 8820.0, 50)),        # clamped low
])
def test_resolution(sr, length, width, expected):
    needed, rate, request = WindowExtractor(None).resolution(sr, length, width)
    assert needed == expected[0]
    assert rate == pytest.approx(expected[1])
    assert request == expected[2]


def test_resolution_caps_request_at_available_samples():
    needed, rate, request = WindowExtractor(None).resolution(44100, 0.001, 400)
    assert needed == 100
    assert rate == 1.0
    assert request == 44


def test_clamp_window():
    src = _source("x", duration=10.0)
    assert clamp_window(src, 2.0, 3.0) == (2.0, 3.0)
    assert clamp_window(src, 8.0, 5.0) == (8.0, 2.0)
    assert clamp_window(src, 12.0, 5.0) == (0.0, 5.0)
    assert clamp_window(src, -1.0, None) == (0.0, 10.0)
    assert clamp_window(src, 4.0, None) == (4.0, 6.0)


def test_extract_multichannel(host, audio_dir):
    ex = WindowExtractor(host)
    raw = ex.extract(_source(audio_dir["stereo"], duration=4.0, channels=2),
                     2, 0.0, 4.0, 200)
    assert raw.channel_count == 2
    assert raw.sample_count == 200
    assert raw.max[0, -1] == pytest.approx(0.6)
    assert raw.max[1, -1] == pytest.approx(0.05)
    assert raw.min[0, -1] == pytest.approx(-0.6)
    np.testing.assert_allclose(raw.rms, (np.abs(raw.max) + np.abs(raw.min)) / 2 * 0.7)
    assert not raw.mono_fallback
    assert host.open_readers == 0
    assert host.open_sources == 0


def test_extract_falls_back_to_mono(host, audio_dir):
    host.add(audio_dir["stereo"], channels=2, duration=4.0,
             amplitude=[0.4], multichannel_empty=True)
    raw = WindowExtractor(host).extract(
        _source(audio_dir["stereo"], duration=4.0, channels=2), 2, 0.0, 4.0, 100)
    assert raw.mono_fallback
    assert raw.channel_count == 2
    np.testing.assert_array_equal(raw.max[0], raw.max[1])
    assert [c[2] for c in host.peak_calls] == [2, 1]


def test_extract_empty_returns_none(host, audio_dir):
    host.add(audio_dir["tone"], empty=True)
    assert WindowExtractor(host).extract(
        _source(audio_dir["tone"]), 1, 0.0, 10.0, 100) is None
    assert host.open_readers == 0


def test_reader_released_on_error(host, audio_dir):
    host.add(audio_dir["tone"], raise_on_peaks=True)
    with pytest.raises(RuntimeError):
        WindowExtractor(host).extract(_source(audio_dir["tone"]), 1, 0.0, 10.0, 100)
    assert host.open_readers == 0
    assert host.open_sources == 0


def test_extract_passes_absolute_start(host, audio_dir):
    WindowExtractor(host).extract(_source(audio_dir["tone"]), 1, 3.5, 2.0, 100)
    assert host.peak_calls[0][1] == 3.5

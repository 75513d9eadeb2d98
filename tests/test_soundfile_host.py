# tests/test_soundfile_host.py
import os

import numpy as np
import pytest
import soundfile as sf

from wavepeeklib.engine import WaveformEngine
from wavepeeklib.extract import deinterleave
from wavepeeklib.host import FLAG_FROM_INDEX, PeakHost, unpack_sample_count
from wavepeeklib.hosts import SoundfileHost
from wavepeeklib.hosts.soundfile_host import read_peak_index

SR = 44100


@pytest.fixture
def wav(tmp_path):
    """Two seconds of stereo sine: left at 0.5, right at 0.25."""
    t = np.arange(2 * SR) / SR
    sine = np.sin(2 * np.pi * 440 * t)
    data = np.stack([0.5 * sine, 0.25 * sine], axis=1)
    path = str(tmp_path / "sine.wav")
    sf.write(path, data, SR, subtype="FLOAT")
    return path


def test_satisfies_protocol():
    assert isinstance(SoundfileHost(), PeakHost)


def test_source_facts(wav):
    host = SoundfileHost()
    src = host.open_source(wav)
    assert host.sample_rate(src) == SR
    assert host.channel_count(src) == 2
    assert host.duration(src) == pytest.approx(2.0)
    host.close_source(src)
    assert host.open_source(wav + ".missing") is None


def test_index_build_and_read(wav):
    host = SoundfileHost(block_size=256)
    assert not host.index_ready(wav)
    assert host.build_peak_index(wav)
    assert host.index_ready(wav)
    assert os.path.getsize(host.peak_index_path(wav)) >= 100

    index = read_peak_index(host.peak_index_path(wav))
    assert index.channels == 2
    assert index.frames == 2 * SR
    assert index.n_blocks == int(np.ceil(2 * SR / 256))
    assert float(index.data[:, 0, 0].max()) == pytest.approx(0.5, abs=1e-3)


def test_truncated_index_is_not_ready(wav):
    host = SoundfileHost()
    host.build_peak_index(wav)
    with open(host.peak_index_path(wav), "r+b") as f:
        f.truncate(200)
    assert not host.index_ready(wav)


def test_index_dir(wav, tmp_path):
    host = SoundfileHost(index_dir=str(tmp_path / "idx"))
    assert host.build_peak_index(wav)
    assert host.peak_index_path(wav).startswith(str(tmp_path / "idx"))
    assert host.index_ready(wav)


@pytest.mark.parametrize("rate, from_index", [(441.0, True), (100.0, False)])
def test_get_peaks(wav, rate, from_index):
    host = SoundfileHost()
    host.build_peak_index(wav)
    src = host.open_source(wav)
    reader = host.open_reader(src)
    try:
        buf, packed = host.get_peaks(reader, rate, 0.5, 2, 50)
    finally:
        host.close_reader(reader)
        host.close_source(src)
    assert host.open_readers == 0

    count = unpack_sample_count(packed)
    assert count == 50
    assert bool(packed & FLAG_FROM_INDEX) is from_index
    max_vals, min_vals = deinterleave(buf, count, 2)
    np.testing.assert_allclose(max_vals[0], 0.5, atol=0.01)
    np.testing.assert_allclose(max_vals[1], 0.25, atol=0.01)
    np.testing.assert_allclose(min_vals[0], -0.5, atol=0.01)


def test_get_peaks_stops_at_end_of_file(wav):
    host = SoundfileHost()
    src = host.open_source(wav)
    reader = host.open_reader(src)
    buf, packed = host.get_peaks(reader, 441.0, 1.9, 1, 100)
    host.close_reader(reader)
    host.close_reader(reader)
    host.close_source(src)
    # 0.1 s left = 4410 frames = 10 peaks of 441 frames
    assert unpack_sample_count(packed) == 10
    assert len(buf) == 2 * 100


def test_mono_request_takes_envelope_of_all_channels(wav):
    host = SoundfileHost()
    src = host.open_source(wav)
    reader = host.open_reader(src)
    buf, packed = host.get_peaks(reader, 441.0, 0.0, 1, 20)
    host.close_reader(reader)
    host.close_source(src)
    max_vals, _ = deinterleave(buf, unpack_sample_count(packed), 1)
    np.testing.assert_allclose(max_vals[0], 0.5, atol=0.01)


def test_read_samples(wav):
    data, sr = SoundfileHost().read_samples(wav, 0.5, 1.0)
    assert sr == SR
    assert data.shape == (SR, 2)
    with pytest.raises(OSError):
        SoundfileHost().read_samples(wav + ".missing", 0.0, None)


def test_engine_end_to_end(wav):
    engine = WaveformEngine(SoundfileHost())
    data = engine.get_waveform(wav, 200)
    assert not data.is_placeholder
    assert data.channel_count == 2
    assert data.width == 200
    assert os.path.exists(wav + ".wpeaks")
    assert np.all(np.abs(data.max) <= 0.95)
    assert engine.host.open_readers == 0

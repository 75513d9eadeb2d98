# tests/conftest.py
from pathlib import Path

import pytest

from tests.fakes import FakeClock, FakePeakHost, FakePreviewHost
from wavepeeklib.engine import WaveformEngine
from wavepeeklib.events import ANY_EVENT, EventBus


@pytest.fixture
def audio_dir(tmp_path: Path):
    """Placeholder audio files on disk (content is served by the fake host)."""
    names = ["tone.wav", "stereo.wav", "silent.wav", "broken.wav", "other.wav"]
    for n in names:
        (tmp_path / n).write_bytes(b"RIFF")
    return {n.split(".")[0]: str(tmp_path / n) for n in names} | {"root": tmp_path}


@pytest.fixture
def host(audio_dir):
    h = FakePeakHost()
    h.add(audio_dir["tone"], duration=10.0, amplitude=[0.5])
    h.add(audio_dir["stereo"], channels=2, duration=4.0, amplitude=[0.6, 0.05])
    h.add(audio_dir["silent"], duration=2.0, amplitude=[0.0])
    h.add(audio_dir["other"], duration=3.0, amplitude=[0.3])
    # broken.wav exists on disk but the host cannot open it
    return h


@pytest.fixture
def preview():
    return FakePreviewHost()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def engine(host, preview, clock):
    return WaveformEngine(host, preview_host=preview, event_bus=EventBus(),
                          clock=clock, sleep=clock.sleep)


@pytest.fixture
def events(engine):
    """Every event the engine emits, as (type, data) tuples."""
    seen = []
    engine.event_bus.subscribe(
        ANY_EVENT, lambda event_type, **data: seen.append((event_type, data)))
    return seen

# tests/test_probe.py
import pytest

from wavepeeklib.models import MissingFile
from wavepeeklib.probe import SourceProbe


def test_probe_reports_host_facts(host, audio_dir):
    info = SourceProbe(host).probe(audio_dir["stereo"])
    assert info.sample_rate == 44100
    assert info.channel_count == 2
    assert info.duration == pytest.approx(4.0)
    assert host.open_sources == 0  # handle closed again


def test_probe_defaults_for_missing_facts(host, audio_dir):
    host.add(audio_dir["other"], sample_rate=None, channels=0, duration=-3.0)
    info = SourceProbe(host).probe(audio_dir["other"])
    assert info.sample_rate == 44100
    assert info.channel_count == 1
    assert info.duration == 1.0


def test_probe_is_memoized(host, audio_dir):
    probe = SourceProbe(host)
    probe.probe(audio_dir["tone"])
    probe.probe(audio_dir["tone"])
    assert host.opened.count(audio_dir["tone"]) == 1

    probe.forget(audio_dir["tone"])
    probe.probe(audio_dir["tone"])
    assert host.opened.count(audio_dir["tone"]) == 2


@pytest.mark.parametrize("key", ["broken", None, "nope"])
def test_probe_missing_file(host, audio_dir, key):
    if key is None:
        path = ""
    elif key == "nope":
        path = str(audio_dir["root"] / "does_not_exist.wav")
    else:
        path = audio_dir[key]
    with pytest.raises(MissingFile):
        SourceProbe(host).probe(path)

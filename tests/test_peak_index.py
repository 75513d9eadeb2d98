# tests/test_peak_index.py
import os

from wavepeeklib.peak_index import PeakIndexManager


def _manager(host, clock, **kwargs):
    return PeakIndexManager(host, sleep=clock.sleep, clock=clock, **kwargs)


def test_missing_index_is_built(host, audio_dir, clock):
    mgr = _manager(host, clock)
    assert mgr.ensure_index(audio_dir["tone"]) is True
    assert host.builds == [audio_dir["tone"]]
    assert mgr.index_size(audio_dir["tone"]) == 256


def test_healthy_index_is_left_alone(host, audio_dir, clock):
    mgr = _manager(host, clock)
    host.build_peak_index(audio_dir["tone"])
    host.builds.clear()
    assert mgr.ensure_index(audio_dir["tone"]) is False
    assert host.builds == []


def test_undersized_index_is_discarded_and_rebuilt(host, audio_dir, clock):
    sidecar = host.peak_index_path(audio_dir["tone"])
    with open(sidecar, "wb") as f:
        f.write(b"x" * 40)
    mgr = _manager(host, clock)
    assert mgr.ensure_index(audio_dir["tone"]) is True
    assert os.path.getsize(sidecar) == 256


def test_failed_rebuild_is_not_fatal(host, audio_dir, clock):
    host.build_ok = False
    mgr = _manager(host, clock)
    assert mgr.ensure_index(audio_dir["tone"]) is True
    assert mgr.index_size(audio_dir["tone"]) is None


def test_wait_returns_early_when_ready(host, audio_dir, clock):
    mgr = _manager(host, clock)
    host.build_peak_index(audio_dir["tone"])
    assert mgr.wait_until_ready(audio_dir["tone"]) is True
    assert clock.sleeps == []


def test_wait_is_bounded(host, audio_dir, clock):
    host.ready = False
    mgr = _manager(host, clock)
    start = clock()
    assert mgr.wait_until_ready(audio_dir["tone"], timeout=0.05) is False
    assert clock() - start <= 0.05 + 1e-9
    assert clock.sleeps


def test_regenerate_and_generate_missing(host, audio_dir, clock):
    mgr = _manager(host, clock)
    host.build_peak_index(audio_dir["tone"])
    host.builds.clear()

    assert mgr.regenerate(audio_dir["tone"]) is True
    assert host.builds == [audio_dir["tone"]]

    host.builds.clear()
    built = mgr.generate_missing([audio_dir["tone"], audio_dir["other"],
                                  str(audio_dir["root"] / "missing.wav")])
    assert built == 1
    assert host.builds == [audio_dir["other"]]


def test_discard(host, audio_dir, clock):
    mgr = _manager(host, clock)
    assert mgr.discard(audio_dir["tone"]) is False
    host.build_peak_index(audio_dir["tone"])
    assert mgr.discard(audio_dir["tone"]) is True
    assert mgr.index_size(audio_dir["tone"]) is None

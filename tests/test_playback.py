# tests/test_playback.py
import pytest

from tests.fakes import FakePreviewHost
from wavepeeklib.events import EventBus
from wavepeeklib.models import PlaybackState
from wavepeeklib.playback import PreviewPlayer


def _player(preview, clock, **kwargs):
    return PreviewPlayer(preview, clock=clock, **kwargs)


def test_start_sets_up_handle(preview, clock):
    player = _player(preview, clock, volume=0.5)
    assert player.start("a.wav", 1.0, 4.0, 1.5) is True
    h = preview.handles[0]
    assert player.state is PlaybackState.PLAYING
    assert h.position == pytest.approx(2.5)
    assert h.loop is False
    assert h.volume == pytest.approx(0.5)
    assert h.playing
    assert player.position == pytest.approx(2.5)


def test_start_clamps_into_window(preview, clock):
    player = _player(preview, clock)
    player.start("a.wav", 1.0, 2.0, 10.0)
    assert player.position == pytest.approx(3.0)
    player.start("a.wav", 1.0, 2.0, -5.0)
    assert player.position == pytest.approx(1.0)


def test_tick_past_window_end_stops(preview, clock):
    player = _player(preview, clock)
    player.start("a.wav", window_start=0.0, window_length=5.0, relative_position=2.0)
    clock.advance(4.0)
    pos = player.tick()
    assert pos is not None and pos <= 5.0
    assert pos == pytest.approx(5.0)
    assert player.state is PlaybackState.STOPPED
    assert preview.live_handles == []


def test_position_stays_in_window_while_playing(preview, clock):
    player = _player(preview, clock)
    player.start("a.wav", 2.0, 3.0)
    for _ in range(10):
        clock.advance(0.2)
        pos = player.tick()
        assert 2.0 <= pos <= 5.0
        assert player.is_playing
    assert player.position == pytest.approx(4.0)


def test_tick_uses_host_position_when_available(clock):
    preview = FakePreviewHost(report_position=True)
    player = _player(preview, clock)
    player.start("a.wav", 0.0, 10.0, 1.0)
    preview.handles[0].position = 3.25
    clock.advance(7.0)  # ignored: host position wins
    assert player.tick() == pytest.approx(3.25)
    assert player.is_playing


def test_tick_stops_when_host_finishes(preview, clock):
    player = _player(preview, clock)
    player.start("a.wav", 0.0, 10.0)
    preview.handles[0].playing = False
    clock.advance(1.0)
    assert player.tick() == pytest.approx(1.0)
    assert not player.is_playing


def test_tick_when_stopped(preview, clock):
    assert _player(preview, clock).tick() is None


def test_stop_resets_cursor_and_keeps_marker(preview, clock):
    player = _player(preview, clock)
    player.start("a.wav", 3.0, 4.0, 1.0)
    clock.advance(0.5)
    player.tick()
    player.stop()
    assert player.state is PlaybackState.STOPPED
    assert player.position == pytest.approx(3.0)
    assert player.marker == pytest.approx(1.0)
    assert player.file == "a.wav"
    assert preview.calls[-2:] == ["stop", "destroy"]


def test_stop_releases_handle_even_if_host_stop_fails(preview, clock):
    player = _player(preview, clock)
    player.start("a.wav", 0.0, 1.0)
    preview.stop_raises = True
    player.stop()
    assert preview.live_handles == []
    assert not player.is_playing


def test_only_one_session(preview, clock):
    player = _player(preview, clock)
    player.start("a.wav", 0.0, 1.0)
    player.start("b.wav", 0.0, 1.0)
    assert len(preview.live_handles) == 1
    assert player.session.file == "b.wav"


def test_failed_start_stays_stopped(clock):
    preview = FakePreviewHost(fail=True)
    player = _player(preview, clock)
    assert player.start("a.wav", 0.0, 1.0) is False
    assert player.state is PlaybackState.STOPPED


@pytest.mark.parametrize("switch", ["play_raises", "play_stalls"])
def test_start_that_cannot_play_releases_handle(preview, clock, switch):
    player = _player(preview, clock)
    player.start("a.wav", 0.0, 5.0, 1.0)
    player.stop()

    setattr(preview, switch, True)
    assert player.start("b.wav", 0.0, 5.0, 2.0) is False
    assert player.state is PlaybackState.STOPPED
    assert preview.live_handles == []
    assert player.file == "a.wav"
    assert player.marker == pytest.approx(1.0)


def test_volume(preview, clock):
    player = _player(preview, clock)
    player.set_volume(5.0)
    assert player.volume == 2.0
    player.set_volume(-1.0)
    assert player.volume == 0.0

    player.set_volume(0.4)
    player.start("a.wav", 0.0, 1.0)
    assert preview.handles[0].volume == pytest.approx(0.4)
    player.set_volume(0.8)
    assert preview.handles[0].volume == pytest.approx(0.8)
    assert player.session.volume == pytest.approx(0.8)


def test_gain_db_scales_volume(preview, clock):
    player = _player(preview, clock, volume=0.5, gain_db=6.0)
    player.start("a.wav", 0.0, 1.0)
    assert preview.handles[0].volume == pytest.approx(0.5 * 10 ** (6 / 20))
    player.set_gain_db(0.0)
    assert preview.handles[0].volume == pytest.approx(0.5)


def test_marker_reset(preview, clock):
    player = _player(preview, clock)
    player.start("a.wav", 0.0, 1.0, 0.3)
    player.stop()
    player.reset_for_file("b.wav")
    assert player.marker == pytest.approx(0.3)
    player.reset_for_file("a.wav")
    assert player.marker is None
    assert player.file is None

    player.start("a.wav", 0.0, 1.0, 0.6)
    player.clear_marker()
    assert player.marker is None


def test_events(preview, clock):
    bus = EventBus()
    seen = []
    bus.subscribe("playback.start", lambda **d: seen.append(("start", d["position"])))
    bus.subscribe("playback.stop", lambda **d: seen.append(("stop", d["position"])))
    player = _player(preview, clock, event_bus=bus)
    player.start("a.wav", 1.0, 1.0, 0.5)
    player.stop()
    assert seen == [("start", 1.5), ("stop", 1.0)]

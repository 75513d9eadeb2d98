"""Isolated preview playback with a frame-polled cursor."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

from .events import EventBus
from .host import PreviewHost
from .log import dbg
from .models import PlaybackSession, PlaybackState

log = logging.getLogger(__name__)

MIN_VOLUME = 0.0
MAX_VOLUME = 2.0


def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


class PreviewPlayer:
    """Stopped/Playing state machine around one host preview handle.

    ``start`` opens a handle positioned inside a bounded window, ``tick``
    must be called once per frame to track the cursor and stop at the end
    of the window, and ``stop`` releases the handle.  At most one session
    is active; starting another stops the current one first.

    When the host cannot report a position, the cursor is estimated from
    the wall clock (``clock``, seconds) since ``start``.
    """

    def __init__(self, host: PreviewHost, *,
                 volume: float = 0.7,
                 gain_db: float = 0.0,
                 clock: Callable[[], float] = time.monotonic,
                 event_bus: EventBus | None = None):
        self._host = host
        self._clock = clock
        self._event_bus = event_bus
        self._volume = _clamp(float(volume), MIN_VOLUME, MAX_VOLUME)
        self._gain_db = float(gain_db)

        self._handle: Any = None
        self._session: PlaybackSession | None = None
        self._start_clock = 0.0
        self._start_position = 0.0

        # Survive stop(): the cursor rests at the window start and the last
        # clicked marker stays where the user put it.
        self._position: float | None = None
        self._marker: float | None = None
        self._file: str | None = None

    # -- state --------------------------------------------------------------

    @property
    def state(self) -> PlaybackState:
        return PlaybackState.PLAYING if self._session else PlaybackState.STOPPED

    @property
    def is_playing(self) -> bool:
        return self._session is not None

    @property
    def session(self) -> PlaybackSession | None:
        return self._session

    @property
    def position(self) -> float | None:
        """Absolute cursor position in seconds, ``None`` before any start."""
        if self._session is not None:
            return self._session.absolute_position
        return self._position

    @property
    def marker(self) -> float | None:
        """Last clicked position, relative to the window start."""
        return self._marker

    @property
    def file(self) -> str | None:
        return self._file

    @property
    def volume(self) -> float:
        return self._volume

    @property
    def gain_db(self) -> float:
        return self._gain_db

    def effective_volume(self) -> float:
        """Volume sent to the host: ``volume * 10^(gain_db / 20)``."""
        return self._volume * 10 ** (self._gain_db / 20.0)

    # -- transitions --------------------------------------------------------

    def start(self, file: str, window_start: float, window_length: float,
              relative_position: float = 0.0) -> bool:
        """Begin previewing *file* inside ``[window_start, +window_length]``.

        Returns False (and stays stopped) when the host cannot provide a
        preview handle or fails to start it.  The previous file and
        marker are kept in that case.
        """
        if self._session is not None:
            self.stop()

        window_start = max(0.0, float(window_start))
        window_length = max(0.0, float(window_length))
        relative_position = float(relative_position or 0.0)
        absolute = _clamp(window_start + relative_position,
                          window_start, window_start + window_length)

        handle = self._host.create_preview(file)
        if handle is None:
            dbg(f"no preview handle for {file}")
            return False

        try:
            self._host.set_volume(handle, self.effective_volume())
            self._host.set_loop(handle, False)
            self._host.set_position(handle, absolute)
            self._host.play(handle)
            started = self._host.is_playing(handle)
        except Exception as e:
            log.warning("Preview of %s failed to start: %s", file, e)
            started = False
        if not started:
            self._host.destroy_preview(handle)
            return False

        self._file = file
        self._marker = relative_position
        self._handle = handle
        self._start_clock = self._clock()
        self._start_position = absolute
        self._session = PlaybackSession(
            file=file,
            window_start=window_start,
            window_length=window_length,
            absolute_position=absolute,
            is_playing=True,
            volume=self._volume,
        )
        dbg(f"preview {file} from {absolute:.3f}s "
            f"(window {window_start:.3f}+{window_length:.3f})")
        self._emit("playback.start", file=file, position=absolute)
        return True

    def tick(self) -> float | None:
        """Advance the cursor for this frame.

        Returns the position observed this frame, clamped into the
        window, or ``None`` when nothing is playing.  Reaching the end of
        the window, or the host finishing on its own, stops playback.
        """
        session = self._session
        if session is None:
            return None

        pos = self._host.get_position(self._handle)
        if pos is None:
            pos = self._start_position + (self._clock() - self._start_clock)
        pos = _clamp(float(pos), session.window_start, session.window_end)
        session.absolute_position = pos

        if pos >= session.window_end or not self._host.is_playing(self._handle):
            self.stop()
        return pos

    def stop(self) -> None:
        """Release the host handle and return to STOPPED.

        The cursor is reset to the window start, not zero; the clicked
        marker and current file are kept.
        """
        handle, self._handle = self._handle, None
        if handle is not None:
            try:
                self._host.stop(handle)
            except Exception as e:
                log.warning("Preview stop failed: %s", e)
            finally:
                self._host.destroy_preview(handle)

        session, self._session = self._session, None
        if session is not None:
            session.is_playing = False
            self._position = session.window_start
            self._emit("playback.stop", file=session.file,
                       position=session.window_start)

    # -- settings -----------------------------------------------------------

    def set_volume(self, volume: float) -> None:
        """Set the preview volume (0-2).  Applied at once when playing."""
        self._volume = _clamp(float(volume), MIN_VOLUME, MAX_VOLUME)
        if self._session is not None:
            self._session.volume = self._volume
            self._host.set_volume(self._handle, self.effective_volume())

    def set_gain_db(self, gain_db: float) -> None:
        self._gain_db = float(gain_db)
        if self._session is not None:
            self._host.set_volume(self._handle, self.effective_volume())

    def clear_marker(self) -> None:
        self._marker = None
        self._position = None

    def reset_for_file(self, path: str) -> None:
        """Forget the marker and file if they belong to *path*."""
        if self._file == path:
            self._marker = None
            self._position = None
            self._file = None

    def _emit(self, event_type: str, **data: Any) -> None:
        if self._event_bus is not None:
            self._event_bus.emit(event_type, **data)

from __future__ import annotations

import os

from .host import PeakHost
from .log import dbg
from .models import AudioSource, MissingFile

DEFAULT_SAMPLE_RATE = 44100
DEFAULT_CHANNELS = 1
DEFAULT_DURATION = 1.0


class SourceProbe:
    """Resolves a file path to sample rate, channel count and duration.

    Results are memoized per path for the lifetime of the probe; files
    are assumed not to change underneath a running session.
    """

    def __init__(self, host: PeakHost):
        self._host = host
        self._sources: dict[str, AudioSource] = {}

    def probe(self, path: str) -> AudioSource:
        """Return the :class:`AudioSource` for *path*.

        Raises :class:`MissingFile` if the file does not exist or the host
        cannot open it.  Facts the host cannot report fall back to
        44100 Hz, one channel and one second.
        """
        cached = self._sources.get(path)
        if cached is not None:
            return cached

        if not path or not os.path.isfile(path):
            raise MissingFile(path or "<empty>", "not found")

        try:
            source = self._host.open_source(path)
        except (RuntimeError, OSError) as e:
            raise MissingFile(path, str(e)) from e
        if source is None:
            raise MissingFile(path)
        try:
            sample_rate = self._host.sample_rate(source)
            channels = self._host.channel_count(source)
            duration = self._host.duration(source)
        except (RuntimeError, OSError) as e:
            raise MissingFile(path, str(e)) from e
        finally:
            self._host.close_source(source)

        info = AudioSource(
            path=path,
            sample_rate=int(sample_rate) if sample_rate and sample_rate > 0
            else DEFAULT_SAMPLE_RATE,
            channel_count=int(channels) if channels and channels > 0
            else DEFAULT_CHANNELS,
            duration=float(duration) if duration and duration > 0
            else DEFAULT_DURATION,
        )
        dbg(f"probed {path}: {info.sample_rate} Hz, "
            f"{info.channel_count} ch, {info.duration:.3f}s")
        self._sources[path] = info
        return info

    def forget(self, path: str) -> None:
        self._sources.pop(path, None)

    def clear(self) -> None:
        self._sources.clear()

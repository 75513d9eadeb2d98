"""Preview host using a sounddevice OutputStream."""

from __future__ import annotations

import logging

import numpy as np
import sounddevice as sd
import soundfile as sf

from ..log import dbg

log = logging.getLogger(__name__)


class _Preview:
    """One decoded file plus the state of its output stream."""

    def __init__(self, path: str, audio: np.ndarray, samplerate: int):
        self.path = path
        self.audio = audio
        self.samplerate = samplerate
        self.volume = 1.0
        self.loop = False
        self.start_frame = 0
        # Shared with the PortAudio callback thread
        self.frame_count: list[int] = [0]
        self.stream: sd.OutputStream | None = None

    @property
    def current_frame(self) -> int:
        pos = self.start_frame + self.frame_count[0]
        if self.loop and len(self.audio):
            pos %= len(self.audio)
        return min(pos, len(self.audio))


class SounddevicePreviewHost:
    """:class:`~wavepeeklib.host.PreviewHost` implementation.

    The whole file is decoded on :meth:`create_preview`; playback runs on
    PortAudio's callback thread and only advances an integer frame
    counter that :meth:`get_position` reads.
    """

    def __init__(self, device=None):
        self.device = device

    def create_preview(self, path: str):
        try:
            audio, sr = sf.read(path, dtype="float32", always_2d=True)
        except (RuntimeError, OSError) as e:
            log.warning("Cannot open %s for preview: %s", path, e)
            return None
        if audio.size == 0:
            return None
        return _Preview(path, audio, sr)

    def destroy_preview(self, handle: _Preview) -> None:
        self.stop(handle)
        handle.audio = np.zeros((0, handle.audio.shape[1]), dtype=np.float32)

    def set_volume(self, handle: _Preview, volume: float) -> None:
        handle.volume = float(volume)

    def get_volume(self, handle: _Preview) -> float:
        return handle.volume

    def set_position(self, handle: _Preview, seconds: float) -> None:
        frame = int(round(max(0.0, seconds) * handle.samplerate))
        if frame >= len(handle.audio):
            frame = 0
        handle.start_frame = frame
        handle.frame_count[0] = 0

    def get_position(self, handle: _Preview) -> float | None:
        return handle.current_frame / handle.samplerate

    def set_loop(self, handle: _Preview, loop: bool) -> None:
        handle.loop = bool(loop)

    def play(self, handle: _Preview) -> None:
        self.stop(handle)
        audio = handle.audio
        start = handle.start_frame
        frame_count = handle.frame_count
        frame_count[0] = 0
        total = len(audio)

        def callback(outdata, frames, time_info, status):
            gain = handle.volume
            pos = start + frame_count[0]
            if handle.loop:
                idx = (pos + np.arange(frames)) % total
                outdata[:] = audio[idx] * gain
                frame_count[0] += frames
                return
            end = pos + frames
            if end <= total:
                outdata[:] = audio[pos:end] * gain
                frame_count[0] += frames
            else:
                remaining = max(0, total - pos)
                if remaining > 0:
                    outdata[:remaining] = audio[pos:] * gain
                outdata[remaining:] = 0
                frame_count[0] += remaining
                raise sd.CallbackStop()

        try:
            handle.stream = sd.OutputStream(
                samplerate=handle.samplerate,
                channels=audio.shape[1],
                dtype="float32",
                device=self.device,
                callback=callback,
            )
            handle.stream.start()
        except sd.PortAudioError:
            stream, handle.stream = handle.stream, None
            if stream is not None:
                stream.close()
            raise
        dbg(f"stream started for {handle.path} at frame {start}")

    def stop(self, handle: _Preview) -> None:
        stream, handle.stream = handle.stream, None
        if stream is None:
            return
        try:
            stream.stop()
            stream.close()
        except sd.PortAudioError as e:
            log.warning("Closing preview stream failed: %s", e)

    def is_playing(self, handle: _Preview) -> bool:
        return handle.stream is not None and handle.stream.active

"""Peak host backed by soundfile, with a numpy sidecar peak index.

Sidecar layout (``<audio path>.wpeaks``)::

    128-byte header   magic b"WPK1", block size, channels, sample rate,
                      frame count (little-endian), zero padded
    float32 data      (n_blocks, channels, 2) -> [max, min] per block

Each block summarises ``block_size`` consecutive frames.  Peak requests
coarse enough to span whole blocks are answered from the sidecar;
finer ones decode the audio directly.
"""

from __future__ import annotations

import logging
import math
import os
from dataclasses import dataclass

import numpy as np
import soundfile as sf

from ..host import FLAG_FROM_INDEX, pack_peak_result
from ..log import dbg

log = logging.getLogger(__name__)

INDEX_SUFFIX = ".wpeaks"
INDEX_MAGIC = b"WPK1"
INDEX_HEADER_BYTES = 128
DEFAULT_BLOCK_SIZE = 256

_HEADER_DTYPE = np.dtype([
    ("magic", "S4"),
    ("block_size", "<u4"),
    ("channels", "<u4"),
    ("sample_rate", "<u4"),
    ("frames", "<u8"),
])


@dataclass
class PeakIndex:
    """An in-memory sidecar peak index."""
    block_size: int
    channels: int
    sample_rate: int
    frames: int
    data: np.ndarray   # (n_blocks, channels, 2) float32

    @property
    def n_blocks(self) -> int:
        return int(self.data.shape[0])


def index_block_count(frames: int, block_size: int) -> int:
    return int(math.ceil(frames / block_size)) if frames > 0 else 0


def compute_peak_index(path: str, block_size: int = DEFAULT_BLOCK_SIZE) -> PeakIndex:
    """Decode *path* block by block and collect per-block max/min."""
    with sf.SoundFile(path) as f:
        channels = f.channels
        sample_rate = f.samplerate
        frames = f.frames
        n_blocks = index_block_count(frames, block_size)
        data = np.zeros((n_blocks, channels, 2), dtype=np.float32)
        i = 0
        for block in f.blocks(blocksize=block_size, dtype="float32",
                              always_2d=True):
            if i >= n_blocks or len(block) == 0:
                break
            data[i, :, 0] = block.max(axis=0)
            data[i, :, 1] = block.min(axis=0)
            i += 1
    return PeakIndex(block_size, channels, sample_rate, frames, data[:i])


def write_peak_index(index: PeakIndex, index_path: str) -> None:
    """Write *index* atomically (temp file + rename)."""
    header = np.zeros(1, dtype=_HEADER_DTYPE)
    header["magic"] = INDEX_MAGIC
    header["block_size"] = index.block_size
    header["channels"] = index.channels
    header["sample_rate"] = index.sample_rate
    header["frames"] = index.frames
    raw = header.tobytes().ljust(INDEX_HEADER_BYTES, b"\0")

    tmp = index_path + ".tmp"
    with open(tmp, "wb") as f:
        f.write(raw)
        f.write(np.ascontiguousarray(index.data, dtype="<f4").tobytes())
    os.replace(tmp, index_path)


def read_peak_index(index_path: str) -> PeakIndex | None:
    """Load a sidecar, or ``None`` if it is missing, foreign or truncated."""
    try:
        with open(index_path, "rb") as f:
            raw = f.read()
    except OSError:
        return None
    if len(raw) < INDEX_HEADER_BYTES:
        return None
    header = np.frombuffer(raw[:_HEADER_DTYPE.itemsize], dtype=_HEADER_DTYPE)[0]
    if bytes(header["magic"]) != INDEX_MAGIC:
        return None
    block_size = int(header["block_size"])
    channels = int(header["channels"])
    frames = int(header["frames"])
    if block_size <= 0 or channels <= 0:
        return None
    n_blocks = index_block_count(frames, block_size)
    body = raw[INDEX_HEADER_BYTES:]
    if len(body) != n_blocks * channels * 2 * 4:
        return None
    data = np.frombuffer(body, dtype="<f4").reshape(n_blocks, channels, 2)
    return PeakIndex(block_size, channels, int(header["sample_rate"]),
                     frames, data)


def map_channels(max_vals: np.ndarray, min_vals: np.ndarray,
                 channels: int) -> tuple[np.ndarray, np.ndarray]:
    """Fit ``(n, source_channels)`` peaks to *channels* output channels.

    A single requested channel gets the envelope of all source channels;
    otherwise source channels are taken in order and wrap around when
    more are requested than the file has.
    """
    src = max_vals.shape[1]
    if channels == 1 and src > 1:
        return (max_vals.max(axis=1, keepdims=True),
                min_vals.min(axis=1, keepdims=True))
    idx = np.arange(channels) % src
    return max_vals[:, idx], min_vals[:, idx]


@dataclass
class _Reader:
    path: str
    sample_rate: int
    channels: int
    frames: int
    index: PeakIndex | None
    closed: bool = False


class SoundfileHost:
    """:class:`~wavepeeklib.host.PeakHost` implementation using soundfile.

    Args:
        block_size: Frames summarised by one sidecar block.
        index_dir:  Store sidecars here instead of next to the audio.
    """

    def __init__(self, block_size: int = DEFAULT_BLOCK_SIZE,
                 index_dir: str | None = None):
        self.block_size = int(block_size)
        self.index_dir = index_dir
        self._readers: set[int] = set()

    @property
    def open_readers(self) -> int:
        return len(self._readers)

    # -- sources ------------------------------------------------------------

    def open_source(self, path: str):
        try:
            return sf.SoundFile(path)
        except (RuntimeError, OSError) as e:
            dbg(f"cannot open {path}: {e}")
            return None

    def close_source(self, source) -> None:
        source.close()

    def sample_rate(self, source) -> float | None:
        return source.samplerate

    def channel_count(self, source) -> int | None:
        return source.channels

    def duration(self, source) -> float | None:
        if not source.samplerate:
            return None
        return source.frames / source.samplerate

    # -- sidecar index ------------------------------------------------------

    def peak_index_path(self, path: str) -> str:
        if self.index_dir:
            return os.path.join(self.index_dir,
                                os.path.basename(path) + INDEX_SUFFIX)
        return path + INDEX_SUFFIX

    def build_peak_index(self, path: str) -> bool:
        try:
            index = compute_peak_index(path, self.block_size)
        except RuntimeError as e:
            log.warning("Cannot index %s: %s", path, e)
            return False
        index_path = self.peak_index_path(path)
        os.makedirs(os.path.dirname(index_path) or ".", exist_ok=True)
        write_peak_index(index, index_path)
        dbg(f"wrote {index.n_blocks} blocks to {index_path}")
        return True

    def index_ready(self, path: str) -> bool:
        return read_peak_index(self.peak_index_path(path)) is not None

    # -- peak retrieval -----------------------------------------------------

    def open_reader(self, source):
        reader = _Reader(
            path=source.name,
            sample_rate=source.samplerate,
            channels=source.channels,
            frames=source.frames,
            index=read_peak_index(self.peak_index_path(source.name)),
        )
        self._readers.add(id(reader))
        return reader

    def close_reader(self, reader) -> None:
        if reader.closed:
            return
        reader.closed = True
        self._readers.discard(id(reader))

    def get_peaks(self, reader, peak_rate: float, start_time: float,
                  channel_count: int, sample_count: int):
        """Max/min of *sample_count* consecutive spans of *peak_rate* frames.

        The returned buffer is sized for the full request; only the first
        ``2 * returned * channel_count`` values are meaningful.
        """
        channels = max(1, int(channel_count))
        sample_count = max(0, int(sample_count))
        buf = np.zeros(2 * sample_count * channels, dtype=np.float64)
        rate = max(1.0, float(peak_rate))
        start = int(round(max(0.0, start_time) * reader.sample_rate))
        if sample_count == 0 or start >= reader.frames:
            return buf, pack_peak_result(0)

        edges = start + np.floor(np.arange(sample_count + 1) * rate).astype(np.int64)
        n = int(np.count_nonzero(edges[:-1] < reader.frames))
        edges = np.minimum(edges[:n + 1], reader.frames)

        flags = 0
        index = reader.index
        if (index is not None and rate >= index.block_size
                and index.channels == reader.channels):
            max_vals, min_vals = self._peaks_from_index(index, edges)
            flags = FLAG_FROM_INDEX
        else:
            max_vals, min_vals = self._peaks_from_audio(reader, edges)

        max_vals, min_vals = map_channels(max_vals, min_vals, channels)
        count = n * channels
        buf[:count] = max_vals.ravel()
        buf[count:2 * count] = min_vals.ravel()
        return buf, pack_peak_result(n, flags)

    @staticmethod
    def _peaks_from_index(index: PeakIndex,
                          edges: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        bs = index.block_size
        first = edges[:-1] // bs
        last = min(index.n_blocks, int(math.ceil(edges[-1] / bs)))
        offsets = first - first[0]
        span = index.data[first[0]:last]
        max_vals = np.maximum.reduceat(span[:, :, 0], offsets, axis=0)
        min_vals = np.minimum.reduceat(span[:, :, 1], offsets, axis=0)
        return max_vals.astype(np.float64), min_vals.astype(np.float64)

    @staticmethod
    def _peaks_from_audio(reader: _Reader,
                          edges: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        data, _sr = sf.read(reader.path, start=int(edges[0]),
                            stop=int(edges[-1]), dtype="float64",
                            always_2d=True)
        n = len(edges) - 1
        max_vals = np.zeros((n, reader.channels))
        min_vals = np.zeros((n, reader.channels))
        offsets = edges[:-1] - edges[0]
        offsets = offsets[offsets < len(data)]
        if len(offsets):
            # A file shorter than its header claims leaves trailing zeros
            k = len(offsets)
            max_vals[:k] = np.maximum.reduceat(data, offsets, axis=0)
            min_vals[:k] = np.minimum.reduceat(data, offsets, axis=0)
        return max_vals, min_vals

    # -- raw samples --------------------------------------------------------

    def read_samples(self, path: str, start: float,
                     length: float | None) -> tuple[np.ndarray, int]:
        try:
            info = sf.info(path)
            first = int(round(max(0.0, start) * info.samplerate))
            frames = -1 if length is None else int(round(length * info.samplerate))
            data, sr = sf.read(path, start=first, frames=frames,
                               dtype="float64", always_2d=True)
        except RuntimeError as e:
            raise OSError(f"Cannot read {path}: {e}") from e
        return data, sr

from __future__ import annotations

import dataclasses
import logging
import time
from typing import Any, Callable, Iterable

from .cache import PeakCache
from .config import (
    WaveformOptions,
    default_config,
    merge_configs,
    validate_config,
)
from .events import EventBus
from .extract import WindowExtractor, clamp_window
from .gate import detect_regions, split_count, split_time
from .host import PeakHost, PreviewHost
from .log import dbg
from .models import (
    CacheKey,
    ChannelPeaks,
    GateParams,
    MissingFile,
    PeakWindowRequest,
    Region,
    WaveformData,
)
from .normalize import Normalizer
from .peak_index import PeakIndexManager
from .playback import PreviewPlayer
from .probe import DEFAULT_SAMPLE_RATE, SourceProbe
from .regions import RegionStore
from .resample import Resampler

log = logging.getLogger(__name__)


class WaveformEngine:
    """Owns the peak cache, the preview player and the region stores.

    One engine replaces what would otherwise be process-wide state: build
    one per session (or per test) and call :meth:`reset` or
    :meth:`cleanup` when done.  All work happens synchronously on the
    calling thread.

    Args:
        host:         Decoding / peak-index / peak-retrieval capability.
        preview_host: Preview playback capability.  Without one,
                      :attr:`player` is ``None``.
        config:       Flat config dict, merged over :func:`default_config`
                      and validated (raises :class:`ConfigError`).
        event_bus:    Optional :class:`EventBus` for progress events.
        clock:        Monotonic clock in seconds (player fallback cursor,
                      index wait deadline).
        sleep:        Sleep function used by the bounded index wait.
    """

    def __init__(
        self,
        host: PeakHost,
        preview_host: PreviewHost | None = None,
        config: dict[str, Any] | None = None,
        event_bus: EventBus | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = merge_configs(default_config(), config or {})
        validate_config(self.config)
        cfg = self.config

        self.host = host
        self.event_bus = event_bus

        self.probe = SourceProbe(host)
        self.index = PeakIndexManager(
            host, min_index_bytes=cfg["min_index_bytes"],
            sleep=sleep, clock=clock)
        self.extractor = WindowExtractor(
            host,
            min_samples=cfg["min_samples"],
            max_samples=cfg["max_samples"],
            short_clip_ratio=cfg["short_clip_ratio"],
        )
        self.resampler = Resampler()
        self.cache = PeakCache(liveness_samples=cfg["liveness_samples"])
        self.regions = RegionStore(min_length=cfg["min_region_length"],
                                   event_bus=event_bus)
        self.player: PreviewPlayer | None = None
        if preview_host is not None:
            self.player = PreviewPlayer(
                preview_host,
                volume=cfg["preview_volume"],
                gain_db=cfg["preview_gain_db"],
                clock=clock,
                event_bus=event_bus,
            )

    def _emit(self, event_type: str, **data: Any) -> None:
        if self.event_bus:
            self.event_bus.emit(event_type, **data)

    # ------------------------------------------------------------------
    # Peak buffers
    # ------------------------------------------------------------------

    def _valid_width(self, width: Any) -> int:
        default = int(self.config["default_width"])
        if isinstance(width, bool):
            return default
        try:
            width = int(width)
        except (TypeError, ValueError):
            return default
        return width if width > 0 else default

    def placeholder(self, width: Any = None) -> WaveformData:
        """Flat, single-channel stand-in buffer of *width* pixels.

        Invalid or non-positive widths fall back to ``default_width``.
        """
        width = self._valid_width(width)
        return WaveformData(
            channels=[ChannelPeaks.zeros(width)],
            length=1.0,
            sample_rate=DEFAULT_SAMPLE_RATE,
            channel_count=1,
            is_placeholder=True,
        )

    def _placeholder_for(self, request: PeakWindowRequest,
                         reason: str) -> WaveformData:
        dbg(f"placeholder for {request.file_path}: {reason}")
        self._emit("waveform.placeholder", file=request.file_path,
                   reason=reason)
        return self.placeholder(request.pixel_width)

    def request_peaks(self, request: PeakWindowRequest) -> WaveformData:
        """Produce the finalized peak buffer for *request*.

        Never raises for unreadable, silent or index-less files: those
        yield :meth:`placeholder` buffers, which are not cached.
        """
        width = self._valid_width(request.pixel_width)
        if width != request.pixel_width:
            request = dataclasses.replace(request, pixel_width=width)
        path = request.file_path
        key = CacheKey.for_request(request)

        cached = self.cache.get(key)
        if cached is not None:
            self._emit("cache.hit", file=path, key=str(key))
            return cached
        self._emit("cache.miss", file=path, key=str(key))

        try:
            source = self.probe.probe(path)
        except MissingFile as e:
            return self._placeholder_for(request, str(e))

        if self.index.ensure_index(path):
            self._emit("index.rebuild", file=path)
            self.index.wait_until_ready(
                path, timeout=self.config["index_wait_ms"] / 1000.0)

        start, length = clamp_window(source, request.start_offset,
                                     request.display_length)
        if length <= 0.0:
            return self._placeholder_for(request, "empty window")
        channels = request.channel_count or source.channel_count

        t0 = time.perf_counter()
        try:
            raw = self.extractor.extract(source, channels, start, length, width)
        except (RuntimeError, OSError) as e:
            log.warning("Peak extraction failed for %s: %s", path, e)
            self.index.discard(path)
            self.cache.discard(key)
            return self._placeholder_for(request, "read error")
        if raw is None:
            # Start the next request from a clean index and cache slot
            self.index.discard(path)
            self.cache.discard(key)
            return self._placeholder_for(request, "no peak data")
        if raw.mono_fallback:
            self._emit("extract.mono_fallback", file=path, channels=channels)
        if raw.is_silent():
            return self._placeholder_for(request, "silent")

        resampled = self.resampler.resample(raw, width)
        normalizer = Normalizer(
            amplify_quiet=request.amplify_quiet,
            use_log_scale=request.use_log_scale,
            max_gain=self.config["max_gain"],
            limit=self.config["soft_clip_limit"],
        )
        data = WaveformData(
            channels=normalizer.apply(resampled),
            length=length,
            sample_rate=source.sample_rate,
            channel_count=resampled.channel_count,
            start_offset=start,
        )
        self.cache.put(key, data)
        dt = (time.perf_counter() - t0) * 1000
        dbg(f"{path}: {raw.sample_count} raw peaks -> {width} px "
            f"x {data.channel_count} ch in {dt:.1f} ms")
        self._emit("waveform.ready", file=path, width=width,
                   channels=data.channel_count)
        return data

    def get_waveform(self, path: str, width: Any = None,
                     options: WaveformOptions | None = None) -> WaveformData:
        """Convenience wrapper building a :class:`PeakWindowRequest`."""
        if options is None:
            options = WaveformOptions.from_config(self.config)
        request = PeakWindowRequest(
            file_path=path,
            pixel_width=self._valid_width(width),
            channel_count=options.channel_count,
            start_offset=options.start_offset or 0.0,
            display_length=options.display_length,
            amplify_quiet=options.amplify_quiet,
            use_log_scale=options.use_log_scale,
        )
        return self.request_peaks(request)

    # ------------------------------------------------------------------
    # Cache and index maintenance
    # ------------------------------------------------------------------

    def invalidate_file(self, path: str) -> int:
        """Drop cached buffers and probe facts for *path*."""
        self.probe.forget(path)
        return self.cache.invalidate(path)

    def invalidate_files(self, paths: Iterable[str]) -> int:
        """Invalidate every file of a group (e.g. all items of a container)."""
        return sum(self.invalidate_file(p) for p in paths if p)

    def clear_cache(self) -> None:
        self.cache.clear()

    def regenerate_index(self, path: str) -> bool:
        """Rebuild the sidecar of *path* and drop its cached buffers."""
        ok = self.index.regenerate(path)
        self.invalidate_file(path)
        self._emit("index.rebuild", file=path)
        return ok

    def generate_indexes(self, paths: Iterable[str]) -> int:
        """Build missing sidecars.  Returns how many were built."""
        return self.index.generate_missing(paths)

    # ------------------------------------------------------------------
    # Regions
    # ------------------------------------------------------------------

    def gate_params(self) -> GateParams:
        cfg = self.config
        return GateParams(
            open_threshold_db=cfg["gate_open_db"],
            close_threshold_db=cfg["gate_close_db"],
            min_length_ms=cfg["gate_min_length_ms"],
            start_offset_ms=cfg["gate_start_offset_ms"],
            end_offset_ms=cfg["gate_end_offset_ms"],
        )

    def auto_detect_regions(self, path: str, start_offset: float = 0.0,
                            length: float | None = None,
                            params: GateParams | None = None,
                            ) -> list[Region] | None:
        """Detect regions with the RMS gate and store them for *path*.

        Positions are relative to *start_offset*.  Returns ``None`` when
        the file cannot be read; the stored regions are then untouched.
        """
        try:
            source = self.probe.probe(path)
        except MissingFile as e:
            log.warning("Region detection skipped: %s", e)
            return None
        start, window = clamp_window(source, start_offset, length)
        try:
            samples, sample_rate = self.host.read_samples(path, start, window)
        except OSError as e:
            log.warning("Region detection skipped for %s: %s", path, e)
            return None
        regions = detect_regions(samples, sample_rate,
                                 params or self.gate_params(),
                                 max_regions=self.config["gate_max_regions"])
        dbg(f"gate found {len(regions)} regions in {path}")
        self.regions.replace(path, regions)
        return regions

    def _total_length(self, path: str, total_length: float | None) -> float | None:
        if total_length is not None and total_length > 0:
            return float(total_length)
        try:
            return self.probe.probe(path).duration
        except MissingFile as e:
            log.warning("Cannot split regions: %s", e)
            return None

    def split_regions_by_count(self, path: str, count: int,
                               total_length: float | None = None,
                               ) -> list[Region] | None:
        """Replace the regions of *path* with *count* equal slices."""
        total = self._total_length(path, total_length)
        if total is None:
            return None
        regions = split_count(total, count)
        if regions:
            self.regions.replace(path, regions)
        return regions

    def split_regions_by_time(self, path: str, duration: float,
                              total_length: float | None = None,
                              ) -> list[Region] | None:
        """Replace the regions of *path* with fixed *duration* slices."""
        total = self._total_length(path, total_length)
        if total is None:
            return None
        regions = split_time(total, duration)
        if regions:
            self.regions.replace(path, regions)
        return regions

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def cleanup(self) -> None:
        """Stop any preview and drop every cached buffer."""
        if self.player is not None:
            self.player.stop()
        self.cache.clear()

    def reset(self) -> None:
        """Return the engine to its freshly constructed state."""
        self.cleanup()
        if self.player is not None:
            self.player.clear_marker()
        self.probe.clear()
        self.regions.clear()

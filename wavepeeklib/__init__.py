from ._version import __version__
from .models import (
    WaveformError,
    MissingFile,
    AudioSource,
    PeakWindowRequest,
    ChannelPeaks,
    WaveformData,
    RawPeaks,
    CacheKey,
    PlaybackSession,
    PlaybackState,
    Region,
    ResizeEdge,
    GateParams,
)
from .config import (
    default_config,
    merge_configs,
    validate_config,
    validate_config_fields,
    validate_param_values,
    load_preset,
    save_preset,
    ConfigError,
    ConfigFieldError,
    ParamSpec,
    WaveformOptions,
)
from .host import PeakHost, PreviewHost
from .probe import SourceProbe
from .peak_index import PeakIndexManager
from .extract import WindowExtractor
from .resample import Resampler
from .normalize import Normalizer, soft_clip
from .cache import PeakCache
from .playback import PreviewPlayer
from .regions import RegionStore
from .gate import detect_regions, split_count, split_time
from .engine import WaveformEngine
from .reports import waveform_snapshot, save_json
from .events import ANY_EVENT, EVENT_TYPES, EventBus

__all__ = [
    "__version__",
    "WaveformError",
    "MissingFile",
    "AudioSource",
    "PeakWindowRequest",
    "ChannelPeaks",
    "WaveformData",
    "RawPeaks",
    "CacheKey",
    "PlaybackSession",
    "PlaybackState",
    "Region",
    "ResizeEdge",
    "GateParams",
    "default_config",
    "merge_configs",
    "validate_config",
    "validate_config_fields",
    "validate_param_values",
    "load_preset",
    "save_preset",
    "ConfigError",
    "ConfigFieldError",
    "ParamSpec",
    "WaveformOptions",
    "PeakHost",
    "PreviewHost",
    "SourceProbe",
    "PeakIndexManager",
    "WindowExtractor",
    "Resampler",
    "Normalizer",
    "soft_clip",
    "PeakCache",
    "PreviewPlayer",
    "RegionStore",
    "detect_regions",
    "split_count",
    "split_time",
    "WaveformEngine",
    "waveform_snapshot",
    "save_json",
    "ANY_EVENT",
    "EVENT_TYPES",
    "EventBus",
]

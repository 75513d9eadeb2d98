from __future__ import annotations

import json
import os
from dataclasses import dataclass
from typing import Any

PRESET_SCHEMA_VERSION = "1.0"

# Preset metadata, never part of a config
_PRESET_META = ("schema_version", "_description")


class ConfigError(Exception):
    """Invalid engine configuration or unreadable preset."""


@dataclass
class ConfigFieldError:
    """One rejected configuration value: *key*, the *value* and why."""
    key: str
    value: Any
    message: str


@dataclass(frozen=True)
class ParamSpec:
    """One tunable engine setting with its default and accepted range."""
    key: str
    type: type | tuple              # accepted Python type(s); bool never passes as a number
    default: Any
    label: str                       # short name used in error messages
    description: str = ""
    min: float | int | None = None
    max: float | int | None = None
    min_exclusive: bool = False
    max_exclusive: bool = False

    def problem(self, value: Any) -> str | None:
        """Why *value* is unacceptable for this setting, or ``None``."""
        if isinstance(value, bool) and self.type is not bool:
            return f"{self.label} must be {_type_label(self.type)}, got boolean."
        if not isinstance(value, self.type):
            return (f"{self.label} must be {_type_label(self.type)}, "
                    f"got {type(value).__name__}.")
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        if self.min is not None:
            if self.min_exclusive and value <= self.min:
                return f"{self.label} must be greater than {self.min}."
            if value < self.min:
                return f"{self.label} must be at least {self.min}."
        if self.max is not None:
            if self.max_exclusive and value >= self.max:
                return f"{self.label} must be below {self.max}."
            if value > self.max:
                return f"{self.label} must not exceed {self.max}."
        return None


# ---------------------------------------------------------------------------
# Parameter sections
# ---------------------------------------------------------------------------

ENGINE_PARAMS: list[ParamSpec] = [
    ParamSpec(
        key="default_width", type=int, default=400, min=1,
        label="Default width (px)",
        description="Pixel width used when a caller passes an invalid width.",
    ),
    ParamSpec(
        key="min_index_bytes", type=int, default=100, min=0,
        label="Minimum peak index size (bytes)",
        description=(
            "Sidecar peak indexes smaller than this are treated as "
            "truncated or corrupt and rebuilt."
        ),
    ),
    ParamSpec(
        key="index_wait_ms", type=(int, float), default=50.0, min=0.0,
        label="Index rebuild wait (ms)",
        description=(
            "Upper bound on the wait after requesting an index rebuild, "
            "giving the host's background index builder a chance to finish."
        ),
    ),
    ParamSpec(
        key="min_samples", type=int, default=50, min=1,
        label="Minimum peak samples",
        description="Lower clamp on the number of peaks requested from the host.",
    ),
    ParamSpec(
        key="max_samples", type=int, default=2000, min=1,
        label="Maximum peak samples",
        description="Upper clamp on the number of peaks requested from the host.",
    ),
    ParamSpec(
        key="short_clip_ratio", type=int, default=100, min=1,
        label="Short clip ratio",
        description=(
            "A window with fewer than width × ratio audio samples is a "
            "short clip and is read at a coarser resolution."
        ),
    ),
    ParamSpec(
        key="liveness_samples", type=int, default=10, min=1,
        label="Cache liveness samples",
        description=(
            "Number of leading max values inspected to decide whether a "
            "cached buffer is degenerate (all near zero)."
        ),
    ),
]

DISPLAY_PARAMS: list[ParamSpec] = [
    ParamSpec(
        key="amplify_quiet", type=(int, float), default=3.0, min=0.0,
        label="Amplify quiet material",
        description=(
            "Extra gain factor for material peaking below 0.3. "
            "Values at or below 1.0 disable it."
        ),
    ),
    ParamSpec(
        key="use_log_scale", type=bool, default=True,
        label="Logarithmic gain compression",
        description="Compress gains above 1.5 to 1 + sqrt(gain - 1).",
    ),
    ParamSpec(
        key="max_gain", type=(int, float), default=8.0, min=1.0,
        label="Maximum display gain",
        description="Upper bound on the adaptive per-channel display gain.",
    ),
    ParamSpec(
        key="soft_clip_limit", type=(int, float), default=0.95,
        min=0.0, max=1.0, min_exclusive=True,
        label="Soft clip ceiling",
        description="Ceiling that normalized peaks approach but never exceed.",
    ),
    ParamSpec(
        key="vertical_zoom", type=(int, float), default=1.0,
        min=0.0, min_exclusive=True,
        label="Vertical zoom",
        description="Passed through to the rendering surface.",
    ),
]

PREVIEW_PARAMS: list[ParamSpec] = [
    ParamSpec(
        key="preview_volume", type=(int, float), default=0.7,
        min=0.0, max=2.0,
        label="Preview volume",
        description="Linear volume applied to preview playback.",
    ),
    ParamSpec(
        key="preview_gain_db", type=(int, float), default=0.0,
        min=-60.0, max=24.0,
        label="Preview gain (dB)",
        description="Additional gain in dB scaling the preview volume.",
    ),
]

REGION_PARAMS: list[ParamSpec] = [
    ParamSpec(
        key="min_region_length", type=(int, float), default=0.01,
        min=0.0, min_exclusive=True,
        label="Minimum region length (s)",
        description="Regions shorter than this are rejected on creation.",
    ),
    ParamSpec(
        key="gate_open_db", type=(int, float), default=-20.0, max=0.0,
        label="Gate open threshold (dBFS)",
    ),
    ParamSpec(
        key="gate_close_db", type=(int, float), default=-30.0, max=0.0,
        label="Gate close threshold (dBFS)",
    ),
    ParamSpec(
        key="gate_min_length_ms", type=(int, float), default=100.0, min=0.0,
        label="Gate minimum length (ms)",
    ),
    ParamSpec(
        key="gate_start_offset_ms", type=(int, float), default=0.0,
        label="Gate start offset (ms)",
        description="Positive values move detected region starts earlier.",
    ),
    ParamSpec(
        key="gate_end_offset_ms", type=(int, float), default=0.0,
        label="Gate end offset (ms)",
        description="Positive values move detected region ends later.",
    ),
    ParamSpec(
        key="gate_max_regions", type=int, default=100, min=1,
        label="Maximum detected regions",
    ),
]


def all_param_specs() -> list[ParamSpec]:
    """Every :class:`ParamSpec` the engine knows about."""
    return ENGINE_PARAMS + DISPLAY_PARAMS + PREVIEW_PARAMS + REGION_PARAMS


def default_config() -> dict[str, Any]:
    """Flat dict of every setting at its default."""
    return {p.key: p.default for p in all_param_specs()}


def merge_configs(*configs: dict[str, Any]) -> dict[str, Any]:
    """Layer config dicts; keys in later dicts win."""
    merged: dict[str, Any] = {}
    for layer in configs:
        merged.update(layer)
    return merged


@dataclass
class WaveformOptions:
    """Typed display options for one waveform request.

    Attributes:
        amplify_quiet:  Extra gain factor for quiet material (> 1 enables).
        use_log_scale:  Compress large gains logarithmically.
        start_offset:   Window start in the file (seconds).
        display_length: Window length (seconds); ``None`` runs to the end.
        vertical_zoom:  Not used by extraction; carried for the renderer.
        channel_count:  Channels to extract; ``None`` uses the source's.
    """
    amplify_quiet: float = 3.0
    use_log_scale: bool = True
    start_offset: float = 0.0
    display_length: float | None = None
    vertical_zoom: float = 1.0
    channel_count: int | None = None

    @classmethod
    def from_config(cls, config: dict[str, Any], **overrides: Any) -> WaveformOptions:
        opts = cls(
            amplify_quiet=float(config.get("amplify_quiet", 3.0)),
            use_log_scale=bool(config.get("use_log_scale", True)),
            vertical_zoom=float(config.get("vertical_zoom", 1.0)),
        )
        for k, v in overrides.items():
            if not hasattr(opts, k):
                raise ConfigError(f"Unknown waveform option: {k}")
            setattr(opts, k, v)
        return opts



# ---------------------------------------------------------------------------
# Presets
# ---------------------------------------------------------------------------

def load_preset(path: str) -> dict[str, Any]:
    """Read the overrides stored in a JSON preset.

    The result is a partial config meant for :func:`merge_configs`; the
    schema version and description are dropped.  Unreadable files raise
    :class:`ConfigError`.
    """
    if not os.path.isfile(path):
        raise ConfigError(f"No preset at {path}")
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Preset {path} is not valid JSON: {e}")
    except OSError as e:
        raise ConfigError(f"Cannot open preset {path}: {e}")

    if not isinstance(data, dict):
        raise ConfigError(
            f"Preset {path} holds a {type(data).__name__}, expected an object")
    return {k: v for k, v in data.items() if k not in _PRESET_META}


def save_preset(config: dict[str, Any], path: str, *, description: str | None = None) -> None:
    """Write the non-default engine settings of *config* to a JSON preset.

    Keys that are not engine settings are left out.
    """
    defaults = default_config()
    overrides = {
        k: v for k, v in config.items()
        if k in defaults and defaults[k] != v
    }
    preset: dict[str, Any] = {"schema_version": PRESET_SCHEMA_VERSION}
    if description:
        preset["_description"] = description
    preset.update(overrides)

    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(preset, f, indent=4, ensure_ascii=False)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def validate_param_values(
    params: list[ParamSpec],
    values: dict[str, Any],
) -> list[ConfigFieldError]:
    """Check the settings in *values* that *params* declares.

    Absent keys fall back to their defaults and are not reported.
    """
    errors: list[ConfigFieldError] = []
    for param in params:
        if param.key not in values:
            continue
        value = values[param.key]
        message = param.problem(value)
        if message is not None:
            errors.append(ConfigFieldError(param.key, value, message))
    return errors


def _ordering_error(config, bad, low_key, high_key, report_key, message):
    low, high = config.get(low_key), config.get(high_key)
    if low_key in bad or high_key in bad:
        return None
    if not all(isinstance(v, (int, float)) for v in (low, high)):
        return None
    if low > high:
        return ConfigFieldError(report_key, config[report_key], message)
    return None


def validate_config_fields(config: dict[str, Any]) -> list[ConfigFieldError]:
    """Every problem with a flat engine config, including cross-field ones."""
    errors = validate_param_values(all_param_specs(), config)
    bad = {e.key for e in errors}
    for rule in (
        ("min_samples", "max_samples", "max_samples",
         "Maximum peak samples must not be below minimum peak samples."),
        ("gate_close_db", "gate_open_db", "gate_close_db",
         "Gate close threshold must not be above the open threshold."),
    ):
        err = _ordering_error(config, bad, *rule)
        if err is not None:
            errors.append(err)
    return errors


def validate_config(config: dict[str, Any]) -> None:
    """Raise :class:`ConfigError` naming every invalid setting."""
    errors = validate_config_fields(config)
    if errors:
        raise ConfigError("Invalid wavepeek configuration:\n" + "\n".join(
            f"  {e.key}: {e.message}" for e in errors))


def _type_label(t) -> str:
    if isinstance(t, tuple):
        return " or ".join(x.__name__ for x in t)
    return t.__name__

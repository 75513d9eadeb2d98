from __future__ import annotations

import json
import os
from datetime import datetime
from typing import Any

from .models import Region, WaveformData

SNAPSHOT_SCHEMA_VERSION = "1.0"


def _rounded(values, digits: int = 5) -> list[float]:
    return [round(float(v), digits) for v in values]


def waveform_snapshot(
    path: str,
    data: WaveformData,
    regions: list[Region] | None = None,
    position: float | None = None,
    marker: float | None = None,
) -> dict[str, Any]:
    """Everything a rendering surface needs, as JSON-ready plain data.

    Args:
        path:     The audio file the peaks belong to.
        data:     Finalized peak buffer.
        regions:  Regions of the file, in insertion order.
        position: Current absolute playback cursor (seconds).
        marker:   Last clicked position relative to the window start.
    """
    return {
        "schema_version": SNAPSHOT_SCHEMA_VERSION,
        "timestamp": datetime.now().isoformat(),
        "file": os.path.abspath(path),
        "waveform": {
            "width": data.width,
            "length": float(data.length),
            "sample_rate": int(data.sample_rate),
            "channel_count": int(data.channel_count),
            "start_offset": float(data.start_offset),
            "is_placeholder": bool(data.is_placeholder),
            "channels": [
                {
                    "min": _rounded(ch.min),
                    "max": _rounded(ch.max),
                    "rms": _rounded(ch.rms),
                }
                for ch in data.channels
            ],
        },
        "regions": [r.to_record() for r in regions or []],
        "playback": {
            "position": None if position is None else float(position),
            "marker": None if marker is None else float(marker),
        },
    }


def save_json(snapshot: dict[str, Any], output_path: str) -> None:
    """Write a snapshot produced by :func:`waveform_snapshot`."""
    os.makedirs(os.path.dirname(output_path) or ".", exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(snapshot, f, indent=4, ensure_ascii=False)

# tests/test_reports.py
import json

from wavepeeklib.models import Region
from wavepeeklib.reports import save_json, waveform_snapshot


def test_snapshot_is_json_ready(engine, audio_dir, tmp_path):
    data = engine.get_waveform(audio_dir["stereo"], 32)
    regions = [Region(0.0, 1.0, "Area 1")]
    snap = waveform_snapshot(audio_dir["stereo"], data, regions,
                             position=0.5, marker=0.25)

    assert snap["waveform"]["width"] == 32
    assert snap["waveform"]["channel_count"] == 2
    assert len(snap["waveform"]["channels"][1]["rms"]) == 32
    assert snap["regions"] == [{"startPos": 0.0, "endPos": 1.0, "name": "Area 1"}]
    assert snap["playback"] == {"position": 0.5, "marker": 0.25}

    out = tmp_path / "out" / "snap.json"
    save_json(snap, str(out))
    loaded = json.loads(out.read_text(encoding="utf-8"))
    assert loaded["waveform"]["is_placeholder"] is False

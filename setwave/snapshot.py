"""
Arrangement snapshots — plain dicts, JSON-serializable.

A snapshot captures what the engine reads from Live, so a setlist can be
rendered without Ableton running:

    {
      "sections": [0, 8, 16, 32],
      "cue_points": [{"name": "Song A", "time": 0}, {"name": "End", "time": 48}],
      "position": 0,
      "clips": [
        {"name": "A", "start": 0, "end": 16, "start_marker": 0,
         "warp_markers": [[0, 0.0], [16, 8.0]], "file_path": "a.wav",
         "muted": false}
      ]
    }

Relative file paths are resolved against the snapshot's directory.
"""

import json
from pathlib import Path

from .arrangement import CuePoint
from .clips import ClipDetails
from .stub import stub_from_arrangement
from .tempo import WarpMarker


def save_snapshot(snapshot: dict, path: str | Path) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(snapshot, f, indent=2)


def load_snapshot(path: str | Path) -> dict:
    with open(path) as f:
        snapshot = json.load(f)
    base = Path(path).resolve().parent
    for clip in snapshot.get("clips", []):
        file_path = Path(clip["file_path"])
        if not file_path.is_absolute():
            clip["file_path"] = str(base / file_path)
    return snapshot


def snapshot_session(snapshot: dict):
    """StubLiveSession holding the snapshot's tracks, cue points and playhead."""
    clips = []
    for clip in snapshot.get("clips", []):
        fields = {
            "name": clip.get("name", ""),
            "start": float(clip["start"]),
            "end": float(clip["end"]),
            "muted": bool(clip.get("muted", False)),
        }
        details = ClipDetails(
            warp_markers=tuple(
                WarpMarker(float(beat), float(seconds))
                for beat, seconds in clip.get("warp_markers", [])
            ),
            start_marker=float(clip.get("start_marker", 0.0)),
            file_path=clip["file_path"],
        )
        clips.append((fields, details))
    cue_points = [
        CuePoint(str(c["name"]), float(c["time"])) for c in snapshot.get("cue_points", [])
    ]
    return stub_from_arrangement(
        clips,
        snapshot.get("sections", []),
        cue_points,
        position=float(snapshot.get("position", 0.0)),
    )

"""Stub session and transport for testing and offline rendering.

Holds an arrangement in memory and records sends without needing Ableton or
a display — used by the tests and by `setwave snapshot`.
"""

from .arrangement import CuePoint
from .clips import RawClip


class StubLiveSession:
    """In-memory LiveSession substitute.

    tracks: list of (name, [RawClip, ...]) in track order.
    details: {(track, clip_index): ClipDetails}
    """

    def __init__(self, tracks=None, details=None, cue_points=(), position=0.0):
        self.tracks = list(tracks or [])
        self.details = dict(details or {})
        self._cue_points = tuple(cue_points)
        self.position = position
        self.listeners = {}  # (prop, track) -> [callback]
        self.calls = []
        self.reachable = True

    def ping(self):
        if not self.reachable:
            raise TimeoutError("No response from Ableton for: /live/test")
        return ("ok",)

    def track_names(self):
        return [name for name, _ in self.tracks]

    def cue_points(self):
        return self._cue_points

    def song_time(self):
        return self.position

    def arrangement_clips(self, track):
        self.calls.append(("arrangement_clips", track))
        return list(self.tracks[track][1])

    def clip_details(self, raw):
        self.calls.append(("clip_details", raw.track, raw.index))
        return self.details[(raw.track, raw.index)]

    def subscribe(self, prop, callback, track=None):
        key = (prop, track)
        self.listeners.setdefault(key, []).append(callback)

        def unsubscribe():
            callbacks = self.listeners.get(key, [])
            if callback in callbacks:
                callbacks.remove(callback)

        return unsubscribe

    def emit(self, prop, values=(), track=None):
        """Deliver a change notification the way AbletonOSC would."""
        for callback in list(self.listeners.get((prop, track), ())):
            callback(tuple(values))

    # -- Mutation helpers --------------------------------------------------------

    def set_clips(self, track, clips):
        name, _ = self.tracks[track]
        self.tracks[track] = (name, list(clips))
        self.emit("arrangement_clips", (len(clips),), track=track)

    def set_cue_points(self, cue_points):
        self._cue_points = tuple(cue_points)
        flat = []
        for cue in self._cue_points:
            flat.extend([cue.name, cue.time])
        self.emit("cue_points", flat)

    def move_to(self, position):
        self.position = position
        self.emit("current_song_time", (position,))

    def close(self):
        pass


class RecordingTransport:
    """EnvelopeTransport substitute that keeps every message it was given."""

    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    def send_section(self, index, payload):
        if self.fail:
            return False
        self.sent.append(("section", index, list(payload)))
        return True

    def clear(self):
        if self.fail:
            return False
        self.sent.append(("clear",))
        return True

    def sections(self):
        return [(m[1], m[2]) for m in self.sent if m[0] == "section"]

    def reset(self):
        self.sent.clear()

    def close(self):
        pass


def stub_from_arrangement(
    clips,
    section_starts,
    cue_points,
    position=0.0,
    dynamics_name="Dynamics",
    sections_name="Sections",
):
    """Build a two-track StubLiveSession.

    clips: [(RawClip fields minus track/index as dict, ClipDetails), ...]
    """
    raws = []
    details = {}
    for i, (fields, detail) in enumerate(clips):
        raw = RawClip(track=0, index=i, **fields)
        raws.append(raw)
        details[(0, i)] = detail
    sections = [
        RawClip(track=1, index=i, name=str(i + 1), start=float(s), end=float(s))
        for i, s in enumerate(section_starts)
    ]
    return StubLiveSession(
        tracks=[(dynamics_name, raws), (sections_name, sections)],
        details=details,
        cue_points=[
            c if isinstance(c, CuePoint) else CuePoint(str(c[0]), float(c[1]))
            for c in cue_points
        ],
        position=position,
    )

"""setwave session — typed reads and subscriptions over LiveAPI.

LiveSession resolves tracks by name prefix and turns AbletonOSC's flat
reply tuples into RawClip / ClipDetails / CuePoint values.
"""

import logging
import threading

from .arrangement import cue_points_from_flat
from .clips import ClipDetails, RawClip
from .osc import LOCAL_PORT, REMOTE_PORT, TICK_DURATION, LiveAPI
from .tempo import warp_markers_from_flat

logger = logging.getLogger(__name__)


class TrackNotFoundError(KeyError):
    """No track name starts with the requested prefix."""


def find_track(names, prefix):
    """Index of the first track whose name starts with prefix."""
    for i, name in enumerate(names):
        if str(name).startswith(prefix):
            return i
    raise TrackNotFoundError(f"No track starting with {prefix!r} (known: {list(names)})")


class LiveSession:
    """Read side of the Ableton session used by the waveform engine.

    Track-scoped properties ("arrangement_clips") need track=<index> when
    subscribing; song-scoped ones ("current_song_time", "cue_points",
    "track_names") do not.
    """

    TRACK_PROPS = {"arrangement_clips"}
    SONG_PROPS = {"current_song_time", "cue_points", "track_names"}

    def __init__(
        self, api=None, hostname="127.0.0.1", port=REMOTE_PORT, client_port=LOCAL_PORT
    ):
        self.api = api or LiveAPI(hostname, port, client_port)

    def ping(self):
        """Raise TimeoutError if AbletonOSC does not answer."""
        return self.api.test()

    # -- Song --------------------------------------------------------------------

    def track_names(self):
        return list(self.api.song.get_all("track_names"))

    def cue_points(self):
        return cue_points_from_flat(self.api.song.get_all("cue_points"))

    def song_time(self):
        return float(self.api.song.get("current_song_time"))

    # -- Tracks / clips ----------------------------------------------------------

    def arrangement_clips(self, track):
        """List a track's arrangement clips, in arrangement order.

        End times are start_time + length; stock AbletonOSC has no end_time
        listing.
        """
        t = self.api.track(track)
        names = t.get_all("arrangement_clips/name")
        starts = t.get_all("arrangement_clips/start_time")
        lengths = t.get_all("arrangement_clips/length")
        muted = t.get_all("arrangement_clips/muted")
        if not len(names) == len(starts) == len(lengths) == len(muted):
            raise ValueError(
                f"Inconsistent arrangement clip listing for track {track}: "
                f"{len(names)} names, {len(starts)} starts, {len(lengths)} lengths, "
                f"{len(muted)} mute flags"
            )
        return [
            RawClip(
                track=track,
                index=i,
                name=str(names[i]),
                start=float(starts[i]),
                end=float(starts[i]) + float(lengths[i]),
                muted=bool(muted[i]),
            )
            for i in range(len(names))
        ]

    def clip_details(self, raw):
        c = self.api.arrangement_clip(raw.track, raw.index)
        return ClipDetails(
            warp_markers=warp_markers_from_flat(c.get_all("warp_markers")),
            start_marker=float(c.get("start_marker")),
            file_path=str(c.get("file_path")),
        )

    # -- Listeners ---------------------------------------------------------------

    def subscribe(self, prop, callback, track=None):
        """Call callback(values) whenever prop changes. Returns unsubscribe()."""
        if prop in self.TRACK_PROPS:
            if track is None:
                raise ValueError(f"{prop!r} needs a track index")
            return self.api.track(track).listen(prop, callback)
        if prop in self.SONG_PROPS:
            return self.api.song.listen(prop, callback)
        raise ValueError(f"Unknown property: {prop!r}")

    def check_extensions(self, track, timeout=TICK_DURATION):
        """Probe every extension endpoint against track and its first clip.

        Returns {address: answered}. Listeners count as answered when the
        current value is pushed right after start_listen. Arrangement clip
        endpoints are left out when the track has no clips.
        """
        t = self.api.track(track)
        proxies = {"song": self.api.song, "track": t}
        if t.get_all("arrangement_clips/name"):
            proxies["arrangement_clip"] = self.api.arrangement_clip(track, 0)
        results = {}
        for ep in self.api.spec.extension_endpoints():
            proxy = proxies.get(ep.domain)
            if proxy is None or ep.kind == "listen_stop":
                continue
            if ep.kind == "listen_start":
                results[ep.address] = _answers_listen(
                    proxy, ep.address.split("/start_listen/", 1)[1], timeout
                )
                continue
            try:
                proxy.get_all(ep.address.split("/get/", 1)[1], timeout=timeout)
            except TimeoutError:
                results[ep.address] = False
            else:
                results[ep.address] = True
        return results

    def close(self):
        self.api.stop()


def _answers_listen(proxy, prop, timeout):
    pushed = threading.Event()
    unsubscribe = proxy.listen(prop, lambda _values: pushed.set())
    try:
        return pushed.wait(timeout)
    finally:
        unsubscribe()

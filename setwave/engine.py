"""
Waveform engine — owns every cache and wires session events to renders.

Listener callbacks arrive on the OSC receive thread. They never touch the
caches themselves: each one posts a keyed job to a queue, and a single worker
thread runs jobs one at a time. A key that is already waiting is not queued
twice; the waiting job just picks up the newest arguments. That makes every
data source single-flight.

Flow (per notification):
    track list      -> rebind "Dynamics…" / "Sections…" listeners
    Dynamics clips  -> rebuild clip registry -> render
    Sections clips  -> section starts -> song boundaries -> track position / render
    cue points      -> song boundaries -> track position / render
    play position   -> active song changed? -> clear display, reset cache, render
"""

from __future__ import annotations

import logging
import queue
import threading

from .arrangement import ArrangementIndex, cue_points_from_flat
from .audio import AudioDecodeError, AudioStore
from .clips import ClipRegistry
from .renderer import RESOLUTION, WaveformRenderer
from .session import TrackNotFoundError, find_track
from .tracker import ActiveSongTracker

logger = logging.getLogger(__name__)

_STOP = object()


class WaveformEngine:
    """Single owner of the arrangement index, clip registry, tracker and renderer.

    Args:
        session: LiveSession (or StubLiveSession) to read and subscribe through.
        transport: EnvelopeTransport (or RecordingTransport) for envelopes.
        store: AudioStore shared across rebuilds; a fresh one by default.
        resolution: Columns per section envelope.
        workers: Parallel audio decodes per clip rebuild.
        dynamics_prefix / sections_prefix: Track name prefixes to bind.
    """

    def __init__(
        self,
        session,
        transport,
        store: AudioStore | None = None,
        resolution: int = RESOLUTION,
        workers: int = 4,
        dynamics_prefix: str = "Dynamics",
        sections_prefix: str = "Sections",
    ):
        self.session = session
        self.transport = transport
        self.store = store or AudioStore()
        self.index = ArrangementIndex()
        self.clips = ClipRegistry(self.store, workers=workers)
        self.tracker = ActiveSongTracker()
        self.renderer = WaveformRenderer(transport, resolution=resolution)
        self.position: float | None = None

        self._prefixes = {"dynamics": dynamics_prefix, "sections": sections_prefix}
        self._bound: dict[str, tuple[int, str]] = {}
        self._unsubscribe: dict[str, object] = {}
        self._queue: queue.Queue = queue.Queue()
        self._pending: dict[str, tuple] = {}
        self._pending_lock = threading.Lock()
        self._thread: threading.Thread | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, background: bool = True) -> None:
        """Connect, subscribe, run the initial reads, start the worker.

        Raises TimeoutError when Live does not answer and TrackNotFoundError
        when the Dynamics/Sections tracks are missing. Subscriptions made
        before the failure are dropped again.
        """
        self.session.ping()
        try:
            self._subscribe(
                "tracks",
                "track_names",
                lambda values: self.post("tracks", self.bind_tracks, list(values)),
            )
            self._subscribe(
                "cue_points",
                "cue_points",
                lambda values: self.post(
                    "cue_points", self.update_cue_points, cue_points_from_flat(values)
                ),
            )
            self._subscribe("position", "current_song_time", self._on_position)

            self.bind_tracks(self.session.track_names(), strict=True)
            self.update_cue_points(self.session.cue_points())
            self.position = self.session.song_time()
            self.track_position()
        except Exception:
            self.stop()
            raise

        if background:
            self._thread = threading.Thread(
                target=self._worker, name="setwave-engine", daemon=True
            )
            self._thread.start()

    def stop(self) -> None:
        for key in list(self._unsubscribe):
            self._drop(key)
        if self._thread is not None:
            self._queue.put(_STOP)
            self._thread.join()
            self._thread = None

    def _subscribe(self, key, prop, callback, track=None):
        self._drop(key)
        self._unsubscribe[key] = self.session.subscribe(prop, callback, track=track)

    def _drop(self, key):
        unsubscribe = self._unsubscribe.pop(key, None)
        if unsubscribe is not None:
            unsubscribe()

    # ------------------------------------------------------------------
    # Job queue
    # ------------------------------------------------------------------

    def post(self, key: str, fn, *args) -> None:
        """Queue fn(*args) under key, replacing the args of a waiting job."""
        with self._pending_lock:
            waiting = key in self._pending
            self._pending[key] = (fn, args)
        if not waiting:
            self._queue.put(key)

    def _run(self, key) -> None:
        with self._pending_lock:
            fn, args = self._pending.pop(key)
        try:
            fn(*args)
        except Exception:
            logger.exception("Handler for %r failed", key)

    def _worker(self) -> None:
        while True:
            key = self._queue.get()
            if key is _STOP:
                break
            self._run(key)

    def process_pending(self) -> int:
        """Run queued jobs on the calling thread until the queue is empty."""
        ran = 0
        while True:
            try:
                key = self._queue.get_nowait()
            except queue.Empty:
                return ran
            if key is _STOP:
                continue
            self._run(key)
            ran += 1

    # ------------------------------------------------------------------
    # Handlers (worker thread)
    # ------------------------------------------------------------------

    def bind_tracks(self, names, strict: bool = False) -> None:
        """Follow the first Dynamics… and Sections… tracks in names.

        Each role is bound on its own. A missing track raises when strict,
        otherwise it is logged and that role keeps its previous binding.
        """
        for role, handler in (
            ("dynamics", self.rebuild_clips),
            ("sections", self.update_sections),
        ):
            try:
                self._bind(role, names, handler)
            except TrackNotFoundError as e:
                if strict:
                    raise
                logger.error(
                    "%s; %s stays bound to %s", e.args[0], role, self._bound.get(role)
                )

    def _bind(self, role, names, handler) -> None:
        track = find_track(names, self._prefixes[role])
        bound = (track, str(names[track]))
        if self._bound.get(role) == bound:
            return
        logger.info("Binding %s track: %d %r", role, *bound)
        self._bound[role] = bound
        self._subscribe(
            role,
            "arrangement_clips",
            lambda _values: self.post(role, handler, track),
            track=track,
        )
        handler(track)

    def rebuild_clips(self, track: int) -> None:
        raw = self.session.arrangement_clips(track)
        try:
            published = self.clips.rebuild(raw, self.session.clip_details)
        except AudioDecodeError as e:
            logger.error(
                "Clip rebuild failed, keeping %d clips: %s", len(self.clips.snapshot()), e
            )
            return
        if published is not None:
            self.render()

    def update_sections(self, track: int) -> None:
        starts = [clip.start for clip in self.session.arrangement_clips(track)]
        self.index.update_sections(starts)
        logger.info(
            "%d section starts, %d songs",
            len(self.index.section_starts),
            max(len(self.index.boundaries) - 1, 0),
        )
        self._index_changed()

    def update_cue_points(self, cue_points) -> None:
        self.index.update_cue_points(cue_points)
        self._index_changed()

    def _index_changed(self) -> None:
        if not self.track_position():
            self.render()

    def _on_position(self, values) -> None:
        # receive thread: store now so a running render can see it
        self.position = float(values[0])
        self.post("position", self.track_position)

    def track_position(self) -> bool:
        """Re-evaluate the active song; on change clear the display and render."""
        if not self.tracker.update(self.position, self.index.boundaries):
            return False
        logger.info("Active song: %s (position %s)", self.tracker.index, self.position)
        self.renderer.reset()
        self.transport.clear()
        self.render()
        return True

    def render(self) -> int:
        song = self.tracker.index
        boundaries = self.index.boundaries

        def still_active():
            return self.tracker.locate(self.position, boundaries) == song

        return self.renderer.render(
            self.index.song_sections(song), self.clips.snapshot(), still_active
        )

"""
Clip registry — the arrangement audio clips the renderer draws from.

A rebuild takes a fresh listing of the "Dynamics" track, drops muted clips,
resolves warp data for the rest and decodes their audio in parallel. The new
clip tuple replaces the old one in a single assignment, so readers only ever
see a complete set.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from functools import cached_property
from typing import Callable, Sequence

from .audio import AudioBuffer, AudioStore
from .tempo import TempoMap, WarpMarker

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RawClip:
    """An arrangement clip as listed by the session, before resolution."""

    track: int
    index: int
    name: str
    start: float
    end: float
    muted: bool = False


@dataclass(frozen=True)
class ClipDetails:
    warp_markers: tuple[WarpMarker, ...]
    start_marker: float
    file_path: str


@dataclass(frozen=True)
class Clip:
    name: str
    start: float
    end: float
    start_marker: float
    warp_markers: tuple[WarpMarker, ...]
    file_path: str
    audio: AudioBuffer = field(compare=False, repr=False)

    def __post_init__(self):
        if self.start > self.end:
            raise ValueError(f"Clip {self.name!r} starts after it ends")

    @cached_property
    def tempo_map(self) -> TempoMap:
        """Raises InsufficientWarpData when the clip has < 2 warp markers."""
        return TempoMap(self.warp_markers)


class ClipRegistry:
    def __init__(self, store: AudioStore, workers: int = 4):
        self._store = store
        self._workers = max(1, workers)
        self._clips: tuple[Clip, ...] = ()
        self._generation = 0
        self._lock = threading.Lock()

    def snapshot(self) -> tuple[Clip, ...]:
        return self._clips

    def rebuild(
        self,
        raw_clips: Sequence[RawClip],
        resolve: Callable[[RawClip], ClipDetails],
    ) -> tuple[Clip, ...] | None:
        """Resolve and publish a new clip set.

        Returns the published tuple, or None when a newer rebuild started
        while this one was running. AudioDecodeError propagates and leaves
        the current set untouched.
        """
        with self._lock:
            self._generation += 1
            generation = self._generation

        audible = [raw for raw in raw_clips if not raw.muted]
        # Session reads share one socket, so they stay sequential.
        details = [resolve(raw) for raw in audible]
        with ThreadPoolExecutor(max_workers=self._workers) as pool:
            buffers = list(pool.map(self._store.load, [d.file_path for d in details]))

        clips = tuple(
            Clip(
                name=raw.name,
                start=raw.start,
                end=raw.end,
                start_marker=d.start_marker,
                warp_markers=d.warp_markers,
                file_path=d.file_path,
                audio=audio,
            )
            for raw, d, audio in zip(audible, details, buffers)
        )

        with self._lock:
            if generation != self._generation:
                logger.info(
                    "Discarding clip rebuild %d, superseded by %d",
                    generation,
                    self._generation,
                )
                return None
            self._clips = clips
        logger.info(
            "Clip registry: %d clips (%d muted skipped)",
            len(clips),
            len(raw_clips) - len(audible),
        )
        return clips

"""
Arrangement index — section starts and song boundaries.

Sections come from the start times of the clips on the "Sections" track.
Songs come from the arrangement's cue points: a cue point opens a song when
its name is not a plain number, or when no section starts at its time.
Numbered locators sitting on a section start are section labels, not songs.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Sequence

_NUMERIC = re.compile(r"[0-9]+")


@dataclass(frozen=True)
class CuePoint:
    name: str
    time: float


def cue_points_from_flat(values: Sequence) -> tuple[CuePoint, ...]:
    """[name0, time0, name1, time1, ...] -> CuePoints, in the order given."""
    if len(values) % 2:
        raise ValueError(f"Odd number of cue point values: {len(values)}")
    return tuple(
        CuePoint(str(values[i]), float(values[i + 1])) for i in range(0, len(values), 2)
    )


def is_song_boundary(cue: CuePoint, section_starts: Iterable[float]) -> bool:
    if not _NUMERIC.fullmatch(cue.name):
        return True
    return all(start != cue.time for start in section_starts)


def song_boundaries(
    cue_points: Iterable[CuePoint], section_starts: Sequence[float]
) -> tuple[float, ...]:
    return tuple(
        cue.time for cue in cue_points if is_song_boundary(cue, section_starts)
    )


class ArrangementIndex:
    """Holds section starts, cached cue points and the derived song boundaries.

    Every update replaces the tuples wholesale. Updating does not re-evaluate
    which song is active; callers run the tracker afterwards.
    """

    def __init__(self):
        self.section_starts: tuple[float, ...] = ()
        self.cue_points: tuple[CuePoint, ...] = ()
        self.boundaries: tuple[float, ...] = ()

    def update_sections(self, starts: Iterable[float]) -> None:
        self.section_starts = tuple(float(s) for s in starts)
        self._recompute()

    def update_cue_points(self, cue_points: Iterable[CuePoint]) -> None:
        self.cue_points = tuple(cue_points)
        self._recompute()

    def _recompute(self) -> None:
        self.boundaries = song_boundaries(self.cue_points, self.section_starts)

    def song_extent(self, song_index: int | None) -> tuple[float, float] | None:
        """[start, end) of a song; None when there is no such closed extent."""
        if song_index is None or not 0 <= song_index < len(self.boundaries) - 1:
            return None
        return self.boundaries[song_index], self.boundaries[song_index + 1]

    def song_sections(self, song_index: int | None) -> tuple[tuple[float, float], ...]:
        """(start, end) per section of a song, in section order."""
        extent = self.song_extent(song_index)
        if extent is None:
            return ()
        song_start, song_end = extent
        starts = [s for s in self.section_starts if song_start <= s < song_end]
        ends = starts[1:] + [song_end]
        return tuple(zip(starts, ends))

"""
Tempo map — beat positions to audio time through a clip's warp markers.

Warp markers pair an arrangement-relative beat with a time (seconds) in the
audio file. Between markers time is interpolated linearly; before the first
marker it is clamped; past the last marker the final segment's slope is
extended.
"""

from __future__ import annotations

from bisect import bisect_right
from dataclasses import dataclass
from typing import Sequence


class InsufficientWarpData(ValueError):
    """Raised when a clip has fewer than two warp markers."""


@dataclass(frozen=True)
class WarpMarker:
    beat_time: float
    sample_time: float


def warp_markers_from_flat(values: Sequence[float]) -> tuple[WarpMarker, ...]:
    """[beat0, time0, beat1, time1, ...] -> WarpMarkers."""
    if len(values) % 2:
        raise ValueError(f"Odd number of warp marker values: {len(values)}")
    return tuple(
        WarpMarker(float(values[i]), float(values[i + 1]))
        for i in range(0, len(values), 2)
    )


def _check(warp_markers: Sequence[WarpMarker]) -> None:
    if len(warp_markers) < 2:
        raise InsufficientWarpData(
            f"Need at least 2 warp markers to interpolate, got {len(warp_markers)}"
        )


def _interpolate(m1: WarpMarker, m2: WarpMarker, beat: float) -> float:
    beat_diff = m2.beat_time - m1.beat_time
    time_diff = m2.sample_time - m1.sample_time
    return m1.sample_time + (beat - m1.beat_time) / beat_diff * time_diff


def beat_to_time(warp_markers: Sequence[WarpMarker], beat: float) -> float:
    """Map a clip-relative beat to audio time in seconds.

    Linear scan over the markers; see TempoMap for repeated lookups.
    """
    _check(warp_markers)
    if beat <= warp_markers[0].beat_time:
        return warp_markers[0].sample_time
    for m1, m2 in zip(warp_markers, warp_markers[1:]):
        if m1.beat_time <= beat <= m2.beat_time:
            return _interpolate(m1, m2, beat)
    return _interpolate(warp_markers[-2], warp_markers[-1], beat)


class TempoMap:
    """Validated warp markers with O(log n) lookup."""

    def __init__(self, warp_markers: Sequence[WarpMarker]):
        _check(warp_markers)
        self.markers = tuple(warp_markers)
        self._beats = [m.beat_time for m in self.markers]

    def __call__(self, beat: float) -> float:
        markers = self.markers
        if beat <= markers[0].beat_time:
            return markers[0].sample_time
        i = bisect_right(self._beats, beat)
        if i >= len(markers):
            return _interpolate(markers[-2], markers[-1], beat)
        return _interpolate(markers[i - 1], markers[i], beat)

    def __len__(self):
        return len(self.markers)

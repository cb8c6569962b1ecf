"""
Waveform renderer — fixed-resolution min/max envelopes per song section.

Each section of the active song is cut into RESOLUTION equal beat segments.
For every segment the samples of all overlapping clips are gathered through
each clip's tempo map, and the segment's peak and trough become one column
of the section's thumbnail.

Sections whose inputs are unchanged since the last successful send are
skipped; the fingerprint cache is what keeps steady-state playback silent.
"""

from __future__ import annotations

import logging
import math
from typing import Callable, Sequence

import numpy as np

from .clips import Clip
from .tempo import InsufficientWarpData

logger = logging.getLogger(__name__)

RESOLUTION = 72


def overlaps(clip: Clip, start: float, end: float) -> bool:
    """Inclusive overlap between a clip and the section [start, end)."""
    return (
        (clip.start <= start and clip.end >= end)  # section inside clip
        or (clip.start >= start and clip.end <= end)  # clip inside section
        or (clip.start <= start and start <= clip.end <= end)  # ends inside
        or (start <= clip.start <= end and clip.end >= end)  # starts inside
    )


def fingerprint(start: float, end: float, clips: Sequence[Clip]) -> tuple:
    return (
        start,
        end,
        tuple(
            (c.file_path, c.start, c.end, c.start_marker, c.warp_markers) for c in clips
        ),
    )


def _round(value: float) -> int:
    # half-up, as the display protocol expects (Python's round() is half-even)
    return math.floor(value + 0.5)


def _sample_index(seconds: float, sample_rate: int, n_samples: int) -> int:
    return min(max(int(seconds * sample_rate), 0), n_samples)


def clip_segment(clip: Clip, seg_start: float, seg_end: float) -> np.ndarray | None:
    """Samples of clip playing during arrangement beats [seg_start, seg_end).

    None when the segment lies wholly outside the clip.
    """
    if seg_start >= clip.end or seg_end <= clip.start:
        return None
    offset = clip.start_marker - clip.start
    rel_start = max(seg_start + offset, clip.start_marker)
    rel_end = min(seg_end + offset, clip.end + offset)
    tempo_map = clip.tempo_map
    rate = clip.audio.sample_rate
    samples = clip.audio.samples
    lo = _sample_index(tempo_map(rel_start), rate, len(samples))
    hi = _sample_index(tempo_map(rel_end), rate, len(samples))
    return samples[lo:hi]


def envelope(
    start: float, end: float, clips: Sequence[Clip], resolution: int = RESOLUTION
) -> list[tuple[int, int]]:
    """(max, min) per segment, scaled by resolution / 2."""
    scale = resolution / 2
    span = end - start
    columns = []
    for i in range(resolution):
        seg_start = start + span * i / resolution
        seg_end = start + span * (i + 1) / resolution
        peak = trough = None
        for clip in clips:
            part = clip_segment(clip, seg_start, seg_end)
            if part is None or not len(part):
                continue
            part_max = float(np.max(part))
            part_min = float(np.min(part))
            peak = part_max if peak is None else max(peak, part_max)
            trough = part_min if trough is None else min(trough, part_min)
        if peak is None:
            columns.append((0, 0))
        else:
            columns.append((_round(peak * scale), _round(trough * scale)))
    return columns


def payload(columns: Sequence[tuple[int, int]]) -> list[int]:
    """[max_0 .. max_R-1, min_0 .. min_R-1]"""
    return [hi for hi, _ in columns] + [lo for _, lo in columns]


class WaveformRenderer:
    """Renders the active song's sections and remembers what was sent."""

    def __init__(self, transport, resolution: int = RESOLUTION):
        self.transport = transport
        self.resolution = resolution
        self._cache: dict[int, tuple] = {}

    def reset(self) -> None:
        self._cache.clear()

    def cached(self, section_index: int) -> tuple | None:
        return self._cache.get(section_index)

    def _playable(self, clips: Sequence[Clip], section_index: int) -> list[Clip]:
        playable = []
        for clip in clips:
            try:
                clip.tempo_map
            except InsufficientWarpData as e:
                logger.warning(
                    "Section %d: skipping clip %r: %s", section_index, clip.name, e
                )
                continue
            playable.append(clip)
        return playable

    def render(
        self,
        sections: Sequence[tuple[float, float]],
        clips: Sequence[Clip],
        still_active: Callable[[], bool] | None = None,
    ) -> int:
        """Send every section whose inputs changed. Returns the number sent.

        Sections go out in order, one at a time. still_active is checked
        before each section; a False result abandons the rest of the render.
        """
        sent = 0
        for index, (start, end) in enumerate(sections):
            if still_active is not None and not still_active():
                logger.info("Render abandoned at section %d: song changed", index)
                break
            section_clips = [c for c in clips if overlaps(c, start, end)]
            key = fingerprint(start, end, section_clips)
            if self._cache.get(index) == key:
                continue
            columns = envelope(
                start, end, self._playable(section_clips, index), self.resolution
            )
            if not self.transport.send_section(index, payload(columns)):
                continue
            self._cache[index] = key
            sent += 1
        if sent:
            logger.info("Sent %d of %d sections", sent, len(sections))
        return sent

"""Waveform renderer — overlap geometry, envelopes, fingerprint cache.

Clips here play at 10 samples per second with one beat per second, so each
beat of a clip is exactly ten samples of its buffer.
"""

import dataclasses
import logging

import numpy as np
import pytest

from setwave.audio import AudioBuffer
from setwave.clips import Clip
from setwave.renderer import (
    WaveformRenderer,
    _round,
    clip_segment,
    envelope,
    fingerprint,
    overlaps,
    payload,
)
from setwave.stub import RecordingTransport
from setwave.tempo import WarpMarker

RATE = 10


def make_clip(samples, start=0.0, end=None, start_marker=0.0, name="clip", markers=None):
    samples = np.asarray(samples, dtype=np.float32)
    length = len(samples) / RATE
    if end is None:
        end = start + length
    if markers is None:
        markers = (WarpMarker(0.0, 0.0), WarpMarker(length, length))
    return Clip(
        name=name,
        start=float(start),
        end=float(end),
        start_marker=float(start_marker),
        warp_markers=tuple(markers),
        file_path=f"/audio/{name}.wav",
        audio=AudioBuffer(samples, RATE),
    )


def constant(value, beats):
    return np.full(beats * RATE, value, dtype=np.float32)


# ---------------------------------------------------------------------------
# Overlap geometry
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "clip_span, expected",
    [
        ((0, 16), True),  # section inside clip
        ((5, 6), True),  # clip inside section
        ((0, 6), True),  # starts before, ends inside
        ((6, 12), True),  # starts inside, ends after
        ((0, 4), True),  # touches the section start
        ((8, 12), True),  # touches the section end
        ((0, 3.5), False),
        ((8.5, 12), False),
    ],
)
def test_overlaps(clip_span, expected):
    clip = make_clip(np.zeros(1), start=clip_span[0], end=clip_span[1])
    assert overlaps(clip, 4.0, 8.0) is expected


# ---------------------------------------------------------------------------
# Envelopes
# ---------------------------------------------------------------------------


def test_round_is_half_up():
    assert _round(2.5) == 3
    assert _round(-2.5) == -2
    assert _round(-2.6) == -3
    assert _round(0.49) == 0


def test_no_clips_is_all_zero():
    assert envelope(0.0, 8.0, [], resolution=8) == [(0, 0)] * 8


def test_silence_is_zero():
    clip = make_clip(constant(0.0, 8))
    assert envelope(0.0, 8.0, [clip], resolution=8) == [(0, 0)] * 8


def test_full_scale_peak_at_default_resolution():
    samples = np.zeros(8 * 90, dtype=np.float32)
    samples[5] = 1.0
    samples[700] = -1.0
    clip = Clip(
        name="peak",
        start=0.0,
        end=8.0,
        start_marker=0.0,
        warp_markers=(WarpMarker(0.0, 0.0), WarpMarker(8.0, 8.0)),
        file_path="/audio/peak.wav",
        audio=AudioBuffer(samples, 90),
    )
    columns = envelope(0.0, 8.0, [clip], resolution=72)
    assert len(columns) == 72
    assert columns[0] == (36, 0)
    assert max(hi for hi, _ in columns) == 36
    assert min(lo for _, lo in columns) == -36


def test_columns_follow_segment_order():
    samples = []
    for beat in range(8):
        samples += [0.25 * (beat % 4)] * 5 + [-0.25] * 5
    clip = make_clip(samples)
    columns = envelope(0.0, 8.0, [clip], resolution=8)
    assert columns == [(b % 4, -1) for b in range(8)]
    assert payload(columns) == [0, 1, 2, 3, 0, 1, 2, 3] + [-1] * 8


def test_samples_from_several_clips_are_combined():
    up = make_clip(constant(0.5, 8), name="up")
    down = make_clip(constant(-0.75, 8), name="down")
    assert envelope(0.0, 8.0, [up, down], resolution=8) == [(2, -3)] * 8


def test_clip_covering_part_of_section():
    clip = make_clip(constant(0.5, 4), start=0.0)
    columns = envelope(0.0, 8.0, [clip], resolution=8)
    assert columns == [(2, 2)] * 4 + [(0, 0)] * 4


def test_start_marker_offsets_into_the_buffer():
    samples = np.zeros(16 * RATE, dtype=np.float32)
    samples[45] = 0.5  # beat 4.5 of the file
    clip = make_clip(samples, start=8.0, end=16.0, start_marker=4.0)
    columns = envelope(8.0, 16.0, [clip], resolution=8)
    assert columns[0] == (2, 0)
    assert columns[1:] == [(0, 0)] * 7


def test_clip_segment_respects_warp_markers():
    # file plays at half speed: one beat spans two seconds of audio
    samples = np.arange(80, dtype=np.float32)
    clip = make_clip(samples, end=4.0, markers=(WarpMarker(0, 0), WarpMarker(4, 8)))
    part = clip_segment(clip, 1.0, 2.0)
    np.testing.assert_array_equal(part, np.arange(20, 40))
    assert clip_segment(clip, 4.0, 5.0) is None


def test_clip_segment_clamps_to_buffer():
    clip = make_clip(np.ones(10), end=4.0, markers=(WarpMarker(0, 0), WarpMarker(1, 1)))
    assert len(clip_segment(clip, 2.0, 3.0)) == 0


# ---------------------------------------------------------------------------
# Rendering + change detection
# ---------------------------------------------------------------------------

SECTIONS = ((0.0, 8.0), (8.0, 16.0), (16.0, 24.0))


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def clips():
    return [
        make_clip(constant(0.5, 6), start=0.0, name="intro"),
        make_clip(constant(-0.5, 6), start=17.0, name="outro"),
    ]


def test_render_sends_every_section_in_order(transport, clips):
    renderer = WaveformRenderer(transport, resolution=8)
    assert renderer.render(SECTIONS, clips) == 3
    indices = [index for index, _ in transport.sections()]
    assert indices == [0, 1, 2]
    for _, values in transport.sections():
        assert len(values) == 16
    assert transport.sections()[0][1] == [2] * 6 + [0, 0] + [2] * 6 + [0, 0]
    assert transport.sections()[1][1] == [0] * 16


def test_unchanged_inputs_send_nothing(transport, clips):
    renderer = WaveformRenderer(transport, resolution=8)
    renderer.render(SECTIONS, clips)
    transport.reset()
    assert renderer.render(SECTIONS, clips) == 0
    assert transport.sent == []


def test_warp_change_resends_only_overlapping_sections(transport, clips):
    renderer = WaveformRenderer(transport, resolution=8)
    renderer.render(SECTIONS, clips)
    transport.reset()
    stretched = dataclasses.replace(
        clips[1], warp_markers=(WarpMarker(0.0, 0.0), WarpMarker(6.0, 3.0))
    )
    assert renderer.render(SECTIONS, [clips[0], stretched]) == 1
    assert [index for index, _ in transport.sections()] == [2]


def test_reset_forces_retransmission(transport, clips):
    renderer = WaveformRenderer(transport, resolution=8)
    renderer.render(SECTIONS, clips)
    renderer.reset()
    transport.reset()
    assert renderer.render(SECTIONS, clips) == 3


def test_failed_send_is_retried_next_render(clips):
    transport = RecordingTransport(fail=True)
    renderer = WaveformRenderer(transport, resolution=8)
    assert renderer.render(SECTIONS, clips) == 0
    assert renderer.cached(0) is None
    transport.fail = False
    assert renderer.render(SECTIONS, clips) == 3


def test_render_stops_when_song_is_no_longer_active(transport, clips):
    renderer = WaveformRenderer(transport, resolution=8)
    answers = iter([True, False, True])
    assert renderer.render(SECTIONS, clips, still_active=lambda: next(answers)) == 1
    assert [index for index, _ in transport.sections()] == [0]


def test_clip_without_warp_data_is_skipped(transport, clips, caplog):
    broken = make_clip(constant(1.0, 8), name="broken", markers=(WarpMarker(0, 0),))
    renderer = WaveformRenderer(transport, resolution=8)
    with caplog.at_level(logging.WARNING, logger="setwave.renderer"):
        renderer.render(SECTIONS[:1], [clips[0], broken])
    (values,) = [v for _, v in transport.sections()]
    assert values[:8] == [2] * 6 + [0, 0]
    assert "broken" in caplog.text


def test_fingerprint_covers_clip_inputs(clips):
    base = fingerprint(0.0, 8.0, clips)
    assert base == fingerprint(0.0, 8.0, list(clips))
    assert base != fingerprint(0.0, 9.0, clips)
    moved = dataclasses.replace(clips[0], start=1.0)
    assert base != fingerprint(0.0, 8.0, [moved, clips[1]])
    offset = dataclasses.replace(clips[0], start_marker=1.0)
    assert base != fingerprint(0.0, 8.0, [offset, clips[1]])

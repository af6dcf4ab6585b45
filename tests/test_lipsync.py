"""
Lip-sync cue generation and rig remapping.
"""

import numpy as np
import pytest

from lipsync import (
    LipSyncCue,
    MouthShape,
    cues_from_alignment,
    cues_from_amplitude,
    cues_from_duration,
    estimate_duration_ms,
    generate_lip_sync,
    remap_shapes,
    shape_index,
)


def _assert_contiguous(cues):
    assert cues[0].start == 0
    for prev, curr in zip(cues, cues[1:]):
        assert curr.start == pytest.approx(prev.end)
        assert curr.end > curr.start


# ================================================================
# Remapping
# ================================================================


@pytest.mark.parametrize("count", [3, 4, 5, 6])
def test_remap_is_total_and_in_range(count):
    for shape in "ABCDEF":
        assert 0 <= shape_index(shape, count) < count


def test_remap_table_for_four_images():
    assert [shape_index(s, 4) for s in "ABCDEF"] == [0, 1, 2, 3, 2, 1]


def test_remap_three_images_folds_rounded_and_teeth_to_mid():
    assert shape_index("E", 3) == 1
    assert shape_index("F", 3) == 1
    assert shape_index("D", 3) == 2


def test_remap_unknown_and_idle_shapes_close_the_mouth():
    assert shape_index("X", 6) == 0
    assert shape_index("?", 4) == 0
    assert shape_index(None, 3) == 0


def test_remap_out_of_range_count_uses_full_table():
    assert [shape_index(s, 9) for s in "ABCDEF"] == [0, 1, 2, 3, 4, 5]
    assert shape_index("F", 1) == 5


def test_remap_shapes_keeps_timing_and_is_deterministic():
    cues = [LipSyncCue(0.0, 0.1, MouthShape.WIDE_OPEN), {"start": 0.1, "end": 0.2, "shape": "e"}]

    first = remap_shapes(cues, 4)
    second = remap_shapes(cues, 4)

    assert first == second
    assert first[0] == {"start": 0.0, "end": 0.1, "shape": "D", "shapeIndex": 3}
    assert first[1]["shapeIndex"] == 2


# ================================================================
# Duration estimate
# ================================================================


def test_duration_zero_yields_no_cues():
    assert cues_from_duration(0) == []


def test_duration_250ms_gives_three_cues_ending_closed():
    cues = cues_from_duration(250, cadence_ms=100)

    assert [c.end for c in cues] == pytest.approx([0.1, 0.2, 0.25])
    assert cues[-1].shape is MouthShape.CLOSED
    _assert_contiguous(cues)


def test_estimate_duration_scales_with_text_length():
    assert estimate_duration_ms("abcd") == 320
    assert estimate_duration_ms("") == 0


# ================================================================
# Alignment
# ================================================================


def test_alignment_empty_yields_no_cues():
    assert cues_from_alignment(None) == []
    assert cues_from_alignment({"characters": []}) == []


def test_alignment_cues_are_contiguous_and_end_at_rest():
    alignment = {
        "characters": list("mama"),
        "character_start_times_seconds": [0.0, 0.1, 0.2, 0.3],
        "character_end_times_seconds": [0.1, 0.2, 0.3, 0.4],
    }

    cues = cues_from_alignment(alignment)

    _assert_contiguous(cues)
    assert [c.shape for c in cues] == [
        MouthShape.CLOSED,
        MouthShape.WIDE_OPEN,
        MouthShape.CLOSED,
        MouthShape.WIDE_OPEN,
        MouthShape.CLOSED,
    ]
    assert cues[-1].end == pytest.approx(0.5)


def test_alignment_fills_leading_gap_and_merges_equal_shapes():
    alignment = {
        "characters": list("oo"),
        "character_start_times_seconds": [0.2, 0.3],
        "character_end_times_seconds": [0.3, 0.4],
    }

    cues = cues_from_alignment(alignment)

    assert cues[0] == LipSyncCue(0.0, 0.2, MouthShape.CLOSED)
    assert cues[1] == LipSyncCue(0.2, 0.4, MouthShape.ROUNDED)
    assert cues[-1].shape is MouthShape.CLOSED


def test_alignment_hebrew_letters():
    alignment = {
        "characters": ["ש", "ל", "ו", "ם"],
        "character_start_times_seconds": [0.0, 0.1, 0.2, 0.3],
        "character_end_times_seconds": [0.1, 0.2, 0.3, 0.4],
    }

    cues = cues_from_alignment(alignment)

    _assert_contiguous(cues)
    assert MouthShape.ROUNDED in [c.shape for c in cues]
    assert cues[-1].shape is MouthShape.CLOSED


# ================================================================
# Amplitude
# ================================================================


def test_amplitude_too_short_yields_no_cues():
    assert cues_from_amplitude(b"") == []
    assert cues_from_amplitude(b"\x00" * 100, "mp3_44100_128") == []


def test_amplitude_pcm_follows_loudness_and_ends_closed():
    sample_rate = 16000
    frame = sample_rate * 50 // 1000
    loud = (np.sin(np.linspace(0, 200 * np.pi, frame)) * 20000).astype(np.int16)
    quiet = np.zeros(frame, dtype=np.int16)
    pcm = np.concatenate([quiet, loud, loud, quiet, loud, loud, quiet, loud, loud, loud]).tobytes()

    cues = cues_from_amplitude(pcm, f"pcm_{sample_rate}", interval_ms=50)

    assert len(cues) == 10
    _assert_contiguous(cues)
    assert cues[0].shape is MouthShape.CLOSED
    assert cues[1].shape is MouthShape.WIDE_OPEN
    assert cues[-1].shape is MouthShape.CLOSED


def test_amplitude_compressed_audio_uses_byte_spread():
    rng = np.random.default_rng(7)
    audio = rng.integers(0, 256, size=16 * 50 * 8, dtype=np.uint8).tobytes()

    cues = cues_from_amplitude(audio, "mp3_44100_128", interval_ms=50)

    assert len(cues) == 8
    _assert_contiguous(cues)
    assert cues[-1].shape is MouthShape.CLOSED


# ================================================================
# Dispatcher
# ================================================================


def test_generate_prefers_alignment():
    alignment = {
        "characters": ["a"],
        "character_start_times_seconds": [0.0],
        "character_end_times_seconds": [0.2],
    }

    data = generate_lip_sync("a", b"", alignment, 4)

    assert data[0] == {"start": 0.0, "end": 0.2, "shape": "D", "shapeIndex": 3}


def test_generate_falls_back_to_duration_estimate():
    data = generate_lip_sync("hi", b"x", None, 3, cadence_ms=100, ms_per_char=80)

    assert [d["end"] for d in data] == pytest.approx([0.1, 0.16])
    assert data[-1]["shape"] == "A"
    assert all(0 <= d["shapeIndex"] < 3 for d in data)

"""
Lip-sync cue generation.

Turns speech timing into discrete mouth-shape cues. Three sources, in order
of precision:

- character alignment returned by the synthesis provider
- the amplitude envelope of the synthesized audio
- a fixed pattern spanning an estimated speech duration

All generators return contiguous cues starting at 0 with the mouth closed at
the end. Rig-specific image indices are attached afterwards by
``remap_shapes``.
"""

import math
import re
from collections.abc import Mapping
from typing import Any

import numpy as np

from core.logger import get_logger

from .shapes import OPENNESS_LEVELS, LipSyncCue, MouthShape, remap_shapes

logger = get_logger(__name__)

# Default timing constants (overridable through Settings at the call site)
DEFAULT_CADENCE_MS = 100
DEFAULT_AMPLITUDE_INTERVAL_MS = 50
DEFAULT_MS_PER_CHAR = 80
REST_CUE_SECONDS = 0.1

# Compressed audio is assumed to be ~128 kbps, i.e. 16 bytes per millisecond
MP3_BYTES_PER_MS = 16

# Repeating mouth pattern used when no timing information exists
_DURATION_PATTERN: tuple[MouthShape, ...] = (
    MouthShape.SLIGHTLY_OPEN,
    MouthShape.OPEN,
    MouthShape.WIDE_OPEN,
    MouthShape.OPEN,
    MouthShape.SLIGHTLY_OPEN,
    MouthShape.ROUNDED,
)

_PCM_FORMAT = re.compile(r"^pcm_(\d+)$")

# Character classes (English and Hebrew, including niqqud vowel points)
_CLOSED_CHARS = re.compile(r"[\s.,!?;:\-\"'()־׃–—…]")
_LIP_CHARS = re.compile(r"[bpmבפמם]")  # bet, pe, mem, final mem
_TEETH_CHARS = re.compile(r"[fv]")
_ROUNDED_CHARS = re.compile(r"[oò-öuù-üwוֹֺֻ]")  # vav, holam, qubuts
_WIDE_CHARS = re.compile(r"[aà-äאעַָ]")  # alef, ayin, patah, qamats
_OPEN_CHARS = re.compile(r"[eè-ëיֵֶ]")  # yod, tsere, segol


def _shape_for_char(char: str) -> MouthShape:
    c = char.lower()
    if not c or _CLOSED_CHARS.match(c):
        return MouthShape.CLOSED
    if _LIP_CHARS.match(c):
        return MouthShape.CLOSED
    if _TEETH_CHARS.match(c):
        return MouthShape.TEETH_ON_LIP
    if _ROUNDED_CHARS.match(c):
        return MouthShape.ROUNDED
    if _WIDE_CHARS.match(c):
        return MouthShape.WIDE_OPEN
    if _OPEN_CHARS.match(c):
        return MouthShape.OPEN
    return MouthShape.SLIGHTLY_OPEN


def _append_merged(cues: list[LipSyncCue], start: float, end: float, shape: MouthShape) -> None:
    if cues and cues[-1].shape == shape and cues[-1].end == start:
        cues[-1] = LipSyncCue(cues[-1].start, end, shape)
    else:
        cues.append(LipSyncCue(start, end, shape))


def cues_from_alignment(alignment: Mapping[str, Any] | None) -> list[LipSyncCue]:
    """
    Build cues from character-level alignment.

    Args:
        alignment: Provider alignment with "characters",
            "character_start_times_seconds" and "character_end_times_seconds"

    Returns:
        Contiguous cues covering [0, last character end) followed by a short
        closed rest cue. Empty when the alignment carries no characters.
    """
    if not alignment:
        return []

    characters = alignment.get("characters") or []
    starts = alignment.get("character_start_times_seconds") or []
    ends = alignment.get("character_end_times_seconds") or []

    cues: list[LipSyncCue] = []
    cursor = 0.0

    for char, raw_start, raw_end in zip(characters, starts, ends):
        if raw_start is None or raw_end is None:
            continue

        # Overlapping characters are clamped to the running cursor
        start = max(round(float(raw_start), 3), cursor)
        end = round(float(raw_end), 3)
        if end <= start:
            continue

        if start > cursor:
            _append_merged(cues, cursor, start, MouthShape.CLOSED)

        _append_merged(cues, start, end, _shape_for_char(char))
        cursor = end

    if not cues:
        return []

    _append_merged(cues, cursor, round(cursor + REST_CUE_SECONDS, 3), MouthShape.CLOSED)
    return cues


def estimate_duration_ms(text: str, ms_per_char: int = DEFAULT_MS_PER_CHAR) -> int:
    """Best-effort speech duration for text with no real timing."""
    return len(text) * ms_per_char


def cues_from_duration(duration_ms: float, cadence_ms: int = DEFAULT_CADENCE_MS) -> list[LipSyncCue]:
    """
    Build a repeating mouth pattern spanning ``duration_ms``.

    Cues are ``cadence_ms`` long except the last, which is trimmed to the
    duration and always closed.
    """
    if duration_ms <= 0 or cadence_ms <= 0:
        return []

    count = math.ceil(duration_ms / cadence_ms)
    cues: list[LipSyncCue] = []
    for i in range(count):
        start_ms = i * cadence_ms
        end_ms = min((i + 1) * cadence_ms, duration_ms)
        shape = _DURATION_PATTERN[i % len(_DURATION_PATTERN)]
        cues.append(LipSyncCue(start_ms / 1000, end_ms / 1000, shape))

    last = cues[-1]
    cues[-1] = LipSyncCue(last.start, last.end, MouthShape.CLOSED)
    return cues


def _pcm_sample_rate(audio_format: str) -> int | None:
    match = _PCM_FORMAT.match(audio_format or "")
    return int(match.group(1)) if match else None


def _pcm_envelope(audio: bytes, sample_rate: int, interval_ms: int) -> np.ndarray:
    samples = np.frombuffer(audio[: len(audio) // 2 * 2], dtype=np.int16).astype(np.float32) / 32768.0
    frame_len = max(1, sample_rate * interval_ms // 1000)
    num_frames = len(samples) // frame_len
    if num_frames == 0:
        return np.zeros(0, dtype=np.float32)
    frames = samples[: num_frames * frame_len].reshape(num_frames, frame_len)
    return np.sqrt(np.mean(frames**2, axis=1))


def _compressed_envelope(audio: bytes, interval_ms: int) -> np.ndarray:
    # Byte spread is a loudness proxy for encoded audio we cannot decode here
    data = np.frombuffer(audio, dtype=np.uint8).astype(np.float64)
    num_frames = int((len(data) / MP3_BYTES_PER_MS) // interval_ms)
    if num_frames == 0:
        return np.zeros(0, dtype=np.float64)
    bounds = (np.arange(num_frames + 1) * len(data)) // num_frames
    return np.array([data[bounds[i] : bounds[i + 1]].std() if bounds[i + 1] > bounds[i] else 0.0 for i in range(num_frames)])


def cues_from_amplitude(
    audio: bytes,
    audio_format: str = "mp3",
    interval_ms: int = DEFAULT_AMPLITUDE_INTERVAL_MS,
) -> list[LipSyncCue]:
    """
    Build cues from the loudness envelope of synthesized audio.

    Args:
        audio: Audio payload (PCM16 for "pcm_<rate>" formats, otherwise encoded)
        audio_format: Provider output format, e.g. "mp3_44100_128" or "pcm_24000"
        interval_ms: Envelope frame length

    Returns:
        One cue per frame, quantised to the four openness levels, ending
        closed. Empty when the audio is shorter than two frames.
    """
    if not audio:
        return []

    sample_rate = _pcm_sample_rate(audio_format)
    if sample_rate:
        envelope = _pcm_envelope(audio, sample_rate, interval_ms)
    else:
        envelope = _compressed_envelope(audio, interval_ms)

    num_frames = len(envelope)
    if num_frames < 2:
        return []

    # Normalise between the 10th and 90th percentile to ignore outliers
    ordered = np.sort(envelope)
    low = ordered[int(num_frames * 0.1)]
    high = ordered[int(num_frames * 0.9)]
    spread = (high - low) or 1.0

    normalized = np.clip((envelope - low) / spread, 0.0, 1.0)
    top = len(OPENNESS_LEVELS) - 1
    levels = np.floor(normalized**0.7 * top + 0.5).astype(int).tolist()

    # Smooth isolated spikes
    for i in range(1, num_frames - 1):
        prev, curr, nxt = levels[i - 1], levels[i], levels[i + 1]
        if abs(curr - prev) > 2 and abs(curr - nxt) > 2:
            levels[i] = math.floor((prev + nxt) / 2 + 0.5)

    levels[-1] = 0

    return [
        LipSyncCue(i * interval_ms / 1000, (i + 1) * interval_ms / 1000, OPENNESS_LEVELS[min(level, top)])
        for i, level in enumerate(levels)
    ]


def generate_lip_sync(
    text: str,
    audio: bytes,
    alignment: Mapping[str, Any] | None,
    mouth_shape_count: int,
    audio_format: str = "mp3",
    cadence_ms: int = DEFAULT_CADENCE_MS,
    amplitude_interval_ms: int = DEFAULT_AMPLITUDE_INTERVAL_MS,
    ms_per_char: int = DEFAULT_MS_PER_CHAR,
) -> list[dict[str, Any]]:
    """
    Derive rig-ready lip-sync data for one synthesized sentence.

    Alignment is used when present, the amplitude envelope otherwise, and
    the duration estimate when neither yields any cue.
    """
    if alignment:
        cues = cues_from_alignment(alignment)
        source = "alignment"
    else:
        cues = cues_from_amplitude(audio, audio_format, amplitude_interval_ms)
        source = "amplitude"

    if not cues:
        cues = cues_from_duration(estimate_duration_ms(text, ms_per_char), cadence_ms)
        source = "duration"

    logger.debug(f"Lip-sync: {len(cues)} cues from {source} ({mouth_shape_count} shapes)")
    return remap_shapes(cues, mouth_shape_count)

"""
Lip-sync - mouth-shape cues for 2D avatar rigs.

Converts synthesis timing (character alignment, amplitude envelope or an
estimated duration) into cues over a six-shape mouth alphabet, then remaps
them onto the number of mouth images a rig provides.
"""

from .engine import (
    cues_from_alignment,
    cues_from_amplitude,
    cues_from_duration,
    estimate_duration_ms,
    generate_lip_sync,
)
from .shapes import MAX_SHAPE_COUNT, MIN_SHAPE_COUNT, LipSyncCue, MouthShape, remap_shapes, shape_index

__all__ = [
    "MAX_SHAPE_COUNT",
    "MIN_SHAPE_COUNT",
    "LipSyncCue",
    "MouthShape",
    "cues_from_alignment",
    "cues_from_amplitude",
    "cues_from_duration",
    "estimate_duration_ms",
    "generate_lip_sync",
    "remap_shapes",
    "shape_index",
]

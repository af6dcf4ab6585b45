"""
Mouth shape alphabet and rig remapping.

Shapes follow the Rhubarb letter convention:

    A  closed (M, B, P)
    B  slightly open
    C  open
    D  wide open
    E  rounded (O, U)
    F  teeth on lip (F, V)

``X`` is Rhubarb's idle shape. It is accepted on input but is not part of
the alphabet a rig has to draw, so it maps to the closed image like any
unknown symbol.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

MIN_SHAPE_COUNT = 3
MAX_SHAPE_COUNT = 6


class MouthShape(str, Enum):
    CLOSED = "A"
    SLIGHTLY_OPEN = "B"
    OPEN = "C"
    WIDE_OPEN = "D"
    ROUNDED = "E"
    TEETH_ON_LIP = "F"


# Openness levels used by the amplitude and duration estimators, quietest first.
OPENNESS_LEVELS: tuple[MouthShape, ...] = (
    MouthShape.CLOSED,
    MouthShape.SLIGHTLY_OPEN,
    MouthShape.OPEN,
    MouthShape.WIDE_OPEN,
)

# Image index per shape for every supported rig size. Columns follow the
# MouthShape declaration order (A B C D E F).
_SHAPE_TABLE: dict[int, tuple[int, ...]] = {
    3: (0, 1, 2, 2, 1, 1),  # closed, mid, open
    4: (0, 1, 2, 3, 2, 1),  # closed, slight, open, wide
    5: (0, 1, 2, 3, 4, 1),  # + rounded
    6: (0, 1, 2, 3, 4, 5),  # all shapes
}

_SHAPE_ORDER: dict[MouthShape, int] = {shape: i for i, shape in enumerate(MouthShape)}


@dataclass(frozen=True)
class LipSyncCue:
    """A single timed mouth shape, in seconds from the start of the clip."""

    start: float
    end: float
    shape: MouthShape

    def to_dict(self) -> dict[str, Any]:
        return {"start": self.start, "end": self.end, "shape": self.shape.value}


def parse_shape(value: Any) -> MouthShape | None:
    """Return the MouthShape for a letter or enum member, None when unknown."""
    if isinstance(value, MouthShape):
        return value
    try:
        return MouthShape(str(value).upper())
    except ValueError:
        return None


def shape_index(shape: Any, available_shape_count: int) -> int:
    """Map one shape symbol to the closest image index a rig provides.

    Rig sizes outside 3-6 use the full six-image table. Unknown symbols
    (including the idle ``X``) map to index 0.
    """
    row = _SHAPE_TABLE.get(available_shape_count, _SHAPE_TABLE[MAX_SHAPE_COUNT])
    parsed = parse_shape(shape)
    if parsed is None:
        return 0
    return row[_SHAPE_ORDER[parsed]]


def remap_shapes(
    cues: Iterable[LipSyncCue | Mapping[str, Any]],
    available_shape_count: int,
) -> list[dict[str, Any]]:
    """
    Attach a rig image index to every cue.

    Args:
        cues: LipSyncCue objects or dicts with "start", "end" and "shape"
        available_shape_count: Number of mouth images the rig has (3-6)

    Returns:
        List of cue dicts with an added "shapeIndex" in [0, count)
    """
    remapped: list[dict[str, Any]] = []
    for cue in cues:
        data = cue.to_dict() if isinstance(cue, LipSyncCue) else dict(cue)
        data["shapeIndex"] = shape_index(data.get("shape"), available_shape_count)
        remapped.append(data)
    return remapped

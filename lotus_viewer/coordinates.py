"""Voxel index <-> millimetre coordinate mapping.

Two regimes are supported:

* the MNI152 2 mm template grid (91 x 109 x 91 voxels, 2 mm isotropic), which
  uses the published origin so coordinates match the atlas convention exactly;
* any other grid, whose origin is placed at the geometric center
  (``floor(n / 2)``).

In both regimes x runs right-to-left (index 0 is the subject's right), while y
and z increase with the index.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import math
from typing import Sequence, Tuple

from . import config
from .utils import clamp, format_number


class Axis(str, Enum):
    """Spatial axis; the value doubles as the textual key used by the UI."""

    X = "x"
    Y = "y"
    Z = "z"

    @property
    def index(self) -> int:
        return "xyz".index(self.value)

    @classmethod
    def parse(cls, value) -> "Axis":
        if isinstance(value, Axis):
            return value
        if isinstance(value, int):
            return tuple(cls)[value]
        return cls(str(value).lower())


AXIS_SIGN = {Axis.X: -1, Axis.Y: 1, Axis.Z: 1}


def is_canonical_grid(dims: Sequence[int], spacing: Sequence[float]) -> bool:
    """Return ``True`` for the 91 x 109 x 91, 2 mm isotropic template grid."""

    if tuple(int(d) for d in dims) != config.CANONICAL_DIMS:
        return False
    return all(
        abs(float(s) - config.CANONICAL_SPACING_MM) < config.CANONICAL_TOLERANCE
        for s in spacing
    )


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class CoordinateMapper:
    """Per-axis conversion for a grid of *dims* voxels sized *spacing* mm."""

    dims: Tuple[int, int, int]
    spacing: Tuple[float, float, float] = (1.0, 1.0, 1.0)

    @property
    def canonical(self) -> bool:
        return is_canonical_grid(self.dims, self.spacing)

    def index_to_coord(self, index: int, axis) -> float:
        axis = Axis.parse(axis)
        i = axis.index
        if self.canonical:
            origin = config.CANONICAL_ORIGIN[i]
            step = config.CANONICAL_SPACING_MM
            return origin - step * index if axis is Axis.X else origin + step * index
        center = self.dims[i] // 2
        return AXIS_SIGN[axis] * (index - center) * self.spacing[i]

    def coord_to_index(self, coord: float, axis) -> int:
        """Nearest voxel index for *coord* mm, clamped into the grid."""

        axis = Axis.parse(axis)
        i = axis.index
        n = self.dims[i]
        if self.canonical:
            origin = config.CANONICAL_ORIGIN[i]
            step = config.CANONICAL_SPACING_MM
            if axis is Axis.X:
                value = (origin - coord) / step
            else:
                value = (coord - origin) / step
        else:
            value = AXIS_SIGN[axis] * (coord / self.spacing[i]) + n // 2
        return clamp(_round_half_up(value), 0, n - 1)

    def format_coordinate(self, index: int, axis) -> str:
        return format_number(self.index_to_coord(index, axis))

    def coordinates(self, cursor: Sequence[int]) -> Tuple[float, float, float]:
        """Millimetre position of a full ``(ix, iy, iz)`` cursor."""
        return tuple(self.index_to_coord(cursor[a.index], a) for a in Axis)

"""Immutable voxel volume passed between the decoder, mapper and compositor."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Tuple

import numpy as np


@dataclass(frozen=True, eq=False)
class Volume:
    """Decoded 3-D volume.

    Attributes
    ----------
    dims : tuple[int, int, int]
        Number of voxels along x, y and z.
    spacing : tuple[float, float, float]
        Absolute voxel size in millimetres.
    data : numpy.ndarray
        ``float32`` array shaped ``dims`` and indexed ``data[x, y, z]``.
    vmin, vmax : float
        Observed value range of ``data``.

    Equality is identity: two loads of the same bytes are different volumes,
    which is what the threshold cache keys on.
    """

    dims: Tuple[int, int, int]
    spacing: Tuple[float, float, float]
    data: np.ndarray = field(repr=False)
    vmin: float = 0.0
    vmax: float = 0.0

    def __post_init__(self) -> None:
        dims = tuple(int(d) for d in self.dims)
        if len(dims) != 3 or any(d <= 0 for d in dims):
            raise ValueError(f"Volume dimensions must be three positive integers, got {self.dims}")
        expected = dims[0] * dims[1] * dims[2]
        if self.data.size != expected:
            raise ValueError(
                f"Volume buffer holds {self.data.size} values, expected {expected} for {dims}"
            )
        data = self.data.reshape(dims, order="F") if self.data.shape != dims else self.data
        data.flags.writeable = False
        object.__setattr__(self, "dims", dims)
        object.__setattr__(self, "spacing", tuple(float(s) for s in self.spacing))
        object.__setattr__(self, "data", data)

    @classmethod
    def from_array(cls, data, spacing=(1.0, 1.0, 1.0)) -> "Volume":
        """Wrap a 3-D array indexed ``[x, y, z]`` and compute its value range."""

        arr = np.array(data, dtype=np.float32, copy=True)
        if arr.ndim != 3:
            raise ValueError(f"Expected a 3-D array, got shape {arr.shape}")
        vmin, vmax = value_range(arr)
        return cls(arr.shape, spacing, arr, vmin, vmax)

    @property
    def buffer(self) -> np.ndarray:
        """Flat view addressed as ``buffer[x + y*nx + z*nx*ny]``."""
        return self.data.reshape(-1, order="F")

    def same_grid(self, dims) -> bool:
        return self.dims == tuple(dims)


def value_range(arr: np.ndarray) -> Tuple[float, float]:
    """Return ``(min, max)`` ignoring NaNs; ``(0.0, 0.0)`` when nothing is finite."""

    if arr.size == 0:
        return 0.0, 0.0
    finite = np.isfinite(arr)
    if not finite.any():
        return 0.0, 0.0
    if finite.all():
        return float(arr.min()), float(arr.max())
    vals = arr[finite]
    return float(vals.min()), float(vals.max())

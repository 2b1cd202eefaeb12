"""Compose Background and Overlay volumes into orthogonal RGBA slices.

Each plane is returned as a ``(height, width, 4)`` ``uint8`` array whose first
row is the top of the screen.  Source rows are flipped so anatomical "up" maps
to screen "up", and with :data:`config.X_RIGHT_ON_SCREEN_RIGHT` the x index is
mirrored on the axial and coronal planes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import numpy as np

from . import config
from .coordinates import Axis
from .volume import Volume


@dataclass(frozen=True)
class RenderSpec:
    opacity: float = 0.5
    positive_only: bool = True
    use_absolute: bool = False


@dataclass(frozen=True)
class ViewState:
    """Everything a compositor call reads, captured by the controller.

    ``mirror_x`` carries the display convention of the owning controller.  It
    defaults to :data:`config.X_RIGHT_ON_SCREEN_RIGHT` and is the same for
    all three planes and every redraw of that controller; only a separately
    configured controller (the CLI's ``--radiological``) uses the other
    convention.
    """

    dims: Tuple[int, int, int]
    background: Optional[Volume] = None
    overlay: Optional[Volume] = None
    cursor: Tuple[int, int, int] = (0, 0, 0)
    render: RenderSpec = RenderSpec()
    cutoff: Optional[float] = None
    mirror_x: bool = config.X_RIGHT_ON_SCREEN_RIGHT

    def compatible(self, volume: Optional[Volume]) -> bool:
        return volume is not None and volume.same_grid(self.dims)


def plane_shape(dims, axis) -> Tuple[int, int]:
    """Return ``(width, height)`` of the plane orthogonal to *axis*."""

    nx, ny, nz = dims
    axis = Axis.parse(axis)
    if axis is Axis.Z:
        return nx, ny
    if axis is Axis.Y:
        return nx, nz
    return ny, nz


def mirrors_x(axis, mirror_x: bool = config.X_RIGHT_ON_SCREEN_RIGHT) -> bool:
    """Whether the horizontal screen axis of this plane is the mirrored x axis."""
    return mirror_x and Axis.parse(axis) is not Axis.X


def _source_plane(volume: Volume, axis: Axis, index: int) -> np.ndarray:
    """2-D slice indexed ``[horizontal, vertical]`` in source orientation."""

    if axis is Axis.Z:
        return volume.data[:, :, index]
    if axis is Axis.Y:
        return volume.data[:, index, :]
    return volume.data[index, :, :]


def _to_screen(plane: np.ndarray, mirror: bool) -> np.ndarray:
    """Transpose to rows, flip vertically and optionally mirror horizontally."""

    out = plane.T[::-1, :]
    if mirror:
        out = out[:, ::-1]
    return out


def background_gray(values: np.ndarray, vmin: float, vmax: float) -> np.ndarray:
    rng = (vmax - vmin) or 1.0
    g = np.clip((values.astype(np.float64) - vmin) / rng, 0.0, 1.0)
    g = np.nan_to_num(g, nan=0.0)
    return (g * 255).astype(np.uint8)


def overlay_mask(values: np.ndarray, cutoff: Optional[float], render: RenderSpec) -> np.ndarray:
    """Boolean mask of overlay voxels that pass the threshold rules."""

    raw = values.astype(np.float64)
    effective = np.abs(raw) if render.use_absolute else raw
    with np.errstate(invalid="ignore"):
        if cutoff is None:
            passed = effective > 0
        else:
            passed = effective >= cutoff
        if render.positive_only:
            passed &= raw > 0
    return passed


def crosshair_position(view: ViewState, axis) -> Tuple[int, int]:
    """Screen ``(column, row)`` of the cursor on the plane orthogonal to *axis*."""

    axis = Axis.parse(axis)
    width, height = plane_shape(view.dims, axis)
    ix, iy, iz = view.cursor
    if axis is Axis.Z:
        col, src_row = ix, iy
    elif axis is Axis.Y:
        col, src_row = ix, iz
    else:
        col, src_row = iy, iz
    if mirrors_x(axis, view.mirror_x):
        col = width - 1 - col
    col = max(0, min(width - 1, col))
    src_row = max(0, min(height - 1, src_row))
    return col, height - 1 - src_row


def render_slice(view: ViewState, axis, index: int) -> np.ndarray:
    """Render one plane of *view* at slice *index* along *axis*.

    Missing or dimension-incompatible volumes are skipped rather than
    reported: the plane degrades to whatever data is present.
    """

    axis = Axis.parse(axis)
    width, height = plane_shape(view.dims, axis)
    mirror = mirrors_x(axis, view.mirror_x)
    img = np.zeros((height, width, 4), dtype=np.uint8)
    img[..., 3] = 255

    in_range = 0 <= index < view.dims[axis.index]
    background = view.background if view.compatible(view.background) else None
    overlay = view.overlay if view.compatible(view.overlay) else None

    if background is not None and in_range:
        gray = background_gray(
            _to_screen(_source_plane(background, axis, index), mirror),
            background.vmin,
            background.vmax,
        )
        img[..., 0] = gray
        img[..., 1] = gray
        img[..., 2] = gray

    if overlay is not None and in_range:
        values = _to_screen(_source_plane(overlay, axis, index), mirror)
        mask = overlay_mask(values, view.cutoff, view.render)
        if mask.any():
            alpha = max(0.0, min(1.0, float(view.render.opacity)))
            accent = np.asarray(config.OVERLAY_COLOR, dtype=np.float64)
            rgb = img[..., :3][mask].astype(np.float64)
            img[..., :3][mask] = ((1.0 - alpha) * rgb + alpha * accent).astype(np.uint8)

    col, row = crosshair_position(view, axis)
    img[:, col, :3] = config.CROSSHAIR_COLOR
    img[row, :, :3] = config.CROSSHAIR_COLOR
    img[:, col, 3] = 255
    img[row, :, 3] = 255
    return img


def render_planes(view: ViewState) -> Dict[Axis, np.ndarray]:
    """Render the axial, coronal and sagittal planes at the cursor."""

    ix, iy, iz = view.cursor
    return {
        Axis.Z: render_slice(view, Axis.Z, iz),
        Axis.Y: render_slice(view, Axis.Y, iy),
        Axis.X: render_slice(view, Axis.X, ix),
    }

"""Cursor state, volume-slot lifecycle and pointer/text input handling.

The controller owns two volume slots.  Loads are started with ``begin_*`` and
finished with :meth:`ViewerController.complete_load` or
:meth:`ViewerController.fail_load`; every ``begin`` hands out a generation
token and a completion is committed only while its token is still current.
That is how a superseded overlay request arriving late gets discarded, no
matter which driver (asyncio or a Qt worker thread) performed the load.

A redraw of the three planes happens exactly when the cursor changes, a slot
completes, or the render/threshold settings change.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
import logging
import math
from typing import Callable, Dict, List, Optional, Tuple, Union

import numpy as np

from . import config
from .compositor import RenderSpec, ViewState, mirrors_x, plane_shape, render_planes
from .coordinates import Axis, CoordinateMapper
from .errors import DecodeError, LotusViewerError, NetworkError
from .fetch import AsyncFetcher, OverlayRequest, fetch_bytes_async, overlay_url
from .nifti_decoder import decode_volume
from .threshold import ThresholdCache, ThresholdSpec
from .volume import Volume

LOGGER = logging.getLogger(__name__)

RedrawListener = Callable[[Dict[Axis, np.ndarray]], None]


class SlotName(str, Enum):
    BACKGROUND = "background"
    OVERLAY = "overlay"


class ViewerState(Enum):
    NO_VOLUME = "no_volume"
    BACKGROUND_ONLY = "background_only"
    OVERLAY_ONLY = "overlay_only"
    BACKGROUND_AND_OVERLAY = "background_and_overlay"


SLOT_LABELS = {SlotName.BACKGROUND: "Background", SlotName.OVERLAY: "Map"}


@dataclass
class VolumeSlot:
    """One independently loaded volume and the bookkeeping of its last load."""

    name: SlotName
    volume: Optional[Volume] = None
    loading: bool = False
    error: str = ""
    generation: int = 0
    # Loaded fine but its grid differs from the established dimensions.
    excluded: bool = False

    def begin(self) -> int:
        self.generation += 1
        self.loading = True
        self.error = ""
        return self.generation

    def accepts(self, token: int) -> bool:
        return self.loading and token == self.generation

    def cancel(self) -> None:
        self.generation += 1
        self.loading = False


def error_message(error: Union[BaseException, str]) -> str:
    """User-facing text for a failed load."""

    if isinstance(error, DecodeError):
        return f"Could not decode volume ({type(error).__name__}): {error}"
    if isinstance(error, NetworkError):
        return f"Download failed: {error}"
    return str(error)


class ViewerController:
    """Interaction controller shared by the GUI, the CLI and the async driver."""

    def __init__(
        self,
        api_base: str = config.DEFAULT_API_BASE,
        background_source: Optional[str] = None,
        render: RenderSpec = RenderSpec(),
        threshold: ThresholdSpec = ThresholdSpec(),
        mirror_x: bool = config.X_RIGHT_ON_SCREEN_RIGHT,
    ) -> None:
        self.api_base = api_base
        self.background_source = background_source or (
            f"{api_base.rstrip('/')}/{config.BACKGROUND_RELATIVE_PATH}"
        )
        self.render_spec = render
        self.threshold_spec = threshold
        # Display convention for every plane and redraw of this controller.
        self.mirror_x = mirror_x

        self._slots = {name: VolumeSlot(name) for name in SlotName}
        self._background_requested = False
        self._threshold_cache = ThresholdCache()
        self._listeners: List[RedrawListener] = []

        self.dims: Optional[Tuple[int, int, int]] = None
        self._grid_spacing: Tuple[float, float, float] = (1.0, 1.0, 1.0)
        self.cursor: Optional[Tuple[int, int, int]] = None
        self.coordinate_text: Dict[Axis, str] = {axis: "0" for axis in Axis}
        self.overlay_request: Optional[OverlayRequest] = None
        self.planes: Dict[Axis, np.ndarray] = {}
        self.redraw_count = 0

    # ------------------------------------------------------------------
    # Read accessors
    # ------------------------------------------------------------------
    def slot(self, name) -> VolumeSlot:
        return self._slots[SlotName(name)]

    @property
    def background(self) -> Optional[Volume]:
        """The process-lifetime anatomical reference (``None`` until loaded)."""
        return self._slots[SlotName.BACKGROUND].volume

    @property
    def overlay(self) -> Optional[Volume]:
        return self._slots[SlotName.OVERLAY].volume

    def _compatible(self, volume: Optional[Volume]) -> bool:
        return volume is not None and self.dims is not None and volume.same_grid(self.dims)

    @property
    def state(self) -> ViewerState:
        has_bg = self._compatible(self.background)
        has_ov = self._compatible(self.overlay)
        if has_bg and has_ov:
            return ViewerState.BACKGROUND_AND_OVERLAY
        if has_bg:
            return ViewerState.BACKGROUND_ONLY
        if has_ov:
            return ViewerState.OVERLAY_ONLY
        return ViewerState.NO_VOLUME

    @property
    def spacing(self) -> Tuple[float, float, float]:
        for volume in (self.background, self.overlay):
            if self._compatible(volume):
                return volume.spacing
        return self._grid_spacing

    @property
    def mapper(self) -> Optional[CoordinateMapper]:
        if self.dims is None:
            return None
        return CoordinateMapper(self.dims, self.spacing)

    @property
    def overlay_url(self) -> str:
        return overlay_url(self.overlay_request, self.api_base)

    @property
    def download_url(self) -> str:
        """Link to the current overlay map, built from the same fetch key."""
        return self.overlay_url

    @property
    def is_loading(self) -> bool:
        return any(slot.loading for slot in self._slots.values())

    def status_messages(self) -> List[str]:
        return [
            f"{SLOT_LABELS[slot.name]}: {slot.error}"
            for slot in self._slots.values()
            if slot.error
        ]

    def cursor_coordinates(self) -> Optional[Tuple[float, float, float]]:
        if self.cursor is None:
            return None
        return self.mapper.coordinates(self.cursor)

    def add_redraw_listener(self, listener: RedrawListener) -> None:
        self._listeners.append(listener)

    # ------------------------------------------------------------------
    # Load lifecycle
    # ------------------------------------------------------------------
    def begin_background_load(self) -> Optional[int]:
        """Start the one background load of this process; ``None`` if already started."""

        if self._background_requested:
            return None
        self._background_requested = True
        return self._slots[SlotName.BACKGROUND].begin()

    def begin_overlay_load(self, request: Optional[OverlayRequest]) -> Optional[int]:
        """Start loading *request*, superseding any overlay load in flight.

        An empty query clears the overlay instead and returns ``None``.
        """

        if request is None or not request.query:
            self.clear_overlay()
            return None
        self.overlay_request = request
        return self._slots[SlotName.OVERLAY].begin()

    def begin_overlay_file_load(self) -> int:
        """Start loading an overlay from an explicit source rather than a query."""

        self.overlay_request = None
        return self._slots[SlotName.OVERLAY].begin()

    def cancel(self, name) -> None:
        slot = self.slot(name)
        if slot.loading:
            LOGGER.debug("Cancelled %s load #%d", slot.name.value, slot.generation)
        slot.cancel()

    def clear_overlay(self) -> None:
        slot = self._slots[SlotName.OVERLAY]
        had_volume = slot.volume is not None
        slot.cancel()
        slot.volume = None
        slot.error = ""
        slot.excluded = False
        self.overlay_request = None
        self._threshold_cache.invalidate()
        if had_volume:
            self.redraw()

    def complete_load(self, name, token: int, volume: Volume) -> bool:
        """Commit *volume* if *token* is still current; return whether it was."""

        slot = self.slot(name)
        if not slot.accepts(token):
            LOGGER.debug("Discarding stale %s load #%d", slot.name.value, token)
            return False
        slot.loading = False
        slot.error = ""
        slot.volume = volume

        if self.dims is None:
            self._establish_grid(volume)
        slot.excluded = not volume.same_grid(self.dims)
        if slot.excluded:
            LOGGER.info(
                "%s grid %s differs from %s; it will not be displayed",
                SLOT_LABELS[slot.name],
                volume.dims,
                self.dims,
            )
        if slot.name is SlotName.OVERLAY:
            self._threshold_cache.invalidate()

        self._refresh_coordinate_text()
        self.redraw()
        return True

    def fail_load(self, name, token: int, error: Union[BaseException, str]) -> bool:
        """Record a failed load; the slot becomes absent.  Stale failures are ignored."""

        slot = self.slot(name)
        if not slot.accepts(token):
            LOGGER.debug("Discarding stale %s failure #%d", slot.name.value, token)
            return False
        slot.loading = False
        slot.volume = None
        slot.excluded = False
        slot.error = error_message(error)
        LOGGER.warning("%s load failed: %s", SLOT_LABELS[slot.name], slot.error)
        if slot.name is SlotName.OVERLAY:
            self._threshold_cache.invalidate()
        self.redraw()
        return True

    def _establish_grid(self, volume: Volume) -> None:
        self.dims = volume.dims
        self._grid_spacing = volume.spacing
        self.cursor = tuple(n // 2 for n in volume.dims)
        LOGGER.info("Grid %s established, cursor centered at %s", self.dims, self.cursor)

    # ------------------------------------------------------------------
    # Async driver
    # ------------------------------------------------------------------
    async def load_background(self, fetcher: Optional[AsyncFetcher] = None) -> Optional[Volume]:
        token = self.begin_background_load()
        if token is None:
            return self.background
        return await self._run_load(SlotName.BACKGROUND, token, self.background_source, fetcher)

    async def load_overlay(
        self, request: Optional[OverlayRequest], fetcher: Optional[AsyncFetcher] = None
    ) -> Optional[Volume]:
        token = self.begin_overlay_load(request)
        if token is None:
            return None
        return await self._run_load(SlotName.OVERLAY, token, self.overlay_url, fetcher)

    async def load_overlay_file(
        self, source: str, fetcher: Optional[AsyncFetcher] = None
    ) -> Optional[Volume]:
        token = self.begin_overlay_file_load()
        return await self._run_load(SlotName.OVERLAY, token, str(source), fetcher)

    async def _run_load(
        self, name: SlotName, token: int, source: str, fetcher: Optional[AsyncFetcher]
    ) -> Optional[Volume]:
        fetcher = fetcher or fetch_bytes_async
        slot = self._slots[name]
        try:
            raw = await fetcher(source)
            if not slot.accepts(token):
                LOGGER.debug("Skipping decode of superseded %s load #%d", name.value, token)
                return None
            loop = asyncio.get_running_loop()
            volume = await loop.run_in_executor(None, decode_volume, raw)
        except LotusViewerError as exc:
            self.fail_load(name, token, exc)
            return None
        return volume if self.complete_load(name, token, volume) else None

    # ------------------------------------------------------------------
    # Cursor input
    # ------------------------------------------------------------------
    def set_cursor(self, ix: int, iy: int, iz: int) -> bool:
        """Move the cursor (clamped); redraw only when it actually moved."""

        if self.dims is None:
            return False
        new = tuple(
            max(0, min(n - 1, int(v))) for v, n in zip((ix, iy, iz), self.dims)
        )
        changed = new != self.cursor
        self.cursor = new
        self._refresh_coordinate_text()
        if changed:
            self.redraw()
        return changed

    def pointer_click(self, axis, screen_x: float, screen_y: float, display_size=None) -> bool:
        """Move the cursor to the voxel under a click on the plane for *axis*.

        ``screen_x``/``screen_y`` are plane pixels, or display pixels when
        *display_size* ``(width, height)`` of the on-screen image is given.
        Only the two coordinates varying within the plane are updated.
        """

        if self.dims is None:
            return False
        axis = Axis.parse(axis)
        width, height = plane_shape(self.dims, axis)
        x, y = float(screen_x), float(screen_y)
        if display_size is not None:
            disp_w, disp_h = display_size
            if disp_w <= 0 or disp_h <= 0:
                return False
            x = x * width / disp_w
            y = y * height / disp_h
        col = max(0, min(width - 1, int(math.floor(x))))
        row = max(0, min(height - 1, int(math.floor(y))))

        src_row = height - 1 - row
        if mirrors_x(axis, self.mirror_x):
            col = width - 1 - col

        ix, iy, iz = self.cursor
        if axis is Axis.Z:
            ix, iy = col, src_row
        elif axis is Axis.Y:
            ix, iz = col, src_row
        else:
            iy, iz = col, src_row
        return self.set_cursor(ix, iy, iz)

    def coordinate_entry(self, axis, text: str) -> bool:
        """Move one axis to the millimetre coordinate typed in *text*.

        Partial input ("", "-", "1e") is ignored without touching the cursor.
        """

        if self.dims is None:
            return False
        axis = Axis.parse(axis)
        stripped = (text or "").strip()
        if stripped in ("", "-"):
            return False
        try:
            value = float(stripped)
        except ValueError:
            LOGGER.debug("Ignoring partial coordinate %r", text)
            return False
        if not math.isfinite(value):
            return False
        cursor = list(self.cursor)
        cursor[axis.index] = self.mapper.coord_to_index(value, axis)
        return self.set_cursor(*cursor)

    def _refresh_coordinate_text(self) -> None:
        if self.cursor is None:
            return
        mapper = self.mapper
        self.coordinate_text = {
            axis: mapper.format_coordinate(self.cursor[axis.index], axis) for axis in Axis
        }

    # ------------------------------------------------------------------
    # Render parameters
    # ------------------------------------------------------------------
    def set_render_spec(self, render: RenderSpec) -> None:
        if render == self.render_spec:
            return
        self.render_spec = render
        self.redraw()

    def set_threshold_spec(self, spec: ThresholdSpec) -> None:
        if spec == self.threshold_spec:
            return
        self.threshold_spec = spec
        self.redraw()

    def cutoff(self) -> Optional[float]:
        return self._threshold_cache.cutoff(self.overlay, self.threshold_spec)

    @property
    def threshold_computations(self) -> int:
        return self._threshold_cache.computations

    def view_state(self) -> Optional[ViewState]:
        if self.dims is None:
            return None
        return ViewState(
            dims=self.dims,
            background=self.background,
            overlay=self.overlay,
            cursor=self.cursor,
            render=self.render_spec,
            cutoff=self.cutoff(),
            mirror_x=self.mirror_x,
        )

    def redraw(self) -> Dict[Axis, np.ndarray]:
        view = self.view_state()
        self.planes = render_planes(view) if view is not None else {}
        self.redraw_count += 1
        for listener in list(self._listeners):
            listener(self.planes)
        return self.planes

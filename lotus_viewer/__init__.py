"""Lotus Viewer: NIfTI slice compositing and MNI coordinate mapping."""

from importlib import metadata

# Core API re-exported at the package root.
from .compositor import RenderSpec, ViewState, render_planes, render_slice
from .controller import SlotName, ViewerController, ViewerState
from .coordinates import Axis, CoordinateMapper, is_canonical_grid
from .errors import (
    DecodeError,
    LotusViewerError,
    MissingDimensions,
    NetworkError,
    NotCompressedFormatRecognized,
    NotValidContainer,
)
from .fetch import OverlayRequest, overlay_url
from .nifti_decoder import DataType, decode_volume
from .threshold import ThresholdCache, ThresholdMode, ThresholdSpec, compute_cutoff, percentile
from .volume import Volume

__all__ = [
    "__version__",
    "Axis",
    "CoordinateMapper",
    "DataType",
    "DecodeError",
    "LotusViewerError",
    "MissingDimensions",
    "NetworkError",
    "NotCompressedFormatRecognized",
    "NotValidContainer",
    "OverlayRequest",
    "RenderSpec",
    "SlotName",
    "ThresholdCache",
    "ThresholdMode",
    "ThresholdSpec",
    "ViewState",
    "ViewerController",
    "ViewerState",
    "Volume",
    "compute_cutoff",
    "decode_volume",
    "is_canonical_grid",
    "overlay_url",
    "percentile",
    "render_planes",
    "render_slice",
]

try:  # pragma: no cover - version resolution
    __version__ = metadata.version("lotus-viewer")
except metadata.PackageNotFoundError:  # pragma: no cover
    __version__ = "0.0.0"

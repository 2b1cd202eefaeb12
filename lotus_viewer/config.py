"""Display conventions, defaults and persisted user settings for the viewer."""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
import json
import logging
from pathlib import Path
from typing import Optional, Union

LOGGER = logging.getLogger(__name__)

# Display convention: positive x (subject's right) appears on the right side of
# the screen.  Applied uniformly to the axial and coronal planes.
X_RIGHT_ON_SCREEN_RIGHT = True

# RGB colours used by the compositor.
OVERLAY_COLOR = (255, 0, 0)
CROSSHAIR_COLOR = (124, 157, 124)  # #7c9d7c

# MNI152 2 mm template grid.  Volumes with exactly these dimensions and spacing
# use the published origin instead of the generic center-relative mapping.
CANONICAL_DIMS = (91, 109, 91)
CANONICAL_SPACING_MM = 2.0
CANONICAL_ORIGIN = (90.0, -126.0, -72.0)
CANONICAL_TOLERANCE = 1e-3

# Percentiles over larger overlays are computed on an evenly strided sample of
# at most this many voxels.
PERCENTILE_SAMPLE_LIMIT = 200_000
DEFAULT_PERCENTILE = 95.0

# Backend endpoints.
DEFAULT_API_BASE = "http://127.0.0.1:5000"
BACKGROUND_RELATIVE_PATH = "static/mni_2mm.nii.gz"
FETCH_TIMEOUT_S = 60.0

# Directory used to store persistent user preferences
PREF_DIR = Path.home() / ".lotus_viewer"
SETTINGS_FILE = PREF_DIR / "settings.json"


@dataclass
class ViewerSettings:
    """User adjustable defaults restored at start-up."""

    api_base: str = DEFAULT_API_BASE
    # Local file or URL; empty means ``{api_base}/static/mni_2mm.nii.gz``.
    background_source: str = ""
    voxel: float = 2.0
    fwhm: float = 10.0
    kernel: str = "gauss"
    radius: float = 6.0
    opacity: float = 0.5
    positive_only: bool = True
    use_absolute: bool = False
    threshold_mode: str = "percentile"
    percentile: float = DEFAULT_PERCENTILE
    threshold_value: float = 0.0
    bookmark_order: str = "time"

    def resolved_background_source(self) -> str:
        if self.background_source:
            return self.background_source
        return f"{self.api_base.rstrip('/')}/{BACKGROUND_RELATIVE_PATH}"


def load_settings(path: Optional[Union[str, Path]] = None) -> ViewerSettings:
    """Return settings stored at *path* (defaults when missing or unreadable)."""

    path = Path(path) if path is not None else SETTINGS_FILE
    if not path.exists():
        return ViewerSettings()
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        LOGGER.warning("Ignoring unreadable settings file %s: %s", path, exc)
        return ViewerSettings()
    if not isinstance(raw, dict):
        LOGGER.warning("Ignoring settings file %s: expected a JSON object", path)
        return ViewerSettings()

    # Only keep known keys so older/newer files never break start-up.
    known = {f.name for f in fields(ViewerSettings)}
    return ViewerSettings(**{k: v for k, v in raw.items() if k in known})


def save_settings(settings: ViewerSettings, path: Optional[Union[str, Path]] = None) -> Path:
    """Write *settings* as JSON and return the destination path."""

    path = Path(path) if path is not None else SETTINGS_FILE
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(asdict(settings), indent=2), encoding="utf-8")
    return path

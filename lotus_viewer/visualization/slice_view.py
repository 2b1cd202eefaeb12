"""Clickable PyQt widget showing one composited plane."""

from __future__ import annotations

from typing import Callable, Optional

import numpy as np
from PyQt5.QtCore import Qt
from PyQt5.QtGui import QImage, QPixmap
from PyQt5.QtWidgets import QLabel, QSizePolicy, QVBoxLayout, QWidget

from ..coordinates import Axis

PLANE_TITLES = {Axis.Y: "Coronal", Axis.X: "Sagittal", Axis.Z: "Axial"}


def rgba_to_qimage(plane: np.ndarray) -> QImage:
    """Wrap an ``(h, w, 4)`` uint8 raster; the returned image owns its pixels."""

    plane = np.ascontiguousarray(plane, dtype=np.uint8)
    h, w = plane.shape[:2]
    img = QImage(plane.tobytes(), w, h, w * 4, QImage.Format_RGBA8888)
    return img.copy()


class _AutoUpdateLabel(QLabel):
    """QLabel that triggers a callback whenever it is resized."""

    def __init__(self, update_fn, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._update_fn = update_fn

    def resizeEvent(self, event):
        super().resizeEvent(event)
        if callable(self._update_fn):
            self._update_fn()


class _ImageLabel(_AutoUpdateLabel):
    """Label that notifies on resize and mouse clicks."""

    def __init__(self, update_fn, click_fn, *args, **kwargs):
        super().__init__(update_fn, *args, **kwargs)
        self._click_fn = click_fn

    def mousePressEvent(self, event):
        if callable(self._click_fn):
            self._click_fn(event)
        super().mousePressEvent(event)


class SliceView(QWidget):
    """Titled plane that scales its raster to fit and reports clicks in image pixels."""

    def __init__(self, axis: Axis, on_click: Callable[[Axis, float, float, tuple], None], parent=None):
        super().__init__(parent)
        self.axis = axis
        self._on_click = on_click
        self._pixmap: Optional[QPixmap] = None

        lay = QVBoxLayout(self)
        lay.setContentsMargins(0, 0, 0, 0)
        title = QLabel(PLANE_TITLES[axis])
        title.setAlignment(Qt.AlignCenter)
        lay.addWidget(title)

        self.img_label = _ImageLabel(self._rescale, self._clicked)
        self.img_label.setAlignment(Qt.AlignCenter)
        self.img_label.setSizePolicy(QSizePolicy.Ignored, QSizePolicy.Ignored)
        self.img_label.setMinimumSize(1, 1)
        lay.addWidget(self.img_label, 1)

    def set_plane(self, plane: Optional[np.ndarray]) -> None:
        self._pixmap = QPixmap.fromImage(rgba_to_qimage(plane)) if plane is not None else None
        if self._pixmap is None:
            self.img_label.clear()
        self._rescale()

    def _rescale(self) -> None:
        if self._pixmap is None:
            return
        # Nearest-neighbour scaling keeps single voxels and the 1-pixel
        # crosshair crisp.
        scaled = self._pixmap.scaled(
            self.img_label.size(), Qt.KeepAspectRatio, Qt.FastTransformation
        )
        self.img_label.setPixmap(scaled)

    def _clicked(self, event) -> None:
        pix = self.img_label.pixmap()
        if pix is None or pix.isNull():
            return
        pw, ph = pix.width(), pix.height()
        off_x = (self.img_label.width() - pw) / 2
        off_y = (self.img_label.height() - ph) / 2
        x = event.pos().x() - off_x
        y = event.pos().y() - off_y
        if 0 <= x < pw and 0 <= y < ph:
            self._on_click(self.axis, x, y, (pw, ph))

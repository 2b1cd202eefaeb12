"""Main window: three linked planes, overlay controls and the bookmark list."""

from __future__ import annotations

import logging
import sys
from dataclasses import replace
from typing import Callable, Dict, Iterable, Mapping, Optional

from PyQt5.QtCore import QObject, Qt, QThread, pyqtSignal, pyqtSlot
from PyQt5.QtWidgets import (
    QApplication,
    QCheckBox,
    QComboBox,
    QDoubleSpinBox,
    QFormLayout,
    QGridLayout,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QListWidget,
    QListWidgetItem,
    QMainWindow,
    QPushButton,
    QSlider,
    QTabWidget,
    QVBoxLayout,
    QWidget,
)

from .. import config
from ..bookmarks import SORT_ORDERS, BookmarkList
from ..compositor import RenderSpec
from ..controller import SlotName, ViewerController
from ..coordinates import Axis
from ..errors import LotusViewerError
from ..fetch import OverlayRequest, fetch_bytes
from ..nifti_decoder import decode_volume
from ..threshold import ThresholdMode, ThresholdSpec
from ..utils import format_number
from ..visualization.slice_view import SliceView

LOGGER = logging.getLogger(__name__)

AXIS_LABELS = {Axis.X: "X (L/R)", Axis.Y: "Y (P/A)", Axis.Z: "Z (I/S)"}


class _VolumeLoadWorker(QObject):
    """Fetch and decode one volume outside the GUI thread."""

    finished = pyqtSignal(str, int, object)
    failed = pyqtSignal(str, int, object)

    def __init__(self, slot: SlotName, token: int, source: str):
        super().__init__()
        self._slot = slot
        self._token = token
        self._source = source

    @pyqtSlot()
    def run(self) -> None:
        try:
            volume = decode_volume(fetch_bytes(self._source))
        except LotusViewerError as exc:
            # The controller decides on the GUI thread whether this failure
            # still matters (token check).
            self.failed.emit(self._slot.value, self._token, exc)
        else:
            self.finished.emit(self._slot.value, self._token, volume)


class LotusViewerWindow(QMainWindow):
    """Interactive viewer wired to a :class:`ViewerController`."""

    def __init__(
        self,
        settings: Optional[config.ViewerSettings] = None,
        bookmarks: Iterable[Mapping] = (),
        on_remove_bookmark: Optional[Callable[[str], None]] = None,
    ):
        super().__init__()
        self.setWindowTitle("Lotus Viewer")
        self.resize(1200, 800)
        self.settings = settings or config.load_settings()
        # Each threshold mode keeps its own parameter text.
        self._thr_params: Dict[ThresholdMode, str] = {
            ThresholdMode.VALUE: format_number(self.settings.threshold_value),
            ThresholdMode.PERCENTILE: format_number(self.settings.percentile),
        }
        self.controller = ViewerController(
            api_base=self.settings.api_base,
            background_source=self.settings.resolved_background_source(),
            render=RenderSpec(
                self.settings.opacity, self.settings.positive_only, self.settings.use_absolute
            ),
            threshold=self._threshold_from_settings(),
        )
        self.controller.add_redraw_listener(self._on_redraw)
        self._on_remove_bookmark = on_remove_bookmark
        self.bookmarks = BookmarkList(bookmarks, self._remove_bookmark)
        # Each running load keeps its thread and worker alive until it ends.
        self._threads: Dict[QThread, _VolumeLoadWorker] = {}

        tabs = QTabWidget()
        tabs.addTab(self._build_viewer_tab(), "Viewer")
        self._bookmark_tab_index = tabs.addTab(self._build_bookmark_tab(), "")
        self._tabs = tabs
        self.setCentralWidget(tabs)
        self._refresh_bookmarks()

        self._start_load(SlotName.BACKGROUND, self.controller.begin_background_load(),
                         self.controller.background_source)

    # ------------------------------------------------------------------
    # Layout
    # ------------------------------------------------------------------
    def _build_viewer_tab(self) -> QWidget:
        s = self.settings
        widget = QWidget()
        vlay = QVBoxLayout(widget)

        query_row = QHBoxLayout()
        self.query_edit = QLineEdit()
        self.query_edit.setPlaceholderText("Query")
        self.query_edit.returnPressed.connect(self._load_overlay)
        load_btn = QPushButton("Load map")
        load_btn.clicked.connect(self._load_overlay)
        query_row.addWidget(self.query_edit, 1)
        query_row.addWidget(load_btn)
        vlay.addLayout(query_row)

        self.status_label = QLabel("")
        self.status_label.setWordWrap(True)
        vlay.addWidget(self.status_label)

        planes = QGridLayout()
        self.slice_views: Dict[Axis, SliceView] = {}
        for col, axis in enumerate((Axis.Y, Axis.X, Axis.Z)):
            view = SliceView(axis, self._on_plane_click)
            self.slice_views[axis] = view
            planes.addWidget(view, 0, col)
        vlay.addLayout(planes, 1)

        controls = QHBoxLayout()

        coords = QFormLayout()
        self.coord_edits: Dict[Axis, QLineEdit] = {}
        for axis in Axis:
            edit = QLineEdit("0")
            edit.editingFinished.connect(lambda a=axis: self._commit_coordinate(a))
            self.coord_edits[axis] = edit
            coords.addRow(AXIS_LABELS[axis], edit)
        controls.addLayout(coords)

        overlay = QFormLayout()
        self.thr_mode = QComboBox()
        self.thr_mode.addItem("Value", ThresholdMode.VALUE.value)
        self.thr_mode.addItem("Percentile", ThresholdMode.PERCENTILE.value)
        self.thr_mode.setCurrentIndex(1 if ThresholdMode.parse(s.threshold_mode) is ThresholdMode.PERCENTILE else 0)
        self.thr_mode.currentIndexChanged.connect(self._threshold_mode_changed)
        overlay.addRow("Threshold mode", self.thr_mode)
        self.thr_edit = QLineEdit(self._thr_params[self._threshold_mode()])
        self.thr_edit.textEdited.connect(self._threshold_text_edited)
        overlay.addRow("Threshold", self.thr_edit)

        self.alpha_slider = QSlider(Qt.Horizontal)
        self.alpha_slider.setRange(0, 20)  # 0.05 steps
        self.alpha_slider.setValue(int(round(s.opacity * 20)))
        self.alpha_slider.valueChanged.connect(self._render_changed)
        overlay.addRow("Overlay alpha", self.alpha_slider)
        self.pos_only_box = QCheckBox("Positive only")
        self.pos_only_box.setChecked(s.positive_only)
        self.pos_only_box.stateChanged.connect(self._render_changed)
        self.abs_box = QCheckBox("Use |value|")
        self.abs_box.setChecked(s.use_absolute)
        self.abs_box.stateChanged.connect(self._render_changed)
        overlay.addRow(self.pos_only_box, self.abs_box)
        controls.addLayout(overlay)

        backend = QFormLayout()
        self.voxel_spin = self._spin(0.5, 10.0, 0.5, s.voxel)
        self.fwhm_spin = self._spin(0.0, 20.0, 0.5, s.fwhm)
        self.radius_spin = self._spin(0.0, 30.0, 0.5, s.radius)
        self.kernel_combo = QComboBox()
        self.kernel_combo.setEditable(True)
        self.kernel_combo.addItem(s.kernel)
        for spin in (self.voxel_spin, self.fwhm_spin, self.radius_spin):
            spin.valueChanged.connect(self._overlay_params_changed)
        self.kernel_combo.currentTextChanged.connect(self._overlay_params_changed)
        backend.addRow("Voxel (mm)", self.voxel_spin)
        backend.addRow("FWHM (mm)", self.fwhm_spin)
        backend.addRow("Kernel", self.kernel_combo)
        backend.addRow("Radius (mm)", self.radius_spin)
        controls.addLayout(backend)
        vlay.addLayout(controls)

        self.download_label = QLabel("")
        self.download_label.setOpenExternalLinks(True)
        self.download_label.setTextInteractionFlags(Qt.TextBrowserInteraction)
        vlay.addWidget(self.download_label)
        return widget

    def _build_bookmark_tab(self) -> QWidget:
        widget = QWidget()
        vlay = QVBoxLayout(widget)
        row = QHBoxLayout()
        row.addWidget(QLabel("Sort by"))
        self.bookmark_sort = QComboBox()
        for order in SORT_ORDERS:
            self.bookmark_sort.addItem(order.capitalize(), order)
        idx = self.bookmark_sort.findData(self.settings.bookmark_order)
        self.bookmark_sort.setCurrentIndex(max(0, idx))
        self.bookmark_sort.currentIndexChanged.connect(self._refresh_bookmarks)
        row.addWidget(self.bookmark_sort)
        row.addStretch()
        remove_btn = QPushButton("Remove")
        remove_btn.clicked.connect(self._remove_selected_bookmark)
        remove_btn.setEnabled(self._on_remove_bookmark is not None)
        row.addWidget(remove_btn)
        vlay.addLayout(row)
        self.bookmark_list = QListWidget()
        vlay.addWidget(self.bookmark_list, 1)
        return widget

    @staticmethod
    def _spin(low: float, high: float, step: float, value: float) -> QDoubleSpinBox:
        spin = QDoubleSpinBox()
        spin.setRange(low, high)
        spin.setSingleStep(step)
        spin.setValue(value)
        return spin

    # ------------------------------------------------------------------
    # Loads
    # ------------------------------------------------------------------
    def _start_load(self, slot: SlotName, token: Optional[int], source: str) -> None:
        if token is None:
            return
        thread = QThread(self)
        worker = _VolumeLoadWorker(slot, token, source)
        worker.moveToThread(thread)
        thread.started.connect(worker.run)
        worker.finished.connect(self._load_finished)
        worker.failed.connect(self._load_failed)
        worker.finished.connect(thread.quit)
        worker.failed.connect(thread.quit)
        thread.finished.connect(lambda t=thread: self._threads.pop(t, None))
        thread.finished.connect(thread.deleteLater)
        self._threads[thread] = worker
        self._update_status()
        thread.start()

    def _load_overlay(self) -> None:
        request = OverlayRequest(
            self.query_edit.text().strip(),
            voxel=self.voxel_spin.value(),
            fwhm=self.fwhm_spin.value(),
            kernel=self.kernel_combo.currentText().strip() or "gauss",
            radius=self.radius_spin.value(),
        )
        token = self.controller.begin_overlay_load(request)
        self._start_load(SlotName.OVERLAY, token, self.controller.overlay_url)
        self._update_status()

    @pyqtSlot(str, int, object)
    def _load_finished(self, slot: str, token: int, volume) -> None:
        self.controller.complete_load(slot, token, volume)
        self._update_status()

    @pyqtSlot(str, int, object)
    def _load_failed(self, slot: str, token: int, error) -> None:
        self.controller.fail_load(slot, token, error)
        self._update_status()

    # ------------------------------------------------------------------
    # Interaction
    # ------------------------------------------------------------------
    def _on_plane_click(self, axis: Axis, x: float, y: float, size: tuple) -> None:
        self.controller.pointer_click(axis, x, y, display_size=size)
        self._sync_coordinate_edits()

    def _commit_coordinate(self, axis: Axis) -> None:
        self.controller.coordinate_entry(axis, self.coord_edits[axis].text())
        self._sync_coordinate_edits()

    def _sync_coordinate_edits(self) -> None:
        if self.controller.cursor is None:
            return
        for axis, edit in self.coord_edits.items():
            edit.setText(self.controller.coordinate_text[axis])

    def _threshold_from_settings(self) -> ThresholdSpec:
        mode = ThresholdMode.parse(self.settings.threshold_mode)
        return ThresholdSpec(mode, self._thr_params[mode])

    def _threshold_mode(self) -> ThresholdMode:
        return ThresholdMode.parse(self.thr_mode.currentData())

    def _threshold_mode_changed(self, *_args) -> None:
        mode = self._threshold_mode()
        self.thr_edit.setText(self._thr_params[mode])
        self.controller.set_threshold_spec(ThresholdSpec(mode, self._thr_params[mode]))

    def _threshold_text_edited(self, text: str) -> None:
        mode = self._threshold_mode()
        self._thr_params[mode] = text
        self.controller.set_threshold_spec(ThresholdSpec(mode, text))

    def _overlay_params_changed(self, *_args) -> None:
        if self.query_edit.text().strip():
            self._load_overlay()

    def _render_changed(self, *_args) -> None:
        self.controller.set_render_spec(
            RenderSpec(
                opacity=self.alpha_slider.value() / 20.0,
                positive_only=self.pos_only_box.isChecked(),
                use_absolute=self.abs_box.isChecked(),
            )
        )

    def _on_redraw(self, planes) -> None:
        for axis, view in self.slice_views.items():
            view.set_plane(planes.get(axis))
        self._sync_coordinate_edits()

    def _update_status(self) -> None:
        lines = list(self.controller.status_messages())
        if self.controller.is_loading:
            lines.insert(0, "Loading brain data...")
        self.status_label.setText("\n".join(lines))
        url = self.controller.download_url
        self.download_label.setText(f'<a href="{url}">Download Map</a>' if url else "")

    # ------------------------------------------------------------------
    # Bookmarks
    # ------------------------------------------------------------------
    def set_bookmarks(self, records: Iterable[Mapping]) -> None:
        self.bookmarks = BookmarkList(records, self._remove_bookmark)
        self._refresh_bookmarks()

    def _remove_bookmark(self, bookmark_id: str) -> None:
        if self._on_remove_bookmark is not None:
            self._on_remove_bookmark(bookmark_id)

    def _remove_selected_bookmark(self) -> None:
        item = self.bookmark_list.currentItem()
        if item is not None:
            self.bookmarks.remove(item.data(Qt.UserRole))

    def _refresh_bookmarks(self, *_args) -> None:
        self.bookmark_list.clear()
        order = self.bookmark_sort.currentData() or "time"
        for bookmark in self.bookmarks.sorted(order):
            meta = " • ".join(
                part for part in (bookmark.journal, str(bookmark.year or "N/A"), bookmark.authors) if part
            )
            item = QListWidgetItem(f"{bookmark.display_title}\n{meta}")
            item.setData(Qt.UserRole, bookmark.id)
            if bookmark.external_url:
                item.setToolTip(bookmark.external_url)
            self.bookmark_list.addItem(item)
        self._tabs.setTabText(self._bookmark_tab_index, f"Bookmarks ({len(self.bookmarks)})")

    # ------------------------------------------------------------------
    def closeEvent(self, event) -> None:
        render = self.controller.render_spec
        spec = self.controller.threshold_spec
        updates = dict(
            voxel=self.voxel_spin.value(),
            fwhm=self.fwhm_spin.value(),
            kernel=self.kernel_combo.currentText().strip() or "gauss",
            radius=self.radius_spin.value(),
            opacity=render.opacity,
            positive_only=render.positive_only,
            use_absolute=render.use_absolute,
            threshold_mode=spec.mode.value,
            bookmark_order=self.bookmark_sort.currentData() or "time",
        )
        for mode, key in ((ThresholdMode.PERCENTILE, "percentile"), (ThresholdMode.VALUE, "threshold_value")):
            try:
                updates[key] = float(self._thr_params[mode])
            except ValueError:
                LOGGER.debug("Not saving unparsable %s %r", key, self._thr_params[mode])
        try:
            config.save_settings(replace(self.settings, **updates))
        except OSError as exc:
            LOGGER.warning("Could not save settings: %s", exc)
        # A worker blocked in a download only returns once urlopen times out.
        for thread in list(self._threads):
            thread.quit()
            thread.wait()
        super().closeEvent(event)


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")
    app = QApplication(sys.argv)
    app.setStyle("Fusion")
    win = LotusViewerWindow()
    win.show()
    sys.exit(app.exec_())


if __name__ == "__main__":
    main()

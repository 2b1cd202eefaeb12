import os

import pytest

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")
QtWidgets = pytest.importorskip("PyQt5.QtWidgets")

from lotus_viewer import config  # noqa: E402
from lotus_viewer.controller import SlotName  # noqa: E402
from lotus_viewer.GUI.main_window import LotusViewerWindow  # noqa: E402
from lotus_viewer.threshold import ThresholdMode  # noqa: E402


@pytest.fixture
def window(monkeypatch):
    app = QtWidgets.QApplication.instance() or QtWidgets.QApplication([])
    loads = []
    # Record loads instead of starting worker threads.
    monkeypatch.setattr(
        LotusViewerWindow, "_start_load", lambda self, slot, token, source: loads.append((slot, token, source))
    )
    settings = config.ViewerSettings(api_base="http://api", percentile=90.0, threshold_value=0.0)
    win = LotusViewerWindow(settings=settings)
    win.loads = loads
    yield win
    win.deleteLater()
    app.processEvents()


def test_threshold_modes_keep_separate_parameters(window):
    assert window.controller.threshold_spec.mode is ThresholdMode.PERCENTILE
    assert window.thr_edit.text() == "90"

    window.thr_mode.setCurrentIndex(window.thr_mode.findData("value"))
    spec = window.controller.threshold_spec
    assert spec.mode is ThresholdMode.VALUE
    assert float(spec.parameter) == 0.0
    assert window.thr_edit.text() == "0"

    window.thr_edit.setText("2.5")
    window.thr_edit.textEdited.emit("2.5")
    window.thr_mode.setCurrentIndex(window.thr_mode.findData("percentile"))
    assert window.thr_edit.text() == "90"
    assert float(window.controller.threshold_spec.parameter) == 90.0

    window.thr_mode.setCurrentIndex(window.thr_mode.findData("value"))
    assert window.thr_edit.text() == "2.5"
    assert window.controller.threshold_spec.parameter == "2.5"


def test_parameter_changes_refetch_the_overlay(window):
    window.voxel_spin.setValue(3.0)
    assert [load for load in window.loads if load[0] is SlotName.OVERLAY] == []

    window.query_edit.setText("pain")
    window.fwhm_spin.setValue(12.0)
    window.kernel_combo.setEditText("box")

    overlay_loads = [load for load in window.loads if load[0] is SlotName.OVERLAY]
    assert len(overlay_loads) == 2
    assert "fwhm=12" in overlay_loads[0][2]
    assert overlay_loads[-1][2] == window.controller.download_url
    assert "kernel=box" in overlay_loads[-1][2]


class _RecordingThread:
    def __init__(self):
        self.calls = []

    def quit(self):
        self.calls.append("quit")

    def wait(self, *args):
        self.calls.append(("wait", args))
        return True


def test_close_waits_for_running_loads_and_saves_both_thresholds(window, tmp_path, monkeypatch):
    from PyQt5.QtGui import QCloseEvent

    monkeypatch.setattr(config, "SETTINGS_FILE", tmp_path / "settings.json")
    thread = _RecordingThread()
    window._threads = {thread: None}
    window.thr_mode.setCurrentIndex(window.thr_mode.findData("value"))
    window.thr_edit.setText("3.5")
    window.thr_edit.textEdited.emit("3.5")

    window.closeEvent(QCloseEvent())

    assert thread.calls == ["quit", ("wait", ())]
    saved = config.load_settings(tmp_path / "settings.json")
    assert saved.threshold_mode == "value"
    assert saved.threshold_value == 3.5
    assert saved.percentile == 90.0

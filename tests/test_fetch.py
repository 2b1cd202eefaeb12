import asyncio
from http.client import IncompleteRead
import io
from urllib.error import HTTPError

import pytest

from lotus_viewer import fetch
from lotus_viewer.controller import ViewerController
from lotus_viewer.errors import NetworkError
from lotus_viewer.fetch import OverlayRequest, fetch_bytes, overlay_url


def test_overlay_url_contains_every_fetch_parameter():
    request = OverlayRequest("emotion & memory", voxel=1.5, fwhm=8.0, kernel="box", radius=4.0)
    assert overlay_url(request, "http://api/") == (
        "http://api/query/emotion%20%26%20memory/nii?voxel=1.5&fwhm=8&kernel=box&r=4"
    )


def test_equal_requests_share_a_url():
    assert overlay_url(OverlayRequest("pain"), "http://api") == overlay_url(
        OverlayRequest("pain", 2, 10, "gauss", 6), "http://api"
    )
    assert overlay_url(OverlayRequest("pain", fwhm=12), "http://api") != overlay_url(
        OverlayRequest("pain"), "http://api"
    )


def test_empty_query_has_no_url():
    assert overlay_url(OverlayRequest(""), "http://api") == ""
    assert overlay_url(None, "http://api") == ""


def test_local_files_are_read_directly(tmp_path):
    path = tmp_path / "volume.nii"
    path.write_bytes(b"\x00\x01\x02")
    assert fetch_bytes(str(path)) == b"\x00\x01\x02"


def test_missing_file_raises_network_error(tmp_path):
    with pytest.raises(NetworkError):
        fetch_bytes(str(tmp_path / "missing.nii.gz"))


class _TruncatedResponse:
    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def read(self):
        raise IncompleteRead(b"partial", 100)


def test_truncated_http_body_raises_network_error(monkeypatch):
    monkeypatch.setattr(fetch, "urlopen", lambda url, timeout: _TruncatedResponse())
    with pytest.raises(NetworkError, match=r"^GET http://api/map\.nii → IncompleteRead"):
        fetch_bytes("http://api/map.nii")


def test_http_error_message_carries_status_and_body(monkeypatch):
    def failing_urlopen(url, timeout):
        raise HTTPError(url, 500, "Internal Server Error", {}, io.BytesIO(b"no such term"))

    monkeypatch.setattr(fetch, "urlopen", failing_urlopen)
    with pytest.raises(NetworkError) as excinfo:
        fetch_bytes("http://api/query/x/nii")
    assert str(excinfo.value) == "GET http://api/query/x/nii → 500 no such term"


def test_truncated_overlay_download_is_reported_on_the_map_slot(monkeypatch):
    monkeypatch.setattr(fetch, "urlopen", lambda url, timeout: _TruncatedResponse())
    controller = ViewerController(api_base="http://api")

    assert asyncio.run(controller.load_overlay(OverlayRequest("pain"))) is None

    assert not controller.is_loading
    [message] = controller.status_messages()
    assert message.startswith("Map: Download failed: GET http://api/query/pain/nii")

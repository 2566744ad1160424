"""
Larm -- HTTP Surface Tests
Upload / proxy / preview / export / delete through the FastAPI app, with a
FakeEngine standing in for the native library.

Run with: pytest tests/test_server.py -v
"""

import os
import sys
from io import BytesIO
from unittest.mock import patch

import pytest
from PIL import Image

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from starlette.testclient import TestClient
import server
from server import app, _state, _store
from core.safety import SafetyError
from conftest import FakeEngine


@pytest.fixture(autouse=True)
def setup_state():
    """Install a fake engine and start from an empty session store."""
    _state["engine"] = FakeEngine()
    _store.clear()
    yield
    _state["engine"] = None
    _store.clear()


@pytest.fixture
def client():
    # No context manager: the lifespan would try to load the real engine
    return TestClient(app)


def _upload(client, data, name="photo.png"):
    return client.post("/upload", files={"file": (name, data, "image/png")})


def _open(resp):
    return Image.open(BytesIO(resp.content))


@pytest.fixture
def large_session(client, large_png_bytes):
    resp = _upload(client, large_png_bytes)
    assert resp.status_code == 200
    return resp.json()["sessionId"]


@pytest.fixture
def small_session(client, small_png_bytes):
    resp = _upload(client, small_png_bytes)
    assert resp.status_code == 200
    return resp.json()["sessionId"]


# ---------------------------------------------------------------------------
# Health & upload
# ---------------------------------------------------------------------------

class TestUpload:

    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.text == "OK"

    def test_upload_large_image(self, client, large_png_bytes):
        resp = _upload(client, large_png_bytes)
        assert resp.status_code == 200
        data = resp.json()
        assert data["width"] == 2000
        assert data["height"] == 1500
        assert data["proxyWidth"] == 1200
        assert data["proxyHeight"] == 900
        assert data["sessionId"] in _store

    def test_upload_small_image_keeps_size(self, client, small_png_bytes):
        data = _upload(client, small_png_bytes).json()
        assert (data["proxyWidth"], data["proxyHeight"]) == (300, 200)

    def test_each_upload_new_session(self, client, small_png_bytes):
        a = _upload(client, small_png_bytes).json()["sessionId"]
        b = _upload(client, small_png_bytes).json()["sessionId"]
        assert a != b
        assert len(_store) == 2

    def test_missing_file(self, client):
        resp = client.post("/upload")
        assert resp.status_code == 400
        assert resp.json()["detail"]["code"] == "NO_FILE"

    def test_empty_file(self, client):
        resp = _upload(client, b"")
        assert resp.status_code == 400

    def test_undecodable_file(self, client):
        resp = _upload(client, b"this is not an image at all", name="fake.png")
        assert resp.status_code == 500
        assert resp.json()["detail"]["code"] == "DECODE_FAILED"
        assert len(_store) == 0

    def test_oversized_upload(self, client, small_png_bytes):
        with patch("server.check_upload_size", side_effect=SafetyError("File is too big")):
            resp = _upload(client, small_png_bytes)
        assert resp.status_code == 413
        assert resp.json()["detail"]["code"] == "FILE_TOO_LARGE"


# ---------------------------------------------------------------------------
# Proxy & preview
# ---------------------------------------------------------------------------

class TestPreview:

    def test_proxy_jpeg(self, client, large_session):
        resp = client.get(f"/proxy/{large_session}")
        assert resp.status_code == 200
        assert resp.headers["content-type"] == "image/jpeg"
        assert _open(resp).size == (1200, 900)

    def test_proxy_unknown_session(self, client):
        resp = client.get("/proxy/does-not-exist")
        assert resp.status_code == 404
        assert resp.json()["detail"]["code"] == "SESSION_NOT_FOUND"

    def test_proxy_preview_scales_size(self, client, large_session):
        resp = client.post(f"/preview/{large_session}", json={"size": 50.0})
        assert resp.status_code == 200
        assert resp.headers["content-type"] == "image/jpeg"
        assert _open(resp).size == (1200, 900)
        call = _state["engine"].calls[-1]
        assert call["size"] == pytest.approx(30.0)
        assert (call["width"], call["height"]) == (1200, 900)

    def test_loupe_preview_unscaled(self, client, large_session):
        resp = client.post(f"/preview/{large_session}?mode=loupe&x=0.25&y=0.75&size=400",
                           json={"size": 50.0})
        assert resp.status_code == 200
        assert _open(resp).size == (400, 400)
        assert _state["engine"].calls[-1]["size"] == 50.0

    def test_loupe_on_small_image(self, client, small_session):
        resp = client.post(f"/preview/{small_session}?mode=loupe", json={})
        assert resp.status_code == 200
        assert _open(resp).size == (300, 200)

    def test_camel_case_params(self, client, small_session):
        resp = client.post(f"/preview/{small_session}",
                           json={"crystalSharpness": 12.0, "shadowGrain": 1.5, "layers": 4})
        assert resp.status_code == 200
        call = _state["engine"].calls[-1]
        assert call["sharpness"] == 12.0
        assert call["shadow_grain"] == 1.5
        assert call["layers"] == 4

    def test_out_of_range_rejected(self, client, small_session):
        resp = client.post(f"/preview/{small_session}", json={"intensity": -1.0})
        assert resp.status_code == 422
        assert resp.json()["detail"]["code"] == "INVALID_PARAMS"
        assert _state["engine"].calls == []

    def test_wrong_type_rejected(self, client, small_session):
        resp = client.post(f"/preview/{small_session}", json={"size": "huge"})
        assert resp.status_code == 422

    def test_bad_mode_rejected(self, client, small_session):
        resp = client.post(f"/preview/{small_session}?mode=original", json={})
        assert resp.status_code == 422

    def test_engine_failure(self, client, small_session):
        _state["engine"] = FakeEngine(fail=True)
        resp = client.post(f"/preview/{small_session}", json={})
        assert resp.status_code == 500
        assert resp.json()["detail"]["code"] == "PROCESSING_FAILED"

    def test_engine_missing(self, client, small_session):
        _state["engine"] = None
        resp = client.post(f"/preview/{small_session}", json={})
        assert resp.status_code == 503


# ---------------------------------------------------------------------------
# Export & delete
# ---------------------------------------------------------------------------

class TestExport:

    def test_export_full_resolution_png(self, client, large_session):
        resp = client.post(f"/export/{large_session}", json={"size": 50.0})
        assert resp.status_code == 200
        assert resp.headers["content-type"] == "image/png"
        assert 'filename="grain_export.png"' in resp.headers["content-disposition"]
        assert _open(resp).size == (2000, 1500)
        assert _state["engine"].calls[-1]["size"] == 50.0

    def test_export_unknown_session(self, client):
        resp = client.post("/export/nope", json={})
        assert resp.status_code == 404

    def test_export_out_of_range(self, client, small_session):
        resp = client.post(f"/export/{small_session}", json={"layers": 9})
        assert resp.status_code == 422

    def test_export_engine_failure(self, client, small_session):
        _state["engine"] = FakeEngine(fail=True)
        resp = client.post(f"/export/{small_session}", json={})
        assert resp.status_code == 500

    def test_delete_then_404(self, client, small_session):
        resp = client.delete(f"/session/{small_session}")
        assert resp.status_code == 200
        assert resp.text == "Session removed"
        assert client.get(f"/proxy/{small_session}").status_code == 404
        assert client.post(f"/preview/{small_session}", json={}).status_code == 404

    def test_delete_unknown_is_ok(self, client):
        assert client.delete("/session/never-existed").status_code == 200

    def test_delete_leaves_other_sessions(self, client, small_session, large_session):
        client.delete(f"/session/{small_session}")
        assert client.get(f"/proxy/{large_session}").status_code == 200


class TestLifespan:

    def test_startup_loads_engine(self):
        _state["engine"] = None
        engine = FakeEngine()
        with patch.object(server, "load_engine", return_value=engine) as loader:
            with TestClient(app) as c:
                assert c.get("/health").status_code == 200
        loader.assert_called_once()
        assert _state["engine"] is engine

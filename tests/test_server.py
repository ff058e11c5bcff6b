"""
HTTP tests for the FastAPI backend: upload, preview, export, presets.
"""

import base64
import re
from io import BytesIO

import numpy as np
import pytest
from PIL import Image
from starlette.testclient import TestClient
from unittest.mock import patch

import server
from core.session import EffectSession
from server import app, _state


@pytest.fixture(autouse=True)
def reset_state(monkeypatch, _isolated_presets_dir):
    """Reset server state and point presets at the per-test directory."""
    monkeypatch.setattr(server, "PRESETS_DIR", _isolated_presets_dir)
    _state["session"] = None
    _state["filename"] = None
    yield
    if _state["session"] is not None:
        _state["session"].close()
    _state["session"] = None
    _state["filename"] = None


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def loaded(client, png_bytes):
    resp = client.post("/api/upload", files={"file": ("photo.png", png_bytes, "image/png")})
    assert resp.status_code == 200
    return resp.json()


def _decode_data_url(url):
    assert url.startswith("data:image/png;base64,")
    return np.array(Image.open(BytesIO(base64.b64decode(url.split(",", 1)[1]))))


class TestBasics:

    def test_health(self, client):
        assert client.get("/api/health").json() == {"status": "ok"}

    def test_effects_listing(self, client):
        data = client.get("/api/effects").json()
        assert {e["name"] for e in data["effects"]} == {"blur", "reeded"}
        assert data["defaults"]["reed_width"] > 0


class TestUpload:

    def test_upload_returns_dimensions_and_preview(self, loaded):
        assert loaded["width"] == 80
        assert loaded["height"] == 60
        assert loaded["filename"] == "photo.png"
        assert _decode_data_url(loaded["preview"]).ndim == 3

    def test_garbage_upload_rejected(self, client):
        resp = client.post("/api/upload", files={"file": ("x.png", b"nope", "image/png")})
        assert resp.status_code == 400
        assert resp.json()["detail"]["code"] == "UPLOAD_FAILED"

    def test_oversize_upload(self, client, png_bytes, monkeypatch):
        monkeypatch.setattr(server, "MAX_UPLOAD_SIZE", 10)
        resp = client.post("/api/upload", files={"file": ("big.png", png_bytes, "image/png")})
        assert resp.status_code == 413

    def test_params_survive_new_upload(self, client, loaded, png_bytes):
        client.post("/api/preview", json={"amplitude": 33})
        resp = client.post("/api/upload", files={"file": ("again.png", png_bytes, "image/png")})
        assert resp.json()["params"]["amplitude"] == 33


class TestPreview:

    def test_requires_image(self, client):
        resp = client.post("/api/preview", json={})
        assert resp.status_code == 400
        assert resp.json()["detail"]["code"] == "NO_IMAGE"

    def test_preview_fits_viewport(self, client, loaded):
        resp = client.post("/api/preview", json={
            "amplitude": 5, "lighting_intensity": 10, "viewport_width": 40, "viewport_height": 40,
        })
        assert resp.status_code == 200
        data = resp.json()
        assert (data["width"], data["height"]) == (40, 30)
        assert data["params"]["amplitude"] == 5
        assert _decode_data_url(data["preview"]).shape[:2] == (30, 40)

    def test_out_of_range_rejected_by_model(self, client, loaded):
        resp = client.post("/api/preview", json={"reed_width": 0})
        assert resp.status_code == 422

    def test_preset_applied(self, client, loaded):
        resp = client.post("/api/preview", json={"preset": "Wide Rib"})
        assert resp.json()["params"]["reed_width"] == 90

    def test_explicit_field_overrides_preset(self, client, loaded):
        resp = client.post("/api/preview", json={"preset": "Wide Rib", "amplitude": 1})
        params = resp.json()["params"]
        assert params["reed_width"] == 90
        assert params["amplitude"] == 1

    def test_preview_uses_scheduled_run(self, client, loaded):
        """Preview comes from the scheduled run, never a synchronous re-render."""
        with patch.object(EffectSession, "render", side_effect=AssertionError("sync render")):
            resp = client.post("/api/preview", json={"amplitude": 7})
        assert resp.status_code == 200
        assert resp.json()["params"]["amplitude"] == 7

    def test_replaced_session_gives_structured_error(self, client, loaded):
        _state["session"].close()
        resp = client.post("/api/preview", json={"amplitude": 2})
        assert resp.status_code == 409
        assert resp.json()["detail"]["code"] == "SESSION_REPLACED"

    def test_unknown_preset(self, client, loaded):
        resp = client.post("/api/preview", json={"preset": "Stained Glass"})
        assert resp.status_code == 404
        assert resp.json()["detail"]["code"] == "PRESET_NOT_FOUND"


class TestExport:

    def test_export_full_resolution_png(self, client, loaded):
        resp = client.post("/api/export", json={"amplitude": 0, "lighting_intensity": 0})
        assert resp.status_code == 200
        assert resp.headers["content-type"] == "image/png"
        assert re.search(r'filename="glass-effect-\d+\.png"', resp.headers["content-disposition"])
        img = Image.open(BytesIO(resp.content))
        assert img.size == (80, 60)

    def test_identity_export_matches_upload(self, client, png_bytes, loaded):
        resp = client.post("/api/export", json={"blur_radius": 0, "amplitude": 0, "lighting_intensity": 0})
        exported = np.array(Image.open(BytesIO(resp.content)))
        original = np.array(Image.open(BytesIO(png_bytes)).convert("RGBA"))
        np.testing.assert_array_equal(exported, original)

    def test_export_jpeg(self, client, loaded):
        resp = client.post("/api/export", json={"format": "jpeg", "quality": 70})
        assert resp.headers["content-type"] == "image/jpeg"
        assert Image.open(BytesIO(resp.content)).format == "JPEG"

    def test_export_requires_image(self, client):
        assert client.post("/api/export", json={}).status_code == 400


class TestPresetsApi:

    def test_list_builtins(self, client):
        presets = client.get("/api/presets").json()["presets"]
        assert any(p["name"] == "Frosted Reed" for p in presets)

    def test_save_list_delete(self, client):
        resp = client.post("/api/presets", json={"name": "Kitchen", "params": {"amplitude": 4}})
        assert resp.json() == {"status": "ok", "id": "kitchen"}
        names = [p["name"] for p in client.get("/api/presets").json()["presets"]]
        assert "Kitchen" in names
        assert client.delete("/api/presets/kitchen").status_code == 200
        assert client.delete("/api/presets/kitchen").status_code == 404

    def test_save_invalid_params(self, client):
        resp = client.post("/api/presets", json={"name": "Bad", "params": {"reed_width": -5}})
        assert resp.status_code == 400
        assert resp.json()["detail"]["code"] == "INVALID_PARAMETER"

    def test_delete_bad_id(self, client):
        resp = client.delete("/api/presets/bad.id")
        assert resp.status_code == 400
        assert resp.json()["detail"]["code"] == "INVALID_PRESET"

    def test_malformed_preset_file_ignored(self, client, _isolated_presets_dir, loaded):
        _isolated_presets_dir.mkdir(parents=True, exist_ok=True)
        (_isolated_presets_dir / "list.json").write_text("[1, 2]")
        (_isolated_presets_dir / "anon.json").write_text('{"params": {}}')
        assert client.get("/api/presets").status_code == 200
        resp = client.post("/api/preview", json={"preset": "anon"})
        assert resp.status_code == 404

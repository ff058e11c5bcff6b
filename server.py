#!/usr/bin/env python3
"""
Reeded -- FastAPI Backend
Upload an image, tweak glass parameters with live previews, export full resolution.
"""

import asyncio
import logging
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from fastapi import FastAPI, UploadFile, File, HTTPException
from fastapi.responses import Response

from core.export_models import ExportSettings, GlassParams, PresetSave, PreviewRequest
from core.image_io import decode_bitmap, encode_bitmap, export_filename, mime_type
from core.preview import bitmap_to_data_url, render_preview
from core.safety import InvalidParameter, SafetyError
from core.session import EffectSession
from effects import EFFECTS, CATEGORIES, default_params
from presets import (
    default_presets_dir,
    delete_user_preset,
    get_preset,
    list_presets as _list_presets,
    save_user_preset,
)

logger = logging.getLogger(__name__)

app = FastAPI(title="Reeded")

PRESETS_DIR = default_presets_dir()

MAX_UPLOAD_SIZE = 100 * 1024 * 1024  # 100MB limit
PREVIEW_TIMEOUT_SECONDS = 10
EXPORT_TIMEOUT_SECONDS = 120
DEFAULT_VIEWPORT = (960, 640)

# In-memory state for the current image
_state = {
    "session": None,
    "filename": None,
}
_state_lock = asyncio.Lock()

# Structured error recovery hints for user-facing errors
ERROR_RECOVERY = {
    "no_image": {"code": "NO_IMAGE", "hint": "Upload an image first.", "action": "load_file"},
    "upload_failed": {"code": "UPLOAD_FAILED", "hint": "Check the file format and try again.", "action": "retry"},
    "file_too_large": {"code": "FILE_TOO_LARGE", "hint": "Try a smaller image.", "action": None},
    "invalid_parameter": {"code": "INVALID_PARAMETER", "hint": "Reed width must be > 0; other values must be >= 0.", "action": "reset"},
    "preset_not_found": {"code": "PRESET_NOT_FOUND", "hint": "The preset may have been deleted. Refresh the preset list.", "action": "refresh"},
    "processing_failed": {"code": "PROCESSING_FAILED", "hint": "Try a smaller blur radius or reset parameters.", "action": "reset"},
    "timeout": {"code": "TIMEOUT", "hint": "The image may be too large. Try a smaller one.", "action": "retry"},
    "session_replaced": {"code": "SESSION_REPLACED", "hint": "A new image was loaded while this request ran. Retry.", "action": "retry"},
    "invalid_preset": {"code": "INVALID_PRESET", "hint": "Use letters, digits, '-' or '_' in preset names.", "action": None},
}


def _error_detail(key: str, message: str) -> dict:
    """Build structured error detail dict for the frontend."""
    recovery = ERROR_RECOVERY.get(key, {})
    return {
        "detail": message,
        "code": recovery.get("code", "UNKNOWN"),
        "hint": recovery.get("hint", ""),
        "action": recovery.get("action"),
    }


def _require_session() -> EffectSession:
    session = _state["session"]
    if session is None:
        raise HTTPException(status_code=400, detail=_error_detail("no_image", "No image loaded"))
    return session


def _resolve_request(request: GlassParams) -> dict:
    """Preset params (if named) overlaid with explicitly set fields."""
    changes = {}
    if request.preset:
        preset = get_preset(request.preset, PRESETS_DIR)
        if preset is None:
            raise HTTPException(status_code=404, detail=_error_detail(
                "preset_not_found", f"Unknown preset: {request.preset}"))
        changes.update(preset["params"])
    changes.update(request.overrides())
    return changes


async def _render(session: EffectSession, changes: dict, timeout: float):
    """Run the pipeline on the session's pool without blocking the event loop.

    Returns (job, result): the params/generation the run used and its output.
    """
    try:
        job = session.schedule(**changes)
    except InvalidParameter as e:
        raise HTTPException(status_code=400, detail=_error_detail("invalid_parameter", str(e)))
    except RuntimeError as e:
        # Pool already shut down: an upload replaced this session
        raise HTTPException(status_code=409, detail=_error_detail("session_replaced", str(e)))
    try:
        result = await asyncio.wait_for(asyncio.wrap_future(job.future), timeout=timeout)
    except asyncio.TimeoutError:
        raise HTTPException(status_code=500, detail=_error_detail(
            "timeout", f"Processing timed out after {timeout}s"))
    except Exception as e:
        logger.exception("Render failed")
        raise HTTPException(status_code=500, detail=_error_detail(
            "processing_failed", f"Effect processing failed: {str(e)[:100]}"))
    return job, result


def _preview_payload(result, view_w: int, view_h: int) -> dict:
    """Scale a full-resolution result to the viewport and encode it. Blocking."""
    preview = render_preview(result, view_w, view_h)
    return {
        "width": int(preview.shape[1]),
        "height": int(preview.shape[0]),
        "preview": bitmap_to_data_url(preview),
    }


@app.get("/api/health")
async def health_check():
    return {"status": "ok"}


@app.get("/api/effects")
async def list_effects():
    """List pipeline stages with defaults and slider ranges."""
    return {
        "effects": [
            {
                "name": name,
                "category": entry["category"],
                "description": entry["description"],
                "params": entry["params"],
                "param_ranges": entry.get("param_ranges", {}),
            }
            for name, entry in EFFECTS.items()
        ],
        "categories": CATEGORIES,
        "defaults": default_params(),
    }


@app.post("/api/upload")
async def upload_image(file: UploadFile = File(...)):
    """Upload an image and render it with the current (or default) parameters."""
    if not file.filename:
        raise HTTPException(status_code=400, detail=_error_detail("upload_failed", "No filename provided"))

    data = bytearray()
    while chunk := await file.read(1024 * 1024):  # 1MB chunks
        data.extend(chunk)
        if len(data) > MAX_UPLOAD_SIZE:
            raise HTTPException(status_code=413, detail=_error_detail(
                "file_too_large", f"File too large. Maximum size: {MAX_UPLOAD_SIZE // (1024 * 1024)}MB"))

    try:
        bitmap = await asyncio.to_thread(decode_bitmap, bytes(data))
    except SafetyError as e:
        raise HTTPException(status_code=400, detail=_error_detail("upload_failed", str(e)))

    async with _state_lock:
        previous = _state["session"]
        params = previous.params if previous is not None else None
        session = EffectSession(bitmap, params=params)
        _state["session"] = session
        _state["filename"] = file.filename
    if previous is not None:
        previous.close()

    logger.info("Loaded %s (%dx%d)", file.filename, bitmap.shape[1], bitmap.shape[0])
    job, result = await _render(session, {}, PREVIEW_TIMEOUT_SECONDS)
    payload = await asyncio.to_thread(_preview_payload, result, *DEFAULT_VIEWPORT)
    return {
        "filename": file.filename,
        "width": int(bitmap.shape[1]),
        "height": int(bitmap.shape[0]),
        "params": job.params,
        "preview": payload["preview"],
    }


@app.post("/api/preview")
async def preview_effect(request: PreviewRequest):
    """Apply parameters to the full-resolution image and return a viewport-sized preview."""
    session = _require_session()
    changes = _resolve_request(request)
    job, result = await _render(session, changes, PREVIEW_TIMEOUT_SECONDS)
    payload = await asyncio.to_thread(
        _preview_payload, result, request.viewport_width, request.viewport_height)
    return {"params": job.params, "generation": job.generation, **payload}


@app.post("/api/export")
async def export_image(export: ExportSettings):
    """Encode the full-resolution result and return it as a download."""
    session = _require_session()
    changes = _resolve_request(export)
    fmt = export.format.value
    if changes:
        _, result = await _render(session, changes, EXPORT_TIMEOUT_SECONDS)
        data = await asyncio.to_thread(encode_bitmap, result, fmt, export.quality)
    else:
        data = await asyncio.to_thread(session.export, fmt, export.quality)
    filename = export_filename(fmt)
    return Response(
        content=data,
        media_type=mime_type(fmt),
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.get("/api/presets")
async def list_presets():
    """List all presets: built-in and user-saved."""
    return {"presets": _list_presets(PRESETS_DIR)}


@app.post("/api/presets")
async def save_preset(preset: PresetSave):
    """Save a user preset."""
    try:
        path = save_user_preset(preset.name, preset.params, PRESETS_DIR,
                                description=preset.description)
    except InvalidParameter as e:
        raise HTTPException(status_code=400, detail=_error_detail("invalid_parameter", str(e)))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=_error_detail("invalid_preset", str(e)))
    return {"status": "ok", "id": path.stem}


@app.delete("/api/presets/{preset_id}")
async def delete_preset(preset_id: str):
    """Delete a user preset."""
    try:
        delete_user_preset(preset_id, PRESETS_DIR)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=_error_detail("invalid_preset", str(e)))
    except FileNotFoundError:
        raise HTTPException(status_code=404, detail=_error_detail(
            "preset_not_found", f"Preset not found: {preset_id}"))
    return {"status": "ok"}


def start(host: str = "127.0.0.1", port: int = 7860):
    import uvicorn
    print(f"Reeded -- launching at http://{host}:{port}")
    uvicorn.run(app, host=host, port=port, log_level="warning")


if __name__ == "__main__":
    start()

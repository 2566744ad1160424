#!/usr/bin/env python3
"""
Larm -- FastAPI Backend
Upload an image, preview grain on its proxy or a 1:1 crop, export at full
resolution. Each upload is an independent session.
"""

import asyncio
import logging
import os
import sys
from contextlib import asynccontextmanager
from typing import Literal

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from fastapi import FastAPI, File, HTTPException, Query, UploadFile
from fastapi.responses import PlainTextResponse, Response

from core.config import EXPORT_FILENAME, LOUPE_SIZE, MAX_UPLOAD_MB
from core.engine import load_engine
from core.errors import DecodeFailure, SessionNotFound
from core.imaging import to_jpeg_bytes, to_png_bytes
from core.params import EffectParameters
from core.safety import SafetyError, check_upload_size, validate_params
from core.session import SessionStore
from core.tiers import TierKind

# Bound engine. Filled at startup; tests install a stand-in before requests.
_state = {
    "engine": None,
}

_store = SessionStore()

UPLOAD_CHUNK = 1024 * 1024

# Structured error recovery hints for user-facing errors
ERROR_RECOVERY = {
    "no_file": {"code": "NO_FILE", "hint": "Attach an image file in the 'file' form field."},
    "file_too_large": {"code": "FILE_TOO_LARGE", "hint": f"Maximum upload is {MAX_UPLOAD_MB}MB."},
    "decode_failed": {"code": "DECODE_FAILED", "hint": "Upload a JPEG, PNG, TIFF or WebP image."},
    "session_not_found": {"code": "SESSION_NOT_FOUND", "hint": "Upload the image again."},
    "invalid_params": {"code": "INVALID_PARAMS", "hint": "Keep every control inside its documented range."},
    "engine_unavailable": {"code": "ENGINE_UNAVAILABLE", "hint": "The grain engine is not loaded."},
    "processing_failed": {"code": "PROCESSING_FAILED", "hint": "Retry the request; it is safe to repeat."},
}


def _error_detail(key: str, message: str) -> dict:
    """Build structured error detail dict for the web client."""
    recovery = ERROR_RECOVERY.get(key, {})
    return {
        "detail": message,
        "code": recovery.get("code", "UNKNOWN"),
        "hint": recovery.get("hint", ""),
    }


@asynccontextmanager
async def lifespan(app: FastAPI):
    # No engine, no traffic: EngineUnavailable aborts startup
    if _state["engine"] is None:
        _state["engine"] = load_engine()
    yield


app = FastAPI(title="Larm", lifespan=lifespan)


def _require_engine():
    engine = _state["engine"]
    if engine is None:
        raise HTTPException(status_code=503, detail=_error_detail(
            "engine_unavailable", "Grain engine not loaded"))
    return engine


def _require_session(session_id: str):
    try:
        return _store.require(session_id)
    except SessionNotFound:
        raise HTTPException(status_code=404, detail=_error_detail(
            "session_not_found", "Session not found"))


def _checked_params(params: EffectParameters) -> EffectParameters:
    try:
        return validate_params(params)
    except SafetyError as e:
        raise HTTPException(status_code=422, detail=_error_detail("invalid_params", str(e)))


@app.get("/health", response_class=PlainTextResponse)
async def health_check():
    """Liveness only."""
    return "OK"


@app.post("/upload")
async def upload_image(file: UploadFile | None = File(None)):
    """Store an uploaded image as a new session and build its proxy."""
    if file is None:
        raise HTTPException(status_code=400, detail=_error_detail("no_file", "No image file provided"))

    chunks = []
    total_size = 0
    while chunk := await file.read(UPLOAD_CHUNK):
        total_size += len(chunk)
        try:
            check_upload_size(total_size)
        except SafetyError as e:
            raise HTTPException(status_code=413, detail=_error_detail("file_too_large", str(e)))
        chunks.append(chunk)
    if not chunks:
        raise HTTPException(status_code=400, detail=_error_detail("no_file", "Uploaded file is empty"))

    try:
        session = await asyncio.get_running_loop().run_in_executor(
            None, _store.store_image, b"".join(chunks), file.filename or "")
    except DecodeFailure as e:
        logging.error("Upload failed: %s", e)
        raise HTTPException(status_code=500, detail=_error_detail("decode_failed", f"Upload failed: {e}"))

    return {
        "sessionId": session.id,
        "width": session.width,
        "height": session.height,
        "proxyWidth": session.proxy.width,
        "proxyHeight": session.proxy.height,
    }


@app.get("/proxy/{session_id}")
async def get_proxy(session_id: str):
    """The proxy image without grain, for initial display."""
    session = _require_session(session_id)
    jpeg = await asyncio.get_running_loop().run_in_executor(
        None, lambda: to_jpeg_bytes(session.proxy_image()))
    return Response(content=jpeg, media_type="image/jpeg")


@app.post("/preview/{session_id}")
async def preview(
    session_id: str,
    params: EffectParameters,
    mode: Literal["proxy", "loupe", "crop"] = "proxy",
    x: float = 0.5,
    y: float = 0.5,
    size: int = Query(LOUPE_SIZE, ge=1),
):
    """Grain on the proxy (size scaled to proxy density) or a 1:1 crop around (x, y)."""
    session = _require_session(session_id)
    params = _checked_params(params)
    engine = _require_engine()
    tier = TierKind.PROXY if mode == "proxy" else TierKind.CROP

    def _render():
        image = session.preview(engine, params, mode=tier, x=x, y=y, crop_size=size)
        return to_jpeg_bytes(image)

    try:
        jpeg = await asyncio.get_running_loop().run_in_executor(None, _render)
    except Exception as e:
        logging.exception("Preview failed")
        raise HTTPException(status_code=500, detail=_error_detail(
            "processing_failed", f"Preview failed: {str(e)[:100]}"))
    return Response(content=jpeg, media_type="image/jpeg")


@app.post("/export/{session_id}")
async def export(session_id: str, params: EffectParameters):
    """Full-resolution grain as a PNG download."""
    session = _require_session(session_id)
    params = _checked_params(params)
    engine = _require_engine()
    logging.info("Exporting full resolution image: %dx%d", session.width, session.height)

    def _render():
        return to_png_bytes(session.export(engine, params))

    try:
        png = await asyncio.get_running_loop().run_in_executor(None, _render)
    except Exception as e:
        logging.exception("Export failed")
        raise HTTPException(status_code=500, detail=_error_detail(
            "processing_failed", f"Export failed: {str(e)[:100]}"))
    return Response(
        content=png,
        media_type="image/png",
        headers={"Content-Disposition": f'attachment; filename="{EXPORT_FILENAME}"'},
    )


@app.delete("/session/{session_id}", response_class=PlainTextResponse)
async def delete_session(session_id: str):
    """Free a session's memory. Unknown ids are not an error."""
    _store.remove(session_id)
    return "Session removed"


def run(host: str | None = None, port: int | None = None, log_level: str | None = None):
    """Serve the app with uvicorn."""
    import uvicorn
    from core.config import HOST, LOG_LEVEL, PORT
    from core.logging_config import setup_logging

    setup_logging(log_level or LOG_LEVEL)
    uvicorn.run(app, host=host or HOST, port=port or PORT, log_level=(log_level or LOG_LEVEL).lower())


if __name__ == "__main__":
    run()

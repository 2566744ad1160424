"""
Larm -- Runtime Configuration
Module-level defaults, each overridable from the environment.
"""

import logging
import os
from pathlib import Path

log = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        log.warning("Ignoring %s=%r (not an integer), using %d", name, raw, default)
        return default


# --- Tiering ---
PROXY_WIDTH = _env_int("LARM_PROXY_WIDTH", 1200)
LOUPE_SIZE = _env_int("LARM_LOUPE_SIZE", 512)

# --- Render coordination ---
DEBOUNCE_MS = _env_int("LARM_DEBOUNCE_MS", 50)

# --- Native engine ---
ENGINE_LIB = os.environ.get("LARM_ENGINE_LIB", "")
ENGINE_SYMBOL = os.environ.get("LARM_ENGINE_SYMBOL", "larm_apply_grain")
ENGINE_SEARCH_DIRS = [PROJECT_ROOT / "libs", PROJECT_ROOT]

# --- Encoding ---
JPEG_QUALITY = _env_int("LARM_JPEG_QUALITY", 85)
EXPORT_FILENAME = "grain_export.png"

# --- Server ---
MAX_UPLOAD_MB = _env_int("LARM_MAX_UPLOAD_MB", 100)
HOST = os.environ.get("LARM_HOST", "127.0.0.1")
PORT = _env_int("LARM_PORT", 8080)
UI_PORT = _env_int("LARM_UI_PORT", 7860)

LOG_LEVEL = os.environ.get("LARM_LOG_LEVEL", "INFO")

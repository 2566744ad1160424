#!/usr/bin/env python3
"""
Larm -- Native Desktop App (PyWebView)
The Gradio studio in its own window. No browser, no URL bar.

Usage:
    python3 desktop.py
"""

import logging
import os
import socket
import sys
import threading
import time
import urllib.request

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from core.config import LOG_LEVEL, UI_PORT
from core.engine import load_engine
from core.errors import EngineUnavailable
from core.logging_config import setup_logging

# --- Configuration ---
APP_TITLE = "LARM"
WINDOW_WIDTH = 1400
WINDOW_HEIGHT = 900
MIN_WIDTH = 1000
MIN_HEIGHT = 700
BG_VOID = "#111113"
READY_TIMEOUT_SEC = 10


def find_free_port(start=UI_PORT):
    """Find a free port starting from start."""
    for port in range(start, start + 100):
        try:
            with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
                s.bind(("127.0.0.1", port))
                return port
        except OSError:
            continue
    return start  # Fall back


def wait_until_ready(url, timeout=READY_TIMEOUT_SEC):
    """Poll url until it answers or timeout passes. Returns True when up."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        try:
            with urllib.request.urlopen(url, timeout=1):
                return True
        except OSError:
            time.sleep(0.1)
    return False


def start_ui(engine, port, ready_event):
    """Serve the Gradio studio from a background thread."""
    from gradio_ui import launch_ui

    launch_ui(engine=engine, port=port, block=False)
    ready_event.set()


def main():
    setup_logging(LOG_LEVEL)

    # 1. Bind the engine first; without it there is nothing to show
    try:
        engine = load_engine()
    except EngineUnavailable as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    # 2. Find a free port and start the UI server
    port = find_free_port()
    ready_event = threading.Event()
    ui_thread = threading.Thread(
        target=start_ui,
        args=(engine, port, ready_event),
        daemon=True,
    )
    ui_thread.start()

    url = f"http://127.0.0.1:{port}"
    ready_event.wait(timeout=READY_TIMEOUT_SEC)
    if not wait_until_ready(url):
        logging.warning("UI at %s did not answer within %ss", url, READY_TIMEOUT_SEC)

    # 3. Launch PyWebView window (blocks until it closes)
    import webview

    webview.create_window(
        APP_TITLE,
        url=url,
        width=WINDOW_WIDTH,
        height=WINDOW_HEIGHT,
        min_size=(MIN_WIDTH, MIN_HEIGHT),
        background_color=BG_VOID,
        text_select=False,
    )
    webview.start(debug=False)

    os._exit(0)  # Force exit to stop the UI server thread


if __name__ == "__main__":
    main()

"""
Conftest: shared fixtures for all Larm test modules.

1. FakeEngine -- deterministic stand-in for the native grain engine
2. Synthetic images (gradient, not blank) as PIL images and encoded bytes
"""

import os
import sys
import threading
from io import BytesIO

import numpy as np
import pytest
from PIL import Image

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.engine import FLOAT_ARGS


class FakeEngine:
    """Inverts every byte and records each call's arguments.

    release: optional threading.Event the call waits on before writing,
    so tests can hold a render "in flight". started is set on entry.
    """

    def __init__(self, fail=False):
        self.calls = []
        self.fail = fail
        self.started = threading.Event()
        self.release = None
        self._lock = threading.Lock()

    def apply_grain(self, input_buffer, output_buffer, width, height, *args):
        call = dict(zip(FLOAT_ARGS + ("layers",), args))
        call["width"] = width
        call["height"] = height
        call["input_id"] = id(input_buffer)
        call["output_id"] = id(output_buffer)
        with self._lock:
            self.calls.append(call)
        self.started.set()
        if self.release is not None:
            self.release.wait(5)
        if self.fail:
            raise RuntimeError("engine exploded")
        data = np.frombuffer(bytes(input_buffer), dtype=np.uint8)
        memoryview(output_buffer)[:] = (255 - data).tobytes()


def _make_test_frame(width=320, height=240):
    """Generate a synthetic test frame (gradient, not blank)."""
    frame = np.zeros((height, width, 3), dtype=np.uint8)
    frame[:, :, 0] = np.linspace(0, 255, width, dtype=np.uint8)  # R gradient
    frame[:, :, 1] = 128  # constant G
    frame[:, :, 2] = np.linspace(255, 0, width, dtype=np.uint8)  # B inverse
    return frame


def _make_test_image(width=320, height=240):
    return Image.fromarray(_make_test_frame(width, height))


def _image_bytes(image, fmt="PNG"):
    out = BytesIO()
    image.save(out, format=fmt)
    return out.getvalue()


@pytest.fixture
def fake_engine():
    return FakeEngine()


@pytest.fixture
def test_image():
    """320x240 gradient image."""
    return _make_test_image()


@pytest.fixture
def large_png_bytes():
    """2000x1500 PNG: proxies down to 1200x900 at the default threshold."""
    return _image_bytes(_make_test_image(2000, 1500))


@pytest.fixture
def small_png_bytes():
    """300x200 PNG: smaller than the default loupe in both axes."""
    return _image_bytes(_make_test_image(300, 200))

"""
Larm -- Engine Bridge
Narrow call contract to the native grain engine.

    apply_grain(input, output, width, height,
                size, intensity, sharpness, saturation, exposure,
                shadow_grain, midtone_grain, highlight_grain, tonal_smoothness,
                depth, chromatic, relief, layers)

input and output are distinct buffers of exactly width * height * 3 bytes
(RGB, row-major). On return output holds the full transformed image at the
same dimensions. The engine keeps no state between calls and has no error
return; any exception it raises propagates to the caller.
"""

import ctypes
import ctypes.util
import logging
import sys
import time
from ctypes import POINTER, c_double, c_int32, c_uint8
from typing import Protocol

from core import pixels
from core.config import ENGINE_LIB, ENGINE_SEARCH_DIRS, ENGINE_SYMBOL
from core.coords import round_half_up
from core.errors import EngineUnavailable
from core.params import EffectParameters
from core.tiers import TierKind

log = logging.getLogger(__name__)

# Float arguments in ABI order, by EffectParameters field.
FLOAT_ARGS = (
    "size", "intensity", "sharpness", "saturation", "exposure",
    "shadow_grain", "midtone_grain", "highlight_grain", "tonal_smoothness",
    "depth", "chromatic", "relief",
)

ARGTYPES = [POINTER(c_uint8), POINTER(c_uint8), c_int32, c_int32] + [c_double] * len(FLOAT_ARGS) + [c_int32]


class GrainEngine(Protocol):
    def apply_grain(self, input_buffer, output_buffer, width: int, height: int,
                    *args) -> None:
        ...


def engine_arguments(params: EffectParameters, grain_scale: float = 1.0) -> tuple:
    """ABI argument values (after width/height) for one engine call.

    grain_scale multiplies size only; proxy renders pass the proxy scale
    factor so grain stays proportional to the full image. layers is rounded
    to the nearest whole count.
    """
    values = [getattr(params, name) for name in FLOAT_ARGS]
    values[0] = params.size * grain_scale
    return (*(float(v) for v in values), round_half_up(params.layers))


def run_engine(engine: GrainEngine, input_buffer, output_buffer, width: int, height: int,
               params: EffectParameters, grain_scale: float = 1.0) -> None:
    """Check the buffer contract, then call the engine.

    Raises:
        SizeMismatch: If either buffer is not width * height * 3 bytes.
        ValueError: If input and output are the same buffer.
    """
    pixels.check_size(input_buffer, width, height)
    pixels.check_size(output_buffer, width, height)
    if input_buffer is output_buffer:
        raise ValueError("Engine input and output buffers must not alias")

    args = engine_arguments(params, grain_scale)
    start = time.perf_counter()
    engine.apply_grain(input_buffer, output_buffer, width, height, *args)
    log.debug("Engine %dx%d in %.1fms", width, height, (time.perf_counter() - start) * 1000)


def _library_names() -> list[str]:
    if sys.platform == "darwin":
        return ["liblarm.dylib"]
    if sys.platform.startswith("win"):
        return ["larm.dll"]
    return ["liblarm.so"]


def find_engine_library() -> str | None:
    """Locate the engine library: LARM_ENGINE_LIB, then ./libs, then the loader path."""
    if ENGINE_LIB:
        return ENGINE_LIB
    for directory in ENGINE_SEARCH_DIRS:
        for name in _library_names():
            candidate = directory / name
            if candidate.is_file():
                return str(candidate)
    return ctypes.util.find_library("larm")


def _as_c_array(buffer):
    n = len(buffer)
    if isinstance(buffer, bytearray):
        return (c_uint8 * n).from_buffer(buffer)
    return (c_uint8 * n).from_buffer_copy(buffer)


class NativeEngine:
    """The grain engine bound from a shared library via ctypes."""

    def __init__(self, lib_path: str | None = None, symbol: str = ENGINE_SYMBOL):
        path = lib_path or find_engine_library()
        if not path:
            raise EngineUnavailable(
                "Native engine library 'larm' not found. "
                "Set LARM_ENGINE_LIB or place liblarm in the libs/ folder."
            )
        try:
            self._lib = ctypes.CDLL(path)
        except OSError as e:
            raise EngineUnavailable(f"Failed to load native engine {path}: {e}") from e
        try:
            fn = getattr(self._lib, symbol)
        except AttributeError as e:
            raise EngineUnavailable(f"Engine library {path} has no symbol '{symbol}'") from e

        fn.argtypes = ARGTYPES
        fn.restype = None
        self._fn = fn
        self.path = path

    def apply_grain(self, input_buffer, output_buffer, width, height, *args):
        if not isinstance(output_buffer, bytearray):
            raise TypeError("Engine output buffer must be a writable bytearray")
        # ctypes releases the GIL for the duration of the call
        self._fn(_as_c_array(input_buffer), _as_c_array(output_buffer), width, height, *args)


def load_engine(lib_path: str | None = None) -> NativeEngine:
    """Bind the native engine, logging where it came from.

    Raises:
        EngineUnavailable: If the library or its entry point is missing.
    """
    engine = NativeEngine(lib_path)
    log.info("Native engine loaded from %s", engine.path)
    return engine


def render_tier(engine: GrainEngine, tier, params: EffectParameters, fresh: bool = False):
    """Render one tier and decode the result.

    Proxy tiers scale grain size by their scale factor; native-resolution
    tiers (loupe, crop, original) pass size through unchanged.

    With fresh=False the tier's own buffers are reused, so the caller must
    guarantee no other render of the same tier is in flight. fresh=True
    renders into a private buffer pair instead.
    """
    grain_scale = tier.scale_factor if tier.kind is TierKind.PROXY else 1.0
    if fresh:
        input_buffer, output_buffer = tier.fresh_buffers()
    else:
        input_buffer, output_buffer = tier.input_buffer, tier.output_buffer
    run_engine(engine, input_buffer, output_buffer, tier.width, tier.height, params, grain_scale)
    return pixels.decode(output_buffer, tier.width, tier.height)

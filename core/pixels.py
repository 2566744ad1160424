"""
Larm -- Pixel Buffer Codec
Converts between pixel grids and flat interleaved RGB byte buffers.

Layout is fixed: row-major, 3 bytes per pixel, R,G,B order, 8 bits per
channel. No other layout is produced or accepted. Alpha is dropped on
encode and never reconstructed.

Accepted grids:
- PIL.Image in any mode (converted to RGB)
- numpy (H, W, 3) or (H, W, 4) uint8 frames
- numpy (H, W) packed integer grids, 0xAARRGGBB or 0xRRGGBB per pixel
"""

import numpy as np
from PIL import Image

from core.errors import SizeMismatch

CHANNELS = 3


def rgb_size(width: int, height: int) -> int:
    """Byte length of an RGB buffer for the given dimensions."""
    return width * height * CHANNELS


def allocate(width: int, height: int) -> bytearray:
    """Zero-filled buffer sized for width x height RGB."""
    return bytearray(rgb_size(width, height))


def check_size(buffer, width: int, height: int) -> None:
    """Raise SizeMismatch unless len(buffer) == width * height * 3."""
    if len(buffer) != rgb_size(width, height):
        raise SizeMismatch(len(buffer), width, height)


def grid_to_frame(grid) -> np.ndarray:
    """Normalize any accepted grid to a contiguous (H, W, 3) uint8 frame."""
    if isinstance(grid, Image.Image):
        if grid.mode != "RGB":
            grid = grid.convert("RGB")
        return np.asarray(grid, dtype=np.uint8)

    arr = np.asarray(grid)
    if arr.ndim == 2:
        return unpack_rgb(arr)
    if arr.ndim == 3 and arr.shape[2] in (3, 4):
        return np.ascontiguousarray(arr[:, :, :3], dtype=np.uint8)
    raise ValueError(f"Unsupported pixel grid shape: {arr.shape}")


def pack_rgb(frame: np.ndarray) -> np.ndarray:
    """(H, W, 3) uint8 frame -> (H, W) uint32 grid of 0xRRGGBB values."""
    frame = np.asarray(frame, dtype=np.uint32)
    return (frame[:, :, 0] << 16) | (frame[:, :, 1] << 8) | frame[:, :, 2]


def unpack_rgb(packed: np.ndarray) -> np.ndarray:
    """(H, W) packed grid -> (H, W, 3) uint8 frame. High byte is ignored."""
    packed = np.asarray(packed).astype(np.uint32)
    frame = np.empty(packed.shape + (CHANNELS,), dtype=np.uint8)
    frame[:, :, 0] = (packed >> 16) & 0xFF
    frame[:, :, 1] = (packed >> 8) & 0xFF
    frame[:, :, 2] = packed & 0xFF
    return frame


def encode(grid) -> bytearray:
    """Encode a pixel grid to a new RGB buffer of exactly width * height * 3 bytes."""
    frame = grid_to_frame(grid)
    return bytearray(frame.tobytes())


def encode_into(grid, buffer) -> None:
    """Encode a pixel grid into an existing buffer, overwriting it from offset 0.

    The buffer is never resized; its length must already match the grid.
    """
    frame = grid_to_frame(grid)
    height, width = frame.shape[:2]
    check_size(buffer, width, height)
    memoryview(buffer)[:] = frame.tobytes()


def decode_array(buffer, width: int, height: int) -> np.ndarray:
    """Decode an RGB buffer to a new (H, W, 3) uint8 frame (copied)."""
    check_size(buffer, width, height)
    flat = np.frombuffer(bytes(buffer), dtype=np.uint8)
    return flat.reshape(height, width, CHANNELS).copy()


def decode(buffer, width: int, height: int) -> Image.Image:
    """Decode an RGB buffer to a new RGB PIL image.

    Always reads from offset 0 and copies, so the buffer may be rewritten
    afterwards without affecting the returned image.
    """
    check_size(buffer, width, height)
    return Image.frombytes("RGB", (width, height), bytes(buffer))

"""
Larm -- Coordinate Mapper
Maps a normalized focus point and a crop edge length to integer crop
bounds inside the source image.
"""

import math
from typing import NamedTuple


class CropBox(NamedTuple):
    x: int
    y: int
    width: int
    height: int

    @property
    def box(self) -> tuple[int, int, int, int]:
        """(left, upper, right, lower) as PIL's Image.crop expects."""
        return (self.x, self.y, self.x + self.width, self.y + self.height)


def round_half_up(value: float) -> int:
    """Round to nearest integer, halves away from -inf (not banker's rounding)."""
    return math.floor(value + 0.5)


def clamp_unit(value: float) -> float:
    """Clamp a focus coordinate to [0, 1]. Non-finite input maps to the centre."""
    if not math.isfinite(value):
        return 0.5
    return max(0.0, min(1.0, value))


def _axis_start(extent: int, focus: float, size: int) -> int:
    start = round_half_up(extent * focus - size / 2)
    return max(0, min(start, max(0, extent - size)))


def crop_box(width: int, height: int, x: float, y: float, size: int) -> CropBox:
    """Crop of edge `size` centred on (x, y), shifted and shrunk to fit.

    Args:
        width, height: Source extent in pixels.
        x, y: Focus point, normalized; clamped to [0, 1].
        size: Desired crop edge length in pixels.

    Returns:
        CropBox whose edges never exceed the source. Sources smaller than
        `size` along an axis yield the full extent on that axis.
    """
    if size < 1:
        raise ValueError(f"Crop size must be >= 1, got {size}")
    fx, fy = clamp_unit(x), clamp_unit(y)
    start_x = _axis_start(width, fx, size)
    start_y = _axis_start(height, fy, size)
    return CropBox(
        x=start_x,
        y=start_y,
        width=min(size, width - start_x),
        height=min(size, height - start_y),
    )


def center_box(width: int, height: int, size: int) -> CropBox:
    """Fixed-size centre crop, clamped to the source extent."""
    if size < 1:
        raise ValueError(f"Crop size must be >= 1, got {size}")
    crop_w = min(size, width)
    crop_h = min(size, height)
    return CropBox(
        x=(width - crop_w) // 2,
        y=(height - crop_h) // 2,
        width=crop_w,
        height=crop_h,
    )

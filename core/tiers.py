"""
Larm -- Tier Builder
Derives resolution tiers from a SourceImage, each with its own pre-filled
input buffer and a same-sized output buffer.

Tiers:
- proxy:    whole frame, downscaled (bilinear) to at most PROXY_WIDTH wide
- loupe:    fixed-size centre crop at native resolution
- crop:     focus-point crop at native resolution (server variant)
- original: whole frame at native resolution, export only

Buffers are sized once at construction and never resized. Loading a new
image means building new tiers.
"""

from dataclasses import dataclass
from enum import Enum

from PIL import Image

from core import pixels
from core.config import LOUPE_SIZE, PROXY_WIDTH
from core.coords import CropBox, center_box, crop_box, round_half_up
from core.imaging import SourceImage


class TierKind(str, Enum):
    PROXY = "proxy"
    LOUPE = "loupe"
    CROP = "crop"
    ORIGINAL = "original"


@dataclass(frozen=True, eq=False)
class Tier:
    """One resolution variant of a loaded image.

    scale_factor is relative to the original (1.0 for native-resolution
    tiers). origin is the tier's top-left corner in original pixels.
    """
    kind: TierKind
    width: int
    height: int
    scale_factor: float
    input_buffer: bytearray
    output_buffer: bytearray
    origin: tuple[int, int] = (0, 0)

    def __post_init__(self):
        if not 0.0 < self.scale_factor <= 1.0:
            raise ValueError(f"scale_factor must be in (0, 1], got {self.scale_factor}")
        pixels.check_size(self.input_buffer, self.width, self.height)
        pixels.check_size(self.output_buffer, self.width, self.height)
        if self.input_buffer is self.output_buffer:
            raise ValueError("Tier input and output buffers must be distinct")

    @property
    def byte_size(self) -> int:
        return pixels.rgb_size(self.width, self.height)

    @property
    def size(self) -> tuple[int, int]:
        return (self.width, self.height)

    @property
    def is_native(self) -> bool:
        """True for tiers that show pixels at original density."""
        return self.kind is not TierKind.PROXY

    def input_image(self) -> Image.Image:
        return pixels.decode(self.input_buffer, self.width, self.height)

    def output_image(self) -> Image.Image:
        return pixels.decode(self.output_buffer, self.width, self.height)

    def fresh_buffers(self) -> tuple[bytearray, bytearray]:
        """Private (input copy, empty output) pair for one-off renders."""
        return bytearray(self.input_buffer), pixels.allocate(self.width, self.height)


def proxy_scale(width: int, threshold: int = PROXY_WIDTH) -> float:
    """Downscale factor that brings width to the threshold (1.0 if already within)."""
    if threshold < 1:
        raise ValueError(f"Proxy threshold must be >= 1, got {threshold}")
    if width > threshold:
        return threshold / width
    return 1.0


def scaled_dimensions(width: int, height: int, scale: float) -> tuple[int, int]:
    """Dimensions scaled and rounded to nearest, never below 1 pixel."""
    return (
        max(1, round_half_up(width * scale)),
        max(1, round_half_up(height * scale)),
    )


def build_tier(kind: TierKind, image: Image.Image, scale_factor: float = 1.0,
               origin: tuple[int, int] = (0, 0)) -> Tier:
    """Allocate a buffer pair for image and fill the input buffer now."""
    width, height = image.size
    input_buffer = pixels.allocate(width, height)
    pixels.encode_into(image, input_buffer)
    return Tier(
        kind=kind,
        width=width,
        height=height,
        scale_factor=scale_factor,
        input_buffer=input_buffer,
        output_buffer=pixels.allocate(width, height),
        origin=origin,
    )


def build_proxy(source: SourceImage, threshold: int = PROXY_WIDTH) -> Tier:
    """Full-frame preview tier, bilinear-downscaled when wider than threshold."""
    scale = proxy_scale(source.width, threshold)
    if scale < 1.0:
        size = scaled_dimensions(source.width, source.height, scale)
        image = source.image.resize(size, Image.Resampling.BILINEAR)
    else:
        image = source.image
    return build_tier(TierKind.PROXY, image, scale)


def _crop_tier(kind: TierKind, source: SourceImage, box: CropBox) -> Tier:
    image = source.image.crop(box.box)
    return build_tier(kind, image, 1.0, origin=(box.x, box.y))


def build_loupe(source: SourceImage, size: int = LOUPE_SIZE) -> Tier:
    """Centre crop at native resolution, never downscaled."""
    return _crop_tier(TierKind.LOUPE, source, center_box(source.width, source.height, size))


def build_crop(source: SourceImage, x: float, y: float, size: int = LOUPE_SIZE) -> Tier:
    """Crop around a normalized focus point at native resolution."""
    return _crop_tier(TierKind.CROP, source, crop_box(source.width, source.height, x, y, size))


def build_original(source: SourceImage) -> Tier:
    """The whole image at native resolution, for export."""
    return build_tier(TierKind.ORIGINAL, source.image, 1.0)

"""
Larm -- Image I/O
Decodes uploaded/opened files into a SourceImage and encodes results to
JPEG (previews) or PNG (exports). Pillow does the codec work.
"""

from dataclasses import dataclass
from io import BytesIO
from pathlib import Path

from PIL import Image, ImageOps, UnidentifiedImageError

from core.config import JPEG_QUALITY
from core.errors import DecodeFailure


@dataclass(frozen=True)
class SourceImage:
    """The decoded original. Never mutated after load."""
    image: Image.Image
    name: str = ""

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height

    @property
    def size(self) -> tuple[int, int]:
        return self.image.size


def decode_image(source, name: str = "") -> SourceImage:
    """Decode raw bytes or a file path into an RGB SourceImage.

    EXIF orientation is applied so the pixel grid matches what viewers show.

    Raises:
        DecodeFailure: If the data is not a readable image.
        FileNotFoundError: If a path is given and does not exist.
    """
    if isinstance(source, (bytes, bytearray, memoryview)):
        fp = BytesIO(bytes(source))
    else:
        path = Path(source)
        if not path.is_file():
            raise FileNotFoundError(f"Image not found: {path}")
        fp = path
        name = name or path.name

    try:
        with Image.open(fp) as img:
            img.load()
            img = ImageOps.exif_transpose(img)
            rgb = img.convert("RGB")
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as e:
        raise DecodeFailure(f"Could not decode image: {e}") from e

    return SourceImage(image=rgb, name=name)


def to_jpeg_bytes(image: Image.Image, quality: int = JPEG_QUALITY) -> bytes:
    """Encode an image as JPEG (alpha flattened away)."""
    if image.mode != "RGB":
        image = image.convert("RGB")
    out = BytesIO()
    image.save(out, format="JPEG", quality=quality)
    return out.getvalue()


def to_png_bytes(image: Image.Image) -> bytes:
    """Encode an image as lossless PNG."""
    out = BytesIO()
    image.save(out, format="PNG")
    return out.getvalue()


def save_png(image: Image.Image, output_path) -> Path:
    """Write an image to disk as PNG, creating parent directories."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    image.save(str(output_path), format="PNG")
    return output_path

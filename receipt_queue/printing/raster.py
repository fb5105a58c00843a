"""
Monochrome raster conversion for thermal receipt printers.

Takes any image Pillow can decode and produces a 1-bit-per-pixel bitmap:
- transparent areas are flattened onto white
- images wider than the printable width are scaled down proportionally
- each pixel is converted to gray with the luminosity weights 0.299/0.587/0.114
  (truncated) and becomes black when gray < threshold
- 8 pixels per byte, most significant bit first; rows are padded with white
  up to a multiple of 8 pixels
"""

from __future__ import annotations

import base64
import io
import logging
from dataclasses import dataclass

from PIL import Image, UnidentifiedImageError

from receipt_queue.core.errors import RasterError

logger = logging.getLogger(__name__)

DEFAULT_MAX_WIDTH_DOTS = 576  # 80mm paper on a TM-T88
DEFAULT_THRESHOLD = 127

PNG_MAGIC = b"\x89PNG\r\n\x1a\n"


@dataclass(frozen=True)
class Raster:
    packed: bytes
    width: int  # padded to a multiple of 8
    height: int
    black_pixels: int = 0

    @property
    def bytes_per_row(self) -> int:
        return self.width // 8

    def to_base64(self) -> str:
        return base64.b64encode(self.packed).decode("ascii")


def _open_image(image_bytes: bytes) -> Image.Image:
    if not image_bytes:
        raise RasterError("Image data is empty")
    try:
        img = Image.open(io.BytesIO(image_bytes))
        img.load()
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise RasterError(f"Invalid image data: {e}") from e
    if img.width <= 0 or img.height <= 0:
        raise RasterError("Invalid image dimensions")
    return img


def _flatten_on_white(img: Image.Image) -> Image.Image:
    rgba = img.convert("RGBA")
    background = Image.new("RGBA", rgba.size, (255, 255, 255, 255))
    background.alpha_composite(rgba)
    return background.convert("RGB")


def to_monochrome_raster(
    image_bytes: bytes,
    max_width_dots: int = DEFAULT_MAX_WIDTH_DOTS,
    threshold: int = DEFAULT_THRESHOLD,
) -> Raster:
    """
    Convert encoded image bytes (PNG, JPEG, GIF, BMP, ...) to a packed 1-bit raster.

    Raises RasterError when the bytes cannot be decoded.
    """
    img = _flatten_on_white(_open_image(image_bytes))

    if img.width > max_width_dots:
        new_height = max(1, round(img.height * (max_width_dots / img.width)))
        logger.debug("Scaling image %dx%d -> %dx%d", img.width, img.height, max_width_dots, new_height)
        img = img.resize((max_width_dots, new_height), Image.Resampling.LANCZOS)

    width, height = img.size
    bytes_per_row = (width + 7) // 8
    packed = bytearray(bytes_per_row * height)
    pixels = list(img.getdata())
    black = 0

    for y in range(height):
        base = y * bytes_per_row
        row = pixels[y * width:(y + 1) * width]
        for x, (r, g, b) in enumerate(row):
            # Integer form of int(0.299R + 0.587G + 0.114B), free of float rounding
            gray = (r * 299 + g * 587 + b * 114) // 1000
            if gray < threshold:
                packed[base + (x >> 3)] |= 0x80 >> (x & 7)
                black += 1

    logger.debug(
        "Rasterised %dx%d (padded %d) threshold=%d black=%d",
        width,
        height,
        bytes_per_row * 8,
        threshold,
        black,
    )
    return Raster(packed=bytes(packed), width=bytes_per_row * 8, height=height, black_pixels=black)


__all__ = ["DEFAULT_MAX_WIDTH_DOTS", "DEFAULT_THRESHOLD", "PNG_MAGIC", "Raster", "to_monochrome_raster"]

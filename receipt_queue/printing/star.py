"""
Star CloudPRNT payload builders.

Stored Star payloads come in two flavours:
- text, always wrapped in a JSON envelope {"type": "star", "text": ..., "openDrawer": bool}
  so client text that looks like XML, JSON or a PNG header is printed as written
- "[STAR:PNG]" / "[STAR:PNG:DRAWER]" header line followed by base64 PNG data,
  or "[STAR:DRAWER]" alone for a drawer-only job
"""

from __future__ import annotations

import base64
import json
import struct
import textwrap
from datetime import datetime
from typing import List, Optional, Tuple

from receipt_queue.core.errors import RasterError
from receipt_queue.printing.raster import PNG_MAGIC

STAR_PNG_HEADER = "[STAR:PNG]"
STAR_PNG_DRAWER_HEADER = "[STAR:PNG:DRAWER]"
STAR_DRAWER_HEADER = "[STAR:DRAWER]"

MAX_PNG_DIMENSION = 10000
DEFAULT_LINE_WIDTH = 42


def png_dimensions(data: bytes) -> Tuple[int, int]:
    """
    Read width/height from a PNG's IHDR chunk without decoding the image.
    Raises RasterError for anything that is not a sane PNG.
    """
    if len(data) < 24:
        raise RasterError("PNG data too small")
    if data[:8] != PNG_MAGIC:
        raise RasterError("Data is not a valid PNG image")
    (ihdr_length,) = struct.unpack(">I", data[8:12])
    if data[12:16] != b"IHDR" or ihdr_length < 13:
        raise RasterError("Invalid PNG structure")
    width, height = struct.unpack(">II", data[16:24])
    if not (0 < width <= MAX_PNG_DIMENSION and 0 < height <= MAX_PNG_DIMENSION):
        raise RasterError("Invalid image dimensions")
    return width, height


def build_star_text_job(text: str, open_drawer: bool = False) -> str:
    return json.dumps({"type": "star", "text": text, "openDrawer": bool(open_drawer)})


def build_star_png_job(png: Optional[bytes], open_drawer: bool = False) -> str:
    if not png:
        return f"{STAR_DRAWER_HEADER}\n" if open_drawer else ""
    header = STAR_PNG_DRAWER_HEADER if open_drawer else STAR_PNG_HEADER
    return f"{header}\n{base64.b64encode(png).decode('ascii')}"


def build_star_test_page(
    printer_id: str,
    job_id: str,
    text: str = "",
    open_drawer: bool = False,
    line_width: int = DEFAULT_LINE_WIDTH,
) -> str:
    timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    lines: List[str] = [
        "*** TEST PRINT ***".center(line_width),
        "",
        "=" * line_width,
        f"Printer ID: {printer_id}",
        f"Timestamp:  {timestamp}",
        f"Job ID:     {job_id}",
    ]
    if text:
        lines += ["", "-" * line_width, "Custom Message:"]
        lines += textwrap.wrap(text, width=line_width, break_long_words=True) or [""]
    lines += [
        "",
        f"Cash Drawer: {'WILL OPEN' if open_drawer else 'No action'}",
        "=" * line_width,
        "",
        "Star CloudPRNT Test".center(line_width),
        "",
        "",
    ]
    return build_star_text_job("\n".join(lines), open_drawer)


__all__ = [
    "STAR_DRAWER_HEADER",
    "STAR_PNG_DRAWER_HEADER",
    "STAR_PNG_HEADER",
    "build_star_png_job",
    "build_star_test_page",
    "build_star_text_job",
    "png_dimensions",
]

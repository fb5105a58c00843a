"""
Payload builders and interpreters.

- raster: image -> packed 1-bit bitmap
- epos: ePOS-Print XML documents for Server Direct Print
- star: CloudPRNT text / PNG payloads
- payloads: turn a stored payload back into something a Star printer accepts
"""

from .epos import EposPrintJob, build_image_job, build_test_page, build_text_job, escape_text
from .payloads import NormalizedJob, normalize_payload, parse_payload
from .raster import Raster, to_monochrome_raster
from .star import build_star_png_job, build_star_test_page, build_star_text_job, png_dimensions

__all__ = [
    "EposPrintJob",
    "NormalizedJob",
    "Raster",
    "build_image_job",
    "build_star_png_job",
    "build_star_test_page",
    "build_star_text_job",
    "build_test_page",
    "build_text_job",
    "escape_text",
    "normalize_payload",
    "parse_payload",
    "png_dimensions",
    "to_monochrome_raster",
]

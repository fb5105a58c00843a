import base64
import json
import struct

import pytest

from receipt_queue.core.errors import RasterError
from receipt_queue.printing.star import (
    build_star_png_job,
    build_star_test_page,
    build_star_text_job,
    png_dimensions,
)


def _fake_png(width: int, height: int) -> bytes:
    return b"\x89PNG\r\n\x1a\n" + struct.pack(">I", 13) + b"IHDR" + struct.pack(">II", width, height) + b"\x08\x02\x00\x00\x00"


def test_png_dimensions_real_image(png_factory):
    assert png_dimensions(png_factory(12, 5)) == (12, 5)


@pytest.mark.parametrize(
    "data",
    [
        b"",
        b"\x89PNG\r\n\x1a\n",
        b"GIF89a" + b"\x00" * 30,
        _fake_png(0, 10),
        _fake_png(10001, 10),
        b"\x89PNG\r\n\x1a\n" + struct.pack(">I", 13) + b"IDAT" + b"\x00" * 13,
    ],
)
def test_png_dimensions_rejects(data):
    with pytest.raises(RasterError):
        png_dimensions(data)


def test_star_text_job():
    assert json.loads(build_star_text_job("plain")) == {"type": "star", "text": "plain", "openDrawer": False}
    env = json.loads(build_star_text_job("with drawer", open_drawer=True))
    assert env == {"type": "star", "text": "with drawer", "openDrawer": True}


def test_star_png_job():
    png = _fake_png(1, 1)
    header, body = build_star_png_job(png).split("\n", 1)
    assert header == "[STAR:PNG]"
    assert base64.b64decode(body) == png
    assert build_star_png_job(png, open_drawer=True).startswith("[STAR:PNG:DRAWER]\n")
    assert build_star_png_job(None, open_drawer=True) == "[STAR:DRAWER]\n"
    assert build_star_png_job(None) == ""


def test_star_test_page():
    page = json.loads(build_star_test_page("S1", "STAR_TEST_1", "x" * 100))
    assert page["openDrawer"] is False
    lines = page["text"].split("\n")
    assert "Printer ID: S1" in lines
    assert all(len(line) <= 42 for line in lines)
    env = json.loads(build_star_test_page("S1", "J", open_drawer=True))
    assert env["openDrawer"] is True
    assert "WILL OPEN" in env["text"]

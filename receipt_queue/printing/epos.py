"""
ePOS-Print XML payload builders for Epson Server Direct Print.

EposPrintJob is a small fluent builder; build_text_job / build_image_job /
build_test_page cover the submission endpoints. The output is a complete
PrintRequestInfo (Version 2.00) document that the printer receives verbatim.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from xml.sax.saxutils import escape as _sax_escape

from receipt_queue.printing.raster import Raster

EPOS_NAMESPACE = "http://www.epson-pos.com/schemas/2011/03/epos-print"

ALIGNMENTS = ("left", "center", "right")
BARCODE_TYPES = ("code39", "code93", "code128", "ean13", "ean8", "upca", "upce", "itf", "codabar")
HRI_POSITIONS = ("none", "above", "below", "both")
QR_LEVELS = ("level_l", "level_m", "level_q", "level_h")


def escape_text(text: str) -> str:
    """
    Escape for ePOS-Print XML, encoding line breaks and tabs as character references.
    """
    text = _sax_escape(str(text), {'"': "&quot;", "'": "&apos;"})
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    return text.replace("\n", "&#10;").replace("\t", "&#9;")


class EposPrintJob:
    """
    Chainable ePOS-Print command builder.

        xml = (EposPrintJob("JOB_1")
               .centered("Receipt")
               .line()
               .text("Total: 9.99")
               .cut()
               .open_drawer()
               .to_xml())
    """

    def __init__(
        self,
        job_id: str,
        *,
        devid: str = "local_printer",
        timeout_ms: int = 10000,
        lang: str = "en",
    ) -> None:
        self.job_id = job_id
        self.devid = devid
        self.timeout_ms = timeout_ms
        self.commands: List[str] = [f'<text lang="{escape_text(lang)}"/>']

    # Text

    def text(self, text: str) -> "EposPrintJob":
        self.commands.append(f"<text>{escape_text(text)}&#10;</text>")
        return self

    def text_inline(self, text: str) -> "EposPrintJob":
        self.commands.append(f"<text>{escape_text(text)}</text>")
        return self

    def _styled(self, on: str, off: str, text: str) -> "EposPrintJob":
        self.commands.append(on)
        self.text(text)
        self.commands.append(off)
        return self

    def centered(self, text: str) -> "EposPrintJob":
        return self._styled('<text align="center"/>', '<text align="left"/>', text)

    def bold(self, text: str) -> "EposPrintJob":
        return self._styled('<text em="true"/>', '<text em="false"/>', text)

    def large(self, text: str) -> "EposPrintJob":
        return self._styled('<text width="2" height="2"/>', '<text width="1" height="1"/>', text)

    def wide(self, text: str) -> "EposPrintJob":
        return self._styled('<text dw="true"/>', '<text dw="false"/>', text)

    def tall(self, text: str) -> "EposPrintJob":
        return self._styled('<text dh="true"/>', '<text dh="false"/>', text)

    def underline(self, text: str) -> "EposPrintJob":
        return self._styled('<text ul="true"/>', '<text ul="false"/>', text)

    def inverted(self, text: str) -> "EposPrintJob":
        self.commands.append('<text reverse="true"/>')
        self.commands.append(f"<text> {escape_text(text)} </text>")
        self.commands.append('<text reverse="false"/>')
        self.commands.append("<text>&#10;</text>")
        return self

    def align(self, align: str) -> "EposPrintJob":
        if align in ALIGNMENTS:
            self.commands.append(f'<text align="{align}"/>')
        return self

    def line(self, width: int = 32, char: str = "-") -> "EposPrintJob":
        return self.text(char * width)

    def double_line(self, width: int = 32) -> "EposPrintJob":
        return self.line(width, "=")

    # Paper

    def feed(self, lines: int = 1) -> "EposPrintJob":
        self.commands.append(f'<feed line="{max(1, int(lines))}"/>')
        return self

    def feed_dots(self, dots: int) -> "EposPrintJob":
        self.commands.append(f'<feed unit="{max(1, int(dots))}"/>')
        return self

    def cut(self, full: bool = False) -> "EposPrintJob":
        self.commands.append(f'<cut type="{"feed_fullcut" if full else "feed"}"/>')
        return self

    # Symbols and graphics

    def barcode(self, data: str, kind: str = "code128", hri: str = "below") -> "EposPrintJob":
        if kind not in BARCODE_TYPES:
            raise ValueError(f"Unsupported barcode type: {kind}")
        if hri not in HRI_POSITIONS:
            raise ValueError(f"Unsupported HRI position: {hri}")
        self.commands.append(f'<barcode type="{kind}" hri="{hri}" width="2" height="60">{escape_text(data)}</barcode>')
        return self.feed(1)

    def qr_code(self, data: str, size: int = 4, level: str = "level_m") -> "EposPrintJob":
        if level not in QR_LEVELS:
            raise ValueError(f"Unsupported QR error correction level: {level}")
        size = min(16, max(1, int(size)))
        self.commands.append(
            f'<symbol type="qrcode_model_2" level="{level}" width="{size}">{escape_text(data)}</symbol>',
        )
        return self.feed(1)

    def logo(self, key: str = "key1") -> "EposPrintJob":
        self.commands.append(f'<logo key="{escape_text(key)}"/>')
        return self

    def image(self, raster: Raster, align: str = "center") -> "EposPrintJob":
        align = align if align in ALIGNMENTS else "center"
        self.commands.append(
            f'<image width="{raster.width}" height="{raster.height}" color="color_1" mode="mono" '
            f'align="{align}">{raster.to_base64()}</image>',
        )
        return self

    # Peripherals

    def open_drawer(self, drawer: str = "drawer_1", pulse: str = "pulse_100") -> "EposPrintJob":
        self.commands.append(f'<pulse drawer="{escape_text(drawer)}" time="{escape_text(pulse)}"/>')
        return self

    def sound(self, pattern: int = 1, repeat: int = 1) -> "EposPrintJob":
        pattern = min(10, max(1, int(pattern)))
        repeat = min(255, max(1, int(repeat)))
        self.commands.append(f'<sound pattern="pattern_{pattern}" repeat="{repeat}"/>')
        return self

    def raw(self, xml: str) -> "EposPrintJob":
        self.commands.append(xml)
        return self

    def to_xml(self) -> str:
        body = "\n        ".join(self.commands)
        return (
            '<?xml version="1.0" encoding="utf-8"?>\n'
            '<PrintRequestInfo Version="2.00">\n'
            "  <ePOSPrint>\n"
            "    <Parameter>\n"
            f"      <devid>{escape_text(self.devid)}</devid>\n"
            f"      <timeout>{int(self.timeout_ms)}</timeout>\n"
            f"      <printjobid>{escape_text(self.job_id)}</printjobid>\n"
            "    </Parameter>\n"
            "    <PrintData>\n"
            f'      <epos-print xmlns="{EPOS_NAMESPACE}">\n'
            f"        {body}\n"
            "      </epos-print>\n"
            "    </PrintData>\n"
            "  </ePOSPrint>\n"
            "</PrintRequestInfo>"
        )


def build_text_job(job_id: str, text: str, open_drawer: bool = False, cut: bool = True) -> str:
    job = EposPrintJob(job_id)
    if text:
        normalized = text.replace("\r\n", "\n").replace("\r", "\n")
        for line in normalized.split("\n"):
            job.text(line)
    if cut:
        job.feed(2).cut()
    if open_drawer:
        job.open_drawer()
    return job.to_xml()


def build_image_job(job_id: str, raster: Optional[Raster], open_drawer: bool = False) -> str:
    job = EposPrintJob(job_id, timeout_ms=60000)
    if raster is not None:
        job.image(raster).feed(2).cut()
    if open_drawer:
        job.open_drawer()
    return job.to_xml()


def build_test_page(printer_id: str, job_id: str, text: str = "", open_drawer: bool = False) -> str:
    timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    job = EposPrintJob(job_id)
    job.align("center").large("TEST PRINT").feed(1).double_line()
    job.align("left")
    job.text(f"Printer ID: {printer_id}")
    job.text(f"Timestamp:  {timestamp}")
    job.text(f"Job ID:     {job_id}")
    if text:
        job.feed(1).line().text(text)
    job.feed(1).text(f"Drawer: {'WILL OPEN' if open_drawer else 'No action'}")
    job.double_line().feed(1)
    job.align("center").text("Server Direct Print Test").feed(2).cut()
    if open_drawer:
        job.open_drawer()
    return job.to_xml()


__all__ = [
    "EPOS_NAMESPACE",
    "EposPrintJob",
    "build_image_job",
    "build_test_page",
    "build_text_job",
    "escape_text",
]

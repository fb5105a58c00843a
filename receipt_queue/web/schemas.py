from __future__ import annotations

"""
Pydantic schemas for the Receipt Queue API (v1).

Request models validate submissions arriving as JSON, form fields or query
parameters (all merged into one dict before validation). Size limits are
supplied through the validation context so they follow the app's Settings:

    TextJobRequest.model_validate(data, context={"limits": {"MAX_PNG_SIZE": ...}})
"""

import base64
import binascii
import re
from typing import Any, Dict, List, Optional

from defusedxml import DefusedXmlException
from defusedxml import ElementTree as DET
from pydantic import BaseModel, Field, ValidationInfo, field_validator, model_validator
from xml.etree.ElementTree import ParseError

from receipt_queue.jobs.engine import MAX_JOB_ID_LEN, validate_printer_id
from receipt_queue.printing.raster import PNG_MAGIC
from receipt_queue.printing.star import png_dimensions

_TRUTHY = ("1", "true", "yes", "on")
_DATA_URL = re.compile(r"^data:image/[A-Za-z0-9.+-]+;base64,", re.IGNORECASE)

DEFAULT_MAX_PNG_SIZE = 5 * 1024 * 1024


def _flag(v: Any) -> bool:
    """Lenient boolean: "true"/"1"/"yes"/"on" are true, anything else false."""
    if isinstance(v, bool):
        return v
    if v is None:
        return False
    return str(v).strip().lower() in _TRUTHY


def _limit(info: ValidationInfo, name: str, default: int) -> int:
    limits = (info.context or {}).get("limits", {})
    return int(limits.get(name, default))


class PrinterTarget(BaseModel):
    """Common fields for anything addressed to a printer queue."""
    printer: str = Field(
        default="",
        validate_default=True,
        description="Printer ID; characters outside [A-Za-z0-9_-] are dropped",
    )

    @field_validator("printer", mode="before")
    @classmethod
    def _printer_rules(cls, v: Any) -> str:
        if v is None or str(v).strip() == "":
            raise ValueError("Missing printer ID")
        return validate_printer_id(str(v))


class TextJobRequest(PrinterTarget):
    text: str = ""
    opendrawer: bool = False
    cut: bool = True

    @field_validator("opendrawer", mode="before")
    @classmethod
    def _drawer(cls, v: Any) -> bool:
        return _flag(v)

    @field_validator("cut", mode="before")
    @classmethod
    def _cut(cls, v: Any) -> bool:
        # Only an explicit false-ish value disables the cut
        if v is None or (isinstance(v, str) and v.strip() == ""):
            return True
        return _flag(v)

    @model_validator(mode="after")
    def _something_to_do(self) -> "TextJobRequest":
        if not self.text and not self.opendrawer:
            raise ValueError("Nothing to do: no text and opendrawer is false")
        return self

    @property
    def line_count(self) -> int:
        if not self.text:
            return 0
        return self.text.replace("\r\n", "\n").replace("\r", "\n").count("\n") + 1


class StarTextJobRequest(TextJobRequest):
    pass


class XmlJobRequest(PrinterTarget):
    xml: str = Field(default="", validate_default=True, description="Complete PrintRequestInfo / ePOS-Print document")

    @field_validator("xml", mode="before")
    @classmethod
    def _xml_rules(cls, v: Any) -> str:
        s = "" if v is None else str(v).strip()
        if not s:
            raise ValueError("Missing XML payload")
        if not (s.startswith("<?xml") or s.startswith("<PrintRequestInfo")):
            raise ValueError("Invalid XML: must start with <?xml or <PrintRequestInfo")
        try:
            DET.fromstring(s.encode("utf-8"))
        except (ParseError, DefusedXmlException) as e:
            raise ValueError(f"Invalid XML: {e}") from e
        return s

    @property
    def embedded_job_id(self) -> Optional[str]:
        """`ePOSPrint/Parameter/printjobid` when the document carries one."""
        root = DET.fromstring(self.xml.encode("utf-8"))
        for el in root.iter():
            tag = el.tag.rsplit("}", 1)[-1] if isinstance(el.tag, str) else ""
            if tag == "printjobid" and el.text and el.text.strip():
                return el.text.strip()[:MAX_JOB_ID_LEN]
        return None


class PngJobRequest(PrinterTarget):
    png: Optional[bytes] = Field(default=None, description="Base64 PNG, optionally as a data: URL")
    opendrawer: bool = False

    @field_validator("opendrawer", mode="before")
    @classmethod
    def _drawer(cls, v: Any) -> bool:
        return _flag(v)

    @field_validator("png", mode="before")
    @classmethod
    def _decode_png(cls, v: Any, info: ValidationInfo) -> Optional[bytes]:
        if v is None or v == "" or v == b"":
            return None
        if isinstance(v, bytes):
            v = v.decode("ascii", errors="replace")
        s = _DATA_URL.sub("", str(v).strip())
        try:
            data = base64.b64decode(s, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError("Invalid base64 encoding for PNG") from e
        max_size = _limit(info, "MAX_PNG_SIZE", DEFAULT_MAX_PNG_SIZE)
        if len(data) > max_size:
            raise ValueError(f"PNG image too large (max {max_size} bytes)")
        if data[:8] != PNG_MAGIC:
            raise ValueError("Data is not a valid PNG image")
        return data

    @model_validator(mode="after")
    def _something_to_do(self) -> "PngJobRequest":
        if self.png is None and not self.opendrawer:
            raise ValueError("Nothing to do: no image and opendrawer is false")
        return self


class StarPngJobRequest(PngJobRequest):
    @model_validator(mode="after")
    def _dimensions(self) -> "StarPngJobRequest":
        if self.png is not None:
            # RasterError is a ValueError, so pydantic reports it as a field error
            png_dimensions(self.png)
        return self


class PrinterTestRequest(PrinterTarget):
    text: str = Field(default="", max_length=2000)
    opendrawer: bool = False
    format: str = Field(default="epson", description="'epson' (ePOS-Print XML) or 'star' (CloudPRNT text)")

    @field_validator("opendrawer", mode="before")
    @classmethod
    def _drawer(cls, v: Any) -> bool:
        return _flag(v)

    @field_validator("format", mode="before")
    @classmethod
    def _format_norm(cls, v: Any) -> str:
        s = (str(v) if v is not None else "").strip().lower() or "epson"
        if s not in ("epson", "star"):
            raise ValueError("format must be 'epson' or 'star'")
        return s


class SweepRequest(BaseModel):
    days: Optional[float] = Field(default=None, ge=0, description="Retention in days; defaults to the configured value")


# Responses


class QueuedJobResponse(BaseModel):
    success: bool = True
    message: str = "Print job queued"
    job_id: str
    printer: str
    queue_position: int
    queue_depth: int
    queue_overflow: Optional[bool] = None
    discarded_job: Optional[str] = None

    model_config = {"extra": "allow"}

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class QueueStatusResponse(BaseModel):
    success: bool = True
    printer_id: str
    pending_count: int
    leased_count: int
    max_depth: int
    entries: List[Dict[str, Any]] = Field(default_factory=list)


__all__ = [
    "PngJobRequest",
    "PrinterTarget",
    "QueueStatusResponse",
    "QueuedJobResponse",
    "StarPngJobRequest",
    "StarTextJobRequest",
    "SweepRequest",
    "PrinterTestRequest",
    "TextJobRequest",
    "XmlJobRequest",
]

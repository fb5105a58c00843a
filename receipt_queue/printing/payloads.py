"""
Interpretation of stored payloads for printers that only accept plain text or PNG.

A stored payload is one of:

    JsonEnvelope  {"type": ..., "text": ..., "openDrawer": ...}
    XmlDocument   an ePOS-Print document; <text> nodes and a <pulse> marker
    StarPng       "[STAR:PNG]" header + base64 PNG, or "[STAR:DRAWER]"
    PlainText     anything else

Detection runs in that order. normalize_payload() flattens any of them into
a NormalizedJob the CloudPRNT adapter can serve.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from dataclasses import dataclass
from typing import Optional, Union

from defusedxml import DefusedXmlException
from defusedxml import ElementTree as DET
from xml.etree.ElementTree import ParseError

from receipt_queue.printing.star import STAR_DRAWER_HEADER, STAR_PNG_DRAWER_HEADER, STAR_PNG_HEADER

logger = logging.getLogger(__name__)

TEXT_PLAIN = "text/plain"
IMAGE_PNG = "image/png"

_TRUTHY = ("1", "true", "yes", "on")


@dataclass(frozen=True)
class JsonEnvelope:
    kind: str
    text: str
    open_drawer: bool


@dataclass(frozen=True)
class XmlDocument:
    text: str
    open_drawer: bool


@dataclass(frozen=True)
class StarPng:
    png: Optional[bytes]
    open_drawer: bool


@dataclass(frozen=True)
class PlainText:
    text: str


StoredPayload = Union[JsonEnvelope, XmlDocument, StarPng, PlainText]


@dataclass(frozen=True)
class NormalizedJob:
    text: str
    open_drawer: bool
    image: Optional[bytes] = None

    @property
    def media_type(self) -> str:
        return IMAGE_PNG if self.image is not None else TEXT_PLAIN

    @property
    def body(self) -> bytes:
        if self.image is not None:
            return self.image
        return self.text.encode("utf-8")


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _flag(value: object) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in _TRUTHY
    return bool(value)


def _as_json_envelope(raw: str) -> Optional[JsonEnvelope]:
    if not raw.lstrip().startswith("{"):
        return None
    try:
        data = json.loads(raw)
    except (ValueError, RecursionError):
        return None
    if not isinstance(data, dict) or "type" not in data:
        return None
    return JsonEnvelope(
        kind=str(data.get("type") or ""),
        text=str(data.get("text") or ""),
        open_drawer=_flag(data.get("openDrawer", False)),
    )


def _as_xml_document(raw: str) -> Optional[XmlDocument]:
    if not raw.lstrip().startswith("<"):
        return None
    try:
        # Encoded first so an XML declaration with an encoding is accepted
        root = DET.fromstring(raw.encode("utf-8"))
    except (ParseError, DefusedXmlException, ValueError, RecursionError):
        return None
    parts = []
    open_drawer = False
    for el in root.iter():
        name = _local_name(el.tag) if isinstance(el.tag, str) else ""
        if name == "text" and el.text:
            parts.append(el.text)
        elif name == "pulse":
            open_drawer = True
    return XmlDocument(text="".join(parts), open_drawer=open_drawer)


def _as_star_png(raw: str) -> Optional[StarPng]:
    header, _, rest = raw.partition("\n")
    header = header.strip()
    if header == STAR_DRAWER_HEADER:
        return StarPng(png=None, open_drawer=True)
    if header not in (STAR_PNG_HEADER, STAR_PNG_DRAWER_HEADER):
        return None
    try:
        png = base64.b64decode(rest.strip(), validate=True)
    except (binascii.Error, ValueError):
        logger.warning("Star PNG payload has invalid base64 body")
        return None
    return StarPng(png=png, open_drawer=header == STAR_PNG_DRAWER_HEADER)


def parse_payload(raw: str) -> StoredPayload:
    for detect in (_as_json_envelope, _as_xml_document, _as_star_png):
        parsed = detect(raw)
        if parsed is not None:
            return parsed
    return PlainText(text=raw)


def normalize_payload(raw: str) -> NormalizedJob:
    parsed = parse_payload(raw)
    if isinstance(parsed, (JsonEnvelope, XmlDocument)):
        return NormalizedJob(text=parsed.text, open_drawer=parsed.open_drawer)
    if isinstance(parsed, StarPng):
        return NormalizedJob(text="", open_drawer=parsed.open_drawer, image=parsed.png)
    return NormalizedJob(text=parsed.text, open_drawer=False)


__all__ = [
    "IMAGE_PNG",
    "JsonEnvelope",
    "NormalizedJob",
    "PlainText",
    "StarPng",
    "StoredPayload",
    "TEXT_PLAIN",
    "XmlDocument",
    "normalize_payload",
    "parse_payload",
]

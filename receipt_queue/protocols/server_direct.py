"""
Epson Server Direct Print adapter.

The printer POSTs a form every poll interval with a `ConnectionType`
discriminator:

- GetRequest: "give me a job". The next job is leased and acknowledged as
  completed in the same request, since this protocol has no confirmation
  round-trip. A job lost in transit after this point is not retried.
- SetResponse: "here is what happened". `ResponseFile` carries a
  PrintResponseInfo document (Version 1.00 or 2.00) that is turned into
  ResultRecords.

Neither path ever raises to the caller: the printer polls again in a second,
and a stalled poller is worse than a missed job.
"""

from __future__ import annotations

import logging
from typing import List, Mapping, Optional

from defusedxml import DefusedXmlException
from defusedxml import ElementTree as DET
from xml.etree.ElementTree import Element, ParseError

from receipt_queue.core.errors import ProtocolParseError, QueueError
from receipt_queue.jobs.engine import QueueEngine, sanitize_printer_id
from receipt_queue.jobs.models import ResultRecord
from receipt_queue.jobs.results import ResultLog

logger = logging.getLogger(__name__)

GET_REQUEST = "GetRequest"
SET_RESPONSE = "SetResponse"
CONTENT_TYPE = "text/xml; charset=UTF-8"


def printer_id_from_form(form: Mapping[str, str]) -> str:
    """
    `ID` wins; `Name` is used when ID is missing or sanitises to nothing.
    """
    return sanitize_printer_id(form.get("ID")) or sanitize_printer_id(form.get("Name"))


def handle_get_request(engine: QueueEngine, printer_id: str) -> str:
    """
    Lease the next job, mark it completed, and return its payload. "" means no job.
    """
    if not printer_id:
        return ""
    try:
        entry = engine.lease_next(printer_id)
        if entry is None:
            return ""
        if not engine.acknowledge(entry.id, True, printer_id=printer_id):
            logger.warning("Entry %d was already terminal when delivered to %s", entry.id, printer_id)
            return ""
    except QueueError as e:
        logger.warning("Poll for printer=%s degraded to empty response: %s", printer_id, e)
        return ""
    logger.info("Delivered job=%s entry=%d to printer=%s", entry.job_id, entry.id, printer_id)
    return entry.payload


def _local(tag) -> str:
    return tag.rsplit("}", 1)[-1] if isinstance(tag, str) else ""


def _child(el: Optional[Element], name: str) -> Optional[Element]:
    if el is None:
        return None
    for c in el:
        if _local(c.tag) == name:
            return c
    return None


def _children(el: Element, name: str) -> List[Element]:
    return [c for c in el if _local(c.tag) == name]


def _status_flags(value: Optional[str]) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _record_from_response(
    printer_id: str,
    response: Element,
    version: str,
    raw: str,
    job_id: Optional[str] = None,
) -> ResultRecord:
    return ResultRecord(
        printer_id=printer_id,
        success=(response.get("success") or "").strip().lower() == "true",
        code=response.get("code") or "",
        job_id=job_id or None,
        status_flags=_status_flags(response.get("status")),
        response_version=version,
        raw_response=raw,
    )


def _version_at_least_2(version: str) -> bool:
    try:
        return float(version) >= 2.0
    except ValueError:
        return False


def parse_response_file(printer_id: str, response_xml: str) -> List[ResultRecord]:
    """
    Turn a PrintResponseInfo document into ResultRecords.

        Version 1.00: <PrintResponseInfo><response success code status/>...
        Version 2.00: <PrintResponseInfo><ePOSPrint><Parameter><printjobid/>...
                        <PrintResponse><response success code status/>

    Raises ProtocolParseError on malformed XML.
    """
    try:
        root = DET.fromstring(response_xml.encode("utf-8"))
    except (ParseError, DefusedXmlException, ValueError) as e:
        raise ProtocolParseError(f"Malformed ResponseFile: {e}") from e

    version = (root.get("Version") or "1.00").strip()
    records: List[ResultRecord] = []
    if version == "1.00":
        for response in _children(root, "response"):
            records.append(_record_from_response(printer_id, response, version, response_xml))
    elif _version_at_least_2(version):
        for epos in _children(root, "ePOSPrint"):
            job_el = _child(_child(epos, "Parameter"), "printjobid")
            response = _child(_child(epos, "PrintResponse"), "response")
            if response is None:
                continue
            job_id = (job_el.text or "").strip() if job_el is not None else None
            records.append(_record_from_response(printer_id, response, version, response_xml, job_id))
    else:
        raise ProtocolParseError(f"Unsupported PrintResponseInfo version: {version}")
    return records


def handle_set_response(result_log: ResultLog, printer_id: str, response_xml: str) -> List[ResultRecord]:
    """
    Record the outcomes reported by the printer. Never raises; returns what was stored.
    """
    if not printer_id or not response_xml:
        return []
    try:
        records = parse_response_file(printer_id, response_xml)
    except ProtocolParseError as e:
        logger.warning("Discarding report from printer=%s: %s", printer_id, e)
        return []

    stored: List[ResultRecord] = []
    for rec in records:
        try:
            result_log.record(rec)
        except QueueError as e:
            logger.warning("Could not store result for printer=%s: %s", printer_id, e)
            continue
        stored.append(rec)
    return stored


def handle_form(engine: QueueEngine, result_log: ResultLog, form: Mapping[str, str]) -> str:
    """Dispatch one Server Direct Print POST; returns the response body."""
    connection_type = form.get("ConnectionType") or ""
    printer_id = printer_id_from_form(form)
    if connection_type == GET_REQUEST:
        return handle_get_request(engine, printer_id)
    if connection_type == SET_RESPONSE:
        handle_set_response(result_log, printer_id, form.get("ResponseFile") or "")
        return ""
    logger.debug("Ignoring ConnectionType=%r from printer=%s", connection_type, printer_id)
    return ""


__all__ = [
    "CONTENT_TYPE",
    "GET_REQUEST",
    "SET_RESPONSE",
    "handle_form",
    "handle_get_request",
    "handle_set_response",
    "parse_response_file",
    "printer_id_from_form",
]

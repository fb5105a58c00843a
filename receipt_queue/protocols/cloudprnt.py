"""
Star CloudPRNT adapter.

Three phases, all keyed by the printer's MAC address:

    announce  POST  {"printerMAC", "statusCode", "printingInProgress", ...}
              -> {"jobReady": bool, "mediaTypes": [...], "jobToken": "<entry id>"}
    fetch     GET   ?mac=..&token=..&type=..   -> job body, or 404
    confirm   DELETE ?mac=..&token=..&code=..  -> acknowledge + result record

Announce only peeks; the entry is leased when the printer actually fetches it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import unquote

from receipt_queue.core.errors import QueueError
from receipt_queue.jobs.engine import QueueEngine, sanitize_printer_id
from receipt_queue.jobs.models import QueueEntry, ResultRecord
from receipt_queue.jobs.results import ResultLog
from receipt_queue.printing.payloads import NormalizedJob, normalize_payload

logger = logging.getLogger(__name__)

CUT_HEADER = "X-Star-Cut"
CUT_VALUE = "partial; feed=true"
DRAWER_HEADER = "X-Star-CashDrawer"
DRAWER_VALUE = "end"
RESPONSE_VERSION = "cloudprnt"


@dataclass(frozen=True)
class PollResponse:
    job_ready: bool
    media_types: List[str] = field(default_factory=list)
    job_token: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        if not self.job_ready:
            return {"jobReady": False}
        return {"jobReady": True, "mediaTypes": list(self.media_types), "jobToken": self.job_token}


@dataclass(frozen=True)
class FetchResult:
    entry: QueueEntry
    job: NormalizedJob

    @property
    def body(self) -> bytes:
        return self.job.body

    @property
    def media_type(self) -> str:
        return self.job.media_type

    @property
    def headers(self) -> Dict[str, str]:
        headers = {CUT_HEADER: CUT_VALUE}
        if self.job.open_drawer:
            headers[DRAWER_HEADER] = DRAWER_VALUE
        return headers


def _normalize(entry: QueueEntry) -> NormalizedJob:
    try:
        return normalize_payload(entry.payload)
    except (ValueError, RecursionError) as e:
        logger.warning("Entry=%d payload could not be interpreted, serving as plain text: %s", entry.id, e)
        return NormalizedJob(text=entry.payload, open_drawer=False)


def printer_id_from_request(body: Optional[Mapping[str, Any]], args: Mapping[str, str]) -> str:
    """
    `printerMAC` from the JSON body, else `mac` or `pid` from the query string.
    MAC separators are dropped by sanitising ("00:11:62:aa" -> "001162aa").
    """
    candidates = []
    if body:
        candidates.append(body.get("printerMAC"))
    candidates += [args.get("mac"), args.get("pid")]
    for value in candidates:
        pid = sanitize_printer_id(str(value)) if value else ""
        if pid:
            return pid
    return ""


def _truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes")
    return bool(value)


def announce(engine: QueueEngine, printer_id: str, body: Optional[Mapping[str, Any]] = None) -> PollResponse:
    """
    Tell the printer whether a job is waiting. Never mutates queue state.
    """
    body = body or {}
    status_code = body.get("statusCode")
    if status_code:
        logger.debug("CloudPRNT poll printer=%s status=%s", printer_id, unquote(str(status_code)))
    if not printer_id:
        return PollResponse(job_ready=False)
    if _truthy(body.get("printingInProgress")):
        return PollResponse(job_ready=False)
    try:
        entry = engine.peek_next(printer_id)
    except QueueError as e:
        logger.warning("Announce for printer=%s degraded to not ready: %s", printer_id, e)
        return PollResponse(job_ready=False)
    if entry is None:
        return PollResponse(job_ready=False)
    job = _normalize(entry)
    return PollResponse(job_ready=True, media_types=[job.media_type], job_token=entry.token)


def fetch(
    engine: QueueEngine,
    printer_id: str,
    token: Optional[str] = None,
    media_type: Optional[str] = None,
) -> Optional[FetchResult]:
    """
    Lease the announced entry (or the next one when no token is given) and
    return its printable rendering. None means "not found".
    """
    if not printer_id:
        return None
    try:
        if token:
            entry = engine.lease_specific(printer_id, token)
        else:
            entry = engine.lease_next(printer_id)
    except QueueError as e:
        logger.warning("Fetch for printer=%s token=%s degraded to not found: %s", printer_id, token, e)
        return None
    if entry is None:
        return None
    result = FetchResult(entry=entry, job=_normalize(entry))
    if media_type and media_type != result.media_type:
        logger.info(
            "Printer=%s asked for %s, serving %s for entry=%d", printer_id, media_type, result.media_type, entry.id,
        )
    return result


def is_success_code(code: Optional[str]) -> bool:
    return bool(code) and unquote(code).strip().startswith("2")


def confirm(
    engine: QueueEngine,
    result_log: ResultLog,
    printer_id: str,
    token: Optional[str],
    code: Optional[str],
) -> bool:
    """
    Acknowledge the entry named by `token` and append a result record.

    Returns True when the entry transitioned to a terminal state. A duplicate
    confirm returns False and leaves the entry as it was.
    """
    if not printer_id:
        return False
    code = unquote(code or "").strip()
    success = is_success_code(code)
    acknowledged = False
    job_id: Optional[str] = None
    try:
        entry = engine.get(token) if token else None
        if entry is not None and entry.printer_id == printer_id:
            job_id = entry.job_id
            acknowledged = engine.acknowledge(
                entry.id, success, None if success else f"CloudPRNT code {code}", printer_id=printer_id,
            )
        result_log.record(
            ResultRecord(
                printer_id=printer_id,
                success=success,
                code=code or None,
                job_id=job_id,
                response_version=RESPONSE_VERSION,
                raw_response=code or None,
            ),
        )
    except QueueError as e:
        logger.warning("Confirm for printer=%s token=%s failed: %s", printer_id, token, e)
    return acknowledged


__all__ = [
    "CUT_HEADER",
    "CUT_VALUE",
    "DRAWER_HEADER",
    "DRAWER_VALUE",
    "FetchResult",
    "PollResponse",
    "announce",
    "confirm",
    "fetch",
    "is_success_code",
    "printer_id_from_request",
]

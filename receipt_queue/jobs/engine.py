"""
Per-printer bounded FIFO queue backed by the JobStore.

This module owns every mutation of `print_queue` rows:
- enqueue with overflow eviction of the oldest pending entry
- leasing (oldest-first or by token) under the store's write lock
- read-only peeking for "is work available" questions
- acknowledgement into a terminal state
- admin helpers (delete, clear, status) and the retention sweep

Each public method acquires its own connection from the injected store and
releases it before returning. Nothing is cached in-process; concurrent callers
coordinate only through the store's transactions.

Entry lifecycle:
    pending --lease--> leased --ack(ok)--> completed
                       leased --ack(fail)--> failed
    pending --evict--> (deleted)

A leased entry whose lease is older than `lease_timeout` seconds is treated as
abandoned (the printer crashed mid-delivery) and is handed out again before any
pending entry. Leases younger than that are in flight and skipped.
"""

from __future__ import annotations

import logging
import random
import re
import time
from dataclasses import replace
from typing import Optional, Union

from receipt_queue.core.db import JobStore, iso_ago, iso_now
from receipt_queue.core.errors import JobValidationError
from receipt_queue.jobs.models import (
    ACTIVE_STATUSES,
    COMPLETED,
    FAILED,
    LEASED,
    PENDING,
    TERMINAL_STATUSES,
    EnqueueResult,
    QueueEntry,
    QueueStatus,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_QUEUE_DEPTH = 10
MAX_PRINTER_ID_LEN = 64
MAX_JOB_ID_LEN = 128
MAX_ERROR_LEN = 255

_UNSAFE_ID_CHARS = re.compile(r"[^A-Za-z0-9_-]")

# Abandoned leases first, then pending; FIFO by creation time with id as tie-breaker
_NEXT_SQL = """
    SELECT * FROM print_queue
    WHERE printer_id = ?
      AND (status = 'pending' OR (status = 'leased' AND (leased_at IS NULL OR leased_at <= ?)))
    ORDER BY CASE status WHEN 'leased' THEN 0 ELSE 1 END, created_at ASC, id ASC
    LIMIT 1
"""


def sanitize_printer_id(value: Optional[str]) -> str:
    """
    Collapse a printer id to [A-Za-z0-9_-]. Returns "" when nothing usable remains.
    """
    return _UNSAFE_ID_CHARS.sub("", value or "")


def validate_printer_id(value: Optional[str]) -> str:
    pid = sanitize_printer_id(value)
    if not pid:
        raise JobValidationError("Invalid printer ID")
    if len(pid) > MAX_PRINTER_ID_LEN:
        raise JobValidationError(f"Printer ID too long (max {MAX_PRINTER_ID_LEN})")
    return pid


def generate_job_id(prefix: str = "JOB") -> str:
    return f"{prefix}_{int(time.time())}_{random.randint(1000, 9999)}"


class QueueEngine:
    """
    Bounded per-printer queue over a JobStore.

    `lease_timeout` (seconds) decides when a leased entry is treated as
    abandoned and handed out again ahead of pending work. With the default
    of 30, a lease younger than that is skipped and lease_next moves on to
    the next pending entry. `lease_timeout=0` gives strict leased-first
    precedence: any leased entry is re-served before every pending one, at
    the cost of concurrent pollers for one printer possibly receiving the
    same entry.
    """

    def __init__(
        self,
        store: JobStore,
        max_queue_depth: int = DEFAULT_MAX_QUEUE_DEPTH,
        lease_timeout: float = 30.0,
    ) -> None:
        if max_queue_depth < 1:
            raise ValueError("max_queue_depth must be at least 1")
        self.store = store
        self.max_queue_depth = int(max_queue_depth)
        self.lease_timeout = max(0.0, float(lease_timeout))

    # ----- Submission --------------------------------------------------------

    def enqueue(self, printer_id: str, payload: Union[str, bytes], job_id: Optional[str] = None) -> EnqueueResult:
        """
        Append a pending entry for `printer_id`, evicting the oldest pending
        entries while the queue is at capacity.

        `position` is the 1-based rank of the new row among pending rows by id;
        `discarded_job_id` is the job id of the last evicted entry.

        Raises JobValidationError before touching the store, StoreError if the
        transaction cannot commit (nothing is applied in that case).
        """
        pid = validate_printer_id(printer_id)
        if isinstance(payload, bytes):
            try:
                payload = payload.decode("utf-8")
            except UnicodeDecodeError as e:
                raise JobValidationError("Payload must be UTF-8 text") from e
        if not payload:
            raise JobValidationError("Payload is empty")
        jid = (job_id or "").strip()[:MAX_JOB_ID_LEN] or generate_job_id()

        discarded_job_id: Optional[str] = None
        evicted = 0
        with self.store.transaction() as db:
            pending = self._count(db, pid, PENDING)
            while pending >= self.max_queue_depth:
                oldest = db.execute(
                    """
                    SELECT id, job_id FROM print_queue
                    WHERE printer_id = ? AND status = 'pending'
                    ORDER BY created_at ASC, id ASC
                    LIMIT 1
                    """,
                    (pid,),
                ).fetchone()
                if oldest is None:
                    break
                db.execute("DELETE FROM print_queue WHERE id = ?", (oldest["id"],))
                discarded_job_id = oldest["job_id"]
                evicted += 1
                pending -= 1

            cur = db.execute(
                "INSERT INTO print_queue (printer_id, job_id, content, status, created_at) VALUES (?,?,?,?,?)",
                (pid, jid, payload, PENDING, iso_now()),
            )
            entry_id = int(cur.lastrowid)
            depth = self._count(db, pid, PENDING)
            position = int(
                db.execute(
                    "SELECT COUNT(*) FROM print_queue WHERE printer_id = ? AND status = 'pending' AND id <= ?",
                    (pid, entry_id),
                ).fetchone()[0],
            )

        if evicted:
            logger.warning(
                "Queue overflow for printer=%s: evicted %d job(s), last=%s", pid, evicted, discarded_job_id,
            )
        logger.info("Queued job=%s entry=%d printer=%s position=%d depth=%d", jid, entry_id, pid, position, depth)
        return EnqueueResult(
            success=True,
            entry_id=entry_id,
            job_id=jid,
            printer_id=pid,
            position=position,
            depth=depth,
            discarded=evicted > 0,
            discarded_job_id=discarded_job_id,
        )

    # ----- Delivery ----------------------------------------------------------

    def lease_next(self, printer_id: str) -> Optional[QueueEntry]:
        """
        Lease the next deliverable entry for a printer: an abandoned lease if
        one exists, otherwise the oldest pending entry. Returns None when there
        is no work.
        """
        pid = validate_printer_id(printer_id)
        with self.store.transaction() as db:
            row = db.execute(_NEXT_SQL, (pid, self._lease_cutoff())).fetchone()
            if row is None:
                return None
            entry = QueueEntry.from_row(row)
            return self._mark_leased(db, entry)

    def lease_specific(self, printer_id: str, entry_id: Union[int, str]) -> Optional[QueueEntry]:
        """
        Lease the entry named by a token previously announced to the printer.

        Already-terminal entries are returned unchanged so a duplicate fetch
        still gets its content. Unknown ids, or ids owned by another printer,
        return None.
        """
        pid = validate_printer_id(printer_id)
        eid = _parse_entry_id(entry_id)
        if eid is None:
            return None
        with self.store.transaction() as db:
            row = db.execute(
                "SELECT * FROM print_queue WHERE id = ? AND printer_id = ?",
                (eid, pid),
            ).fetchone()
            if row is None:
                return None
            entry = QueueEntry.from_row(row)
            if entry.status not in ACTIVE_STATUSES:
                logger.info("Duplicate fetch of %s entry=%d printer=%s", entry.status, eid, pid)
                return entry
            return self._mark_leased(db, entry)

    def peek_next(self, printer_id: str) -> Optional[QueueEntry]:
        """
        Return the entry lease_next would hand out, without locking or changing it.
        """
        pid = validate_printer_id(printer_id)
        with self.store.connection() as db:
            row = db.execute(_NEXT_SQL, (pid, self._lease_cutoff())).fetchone()
        return QueueEntry.from_row(row) if row else None

    def acknowledge(
        self,
        entry_id: Union[int, str],
        success: bool,
        error_message: Optional[str] = None,
        *,
        printer_id: Optional[str] = None,
    ) -> bool:
        """
        Move an entry to completed/failed and stamp processed_at.

        Returns False (and changes nothing) if the entry is unknown, belongs to
        another printer, or is already terminal.
        """
        eid = _parse_entry_id(entry_id)
        if eid is None:
            return False
        status = COMPLETED if success else FAILED
        err = None if success else (error_message or None)
        if err:
            err = err[:MAX_ERROR_LEN]

        with self.store.transaction() as db:
            row = db.execute("SELECT printer_id, status FROM print_queue WHERE id = ?", (eid,)).fetchone()
            if row is None:
                return False
            if printer_id is not None and row["printer_id"] != sanitize_printer_id(printer_id):
                return False
            if row["status"] in TERMINAL_STATUSES:
                return False
            db.execute(
                "UPDATE print_queue SET status = ?, processed_at = ?, error_message = ? WHERE id = ?",
                (status, iso_now(), err, eid),
            )
        logger.info("Entry %d -> %s%s", eid, status, f" ({err})" if err else "")
        return True

    # ----- Administration ----------------------------------------------------

    def get(self, entry_id: Union[int, str]) -> Optional[QueueEntry]:
        eid = _parse_entry_id(entry_id)
        if eid is None:
            return None
        with self.store.connection() as db:
            row = db.execute("SELECT * FROM print_queue WHERE id = ?", (eid,)).fetchone()
        return QueueEntry.from_row(row) if row else None

    def delete(self, entry_id: Union[int, str]) -> bool:
        eid = _parse_entry_id(entry_id)
        if eid is None:
            return False
        with self.store.transaction() as db:
            cur = db.execute("DELETE FROM print_queue WHERE id = ?", (eid,))
            deleted = cur.rowcount > 0
        if deleted:
            logger.info("Deleted entry %d", eid)
        return deleted

    def clear_pending(self, printer_id: str) -> int:
        pid = validate_printer_id(printer_id)
        with self.store.transaction() as db:
            cur = db.execute("DELETE FROM print_queue WHERE printer_id = ? AND status = 'pending'", (pid,))
            cleared = int(cur.rowcount)
        logger.info("Cleared %d pending job(s) for printer=%s", cleared, pid)
        return cleared

    def status(self, printer_id: str) -> QueueStatus:
        """
        Snapshot of a printer's active entries (pending and leased) in delivery order.
        """
        pid = validate_printer_id(printer_id)
        with self.store.connection() as db:
            rows = db.execute(
                """
                SELECT * FROM print_queue
                WHERE printer_id = ? AND status IN ('pending', 'leased')
                ORDER BY CASE status WHEN 'leased' THEN 0 ELSE 1 END, created_at ASC, id ASC
                """,
                (pid,),
            ).fetchall()
        entries = [QueueEntry.from_row(r) for r in rows]
        return QueueStatus(
            printer_id=pid,
            pending_count=sum(1 for e in entries if e.status == PENDING),
            leased_count=sum(1 for e in entries if e.status == LEASED),
            max_depth=self.max_queue_depth,
            entries=entries,
        )

    def sweep_expired(self, max_age_days: float) -> int:
        """
        Delete completed/failed entries processed more than `max_age_days` ago.
        Only terminal rows are touched.
        """
        if max_age_days < 0:
            raise ValueError("max_age_days must not be negative")
        cutoff = iso_ago(days=max_age_days)
        with self.store.transaction() as db:
            cur = db.execute(
                """
                DELETE FROM print_queue
                WHERE status IN ('completed', 'failed') AND processed_at IS NOT NULL AND processed_at < ?
                """,
                (cutoff,),
            )
            removed = int(cur.rowcount)
        logger.info("Retention sweep removed %d terminal entries older than %s days", removed, max_age_days)
        return removed

    # ----- Internals ---------------------------------------------------------

    @staticmethod
    def _count(db, printer_id: str, status: str) -> int:
        row = db.execute(
            "SELECT COUNT(*) FROM print_queue WHERE printer_id = ? AND status = ?",
            (printer_id, status),
        ).fetchone()
        return int(row[0])

    def _lease_cutoff(self) -> str:
        return iso_ago(seconds=self.lease_timeout)

    @staticmethod
    def _mark_leased(db, entry: QueueEntry) -> QueueEntry:
        now = iso_now()
        db.execute("UPDATE print_queue SET status = 'leased', leased_at = ? WHERE id = ?", (now, entry.id))
        if entry.status == LEASED:
            logger.info("Re-leasing entry=%d job=%s printer=%s", entry.id, entry.job_id, entry.printer_id)
        else:
            logger.debug("Leased entry=%d job=%s printer=%s", entry.id, entry.job_id, entry.printer_id)
        return replace(entry, status=LEASED, leased_at=now)


def _parse_entry_id(value: Union[int, str, None]) -> Optional[int]:
    if value is None:
        return None
    try:
        eid = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    return eid if eid > 0 else None


__all__ = [
    "DEFAULT_MAX_QUEUE_DEPTH",
    "QueueEngine",
    "generate_job_id",
    "sanitize_printer_id",
    "validate_printer_id",
]

"""
Append-only log of delivery outcomes reported by printers.

The queue engine never reads or writes `print_results`; only this module does.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from receipt_queue.core.db import JobStore, iso_now
from receipt_queue.jobs.models import ResultRecord

logger = logging.getLogger(__name__)

MAX_CODE_LEN = 64
MAX_VERSION_LEN = 16


class ResultLog:
    def __init__(self, store: JobStore) -> None:
        self.store = store

    def record(self, result: ResultRecord) -> int:
        """
        Append one record and return its id. Raises StoreError on failure.
        """
        with self.store.transaction() as db:
            cur = db.execute(
                """
                INSERT INTO print_results
                  (printer_id, job_id, success, code, status_flags, response_version, raw_response, created_at)
                VALUES (?,?,?,?,?,?,?,?)
                """,
                (
                    result.printer_id,
                    result.job_id or None,
                    1 if result.success else 0,
                    (result.code or None) and result.code[:MAX_CODE_LEN],
                    result.status_flags,
                    (result.response_version or None) and result.response_version[:MAX_VERSION_LEN],
                    result.raw_response,
                    result.created_at or iso_now(),
                ),
            )
            rid = int(cur.lastrowid)
        logger.info(
            "Result printer=%s job=%s success=%s code=%s",
            result.printer_id,
            result.job_id or "-",
            result.success,
            result.code,
        )
        return rid

    def recent(self, printer_id: Optional[str] = None, limit: int = 50) -> List[ResultRecord]:
        """
        Most recent records first, optionally for a single printer.
        """
        limit = max(1, min(int(limit), 500))
        with self.store.connection() as db:
            if printer_id:
                rows = db.execute(
                    "SELECT * FROM print_results WHERE printer_id = ? ORDER BY created_at DESC, id DESC LIMIT ?",
                    (printer_id, limit),
                ).fetchall()
            else:
                rows = db.execute(
                    "SELECT * FROM print_results ORDER BY created_at DESC, id DESC LIMIT ?",
                    (limit,),
                ).fetchall()
        return [ResultRecord.from_row(r) for r in rows]

    def for_job(self, job_id: str) -> List[ResultRecord]:
        with self.store.connection() as db:
            rows = db.execute(
                "SELECT * FROM print_results WHERE job_id = ? ORDER BY created_at ASC, id ASC",
                (job_id,),
            ).fetchall()
        return [ResultRecord.from_row(r) for r in rows]


__all__ = ["ResultLog"]

"""
Typed records returned by the queue engine and the result log.
"""

from __future__ import annotations

import sqlite3
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

PENDING = "pending"
LEASED = "leased"
COMPLETED = "completed"
FAILED = "failed"

ACTIVE_STATUSES = frozenset({PENDING, LEASED})
TERMINAL_STATUSES = frozenset({COMPLETED, FAILED})


@dataclass(frozen=True)
class QueueEntry:
    id: int
    printer_id: str
    job_id: str
    payload: str
    status: str
    created_at: str
    leased_at: Optional[str] = None
    processed_at: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def token(self) -> str:
        """Opaque token handed to printers; the entry id as a string."""
        return str(self.id)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "QueueEntry":
        return cls(
            id=int(row["id"]),
            printer_id=row["printer_id"],
            job_id=row["job_id"],
            payload=row["content"],
            status=row["status"],
            created_at=row["created_at"],
            leased_at=row["leased_at"],
            processed_at=row["processed_at"],
            error_message=row["error_message"],
        )

    def to_dict(self, include_payload: bool = False) -> Dict[str, Any]:
        d = asdict(self)
        if not include_payload:
            d.pop("payload")
            d["size"] = len(self.payload)
        return d


@dataclass(frozen=True)
class EnqueueResult:
    success: bool
    entry_id: int
    job_id: str
    printer_id: str
    position: int
    depth: int
    discarded: bool = False
    discarded_job_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class QueueStatus:
    printer_id: str
    pending_count: int
    leased_count: int
    max_depth: int
    entries: List[QueueEntry] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "printer_id": self.printer_id,
            "pending_count": self.pending_count,
            "leased_count": self.leased_count,
            "max_depth": self.max_depth,
            "entries": [e.to_dict() for e in self.entries],
        }


@dataclass(frozen=True)
class ResultRecord:
    printer_id: str
    success: bool
    code: Optional[str] = None
    job_id: Optional[str] = None
    status_flags: Optional[int] = None
    response_version: Optional[str] = None
    raw_response: Optional[str] = None
    created_at: Optional[str] = None
    id: Optional[int] = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "ResultRecord":
        return cls(
            id=int(row["id"]),
            printer_id=row["printer_id"],
            job_id=row["job_id"],
            success=bool(row["success"]),
            code=row["code"],
            status_flags=row["status_flags"],
            response_version=row["response_version"],
            raw_response=row["raw_response"],
            created_at=row["created_at"],
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


__all__ = [
    "ACTIVE_STATUSES",
    "COMPLETED",
    "EnqueueResult",
    "FAILED",
    "LEASED",
    "PENDING",
    "QueueEntry",
    "QueueStatus",
    "ResultRecord",
    "TERMINAL_STATUSES",
]

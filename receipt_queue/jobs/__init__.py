"""
Queue engine and result log.

The engine is the only writer of `print_queue`; the result log is the only
writer of `print_results`.
"""

from .engine import QueueEngine, generate_job_id, sanitize_printer_id, validate_printer_id
from .models import (
    COMPLETED,
    FAILED,
    LEASED,
    PENDING,
    EnqueueResult,
    QueueEntry,
    QueueStatus,
    ResultRecord,
)
from .results import ResultLog

__all__ = [
    "COMPLETED",
    "FAILED",
    "LEASED",
    "PENDING",
    "EnqueueResult",
    "QueueEngine",
    "QueueEntry",
    "QueueStatus",
    "ResultLog",
    "ResultRecord",
    "generate_job_id",
    "sanitize_printer_id",
    "validate_printer_id",
]

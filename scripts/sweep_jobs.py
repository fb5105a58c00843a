#!/usr/bin/env python3
"""
Retention sweep for the Receipt Queue database.

Deletes completed and failed queue entries processed more than N days ago.
Meant to run from cron or a systemd timer; safe to run while the server is up.

Usage:
  python scripts/sweep_jobs.py            # uses RECEIPTQUEUE_RETENTION_DAYS (default 7)
  python scripts/sweep_jobs.py --days 30
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

# Add the project root to Python path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from receipt_queue.core.config import load_settings  # noqa: E402
from receipt_queue.core.db import JobStore  # noqa: E402
from receipt_queue.core.errors import StoreError  # noqa: E402
from receipt_queue.core.logging import configure_logging  # noqa: E402
from receipt_queue.jobs.engine import QueueEngine  # noqa: E402

logger = logging.getLogger("receipt_queue.sweep")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Delete expired terminal queue entries")
    parser.add_argument("--days", type=float, default=None, help="Retention in days (default: configured value)")
    parser.add_argument("--db", dest="db_path", help="Path to the queue database (overrides settings)")
    args = parser.parse_args(argv)

    settings = load_settings({"db_path": args.db_path} if args.db_path else None)
    configure_logging(settings.json_logs, settings.log_level)

    days = args.days if args.days is not None else settings.retention_days
    if days < 0:
        parser.error("--days must not be negative")

    try:
        engine = QueueEngine(JobStore(settings.db_path, timeout=settings.db_timeout), settings.max_queue_depth)
        removed = engine.sweep_expired(days)
    except StoreError as e:
        logger.error("Sweep failed: %s", e)
        return 1
    print(f"Removed {removed} expired job(s) older than {days:g} day(s)")
    return 0


if __name__ == "__main__":
    sys.exit(main())

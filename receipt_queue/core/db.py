from __future__ import annotations

"""
SQLite persistence for Receipt Queue.

Features:
- DB path resolution with env/XDG defaults (see core.config)
- One short-lived connection per operation, always closed on exit
- PRAGMAs for reliability: foreign_keys=ON, WAL, synchronous=NORMAL, busy timeout
- Write transactions opened with BEGIN IMMEDIATE so that read-then-write sequences
  hold the database write lock for their whole duration (SQLite has no row locks)
- Schema bootstrap and simple migrations (schema_version = 2)
"""

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Optional

from receipt_queue.core.errors import StoreError

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 2


def iso_now() -> str:
    """UTC timestamp with fixed microsecond precision, so lexical order matches time order."""
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def iso_ago(*, days: float = 0, seconds: float = 0) -> str:
    return (datetime.now(timezone.utc) - timedelta(days=days, seconds=seconds)).isoformat(timespec="microseconds")


def _ensure_parent_dir(p: str) -> None:
    Path(p).parent.mkdir(parents=True, exist_ok=True)


def _apply_pragmas(db: sqlite3.Connection) -> None:
    db.execute("PRAGMA foreign_keys = ON")
    try:
        db.execute("PRAGMA journal_mode = WAL")
    except sqlite3.Error:
        pass
    db.execute("PRAGMA synchronous = NORMAL")


class JobStore:
    """
    Handle to the durable store. Holds only the location and timeouts; every
    operation acquires its own connection through `connection()` or `transaction()`.
    """

    def __init__(self, path: str, timeout: float = 10.0, *, init_schema: bool = True) -> None:
        if path == ":memory:":
            raise ValueError("JobStore needs a file path; per-operation connections cannot share :memory:")
        self.path = path
        self.timeout = timeout
        _ensure_parent_dir(path)
        if init_schema:
            self.ensure_schema()

    def __repr__(self) -> str:
        return f"JobStore(path={self.path!r})"

    def _connect(self) -> sqlite3.Connection:
        # isolation_level=None: transactions are begun explicitly in transaction()
        conn = sqlite3.connect(self.path, timeout=self.timeout, isolation_level=None, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        _apply_pragmas(conn)
        return conn

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """
        Autocommit connection for non-locking reads. Closed on exit;
        sqlite3 errors surface as StoreError.
        """
        try:
            conn = self._connect()
        except sqlite3.Error as e:
            raise StoreError(f"cannot open database {self.path}: {e}") from e
        try:
            yield conn
        except sqlite3.Error as e:
            raise StoreError(str(e)) from e
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Write transaction holding the RESERVED lock from the first statement.
        Commits on clean exit, rolls back on any exception.
        """
        with self.connection() as conn:
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as e:
                raise StoreError(f"cannot begin transaction: {e}") from e
            try:
                yield conn
            except BaseException:
                _rollback(conn)
                raise
            try:
                conn.execute("COMMIT")
            except sqlite3.Error as e:
                _rollback(conn)
                raise StoreError(f"commit failed: {e}") from e

    # ----- Schema and migrations ---------------------------------------------

    def ensure_schema(self) -> None:
        """
        Create tables if not present and ensure schema_version is initialized.
        """
        with self.transaction() as db:
            db.execute(
                """
                CREATE TABLE IF NOT EXISTS schema_version (
                  version INTEGER NOT NULL
                )
                """,
            )
            db.execute(
                """
                CREATE TABLE IF NOT EXISTS print_queue (
                  id            INTEGER PRIMARY KEY AUTOINCREMENT,
                  printer_id    TEXT NOT NULL,
                  job_id        TEXT NOT NULL,
                  content       TEXT NOT NULL,
                  status        TEXT NOT NULL DEFAULT 'pending'
                                CHECK (status IN ('pending', 'leased', 'completed', 'failed')),
                  created_at    TEXT NOT NULL,
                  leased_at     TEXT,
                  processed_at  TEXT,
                  error_message TEXT
                )
                """,
            )
            db.execute(
                "CREATE INDEX IF NOT EXISTS idx_printer_status_created ON print_queue(printer_id, status, created_at)",
            )
            db.execute("CREATE INDEX IF NOT EXISTS idx_status_processed ON print_queue(status, processed_at)")
            db.execute("CREATE INDEX IF NOT EXISTS idx_job_id ON print_queue(job_id)")

            db.execute(
                """
                CREATE TABLE IF NOT EXISTS api_keys (
                  id            INTEGER PRIMARY KEY AUTOINCREMENT,
                  api_key       TEXT NOT NULL UNIQUE,
                  name          TEXT NOT NULL DEFAULT 'Unnamed Key',
                  is_active     INTEGER NOT NULL DEFAULT 1,
                  created_at    TEXT NOT NULL,
                  last_used_at  TEXT,
                  request_count INTEGER NOT NULL DEFAULT 0
                )
                """,
            )
            db.execute("CREATE INDEX IF NOT EXISTS idx_api_keys_active ON api_keys(is_active)")

            db.execute(
                """
                CREATE TABLE IF NOT EXISTS print_results (
                  id               INTEGER PRIMARY KEY AUTOINCREMENT,
                  printer_id       TEXT NOT NULL,
                  job_id           TEXT,
                  success          INTEGER NOT NULL,
                  code             TEXT,
                  status_flags     INTEGER,
                  response_version TEXT,
                  raw_response     TEXT,
                  created_at       TEXT NOT NULL
                )
                """,
            )
            db.execute("CREATE INDEX IF NOT EXISTS idx_results_printer ON print_results(printer_id, created_at)")
            db.execute("CREATE INDEX IF NOT EXISTS idx_results_job ON print_results(job_id)")

            row = db.execute("SELECT version FROM schema_version ORDER BY version DESC LIMIT 1").fetchone()
            if row is None:
                db.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
            elif int(row["version"]) < SCHEMA_VERSION:
                _migrate(db, int(row["version"]), SCHEMA_VERSION)

    def schema_version(self) -> Optional[int]:
        with self.connection() as db:
            row = db.execute("SELECT version FROM schema_version ORDER BY version DESC LIMIT 1").fetchone()
            return int(row["version"]) if row else None

    def ping(self) -> bool:
        try:
            with self.connection() as db:
                db.execute("SELECT 1").fetchone()
            return True
        except StoreError:
            logger.warning("Database ping failed for %s", self.path, exc_info=True)
            return False


def _rollback(conn: sqlite3.Connection) -> None:
    try:
        conn.execute("ROLLBACK")
    except sqlite3.Error:
        # No transaction active (e.g. already rolled back by SQLite itself)
        pass


def _migrate(db: sqlite3.Connection, current: int, target: int) -> None:
    """
    Incremental migrations from `current` to `target`, run inside the caller's transaction.
    """
    logger.info("Migrating DB schema from v%s to v%s", current, target)
    ver = int(current)
    while ver < target:
        if ver == 1:
            # v1 queues had no lease timestamp and used 'processing' for in-flight rows
            cols = {r["name"] for r in db.execute("PRAGMA table_info(print_queue)").fetchall()}
            if "leased_at" not in cols:
                db.execute("ALTER TABLE print_queue ADD COLUMN leased_at TEXT")
            db.execute("UPDATE print_queue SET status = 'leased' WHERE status = 'processing'")
            ver = 2
            db.execute("INSERT INTO schema_version (version) VALUES (?)", (ver,))
            continue
        ver = target
        db.execute("INSERT INTO schema_version (version) VALUES (?)", (ver,))


# ----- Flask integration -----------------------------------------------------


def init_app(app: Any, store: JobStore) -> None:
    """
    Attach a store to a Flask app. Blueprints fetch it back with get_store().
    """
    app.extensions["receipt_queue.store"] = store


def get_store() -> JobStore:
    from flask import current_app

    return current_app.extensions["receipt_queue.store"]


__all__ = [
    "SCHEMA_VERSION",
    "JobStore",
    "get_store",
    "init_app",
    "iso_ago",
    "iso_now",
]

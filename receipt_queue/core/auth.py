"""
API key validation for the submission endpoints.

Keys live in the `api_keys` table. Validation is a static shared-secret lookup:
the key must be long enough, use the safe alphabet, exist and be active.
Successful lookups bump `last_used_at` and `request_count`.

Printer polling endpoints never consult this module.
"""

from __future__ import annotations

import logging
import re
import secrets
from typing import Any, Dict, List

from receipt_queue.core.db import JobStore, iso_now
from receipt_queue.core.errors import StoreError

logger = logging.getLogger(__name__)

_SAFE_KEY = re.compile(r"^[A-Za-z0-9_-]+$")


class ApiKeyValidator:
    def __init__(self, store: JobStore, min_length: int = 16) -> None:
        self.store = store
        self.min_length = min_length

    def validate(self, key: str) -> bool:
        """
        Return True if `key` is a known, active API key.

        Fails closed: a store error denies access.
        """
        if not key or len(key) < self.min_length:
            return False
        if not _SAFE_KEY.match(key):
            return False

        try:
            with self.store.connection() as db:
                row = db.execute(
                    "SELECT id, is_active FROM api_keys WHERE api_key = ? LIMIT 1",
                    (key,),
                ).fetchone()
        except StoreError:
            logger.exception("API key lookup failed; denying")
            return False

        if row is None or not row["is_active"]:
            return False

        # Usage stats are best effort and never block the request
        try:
            with self.store.connection() as db:
                db.execute(
                    "UPDATE api_keys SET last_used_at = ?, request_count = request_count + 1 WHERE id = ?",
                    (iso_now(), row["id"]),
                )
        except StoreError as e:
            logger.warning("Could not update API key usage: %s", e)
        return True

    def create_key(self, name: str = "Unnamed Key") -> Dict[str, Any]:
        """
        Generate and store a new random key. Returns {"api_key", "name"}.
        Raises StoreError if the insert fails.
        """
        key = secrets.token_hex(16)
        with self.store.transaction() as db:
            db.execute(
                "INSERT INTO api_keys (api_key, name, created_at) VALUES (?, ?, ?)",
                (key, name, iso_now()),
            )
        logger.info("Created API key %r (%s...)", name, key[:8])
        return {"api_key": key, "name": name}

    def deactivate_key(self, key: str) -> bool:
        with self.store.transaction() as db:
            cur = db.execute("UPDATE api_keys SET is_active = 0 WHERE api_key = ?", (key,))
            return cur.rowcount > 0

    def list_keys(self, active_only: bool = True) -> List[Dict[str, Any]]:
        """
        List keys with the secret masked to its first 8 and last 4 characters.
        """
        sql = "SELECT id, api_key, name, is_active, created_at, last_used_at, request_count FROM api_keys"
        if active_only:
            sql += " WHERE is_active = 1"
        sql += " ORDER BY created_at DESC"
        with self.store.connection() as db:
            rows = db.execute(sql).fetchall()
        out: List[Dict[str, Any]] = []
        for r in rows:
            full = r["api_key"]
            out.append(
                {
                    "id": int(r["id"]),
                    "api_key_masked": f"{full[:8]}...{full[-4:]}",
                    "name": r["name"],
                    "is_active": bool(r["is_active"]),
                    "created_at": r["created_at"],
                    "last_used_at": r["last_used_at"],
                    "request_count": int(r["request_count"] or 0),
                },
            )
        return out


__all__ = ["ApiKeyValidator"]

from __future__ import annotations

"""
Health endpoint for Receipt Queue.

`/healthz` reports:
- Overall status ("ok" or "degraded")
- Whether the queue database answers a trivial query
- The schema version and configured queue depth
"""

from typing import Any, Dict

from flask import Blueprint

from .deps import get_settings, get_store

health_bp = Blueprint("health", __name__)


@health_bp.get("/healthz")
def healthz():
    store = get_store()
    status: Dict[str, Any] = {"status": "ok", "max_queue_depth": get_settings().max_queue_depth}

    ok = store.ping()
    status["db_ok"] = ok
    if not ok:
        status["status"] = "degraded"
        status["reason"] = "db_unavailable"
        return status, 200

    status["schema_version"] = store.schema_version()
    return status, 200

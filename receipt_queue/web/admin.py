from __future__ import annotations

"""
Queue administration endpoints (API key required).

- GET    /api/v1/printers/<printer>/queue    : pending + leased entries
- DELETE /api/v1/printers/<printer>/queue    : drop every pending entry
- DELETE /api/v1/queue/<entry_id>            : drop a single entry
- GET    /api/v1/printers/<printer>/results  : recent delivery outcomes (?limit=)
- POST   /api/v1/maintenance/sweep           : delete terminal entries older than `days`
"""

import logging

from flask import Blueprint, jsonify, request
from pydantic import ValidationError

from receipt_queue import csrf
from receipt_queue.core.errors import JobValidationError, StoreError
from receipt_queue.jobs.engine import validate_printer_id
from . import schemas
from .deps import get_engine, get_result_log, get_settings, json_error, request_data, require_api_key

logger = logging.getLogger(__name__)

admin_bp = Blueprint("admin", __name__, url_prefix="/api/v1")


def _store_unavailable(e: StoreError):
    logger.warning("Admin request failed: %s", e)
    return json_error("Queue store unavailable, please retry", 503)


@admin_bp.get("/printers/<printer>/queue")
def queue_status(printer: str):
    denied = require_api_key(request_data())
    if denied is not None:
        return denied
    try:
        status = get_engine().status(printer)
    except JobValidationError as e:
        return json_error(str(e), 400)
    except StoreError as e:
        return _store_unavailable(e)
    resp = schemas.QueueStatusResponse(**status.to_dict())
    return jsonify(resp.model_dump()), 200


@csrf.exempt
@admin_bp.delete("/printers/<printer>/queue")
def clear_queue(printer: str):
    denied = require_api_key(request_data())
    if denied is not None:
        return denied
    try:
        cleared = get_engine().clear_pending(printer)
    except JobValidationError as e:
        return json_error(str(e), 400)
    except StoreError as e:
        return _store_unavailable(e)
    return jsonify({"success": True, "message": f"Cleared {cleared} pending job(s)", "cleared": cleared}), 200


@csrf.exempt
@admin_bp.delete("/queue/<entry_id>")
def delete_entry(entry_id: str):
    denied = require_api_key(request_data())
    if denied is not None:
        return denied
    try:
        deleted = get_engine().delete(entry_id)
    except StoreError as e:
        return _store_unavailable(e)
    if not deleted:
        return json_error("Queue entry not found", 404)
    return jsonify({"success": True, "message": "Queue entry deleted", "entry_id": int(entry_id)}), 200


@admin_bp.get("/printers/<printer>/results")
def printer_results(printer: str):
    denied = require_api_key(request_data())
    if denied is not None:
        return denied
    try:
        pid = validate_printer_id(printer)
    except JobValidationError as e:
        return json_error(str(e), 400)
    limit = request.args.get("limit", default=50, type=int) or 50
    try:
        records = get_result_log().recent(pid, limit=limit)
    except StoreError as e:
        return _store_unavailable(e)
    return jsonify({"success": True, "printer": pid, "results": [r.to_dict() for r in records]}), 200


@csrf.exempt
@admin_bp.post("/maintenance/sweep")
def sweep():
    data = request_data()
    denied = require_api_key(data)
    if denied is not None:
        return denied
    try:
        req = schemas.SweepRequest.model_validate(data)
    except ValidationError:
        return json_error("days must be a non-negative number", 400)
    days = req.days if req.days is not None else get_settings().retention_days
    try:
        removed = get_engine().sweep_expired(days)
    except StoreError as e:
        return _store_unavailable(e)
    return jsonify({"success": True, "message": f"Removed {removed} expired job(s)", "removed": removed, "days": days}), 200


__all__ = ["admin_bp"]

"""
Request-scoped access to the services attached by create_app().
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from flask import current_app, jsonify, request

from receipt_queue.core.auth import ApiKeyValidator
from receipt_queue.core.config import Settings
from receipt_queue.core.db import get_store  # noqa: F401  (re-exported)
from receipt_queue.jobs.engine import QueueEngine
from receipt_queue.jobs.results import ResultLog

ENGINE_KEY = "receipt_queue.engine"
RESULTS_KEY = "receipt_queue.results"
AUTH_KEY = "receipt_queue.auth"
SETTINGS_KEY = "RECEIPTQUEUE_SETTINGS"


def get_engine() -> QueueEngine:
    return current_app.extensions[ENGINE_KEY]


def get_result_log() -> ResultLog:
    return current_app.extensions[RESULTS_KEY]


def get_validator() -> ApiKeyValidator:
    return current_app.extensions[AUTH_KEY]


def get_settings() -> Settings:
    return current_app.config[SETTINGS_KEY]


def request_data() -> Dict[str, Any]:
    """
    Merge query string, form fields and a JSON object body (later wins).
    Empty strings are dropped so schema defaults apply.
    """
    data: Dict[str, Any] = {}
    sources: list[Mapping[str, Any]] = [request.args, request.form]
    body = request.get_json(silent=True) if request.is_json else None
    if isinstance(body, dict):
        sources.append(body)
    for src in sources:
        for k in src.keys():
            v = src.get(k)
            if isinstance(v, str) and v == "":
                continue
            data[k] = v
    return data


def api_key_from_request(data: Optional[Mapping[str, Any]] = None) -> str:
    key = request.headers.get("X-API-Key") or ""
    if not key and data:
        key = str(data.get("apikey") or "")
    return key.strip()


def json_error(msg: str, code: int = 400, **extra: Any):
    body: Dict[str, Any] = {"success": False, "message": msg}
    body.update(extra)
    return jsonify(body), code


def require_api_key(data: Optional[Mapping[str, Any]] = None):
    """
    Returns None when the request carries a valid key, otherwise an error response tuple.
    """
    key = api_key_from_request(data)
    if not key:
        return json_error("Missing API key", 401)
    if not get_validator().validate(key):
        return json_error("Invalid API key", 401)
    return None


__all__ = [
    "api_key_from_request",
    "get_engine",
    "get_result_log",
    "get_settings",
    "get_store",
    "get_validator",
    "json_error",
    "request_data",
    "require_api_key",
]

"""
Logging setup for Receipt Queue.

Every record passing through the root handler is tagged with:
- request_id: per-request id set by the app factory ("-" outside a request)
- path: request path ("-" outside a request)
- channel: "printer" for printer polling traffic, "api" for submission/admin
  calls, "-" otherwise

Plain text is the default format; set RECEIPTQUEUE_JSON_LOGS=true (or
Settings.json_logs) for one JSON object per line. journald is used when the
optional systemd bindings are installed.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Optional, Union

PLAIN_FORMAT = "[%(asctime)s] %(levelname)s %(request_id)s %(channel)s %(name)s: %(message)s"

_PRINTER_BLUEPRINTS = frozenset({"printers"})


def _truthy_env(name: str) -> bool:
    return os.environ.get(name, "false").strip().lower() in ("1", "true", "yes")


class RequestIdFilter(logging.Filter):
    """
    Adds request_id, path and channel to each record. Never drops a record.
    """

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        record.request_id = "-"
        record.path = "-"
        record.channel = "-"

        from flask import g, has_request_context, request  # lazy import

        if has_request_context():
            record.request_id = getattr(g, "request_id", None) or "-"
            record.path = request.path
            if request.blueprint:
                record.channel = "printer" if request.blueprint in _PRINTER_BLUEPRINTS else "api"
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per record; request fields are included when a filter set them."""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        out = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "request_id": getattr(record, "request_id", "-"),
        }
        for attr in ("path", "channel"):
            value = getattr(record, attr, None)
            if value not in (None, "-"):
                out[attr] = value
        if record.exc_info:
            out["exc"] = self.formatException(record.exc_info)
        return json.dumps(out, ensure_ascii=False)


def _make_handler(formatter: logging.Formatter) -> logging.Handler:
    handler: logging.Handler
    try:
        from systemd.journal import JournalHandler  # type: ignore

        handler = JournalHandler(SYSLOG_IDENTIFIER="receipt-queue")
    except (ImportError, OSError):
        handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    handler.addFilter(RequestIdFilter())
    return handler


def _resolve_level(level: Union[int, str, None]) -> int:
    if level is None:
        level = os.environ.get("RECEIPTQUEUE_LOG_LEVEL", "INFO")
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def configure_logging(json_logs: Optional[bool] = None, level: Union[int, str, None] = None) -> logging.Logger:
    """
    Install exactly one handler on the root logger and return the root logger.

    Safe to call repeatedly (each app created by the factory calls it). The
    package logger keeps no handlers of its own and propagates to root, so
    Flask's app.logger and module loggers share one output.
    """
    if json_logs is None:
        json_logs = _truthy_env("RECEIPTQUEUE_JSON_LOGS")
    formatter = JsonFormatter() if json_logs else logging.Formatter(PLAIN_FORMAT)

    root = logging.getLogger()
    root.setLevel(_resolve_level(level))
    for old in root.handlers[:]:
        root.removeHandler(old)
    root.addHandler(_make_handler(formatter))

    pkg_logger = logging.getLogger("receipt_queue")
    pkg_logger.handlers = []
    pkg_logger.propagate = True
    return root


__all__ = ["JsonFormatter", "PLAIN_FORMAT", "RequestIdFilter", "configure_logging"]

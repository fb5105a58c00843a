"""
Receipt Queue package

This module provides the application factory:
- Resolves Settings (defaults, config file, RECEIPTQUEUE_* env, explicit overrides)
- Configures logging via receipt_queue.core.logging
- Creates a Flask app with CSRF protection (JSON and printer endpoints are exempt)
- Builds the JobStore, QueueEngine, ResultLog and ApiKeyValidator and attaches them
  to app.extensions; nothing else is shared between requests
- Registers the blueprints
"""

from __future__ import annotations

import importlib
import logging
import uuid
from collections.abc import Sequence
from typing import Any, Mapping, Optional

from flask import Flask, g
from flask_wtf import CSRFProtect

csrf = CSRFProtect()

logger = logging.getLogger(__name__)

DEFAULT_BLUEPRINTS = [
    ("receipt_queue.web.health", "health_bp"),  # health endpoint
    ("receipt_queue.web.api", "api_bp"),  # submission API (v1)
    ("receipt_queue.web.admin", "admin_bp"),  # queue administration
    ("receipt_queue.web.printers", "printers_bp"),  # printer polling protocols
]


def _register_blueprint(app: Flask, import_path: str, attr: str) -> None:
    mod = importlib.import_module(import_path)
    app.register_blueprint(getattr(mod, attr))
    app.logger.debug("Registered blueprint: %s.%s", import_path, attr)


def _set_request_id() -> None:
    g.request_id = getattr(g, "request_id", None) or uuid.uuid4().hex


def create_app(
    config_overrides: Optional[Mapping[str, Any]] = None,
    settings: Optional[Any] = None,
    blueprints: Optional[Sequence[tuple[str, str]]] = None,
) -> Flask:
    """
    Application factory.

    Parameters:
    - config_overrides: Settings field overrides (e.g. {"db_path": ..., "max_queue_depth": 3});
      any other keys (TESTING, ...) go straight into app.config
    - settings: a ready Settings instance; skips environment resolution entirely
    - blueprints: optional list of (import_path, attribute) tuples to register

    Returns:
    - Flask app instance
    """
    from receipt_queue.core.auth import ApiKeyValidator
    from receipt_queue.core.config import SETTING_NAMES, load_settings
    from receipt_queue.core.db import JobStore, init_app
    from receipt_queue.core.logging import configure_logging
    from receipt_queue.jobs.engine import QueueEngine
    from receipt_queue.jobs.results import ResultLog
    from receipt_queue.web.deps import AUTH_KEY, ENGINE_KEY, RESULTS_KEY, SETTINGS_KEY

    overrides = dict(config_overrides or {})
    if settings is None:
        settings = load_settings(overrides)

    configure_logging(settings.json_logs, settings.log_level)

    app = Flask("receipt_queue")
    app.secret_key = settings.secret_key
    app.config["MAX_CONTENT_LENGTH"] = settings.max_content_length
    app.config[SETTINGS_KEY] = settings

    csrf.init_app(app)

    store = JobStore(settings.db_path, timeout=settings.db_timeout)
    init_app(app, store)
    app.extensions[ENGINE_KEY] = QueueEngine(
        store,
        max_queue_depth=settings.max_queue_depth,
        lease_timeout=settings.lease_timeout,
    )
    app.extensions[RESULTS_KEY] = ResultLog(store)
    app.extensions[AUTH_KEY] = ApiKeyValidator(store, min_length=settings.min_apikey_length)

    # Printers and API clients are not consistent about trailing slashes
    app.url_map.strict_slashes = False

    @app.before_request
    def _before_request():
        _set_request_id()

    for import_path, attr in blueprints or DEFAULT_BLUEPRINTS:
        _register_blueprint(app, import_path, attr)

    extra = {k: v for k, v in overrides.items() if k not in SETTING_NAMES}
    if extra:
        app.config.update(extra)

    app.logger.info("Receipt Queue app created (db=%s, max_queue_depth=%d)", store.path, settings.max_queue_depth)
    return app


__all__ = ["create_app", "csrf"]

"""
Core utilities for Receipt Queue.

This package groups non-HTTP helpers used across the app:
- config: paths, JSON load/save, Settings resolution
- logging: Request ID aware logging filters/formatters and root logger config
- db: the SQLite-backed JobStore and its transaction scoping
- auth: API key validation for submission endpoints
- errors: the exception taxonomy
"""

from .auth import ApiKeyValidator
from .config import (
    Settings,
    default_config_path,
    default_db_path,
    get_config_path,
    load_config,
    load_settings,
    save_config,
)
from .db import JobStore, iso_now
from .errors import JobValidationError, ProtocolParseError, QueueError, RasterError, StoreError
from .logging import JsonFormatter, RequestIdFilter, configure_logging

__all__ = [
    # config
    "Settings",
    "default_config_path",
    "default_db_path",
    "get_config_path",
    "load_config",
    "load_settings",
    "save_config",
    # logging
    "configure_logging",
    "RequestIdFilter",
    "JsonFormatter",
    # db
    "JobStore",
    "iso_now",
    # auth
    "ApiKeyValidator",
    # errors
    "QueueError",
    "JobValidationError",
    "StoreError",
    "ProtocolParseError",
    "RasterError",
]

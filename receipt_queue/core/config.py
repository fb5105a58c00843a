"""
Settings for Receipt Queue.

Values are resolved from (lowest to highest precedence):
1. Settings defaults
2. the optional JSON config file (RECEIPTQUEUE_CONFIG_PATH, else XDG config dir)
3. RECEIPTQUEUE_<FIELD> environment variables
4. overrides passed to create_app()
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

logger = logging.getLogger(__name__)

ENV_PREFIX = "RECEIPTQUEUE_"
APP_DIR = "receiptqueue"


@dataclass(frozen=True)
class Settings:
    db_path: str
    db_timeout: float = 10.0
    max_queue_depth: int = 10
    lease_timeout: float = 30.0
    retention_days: int = 7
    max_image_width: int = 576
    brightness_threshold: int = 127
    max_png_size: int = 5 * 1024 * 1024
    min_apikey_length: int = 16
    max_content_length: int = 8 * 1024 * 1024
    secret_key: str = "receiptqueue_dev_secret_key"
    json_logs: bool = False
    log_level: str = "INFO"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


SETTING_NAMES = frozenset(f.name for f in fields(Settings))

# `from __future__ import annotations` leaves dataclass field types as strings
_CASTS = {"str": str, "int": int, "float": float, "bool": bool}


def _xdg_path(env_var: str, fallback: Path, filename: str) -> str:
    base = os.environ.get(env_var)
    root = Path(base) if base else Path.home() / fallback
    return str(root / APP_DIR / filename)


def default_config_path() -> str:
    """$XDG_CONFIG_HOME/receiptqueue/config.json, else ~/.config/receiptqueue/config.json."""
    return _xdg_path("XDG_CONFIG_HOME", Path(".config"), "config.json")


def default_db_path() -> str:
    """$XDG_DATA_HOME/receiptqueue/queue.db, else ~/.local/share/receiptqueue/queue.db."""
    return _xdg_path("XDG_DATA_HOME", Path(".local") / "share", "queue.db")


def get_config_path() -> str:
    return os.environ.get(f"{ENV_PREFIX}CONFIG_PATH") or default_config_path()


def load_config(path: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """
    Read the JSON config file. Returns None when the file does not exist.

    Raises ValueError if the file is not a JSON object, OSError on read failures.
    Unknown keys are kept but logged.
    """
    cfg_path = Path(path or get_config_path())
    try:
        raw = cfg_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError(f"{cfg_path}: expected a JSON object, got {type(data).__name__}")
    unknown = sorted(set(data) - SETTING_NAMES)
    if unknown:
        logger.warning("Ignoring unknown config keys in %s: %s", cfg_path, ", ".join(unknown))
    return data


def save_config(data: Mapping[str, Any], path: Optional[str] = None) -> str:
    """
    Atomically write setting values to the JSON config file and return its path.

    Only Settings field names are accepted; anything else raises ValueError
    before the file is touched.
    """
    unknown = sorted(set(data) - SETTING_NAMES)
    if unknown:
        raise ValueError(f"Unknown setting(s): {', '.join(unknown)}")

    cfg_path = Path(path or get_config_path())
    cfg_path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=".config-", suffix=".json", dir=str(cfg_path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(dict(data), f, indent=2, sort_keys=True)
            f.write("\n")
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, cfg_path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    return str(cfg_path)


def _cast(value: Any, kind: str) -> Any:
    cast = _CASTS.get(kind, str)
    if cast is bool and not isinstance(value, bool):
        return str(value).strip().lower() in ("1", "true", "yes", "on")
    return cast(value)


def load_settings(overrides: Optional[Mapping[str, Any]] = None, config_path: Optional[str] = None) -> Settings:
    """
    Resolve Settings. A value that cannot be converted to the field's type is
    skipped, leaving the lower-precedence value in place. A broken config file
    is logged and ignored.
    """
    try:
        file_values = load_config(config_path) or {}
    except (OSError, ValueError) as e:
        logger.warning("Config file unusable, using defaults and environment: %s", e)
        file_values = {}

    values: Dict[str, Any] = {"db_path": default_db_path()}
    for f in fields(Settings):
        layers = (file_values.get(f.name), os.environ.get(ENV_PREFIX + f.name.upper()))
        for raw in layers:
            if raw is None or raw == "":
                continue
            try:
                values[f.name] = _cast(raw, str(f.type))
            except (TypeError, ValueError):
                logger.warning("Ignoring unparseable value for %s: %r", f.name, raw)

    for name, value in (overrides or {}).items():
        if name in SETTING_NAMES:
            values[name] = value

    return Settings(**values)


__all__ = [
    "ENV_PREFIX",
    "SETTING_NAMES",
    "Settings",
    "default_config_path",
    "default_db_path",
    "get_config_path",
    "load_config",
    "load_settings",
    "save_config",
]

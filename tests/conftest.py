# Ensure the repository root is on sys.path so `receipt_queue` can be imported in tests.

import io
import os
import sys
from pathlib import Path

import pytest


def _ensure_repo_root_on_syspath() -> None:
    # This file lives at: <repo_root>/tests/conftest.py
    # We want to add <repo_root> to sys.path (if not already present).
    here = Path(__file__).resolve()
    repo_root = here.parent.parent
    repo_str = str(repo_root)
    if repo_str not in sys.path:
        sys.path.insert(0, repo_str)


_ensure_repo_root_on_syspath()

from receipt_queue.core.db import JobStore  # noqa: E402
from receipt_queue.jobs.engine import QueueEngine  # noqa: E402
from receipt_queue.jobs.results import ResultLog  # noqa: E402


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path, monkeypatch):
    # Never pick up a developer's real config or database
    for name in list(os.environ):
        if name.startswith("RECEIPTQUEUE_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("RECEIPTQUEUE_CONFIG_PATH", str(tmp_path / "no-config.json"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "xdg-data"))


@pytest.fixture
def store(tmp_path):
    return JobStore(str(tmp_path / "queue.db"))


@pytest.fixture
def engine(store):
    return QueueEngine(store, max_queue_depth=10)


@pytest.fixture
def result_log(store):
    return ResultLog(store)


@pytest.fixture
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("RECEIPTQUEUE_DB_PATH", str(tmp_path / "app.db"))

    from receipt_queue import create_app

    app = create_app()
    app.config.update(TESTING=True)
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def api_key(app):
    return app.extensions["receipt_queue.auth"].create_key("tests")["api_key"]


def make_png(width: int = 8, height: int = 4, color=(0, 0, 0), mode: str = "RGB") -> bytes:
    from PIL import Image

    img = Image.new(mode, (width, height), color)
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def png_factory():
    return make_png

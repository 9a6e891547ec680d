"""Shared test fixtures and configuration."""

import logging
import os

import pytest

from looker.observability.context import reset_context


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Drop LOOKER_* variables so every test starts from the documented defaults."""
    for key in list(os.environ):
        if key.upper().startswith("LOOKER_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture(autouse=True)
def restore_root_logger():
    """Undo handler changes made by ``configure_logging`` inside a test."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture(autouse=True)
def fresh_run_context():
    reset_context()
    yield
    reset_context()


@pytest.fixture
def write_sources(tmp_path):
    """Write ``{relative_path: text}`` under a fresh codebase root and return the root."""

    def _write(files: dict[str, str | bytes], root=None):
        base = root or tmp_path / "repo"
        for relative, content in files.items():
            path = base / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(content, bytes):
                path.write_bytes(content)
            else:
                path.write_text(content, encoding="utf-8")
        base.mkdir(parents=True, exist_ok=True)
        return base

    return _write

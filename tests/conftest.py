"""Shared pytest fixtures for wasm-file-packager tests."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from wasm_file_packager import LOGGER_NAME


@pytest.fixture
def workspace(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Create an empty directory and make it the working directory."""
    root = tmp_path / "ws"
    root.mkdir()
    monkeypatch.chdir(root)
    return root


@pytest.fixture
def write_file():
    """Return a helper that writes bytes to a path, creating parents."""

    def _write(path: Path, data: bytes = b"") -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return path

    return _write


@pytest.fixture(autouse=True)
def reset_package_logger():
    """Undo CLI logging setup so handlers never outlive a test's captured streams."""
    yield
    logger = logging.getLogger(LOGGER_NAME)
    logger.handlers.clear()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)

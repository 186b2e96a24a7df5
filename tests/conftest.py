"""Shared fixtures for orchestra-sync tests."""

import os
from pathlib import Path
from typing import Optional
from unittest.mock import patch

import pytest

from orchestra_sync.config import Config, reset_config
from orchestra_sync.database import DatabaseService

# Fixed timestamp so equal-metadata checks are deterministic
BASE_MTIME = 1_700_000_000


def write_file(
    root: Path,
    relative_path: str,
    content: bytes = b"data",
    mtime: Optional[int] = None,
) -> Path:
    """Create a file below root with the given content and modification time."""
    path = root / relative_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    stamp = BASE_MTIME if mtime is None else mtime
    os.utime(path, (stamp, stamp))
    return path


def deny_directory(denied: Path):
    """Patch os.scandir so listing one directory fails with PermissionError."""
    real_scandir = os.scandir

    def scandir(path="."):
        if Path(path) == denied:
            raise PermissionError(13, "Permission denied", str(path))
        return real_scandir(path)

    return patch("os.scandir", side_effect=scandir)


@pytest.fixture
def db_service(tmp_path):
    """Create a temporary database for testing."""
    service = DatabaseService(tmp_path / "db" / "test.db")
    yield service
    service.close()


@pytest.fixture
def source_root(tmp_path):
    root = tmp_path / "source"
    root.mkdir()
    return root


@pytest.fixture
def target_root(tmp_path):
    root = tmp_path / "target"
    root.mkdir()
    return root


@pytest.fixture
def config(tmp_path, monkeypatch):
    """Configuration isolated from the user's environment."""
    monkeypatch.setenv("ORCHESTRA_SYNC_DATABASE_PATH", str(tmp_path / "db" / "sync.db"))
    monkeypatch.setenv("ORCHESTRA_SYNC_AUDIO_ONLY", "false")
    monkeypatch.delenv("ORCHESTRA_SYNC_DEFAULT_EXCLUDES", raising=False)
    monkeypatch.delenv("ORCHESTRA_SYNC_LIBRARY_ROOT", raising=False)
    reset_config()
    yield Config()
    reset_config()

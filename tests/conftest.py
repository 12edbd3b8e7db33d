# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Test fixtures for dbsnap tests.

Provides temporary live databases, backup directories and configuration
helpers.
"""

import hashlib
import os
import tempfile
from pathlib import Path
from typing import Generator

import pytest

# Set test environment variables
os.environ["DBSNAP_ADMIN_API_KEY"] = "test-api-key-12345"


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def database_path(temp_dir: Path) -> Path:
    """Live database file with some content."""
    path = temp_dir / "prisma" / "dev.db"
    path.parent.mkdir(parents=True)
    path.write_bytes(b"SQLite format 3\x00" + b"live-data" * 64)
    return path


@pytest.fixture
def backup_dir(temp_dir: Path) -> Path:
    return temp_dir / "backups"


@pytest.fixture
def test_config(database_path: Path, backup_dir: Path):
    """Create a test configuration."""
    from dbsnap.config import SnapshotConfig

    return SnapshotConfig(
        database_path=database_path,
        backup_dir=backup_dir,
        max_backups=10,
        lock_timeout_seconds=2.0,
    )


@pytest.fixture
def test_state(test_config):
    """Create initialized engine state for testing."""
    from dbsnap.core import initialize_engine_state

    return initialize_engine_state(test_config)


def file_hash(path: Path) -> str:
    """SHA-256 of a file's bytes."""
    return hashlib.sha256(path.read_bytes()).hexdigest()


def wal_of(path: Path) -> Path:
    """Write-ahead log companion of a database file."""
    return path.with_name(path.name + "-wal")


def snapshot_files(backup_dir: Path) -> list[str]:
    """All snapshot-related files in the backup directory, sorted."""
    if not backup_dir.exists():
        return []
    return sorted(p.name for p in backup_dir.iterdir() if p.name.startswith("backup_"))

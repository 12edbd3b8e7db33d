# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
dbsnap Configuration - Immutable configuration data structures.

All configuration is frozen (immutable) after creation to prevent
accidental modification while a backup or restore is running.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List


# Standard snapshots kept after each backup
DEFAULT_MAX_BACKUPS = 10

# Streaming copy buffer
DEFAULT_COPY_CHUNK_SIZE = 1024 * 1024


def _validate_cron_time(time_str: str) -> bool:
    """Validate HH:MM time format."""
    if not time_str:
        return False
    try:
        parts = time_str.split(":")
        if len(parts) != 2:
            return False
        hour, minute = int(parts[0]), int(parts[1])
        return 0 <= hour <= 23 and 0 <= minute <= 59
    except (ValueError, AttributeError):
        return False


@dataclass(frozen=True)
class SnapshotConfig:
    """
    Immutable configuration for the snapshot engine.

    The live database is a single fixed file; its write-ahead log is
    expected at the same path with a ``-wal`` suffix.
    """

    # Live database main file
    database_path: Path = field(default_factory=lambda: Path("./prisma/dev.db"))

    # Directory holding snapshots, created on demand
    backup_dir: Path = field(default_factory=lambda: Path("./backups"))

    # Maximum number of standard snapshots kept after a backup
    max_backups: int = DEFAULT_MAX_BACKUPS

    # Count pre-restore safety snapshots against max_backups
    count_pre_restore_in_retention: bool = False

    # Cross-process lock file in backup_dir (in-process lock is always used)
    use_file_lock: bool = True

    # Seconds to wait for another process holding the lock
    lock_timeout_seconds: float = 30.0

    # Bytes read per chunk when copying database files
    copy_chunk_size: int = DEFAULT_COPY_CHUNK_SIZE

    # Daily backup time in HH:MM format (UTC)
    schedule_cron: str | None = None

    def __post_init__(self) -> None:
        """Validate configuration after creation."""
        # Accept plain strings for paths
        if not isinstance(self.database_path, Path):
            object.__setattr__(self, "database_path", Path(self.database_path))
        if not isinstance(self.backup_dir, Path):
            object.__setattr__(self, "backup_dir", Path(self.backup_dir))

        errors: List[str] = []

        if not str(self.database_path) or self.database_path.name in ("", ".", ".."):
            errors.append(f"Invalid database_path: {self.database_path}")

        if self.backup_dir.resolve() == self.database_path.resolve():
            from dbsnap.errors import explain_backup_dir_is_database

            errors.append(explain_backup_dir_is_database(str(self.backup_dir)))

        if self.max_backups < 1:
            errors.append(f"max_backups must be >= 1, got {self.max_backups}")

        if self.lock_timeout_seconds <= 0:
            errors.append(
                f"lock_timeout_seconds must be > 0, got {self.lock_timeout_seconds}"
            )

        if self.copy_chunk_size < 1:
            errors.append(f"copy_chunk_size must be >= 1, got {self.copy_chunk_size}")

        if self.schedule_cron and not _validate_cron_time(self.schedule_cron):
            errors.append(f"Invalid schedule_cron format: {self.schedule_cron}, expected HH:MM")

        # Raise all errors at once
        if errors:
            from dbsnap.exceptions import ConfigurationError

            raise ConfigurationError(
                "Configuration validation failed",
                details={"errors": errors},
            )

    @property
    def wal_path(self) -> Path:
        """Write-ahead log companion of the live database."""
        return self.database_path.with_name(self.database_path.name + "-wal")

    @property
    def lock_path(self) -> Path:
        return self.backup_dir / ".dbsnap.lock"

    def with_updates(self, **kwargs) -> "SnapshotConfig":
        """
        Create a new config with updated values.

        Since the config is frozen, this creates a new instance.
        """
        from dataclasses import asdict

        current = asdict(self)
        current.update(kwargs)
        return SnapshotConfig(**current)

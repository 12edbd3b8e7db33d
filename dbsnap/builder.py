# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
dbsnap Builder - Functional builder pattern for configuration.

This module provides pure functions for building SnapshotConfig objects.
Each function takes a config dict and returns a new dict with the
modification applied (immutable updates).
"""

from pathlib import Path
from typing import Any, Callable, Dict

from dbsnap.config import DEFAULT_COPY_CHUNK_SIZE, DEFAULT_MAX_BACKUPS, SnapshotConfig


# Type alias for builder functions
ConfigDict = Dict[str, Any]
BuilderFunc = Callable[[ConfigDict], ConfigDict]


def create_empty_config() -> ConfigDict:
    """
    Create an initial configuration dictionary.

    Returns:
        Dict with default values for all configuration fields
    """
    return {
        "database_path": None,
        "backup_dir": Path("./backups"),
        "max_backups": DEFAULT_MAX_BACKUPS,
        "count_pre_restore_in_retention": False,
        "use_file_lock": True,
        "lock_timeout_seconds": 30.0,
        "copy_chunk_size": DEFAULT_COPY_CHUNK_SIZE,
        "schedule_cron": None,
    }


def with_database(config: ConfigDict, database_path: Path | str) -> ConfigDict:
    """
    Set the live database file.

    Args:
        config: Current configuration dictionary
        database_path: Path to the main database file (the WAL is
            expected next to it with a ``-wal`` suffix)

    Returns:
        New configuration dictionary with the database path set
    """
    return {**config, "database_path": Path(database_path)}


def with_backup_dir(config: ConfigDict, backup_dir: Path | str) -> ConfigDict:
    """
    Set the directory snapshots are written to.

    Args:
        config: Current configuration dictionary
        backup_dir: Snapshot directory, created on first backup

    Returns:
        New configuration dictionary with the backup directory set
    """
    return {**config, "backup_dir": Path(backup_dir)}


def keep_last(config: ConfigDict, count: int) -> ConfigDict:
    """
    Set how many standard snapshots survive retention.

    Args:
        config: Current configuration dictionary
        count: Maximum number of standard snapshots

    Returns:
        New configuration dictionary with the retention cap set
    """
    if count < 1:
        raise ValueError(f"max_backups must be >= 1, got {count}")
    return {**config, "max_backups": count}


def count_pre_restore_snapshots(config: ConfigDict) -> ConfigDict:
    """
    Make pre-restore safety snapshots count against the retention cap.

    By default they are exempt, so a restore never evicts a deliberate
    backup.
    """
    return {**config, "count_pre_restore_in_retention": True}


def without_file_lock(config: ConfigDict) -> ConfigDict:
    """
    Disable the cross-process lock file.

    Only safe when a single process ever touches the backup directory.
    The in-process lock is still used.
    """
    return {**config, "use_file_lock": False}


def run_daily_at(config: ConfigDict, time: str) -> ConfigDict:
    """
    Set the daily backup time (UTC).

    Args:
        config: Current configuration dictionary
        time: Time in HH:MM format (e.g., '02:30' for 2:30 AM UTC)

    Returns:
        New configuration dictionary with schedule set
    """
    parts = time.split(":")
    if len(parts) != 2:
        raise ValueError(f"Invalid time format: {time}, expected HH:MM")

    try:
        hour, minute = int(parts[0]), int(parts[1])
    except ValueError:
        raise ValueError(f"Invalid time format: {time}, expected HH:MM")
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValueError(f"Invalid time: {time}")

    return {**config, "schedule_cron": time}


def build_config(config_dict: ConfigDict) -> SnapshotConfig:
    """
    Validate and build an immutable SnapshotConfig from a configuration dictionary.

    Args:
        config_dict: Configuration dictionary built using builder functions

    Returns:
        Validated, immutable SnapshotConfig instance

    Raises:
        ConfigurationError: If validation fails
    """
    if not config_dict.get("database_path"):
        from dbsnap.exceptions import ConfigurationError
        from dbsnap.errors import explain_missing_database_env

        raise ConfigurationError(explain_missing_database_env())

    return SnapshotConfig(**config_dict)


def pipe(*funcs: BuilderFunc) -> BuilderFunc:
    """
    Compose multiple builder functions into a single function.

    This allows a more readable pipeline style:

        config = pipe(
            lambda c: with_database(c, "prisma/dev.db"),
            lambda c: keep_last(c, 5),
            without_file_lock,
        )(create_empty_config())
    """

    def composed(config: ConfigDict) -> ConfigDict:
        result = config
        for func in funcs:
            result = func(result)
        return result

    return composed


def build_from_steps(*steps: BuilderFunc) -> SnapshotConfig:
    """
    Build config by applying a sequence of builder functions.

    This is a convenience function that combines pipe() and build_config().
    """
    return build_config(pipe(*steps)(create_empty_config()))


def create_config(
    database_path: str | Path,
    *,
    backup_dir: str | Path | None = None,
    max_backups: int = DEFAULT_MAX_BACKUPS,
    count_pre_restore_in_retention: bool = False,
    use_file_lock: bool = True,
    schedule_cron: str | None = None,
    **kwargs: Any,
) -> SnapshotConfig:
    """
    Create a snapshot configuration from simple parameters.

    This is the recommended user-facing API for creating configurations.

    Args:
        database_path: Live database main file (required)
        backup_dir: Snapshot directory (default: "./backups")
        max_backups: Standard snapshots kept after each backup (default: 10)
        count_pre_restore_in_retention: Let safety snapshots use retention slots
        use_file_lock: Guard the backup directory with a lock file
        schedule_cron: Daily backup time in HH:MM format (optional)
        **kwargs: Additional configuration options

    Returns:
        Validated, immutable SnapshotConfig

    Example:
        config = create_config(
            "prisma/dev.db",
            backup_dir="backups",
            max_backups=10,
        )
    """
    config = {
        **create_empty_config(),
        "database_path": Path(database_path),
        "max_backups": max_backups,
        "count_pre_restore_in_retention": count_pre_restore_in_retention,
        "use_file_lock": use_file_lock,
        "schedule_cron": schedule_cron,
        **kwargs,
    }
    if backup_dir is not None:
        config["backup_dir"] = Path(backup_dir)

    return build_config(config)

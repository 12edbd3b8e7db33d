# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Environment-based configuration helpers.

A small wrapper around create_config() that reads a fixed set of
environment variables, so deployments can configure the engine without
code changes.
"""

from __future__ import annotations

import os
from pathlib import Path

from dbsnap.builder import create_config
from dbsnap.config import DEFAULT_MAX_BACKUPS, SnapshotConfig
from dbsnap.errors import (
    explain_invalid_file_lock_env,
    explain_invalid_max_backups_env,
    explain_missing_database_env,
)
from dbsnap.exceptions import ConfigurationError

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off")


def _parse_max_backups(value: str | None) -> int:
    if not value:
        return DEFAULT_MAX_BACKUPS
    try:
        count = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(explain_invalid_max_backups_env(value)) from exc
    if count < 1:
        raise ConfigurationError(explain_invalid_max_backups_env(value))
    return count


def _parse_flag(value: str | None, default: bool = True) -> bool:
    if value is None or value == "":
        return default
    lower = value.strip().lower()
    if lower in _TRUE_VALUES:
        return True
    if lower in _FALSE_VALUES:
        return False
    raise ConfigurationError(explain_invalid_file_lock_env(value))


def create_config_from_env() -> SnapshotConfig:
    """
    Create a SnapshotConfig from environment variables.

    Required:
        - DBSNAP_DATABASE_PATH: Live database main file

    Optional environment variables:
        - DBSNAP_BACKUP_DIR: Snapshot directory (default: ./backups)
        - DBSNAP_MAX_BACKUPS: Positive integer (default: 10)
        - DBSNAP_SCHEDULE_CRON: Daily backup time in HH:MM (UTC)
        - DBSNAP_FILE_LOCK: '0'/'false'/'no' disables the lock file
    """

    database_path = os.getenv("DBSNAP_DATABASE_PATH")
    if not database_path:
        raise ConfigurationError(explain_missing_database_env())

    backup_dir_env = os.getenv("DBSNAP_BACKUP_DIR")
    backup_dir = Path(backup_dir_env) if backup_dir_env else Path("./backups")

    return create_config(
        database_path,
        backup_dir=backup_dir,
        max_backups=_parse_max_backups(os.getenv("DBSNAP_MAX_BACKUPS")),
        use_file_lock=_parse_flag(os.getenv("DBSNAP_FILE_LOCK")),
        schedule_cron=os.getenv("DBSNAP_SCHEDULE_CRON") or None,
    )

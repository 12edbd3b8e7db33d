# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Human-friendly error message helpers for dbsnap.

These helpers centralize wording for common configuration errors so that
all modules present consistent, actionable messages.
"""


def explain_missing_database_env() -> str:
    """
    Explain that the database path environment variable is missing.
    """

    return (
        "Live database path is not configured. "
        "Set the DBSNAP_DATABASE_PATH environment variable or pass "
        "database_path=... to create_config()."
    )


def explain_invalid_max_backups_env(value: str | None) -> str:
    """
    Explain that DBSNAP_MAX_BACKUPS is invalid.
    """

    return (
        f"Invalid DBSNAP_MAX_BACKUPS value: {value!r}. "
        "It must be a positive integer number of snapshots to keep."
    )


def explain_invalid_file_lock_env(value: str | None) -> str:
    """
    Explain that DBSNAP_FILE_LOCK is invalid.
    """

    return (
        f"Invalid DBSNAP_FILE_LOCK value: {value!r}. "
        "Expected one of: '1', 'true', 'yes', '0', 'false', 'no'."
    )


def explain_backup_dir_is_database(path: str) -> str:
    """
    Explain that the backup directory collides with the live database.
    """

    return (
        f"backup_dir {path!r} points at the live database file. "
        "Snapshots must be stored in a separate directory."
    )

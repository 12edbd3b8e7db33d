# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Backup Engine - Snapshot lifecycle and restore operations.
"""

from dbsnap.backup.manager import (
    create_backup,
    delete_backup,
    enforce_retention,
    format_size,
    get_backup_stats,
    resolve_snapshot_path,
    write_snapshot,
)

from dbsnap.backup.restore import (
    restore_backup,
    RestoreResult,
)

__all__ = [
    # Manager
    "create_backup",
    "delete_backup",
    "enforce_retention",
    "format_size",
    "get_backup_stats",
    "resolve_snapshot_path",
    "write_snapshot",
    # Restore
    "restore_backup",
    "RestoreResult",
]

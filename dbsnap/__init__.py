# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
dbsnap - Snapshot, retention and safe restore for file-based databases.

Copies a live database (main file plus write-ahead log) into a managed
backup directory, keeps a bounded number of snapshots, and restores with
an automatic pre-restore snapshot so a restore can itself be undone.
"""

__version__ = "0.1.0"

# Configuration creation (user-facing API)
from dbsnap.builder import create_config
from dbsnap.config import SnapshotConfig

# Core functions
from dbsnap.core import (
    initialize_engine_state,
    run_backup,
    list_backups,
    run_restore,
    remove_backup,
    get_metrics,
    shutdown_engine_state,
)

from dbsnap.backup import format_size, RestoreResult
from dbsnap.env import create_config_from_env
from dbsnap.store import Snapshot

__all__ = [
    # Version
    "__version__",
    # Configuration
    "create_config",
    "create_config_from_env",
    "SnapshotConfig",
    # Core orchestration functions
    "initialize_engine_state",
    "run_backup",
    "list_backups",
    "run_restore",
    "remove_backup",
    "get_metrics",
    "shutdown_engine_state",
    # Types and helpers
    "Snapshot",
    "RestoreResult",
    "format_size",
]

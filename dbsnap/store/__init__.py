# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Snapshot Store - Naming, directory lifecycle and cataloging.
"""

from dbsnap.store.catalog import (
    Snapshot,
    SnapshotMetadata,
    ensure_directory,
    find_snapshot,
    list_snapshots,
    read_metadata,
    read_snapshot,
    write_metadata,
)

from dbsnap.store.files import (
    copy_file,
    remove_if_exists,
)

from dbsnap.store.naming import (
    companion_paths,
    generate_name,
    is_pre_restore_name,
    is_snapshot_name,
    parse_name,
)

__all__ = [
    # Catalog
    "Snapshot",
    "SnapshotMetadata",
    "ensure_directory",
    "find_snapshot",
    "list_snapshots",
    "read_metadata",
    "read_snapshot",
    "write_metadata",
    # Files
    "copy_file",
    "remove_if_exists",
    # Naming
    "companion_paths",
    "generate_name",
    "is_pre_restore_name",
    "is_snapshot_name",
    "parse_name",
]

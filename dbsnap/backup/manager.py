# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
dbsnap Backup Manager - Snapshot creation, deletion and retention.

This module copies the live database (and its write-ahead log, when one
exists) into the backup directory, deletes snapshots as a unit, and keeps
the number of standard snapshots under the configured cap.

Nothing here takes the operation lock; dbsnap.core wraps these functions.
"""

from datetime import datetime, UTC
from pathlib import Path
from typing import List, Tuple

import aiofiles.os
import structlog

from dbsnap.config import SnapshotConfig
from dbsnap.exceptions import (
    BackupError,
    DatabaseNotFoundError,
    DeleteError,
    SnapshotNotFoundError,
)
from dbsnap.store.catalog import (
    Snapshot,
    ensure_directory,
    list_snapshots,
    read_snapshot,
    write_metadata,
)
from dbsnap.store.files import copy_file, remove_if_exists
from dbsnap.store.naming import (
    generate_name,
    is_snapshot_name,
    metadata_path_for,
    wal_path_for,
)

logger = structlog.get_logger()


async def resolve_snapshot_path(config: SnapshotConfig, filename: str) -> Path:
    """
    Map a snapshot filename to its main file inside the backup directory.

    Only bare snapshot names of regular files are accepted, so a caller
    cannot reach files outside the backup directory by name or by symlink.
    Performs no writes.

    Raises:
        SnapshotNotFoundError: If the name is not a snapshot name or the
            main file does not exist
    """
    if not filename or not is_snapshot_name(filename) or Path(filename).name != filename:
        logger.warning("snapshot_name_rejected", filename=filename)
        raise SnapshotNotFoundError(
            "Backup file not found",
            details={"filename": filename},
        )

    main_path = config.backup_dir / filename
    if await aiofiles.os.path.islink(main_path):
        logger.warning("snapshot_symlink_rejected", filename=filename)
        raise SnapshotNotFoundError(
            "Backup file not found",
            details={"filename": filename},
        )

    if not await aiofiles.os.path.isfile(main_path):
        raise SnapshotNotFoundError(
            "Backup file not found",
            details={"filename": filename},
        )
    return main_path


async def write_snapshot(
    config: SnapshotConfig,
    filename: str,
    description: str | None = None,
) -> Snapshot:
    """
    Copy the live database into a new snapshot.

    The snapshot is all-or-nothing: if any step fails, companions already
    written for it are removed before the error propagates.

    Args:
        config: Engine configuration
        filename: Name generated for the new snapshot
        description: Optional free text stored in the sidecar

    Returns:
        Metadata of the written snapshot

    Raises:
        OSError: If copying or writing fails
    """
    main_path = config.backup_dir / filename
    wal_target = wal_path_for(main_path)
    written: List[Path] = []

    try:
        await copy_file(config.database_path, main_path, config.copy_chunk_size)
        written.append(main_path)

        if await aiofiles.os.path.exists(config.wal_path):
            try:
                await copy_file(config.wal_path, wal_target, config.copy_chunk_size)
                written.append(wal_target)
            except FileNotFoundError:
                # Checkpointed away between the check and the copy
                logger.info("wal_vanished_during_backup", wal_path=str(config.wal_path))

        if description:
            written.append(await write_metadata(main_path, description))

        snapshot = await read_snapshot(main_path)

    except OSError:
        for path in written:
            await remove_if_exists(path, quiet=True)
        raise

    return snapshot


async def create_backup(
    config: SnapshotConfig,
    description: str | None = None,
) -> Snapshot:
    """
    Snapshot the live database and enforce retention.

    Steps, in order: check the source exists, ensure the directory,
    generate a name, copy the main file, copy the WAL if present, write
    the description sidecar if given, then prune old snapshots.

    Args:
        config: Engine configuration
        description: Optional free text kept with the snapshot

    Returns:
        Metadata of the new snapshot

    Raises:
        DatabaseNotFoundError: If the live database is missing (no writes
            are performed)
        BackupError: If any copy or write fails
    """
    if not await aiofiles.os.path.isfile(config.database_path):
        raise DatabaseNotFoundError(
            "Database file not found",
            details={"database_path": str(config.database_path)},
        )

    try:
        await ensure_directory(config.backup_dir)
        filename = generate_name(config.backup_dir)
        snapshot = await write_snapshot(config, filename, description)
    except OSError as e:
        raise BackupError(
            f"Failed to create backup: {e}",
            details={"database_path": str(config.database_path)},
        ) from e

    logger.info(
        "backup_created",
        filename=snapshot.filename,
        size=snapshot.size,
        has_wal=snapshot.has_wal,
        described=snapshot.description is not None,
    )

    await enforce_retention(config)

    return snapshot


async def delete_backup(config: SnapshotConfig, filename: str) -> None:
    """
    Delete a snapshot and its companions.

    The main file goes first; the WAL and sidecar are removed best-effort
    afterwards.

    Raises:
        SnapshotNotFoundError: If the snapshot does not exist
        DeleteError: If the main file cannot be removed
    """
    main_path = await resolve_snapshot_path(config, filename)

    try:
        await aiofiles.os.remove(main_path)
    except FileNotFoundError:
        raise SnapshotNotFoundError(
            "Backup file not found",
            details={"filename": filename},
        )
    except OSError as e:
        raise DeleteError(
            f"Failed to delete backup: {e}",
            details={"filename": filename},
        ) from e

    for companion in (wal_path_for(main_path), metadata_path_for(main_path)):
        await remove_if_exists(companion, quiet=True)

    logger.info("backup_deleted", filename=filename)


async def enforce_retention(config: SnapshotConfig) -> Tuple[int, int]:
    """
    Delete the oldest standard snapshots beyond the retention cap.

    Pre-restore safety snapshots are exempt unless
    count_pre_restore_in_retention is set. Every deletion is attempted
    independently; failures are logged and never raised.

    Args:
        config: Engine configuration

    Returns:
        Tuple of (snapshots_deleted, deletions_failed)
    """
    try:
        snapshots = await list_snapshots(config.backup_dir)
    except Exception as e:
        logger.warning("retention_listing_failed", error=str(e))
        return (0, 0)

    if config.count_pre_restore_in_retention:
        counted = snapshots
    else:
        counted = [s for s in snapshots if not s.is_pre_restore]

    excess = counted[config.max_backups:]
    if not excess:
        return (0, 0)

    deleted = 0
    failed = 0

    # Catalog is newest-first; evict oldest-first
    for snapshot in reversed(excess):
        try:
            await delete_backup(config, snapshot.filename)
            deleted += 1
        except Exception as e:
            failed += 1
            logger.warning(
                "retention_delete_failed",
                filename=snapshot.filename,
                error=str(e),
            )

    logger.info(
        "retention_enforced",
        max_backups=config.max_backups,
        deleted=deleted,
        failed=failed,
    )

    return (deleted, failed)


async def get_backup_stats(
    config: SnapshotConfig,
    snapshots: List[Snapshot] | None = None,
) -> dict:
    """
    Get statistics about snapshot storage.

    Args:
        config: Engine configuration
        snapshots: Catalog already read by the caller (read here if None)

    Returns:
        Dict with snapshot counts, bytes on disk and newest snapshot time
    """
    if snapshots is None:
        snapshots = await list_snapshots(config.backup_dir)

    stats = {
        "total_count": len(snapshots),
        "standard_count": 0,
        "pre_restore_count": 0,
        "total_bytes": 0,
        "latest_backup_at": None,
        "max_backups": config.max_backups,
    }

    for snapshot in snapshots:
        if snapshot.is_pre_restore:
            stats["pre_restore_count"] += 1
        else:
            stats["standard_count"] += 1

        stats["total_bytes"] += snapshot.size
        for companion in (wal_path_for(snapshot.path), metadata_path_for(snapshot.path)):
            try:
                stats["total_bytes"] += (await aiofiles.os.stat(companion)).st_size
            except FileNotFoundError:
                pass

    if snapshots:
        stats["latest_backup_at"] = snapshots[0].created_at.isoformat()

    stats["total_size"] = format_size(stats["total_bytes"])
    stats["generated_at"] = datetime.now(UTC).isoformat()

    return stats


def format_size(num_bytes: int) -> str:
    """
    Format a byte count for display using binary units.

    >>> format_size(500)
    '500 B'
    >>> format_size(1536)
    '1.5 KB'
    """
    if num_bytes < 1024:
        return f"{num_bytes} B"
    if num_bytes < 1024 * 1024:
        return f"{num_bytes / 1024:.1f} KB"
    if num_bytes < 1024 * 1024 * 1024:
        return f"{num_bytes / (1024 * 1024):.1f} MB"
    return f"{num_bytes / (1024 * 1024 * 1024):.1f} GB"

# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
dbsnap Restore Manager - Replace the live database with a snapshot.

A restore is safety-first:

1. The current live database (and its WAL) is copied into a
   ``-pre-restore`` snapshot before anything live is touched.
2. The chosen snapshot is staged into temporary files next to the live
   database, so the final step is a rename on the same filesystem.
3. The staged main file is renamed over the live database, then the
   write-ahead log is reconciled: the snapshot's WAL replaces the live
   one, or a live WAL is deleted when the snapshot had none. A stale WAL
   must never be replayed against a main file it does not belong to.
4. If step 3 fails after the main file was replaced, the live database is
   rolled back from the pre-restore snapshot.
"""

from dataclasses import dataclass
from datetime import datetime, UTC
from pathlib import Path
from typing import Tuple

import aiofiles.os
import structlog

from dbsnap.backup.manager import resolve_snapshot_path, write_snapshot
from dbsnap.config import SnapshotConfig
from dbsnap.exceptions import RestoreError
from dbsnap.store.catalog import ensure_directory
from dbsnap.store.files import remove_if_exists, stream_copy
from dbsnap.store.naming import generate_name, wal_path_for

logger = structlog.get_logger()

STAGING_SUFFIX = ".restore"


@dataclass
class RestoreResult:
    """Result of a restore operation."""

    filename: str
    pre_restore_filename: str | None
    wal_restored: bool
    wal_removed: bool
    duration_seconds: float = 0.0


async def restore_backup(config: SnapshotConfig, filename: str) -> RestoreResult:
    """
    Restore a snapshot over the live database.

    Args:
        config: Engine configuration
        filename: Snapshot to restore

    Returns:
        RestoreResult describing what changed

    Raises:
        SnapshotNotFoundError: If the snapshot does not exist (nothing is
            written)
        RestoreError: If the safety snapshot, staging or commit fails. A
            commit failure carries ``rolled_back`` in its details.
    """
    start_time = datetime.now(UTC)

    # Validated before any write
    source_path = await resolve_snapshot_path(config, filename)

    logger.info("restore_started", filename=filename)

    # Step 1: Safety snapshot of the current state
    pre_restore_filename = await _create_safety_snapshot(config, filename)

    # Step 2: Stage next to the live database
    try:
        staged_main, staged_wal = await _stage_files(config, source_path)
    except OSError as e:
        raise RestoreError(
            f"Failed to restore backup: {e}",
            details={
                "filename": filename,
                "pre_restore_filename": pre_restore_filename,
                "rolled_back": False,
            },
        ) from e

    # Step 3: Become live
    main_replaced = False
    try:
        await aiofiles.os.replace(staged_main, config.database_path)
        main_replaced = True
        wal_restored, wal_removed = await _reconcile_wal(config, staged_wal)
    except OSError as e:
        await remove_if_exists(staged_main, quiet=True)
        if staged_wal is not None:
            await remove_if_exists(staged_wal, quiet=True)

        rolled_back = False
        if main_replaced:
            rolled_back = await _roll_back(config, pre_restore_filename)

        logger.error(
            "restore_failed",
            filename=filename,
            pre_restore_filename=pre_restore_filename,
            rolled_back=rolled_back,
            error=str(e),
        )
        raise RestoreError(
            f"Failed to restore backup: {e}",
            details={
                "filename": filename,
                "pre_restore_filename": pre_restore_filename,
                "rolled_back": rolled_back,
            },
        ) from e

    duration = (datetime.now(UTC) - start_time).total_seconds()

    logger.info(
        "restore_completed",
        filename=filename,
        pre_restore_filename=pre_restore_filename,
        wal_restored=wal_restored,
        wal_removed=wal_removed,
        duration=duration,
    )

    return RestoreResult(
        filename=filename,
        pre_restore_filename=pre_restore_filename,
        wal_restored=wal_restored,
        wal_removed=wal_removed,
        duration_seconds=duration,
    )


async def _create_safety_snapshot(config: SnapshotConfig, filename: str) -> str | None:
    """Copy the live database into a pre-restore snapshot."""
    if not await aiofiles.os.path.isfile(config.database_path):
        logger.warning(
            "pre_restore_snapshot_skipped",
            reason="live_database_missing",
            database_path=str(config.database_path),
        )
        return None

    try:
        await ensure_directory(config.backup_dir)
        name = generate_name(config.backup_dir, pre_restore=True)
        snapshot = await write_snapshot(
            config,
            name,
            description=f"Automatic snapshot before restoring {filename}",
        )
    except OSError as e:
        raise RestoreError(
            f"Failed to create pre-restore snapshot: {e}",
            details={"filename": filename},
        ) from e

    logger.info("pre_restore_snapshot_created", filename=snapshot.filename, size=snapshot.size)
    return snapshot.filename


def _staging_path(live_path: Path) -> Path:
    return live_path.with_name(live_path.name + STAGING_SUFFIX)


async def _stage_files(
    config: SnapshotConfig,
    source_path: Path,
) -> Tuple[Path, Path | None]:
    """
    Copy a snapshot's main file and WAL next to the live database.

    Returns:
        Tuple of (staged_main, staged_wal); staged_wal is None when the
        snapshot has no WAL companion
    """
    staged_main = _staging_path(config.database_path)
    staged_wal: Path | None = _staging_path(config.wal_path)
    source_wal = wal_path_for(source_path)

    try:
        await aiofiles.os.makedirs(config.database_path.parent, exist_ok=True)
        await stream_copy(source_path, staged_main, config.copy_chunk_size)

        if await aiofiles.os.path.exists(source_wal):
            await stream_copy(source_wal, staged_wal, config.copy_chunk_size)
        else:
            staged_wal = None

    except OSError:
        await remove_if_exists(staged_main, quiet=True)
        await remove_if_exists(_staging_path(config.wal_path), quiet=True)
        raise

    return staged_main, staged_wal


async def _reconcile_wal(
    config: SnapshotConfig,
    staged_wal: Path | None,
) -> Tuple[bool, bool]:
    """
    Make the live WAL match the main file that was just installed.

    Returns:
        Tuple of (wal_restored, wal_removed)
    """
    if staged_wal is not None:
        await aiofiles.os.replace(staged_wal, config.wal_path)
        return (True, False)

    removed = await remove_if_exists(config.wal_path)
    return (False, removed)


async def _roll_back(config: SnapshotConfig, pre_restore_filename: str | None) -> bool:
    """
    Put the pre-restore snapshot back after a failed commit.

    Returns:
        True if the live database was rolled back
    """
    if pre_restore_filename is None:
        logger.error("restore_rollback_unavailable", reason="no_pre_restore_snapshot")
        return False

    try:
        staged_main, staged_wal = await _stage_files(
            config, config.backup_dir / pre_restore_filename
        )
        await aiofiles.os.replace(staged_main, config.database_path)
        await _reconcile_wal(config, staged_wal)
    except Exception as e:
        logger.error(
            "restore_rollback_failed",
            pre_restore_filename=pre_restore_filename,
            error=str(e),
        )
        return False

    logger.warning("restore_rolled_back", pre_restore_filename=pre_restore_filename)
    return True

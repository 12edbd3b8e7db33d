# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
dbsnap Core - Orchestrator for backup, listing, restore and deletion.

These are the functions callers use. Each one runs under the engine's
operation lock so a restore can never race a backup, and records the
outcome in the runtime state.
"""

from dataclasses import dataclass
from datetime import datetime, UTC
from typing import Any, List, Tuple, TypedDict

import aiofiles.os
import structlog

from dbsnap.backup.manager import (
    create_backup,
    delete_backup,
    get_backup_stats,
    resolve_snapshot_path,
)
from dbsnap.backup.restore import RestoreResult, restore_backup
from dbsnap.config import SnapshotConfig
from dbsnap.exceptions import SnapshotNotFoundError
from dbsnap.lock import SnapshotLock
from dbsnap.store.catalog import Snapshot, list_snapshots

logger = structlog.get_logger()


@dataclass
class EngineMetrics:
    """Metrics for snapshot operations."""

    total_backups: int
    total_restores: int
    total_deleted: int
    last_backup_at: datetime | None
    last_restore_at: datetime | None
    snapshot_count: int
    storage_bytes: int
    last_error: str | None


class EngineState(TypedDict):
    """Runtime state for snapshot operations."""

    lock: SnapshotLock
    scheduler: Any  # APScheduler instance when scheduled backups run
    last_backup_at: datetime | None
    last_restore_at: datetime | None
    total_backups: int
    total_restores: int
    total_deleted: int
    last_error: str | None


def initialize_engine_state(config: SnapshotConfig) -> EngineState:
    """
    Initialize runtime state for snapshot operations.

    The backup directory is not created here; the first backup does that.

    Args:
        config: Engine configuration

    Returns:
        Initialized EngineState dictionary
    """
    lock = SnapshotLock(
        config.lock_path if config.use_file_lock else None,
        timeout_seconds=config.lock_timeout_seconds,
    )

    return EngineState(
        lock=lock,
        scheduler=None,
        last_backup_at=None,
        last_restore_at=None,
        total_backups=0,
        total_restores=0,
        total_deleted=0,
        last_error=None,
    )


async def run_backup(
    config: SnapshotConfig,
    state: EngineState,
    description: str | None = None,
) -> Snapshot:
    """
    Create a snapshot of the live database.

    Args:
        config: Engine configuration
        state: Runtime state
        description: Optional free text stored with the snapshot

    Returns:
        The new snapshot's metadata
    """
    async with state["lock"].hold("backup"):
        try:
            snapshot = await create_backup(config, description)
        except Exception as e:
            state["last_error"] = str(e)
            logger.error("backup_operation_failed", error=str(e))
            raise

    state["last_backup_at"] = datetime.now(UTC)
    state["total_backups"] += 1
    return snapshot


async def list_backups(config: SnapshotConfig, state: EngineState) -> List[Snapshot]:
    """
    List snapshots newest-first.

    Always succeeds for a missing directory (empty list).
    """
    if not await aiofiles.os.path.isdir(config.backup_dir):
        return []

    async with state["lock"].hold("list"):
        return await list_snapshots(config.backup_dir)


async def get_catalog_overview(
    config: SnapshotConfig,
    state: EngineState,
) -> Tuple[List[Snapshot], dict]:
    """
    List snapshots and their storage stats from one locked read.

    Returns:
        Tuple of (snapshots newest-first, stats dict)
    """
    if not await aiofiles.os.path.isdir(config.backup_dir):
        return [], await get_backup_stats(config, [])

    async with state["lock"].hold("list"):
        snapshots = await list_snapshots(config.backup_dir)
        stats = await get_backup_stats(config, snapshots)
    return snapshots, stats


async def _check_snapshot_exists(
    config: SnapshotConfig,
    state: EngineState,
    filename: str,
) -> None:
    # Missing snapshots fail before the lock file is created
    try:
        await resolve_snapshot_path(config, filename)
    except SnapshotNotFoundError as e:
        state["last_error"] = str(e)
        raise


async def run_restore(
    config: SnapshotConfig,
    state: EngineState,
    filename: str,
) -> RestoreResult:
    """
    Restore a snapshot over the live database.

    The engine performs no authorization; callers restrict this to
    elevated roles. A missing snapshot is reported without any
    filesystem write, lock file included.
    """
    await _check_snapshot_exists(config, state, filename)

    async with state["lock"].hold("restore"):
        try:
            result = await restore_backup(config, filename)
        except Exception as e:
            state["last_error"] = str(e)
            logger.error("restore_operation_failed", filename=filename, error=str(e))
            raise

    state["last_restore_at"] = datetime.now(UTC)
    state["total_restores"] += 1
    return result


async def remove_backup(
    config: SnapshotConfig,
    state: EngineState,
    filename: str,
) -> None:
    """Delete a snapshot and its companions."""
    await _check_snapshot_exists(config, state, filename)

    async with state["lock"].hold("delete"):
        try:
            await delete_backup(config, filename)
        except Exception as e:
            state["last_error"] = str(e)
            raise

    state["total_deleted"] += 1


async def get_metrics(config: SnapshotConfig, state: EngineState) -> EngineMetrics:
    """Get current engine metrics."""
    _, stats = await get_catalog_overview(config, state)

    return EngineMetrics(
        total_backups=state["total_backups"],
        total_restores=state["total_restores"],
        total_deleted=state["total_deleted"],
        last_backup_at=state["last_backup_at"],
        last_restore_at=state["last_restore_at"],
        snapshot_count=stats["total_count"],
        storage_bytes=stats["total_bytes"],
        last_error=state["last_error"],
    )


async def shutdown_engine_state(state: EngineState) -> None:
    """Stop background work."""
    scheduler = state["scheduler"]
    if scheduler is not None:
        try:
            scheduler.shutdown(wait=False)
        except Exception as e:
            logger.warning("scheduler_shutdown_failed", error=str(e))
        state["scheduler"] = None

    logger.info("engine_state_shutdown_complete")

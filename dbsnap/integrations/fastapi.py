# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
dbsnap FastAPI Integration - Admin endpoints for database backups.

This module provides a thin HTTP layer over dbsnap.core:
- Protected list / create / restore / delete endpoints
- Status and configuration endpoints
- Lifespan management and scheduled daily backups
"""

import os
from contextlib import asynccontextmanager
from datetime import datetime, UTC

import structlog
from fastapi import Depends, FastAPI, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from dbsnap.backup.manager import format_size
from dbsnap.config import SnapshotConfig
from dbsnap.core import (
    EngineState,
    get_catalog_overview,
    get_metrics,
    initialize_engine_state,
    remove_backup,
    run_backup,
    run_restore,
    shutdown_engine_state,
)
from dbsnap.exceptions import DBSnapError, LockTimeoutError, SourceMissingError
from dbsnap.store.catalog import Snapshot

logger = structlog.get_logger()

# Security
security = HTTPBearer(auto_error=False)

DEFAULT_PREFIX = "/admin/backups"


class CreateBackupRequest(BaseModel):
    description: str | None = None


class RestoreBackupRequest(BaseModel):
    filename: str | None = None


async def verify_api_key(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> bool:
    """
    Verify API key from Authorization header.

    The API key is read from the DBSNAP_ADMIN_API_KEY environment variable.
    Requests must include: Authorization: Bearer <api_key>

    Raises:
        HTTPException: If API key is missing or invalid
    """
    api_key = os.getenv("DBSNAP_ADMIN_API_KEY")

    if not api_key:
        raise HTTPException(
            status_code=500,
            detail="DBSNAP_ADMIN_API_KEY environment variable not set",
        )

    if not credentials:
        raise HTTPException(
            status_code=401,
            detail="Authorization header required",
        )

    if credentials.credentials != api_key:
        raise HTTPException(
            status_code=403,
            detail="Invalid API key",
        )

    return True


async def verify_restore_api_key(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> bool:
    """
    Verify the elevated key required for restores.

    When DBSNAP_RESTORE_API_KEY is set only that key may restore;
    otherwise the admin key is accepted.
    """
    restore_key = os.getenv("DBSNAP_RESTORE_API_KEY")
    if not restore_key:
        return await verify_api_key(credentials)

    if not credentials:
        raise HTTPException(
            status_code=401,
            detail="Authorization header required",
        )

    if credentials.credentials != restore_key:
        raise HTTPException(
            status_code=403,
            detail="Only administrators can restore backups",
        )

    return True


def snapshot_to_dict(snapshot: Snapshot) -> dict:
    """Serialize a snapshot for JSON responses."""
    return {
        "filename": snapshot.filename,
        "path": str(snapshot.path),
        "created_at": snapshot.created_at.isoformat(),
        "size": snapshot.size,
        "size_formatted": format_size(snapshot.size),
        "description": snapshot.description,
        "has_wal": snapshot.has_wal,
        "is_pre_restore": snapshot.is_pre_restore,
    }


def _http_error(error: Exception) -> HTTPException:
    """Map an engine error to an HTTP error."""
    if isinstance(error, SourceMissingError):
        return HTTPException(status_code=404, detail=error.message)
    if isinstance(error, LockTimeoutError):
        return HTTPException(status_code=409, detail=error.message)

    reason = error.message if isinstance(error, DBSnapError) else str(error)
    return HTTPException(status_code=500, detail=f"operation failed: {reason}")


def register_dbsnap_routes(
    app: FastAPI,
    config: SnapshotConfig,
    state: EngineState,
    prefix: str = DEFAULT_PREFIX,
) -> None:
    """
    Register backup admin endpoints on a FastAPI app.

    All endpoints require Bearer token authentication.

    Args:
        app: FastAPI application
        config: Engine configuration
        state: Runtime state
        prefix: URL prefix for endpoints (default: /admin/backups)
    """

    @app.get(prefix, dependencies=[Depends(verify_api_key)])
    async def list_database_backups() -> dict:
        """
        List all backups, newest first, with storage totals.
        """
        try:
            snapshots, stats = await get_catalog_overview(config, state)
        except (DBSnapError, OSError) as e:
            logger.error("backup_list_failed", error=str(e))
            raise _http_error(e)

        return {
            "backups": [snapshot_to_dict(s) for s in snapshots],
            "stats": stats,
        }

    @app.post(prefix, status_code=201, dependencies=[Depends(verify_api_key)])
    async def create_database_backup(body: CreateBackupRequest | None = None) -> dict:
        """
        Create a new backup of the live database.
        """
        description = None
        if body and body.description and body.description.strip():
            description = body.description.strip()

        try:
            snapshot = await run_backup(config, state, description)
        except (DBSnapError, OSError) as e:
            raise _http_error(e)

        return {"success": True, "backup": snapshot_to_dict(snapshot)}

    @app.patch(prefix, dependencies=[Depends(verify_restore_api_key)])
    async def restore_database_backup(body: RestoreBackupRequest | None = None) -> dict:
        """
        Restore a backup over the live database.

        A pre-restore backup of the current state is created first.
        """
        if not body or not body.filename:
            raise HTTPException(status_code=400, detail="Backup filename required")

        try:
            result = await run_restore(config, state, body.filename)
        except (DBSnapError, OSError) as e:
            raise _http_error(e)

        return {
            "success": True,
            "message": "Backup restored successfully. Please restart the application.",
            "pre_restore_filename": result.pre_restore_filename,
            "wal_restored": result.wal_restored,
            "wal_removed": result.wal_removed,
        }

    @app.delete(prefix, dependencies=[Depends(verify_api_key)])
    async def delete_database_backup(filename: str | None = None) -> dict:
        """
        Delete a backup and its companion files.
        """
        if not filename:
            raise HTTPException(status_code=400, detail="Backup filename required")

        try:
            await remove_backup(config, state, filename)
        except (DBSnapError, OSError) as e:
            raise _http_error(e)

        return {"success": True, "message": "Backup deleted successfully"}

    @app.get(f"{prefix}/status", dependencies=[Depends(verify_api_key)])
    async def get_status() -> dict:
        """
        Get run counters and storage usage.
        """
        metrics = await get_metrics(config, state)
        return {
            "total_backups": metrics.total_backups,
            "total_restores": metrics.total_restores,
            "total_deleted": metrics.total_deleted,
            "last_backup_at": (
                metrics.last_backup_at.isoformat() if metrics.last_backup_at else None
            ),
            "last_restore_at": (
                metrics.last_restore_at.isoformat() if metrics.last_restore_at else None
            ),
            "snapshot_count": metrics.snapshot_count,
            "storage_bytes": metrics.storage_bytes,
            "storage_size": format_size(metrics.storage_bytes),
            "database_present": config.database_path.is_file(),
            "last_error": metrics.last_error,
            "timestamp": datetime.now(UTC).isoformat(),
        }

    @app.get(f"{prefix}/config", dependencies=[Depends(verify_api_key)])
    async def get_config() -> dict:
        """
        Get current configuration (filesystem paths redacted).
        """
        return {
            "max_backups": config.max_backups,
            "count_pre_restore_in_retention": config.count_pre_restore_in_retention,
            "use_file_lock": config.use_file_lock,
            "lock_timeout_seconds": config.lock_timeout_seconds,
            "schedule_cron": config.schedule_cron,
        }


def setup_dbsnap_plugin(
    app: FastAPI,
    config: SnapshotConfig,
    prefix: str = DEFAULT_PREFIX,
) -> EngineState:
    """
    Set up the backup plugin on an existing app.

    Routes are registered immediately. The scheduler (if configured) is
    started and stopped by wrapping the app's lifespan.

    Args:
        app: FastAPI application
        config: Engine configuration
        prefix: URL prefix for admin endpoints

    Returns:
        The engine state shared by the registered routes
    """
    state = initialize_engine_state(config)
    app.state.dbsnap_config = config
    app.state.dbsnap_state = state

    register_dbsnap_routes(app, config, state, prefix)

    previous_lifespan = app.router.lifespan_context

    @asynccontextmanager
    async def lifespan(app_: FastAPI):
        logger.info("dbsnap_plugin_starting", backup_dir=str(config.backup_dir))
        if config.schedule_cron:
            _setup_scheduled_task(config, state)
        try:
            async with previous_lifespan(app_) as inner_state:
                yield inner_state
        finally:
            await shutdown_engine_state(state)
            logger.info("dbsnap_plugin_stopped")

    app.router.lifespan_context = lifespan
    return state


def _setup_scheduled_task(config: SnapshotConfig, state: EngineState) -> None:
    """Set up APScheduler for daily backups."""
    from apscheduler.schedulers.asyncio import AsyncIOScheduler
    from apscheduler.triggers.cron import CronTrigger

    scheduler = AsyncIOScheduler(timezone="UTC")

    # Parse HH:MM format
    hour, minute = map(int, config.schedule_cron.split(":"))

    async def scheduled_backup():
        """Run scheduled backup."""
        logger.info("scheduled_backup_starting")
        try:
            snapshot = await run_backup(config, state, "Scheduled backup")
            logger.info("scheduled_backup_completed", filename=snapshot.filename)
        except Exception as e:
            logger.error("scheduled_backup_failed", error=str(e))

    scheduler.add_job(
        scheduled_backup,
        trigger=CronTrigger(hour=hour, minute=minute, timezone="UTC"),
        id="dbsnap_scheduled",
        replace_existing=True,
    )
    scheduler.start()
    state["scheduler"] = scheduler

    logger.info(
        "scheduler_started",
        schedule=config.schedule_cron,
        next_run=scheduler.get_job("dbsnap_scheduled").next_run_time.isoformat(),
    )


@asynccontextmanager
async def dbsnap_lifespan(app: FastAPI, config: SnapshotConfig, prefix: str = DEFAULT_PREFIX):
    """
    Lifespan context manager for FastAPI.

    Use this instead of setup_dbsnap_plugin if you prefer the
    lifespan pattern:

        app = FastAPI(lifespan=lambda app: dbsnap_lifespan(app, config))

    Args:
        app: FastAPI application
        config: Engine configuration
        prefix: URL prefix for admin endpoints
    """
    logger.info("dbsnap_lifespan_starting")

    state = initialize_engine_state(config)
    app.state.dbsnap_state = state
    app.state.dbsnap_config = config

    register_dbsnap_routes(app, config, state, prefix)

    if config.schedule_cron:
        _setup_scheduled_task(config, state)

    logger.info("dbsnap_lifespan_started")

    try:
        yield
    finally:
        logger.info("dbsnap_lifespan_stopping")
        await shutdown_engine_state(state)
        logger.info("dbsnap_lifespan_stopped")


def get_dbsnap_state(app: FastAPI) -> EngineState:
    """
    Get engine state from a FastAPI app.

    Raises:
        RuntimeError: If the plugin is not initialized
    """
    state = getattr(app.state, "dbsnap_state", None)
    if not state:
        raise RuntimeError("dbsnap not initialized. Call setup_dbsnap_plugin first.")
    return state

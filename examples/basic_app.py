# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Example FastAPI Application with database backup endpoints.

This example shows a CMS admin backend serving its SQLite database with
backup, restore and retention handled by dbsnap.

Run with:
    uvicorn examples.basic_app:app --reload

Environment variables:
    DBSNAP_DATABASE_PATH: Live database file (default: prisma/dev.db)
    DBSNAP_BACKUP_DIR: Snapshot directory (default: backups)
    DBSNAP_ADMIN_API_KEY: API key for admin endpoints
    DBSNAP_RESTORE_API_KEY: Optional elevated key required for restores
"""

import os
from pathlib import Path

from fastapi import FastAPI

from dbsnap.builder import (
    build_config,
    create_empty_config,
    keep_last,
    run_daily_at,
    with_backup_dir,
    with_database,
)
from dbsnap.integrations.fastapi import setup_dbsnap_plugin

# Create FastAPI app
app = FastAPI(
    title="CMS Admin with dbsnap",
    description="Example application demonstrating database snapshots",
    version="1.0.0",
)


def create_dbsnap_config():
    """
    Create backup configuration using the functional builder.
    """
    database_path = Path(os.getenv("DBSNAP_DATABASE_PATH", "prisma/dev.db"))
    backup_dir = Path(os.getenv("DBSNAP_BACKUP_DIR", "backups"))

    config = create_empty_config()
    config = with_database(config, database_path)
    config = with_backup_dir(config, backup_dir)

    # Keep the ten most recent standard backups
    config = keep_last(config, 10)

    # Nightly backup at 2:30 AM UTC
    config = run_daily_at(config, "02:30")

    return build_config(config)


dbsnap_config = create_dbsnap_config()

# Setup backup plugin
setup_dbsnap_plugin(app, dbsnap_config)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Welcome to the CMS admin backend",
        "docs": "/docs",
        "backups_admin": "/admin/backups",
    }


# ============================================================================
# Backup Admin Endpoints (auto-registered by plugin)
# ============================================================================
#
# GET    /admin/backups          - List backups with storage totals
# POST   /admin/backups          - Create a backup {"description": "..."}
# PATCH  /admin/backups          - Restore a backup {"filename": "..."}
# DELETE /admin/backups?filename - Delete a backup
# GET    /admin/backups/status   - Run counters
# GET    /admin/backups/config   - Retention and lock settings
#
# All admin endpoints require: Authorization: Bearer <DBSNAP_ADMIN_API_KEY>


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)

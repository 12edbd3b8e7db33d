# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Integration Tests for dbsnap.

These tests verify the integration between components:
- FastAPI endpoints
- Snapshot catalog and naming
- Deletion and storage statistics
- Configuration builder and environment
- Scheduled backups
"""

import asyncio
import json
from datetime import datetime, UTC
from pathlib import Path

import pytest

from dbsnap.config import SnapshotConfig
from dbsnap.core import (
    get_catalog_overview,
    get_metrics,
    list_backups,
    remove_backup,
    run_backup,
    run_restore,
    shutdown_engine_state,
)
from dbsnap.exceptions import ConfigurationError, SnapshotNotFoundError


AUTH = {"Authorization": "Bearer test-api-key-12345"}


def _make_app(config: SnapshotConfig):
    from fastapi import FastAPI

    from dbsnap.core import initialize_engine_state
    from dbsnap.integrations.fastapi import register_dbsnap_routes

    app = FastAPI()
    state = initialize_engine_state(config)
    register_dbsnap_routes(app, config, state)
    return app, state


# ============================================================================
# FastAPI Integration Tests
# ============================================================================

@pytest.mark.asyncio
async def test_fastapi_list_endpoint_empty(test_config):
    """Listing before any backup returns an empty list."""
    from httpx import AsyncClient, ASGITransport

    app, _ = _make_app(test_config)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/admin/backups", headers=AUTH)

        assert response.status_code == 200
        data = response.json()
        assert data["backups"] == []
        assert data["stats"]["total_count"] == 0


@pytest.mark.asyncio
async def test_fastapi_create_and_list(test_config):
    """Create returns 201 and the new backup shows up first in the list."""
    from httpx import AsyncClient, ASGITransport

    app, _ = _make_app(test_config)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        first = await client.post("/admin/backups", headers=AUTH)
        assert first.status_code == 201
        assert first.json()["success"] is True
        assert first.json()["backup"]["description"] is None

        second = await client.post(
            "/admin/backups",
            json={"description": "  before theme change  "},
            headers=AUTH,
        )
        assert second.status_code == 201
        backup = second.json()["backup"]
        assert backup["description"] == "before theme change"
        assert backup["filename"].startswith("backup_")
        assert backup["filename"].endswith(".db")
        assert backup["is_pre_restore"] is False

        listing = await client.get("/admin/backups", headers=AUTH)
        names = [b["filename"] for b in listing.json()["backups"]]
        assert names == [backup["filename"], first.json()["backup"]["filename"]]


@pytest.mark.asyncio
async def test_fastapi_create_without_database_returns_404(test_config, database_path: Path):
    from httpx import AsyncClient, ASGITransport

    database_path.unlink()
    app, _ = _make_app(test_config)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.post("/admin/backups", headers=AUTH)

        assert response.status_code == 404
        assert response.json()["detail"] == "Database file not found"


@pytest.mark.asyncio
async def test_fastapi_restore_endpoint(test_config, database_path: Path):
    """Restore replaces the live database and reports the safety snapshot."""
    from httpx import AsyncClient, ASGITransport

    app, _ = _make_app(test_config)
    original = database_path.read_bytes()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        created = await client.post("/admin/backups", headers=AUTH)
        filename = created.json()["backup"]["filename"]

        database_path.write_bytes(b"edited")

        response = await client.patch(
            "/admin/backups",
            json={"filename": filename},
            headers=AUTH,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert "restart" in data["message"]
        assert data["pre_restore_filename"].endswith("-pre-restore.db")

    assert database_path.read_bytes() == original


@pytest.mark.asyncio
async def test_fastapi_restore_requires_filename(test_config):
    from httpx import AsyncClient, ASGITransport

    app, _ = _make_app(test_config)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.patch("/admin/backups", json={}, headers=AUTH)

        assert response.status_code == 400
        assert response.json()["detail"] == "Backup filename required"


@pytest.mark.asyncio
async def test_fastapi_restore_missing_backup_returns_404(test_config):
    from httpx import AsyncClient, ASGITransport

    app, _ = _make_app(test_config)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.patch(
            "/admin/backups",
            json={"filename": "nonexistent.db"},
            headers=AUTH,
        )

        assert response.status_code == 404
        assert response.json()["detail"] == "Backup file not found"


@pytest.mark.asyncio
async def test_fastapi_restore_key_is_enforced(test_config, monkeypatch):
    """With a restore key configured, the admin key cannot restore."""
    from httpx import AsyncClient, ASGITransport

    monkeypatch.setenv("DBSNAP_RESTORE_API_KEY", "restore-key-67890")
    app, _ = _make_app(test_config)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        created = await client.post("/admin/backups", headers=AUTH)
        filename = created.json()["backup"]["filename"]

        denied = await client.patch(
            "/admin/backups",
            json={"filename": filename},
            headers=AUTH,
        )
        assert denied.status_code == 403
        assert denied.json()["detail"] == "Only administrators can restore backups"

        allowed = await client.patch(
            "/admin/backups",
            json={"filename": filename},
            headers={"Authorization": "Bearer restore-key-67890"},
        )
        assert allowed.status_code == 200


@pytest.mark.asyncio
async def test_fastapi_delete_endpoint(test_config, backup_dir: Path):
    from httpx import AsyncClient, ASGITransport

    app, _ = _make_app(test_config)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        created = await client.post(
            "/admin/backups",
            json={"description": "to delete"},
            headers=AUTH,
        )
        filename = created.json()["backup"]["filename"]

        response = await client.delete(
            "/admin/backups",
            params={"filename": filename},
            headers=AUTH,
        )
        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Backup deleted successfully"}

        assert not (backup_dir / filename).exists()
        assert not (backup_dir / f"{filename}.json").exists()

        missing = await client.delete(
            "/admin/backups",
            params={"filename": filename},
            headers=AUTH,
        )
        assert missing.status_code == 404

        no_name = await client.delete("/admin/backups", headers=AUTH)
        assert no_name.status_code == 400


@pytest.mark.asyncio
async def test_fastapi_status_and_config_endpoints(test_config):
    from httpx import AsyncClient, ASGITransport

    app, _ = _make_app(test_config)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        await client.post("/admin/backups", headers=AUTH)

        status = await client.get("/admin/backups/status", headers=AUTH)
        assert status.status_code == 200
        data = status.json()
        assert data["total_backups"] == 1
        assert data["snapshot_count"] == 1
        assert data["database_present"] is True
        assert data["last_backup_at"] is not None

        config = await client.get("/admin/backups/config", headers=AUTH)
        assert config.status_code == 200
        assert config.json()["max_backups"] == 10
        assert config.json()["count_pre_restore_in_retention"] is False
        assert "database_path" not in config.json()


@pytest.mark.asyncio
async def test_fastapi_unauthorized_access(test_config):
    """Test that endpoints require authentication."""
    from httpx import AsyncClient, ASGITransport

    app, _ = _make_app(test_config)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        # No auth header
        response = await client.get("/admin/backups")
        assert response.status_code == 401

        # Wrong API key
        response = await client.post(
            "/admin/backups",
            headers={"Authorization": "Bearer wrong-key"},
        )
        assert response.status_code == 403

        response = await client.patch("/admin/backups", json={"filename": "x"})
        assert response.status_code == 401


@pytest.mark.asyncio
async def test_plugin_lifespan_starts_and_stops_scheduler(test_config):
    """The plugin wraps the app lifespan to run daily backups."""
    from fastapi import FastAPI

    from dbsnap.integrations.fastapi import get_dbsnap_state, setup_dbsnap_plugin

    app = FastAPI()
    config = test_config.with_updates(schedule_cron="03:15")
    state = setup_dbsnap_plugin(app, config)

    assert get_dbsnap_state(app) is state

    async with app.router.lifespan_context(app):
        scheduler = state["scheduler"]
        assert scheduler is not None
        job = scheduler.get_job("dbsnap_scheduled")
        assert job is not None
        assert job.next_run_time.hour == 3
        assert job.next_run_time.minute == 15

    assert state["scheduler"] is None


@pytest.mark.asyncio
async def test_lifespan_pattern_registers_routes(test_config):
    from fastapi import FastAPI
    from httpx import AsyncClient, ASGITransport

    from dbsnap.integrations import dbsnap_lifespan

    app = FastAPI()

    async with dbsnap_lifespan(app, test_config):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.post(
                "/admin/backups",
                json={"description": "from lifespan"},
                headers=AUTH,
            )
            assert response.status_code == 201

        assert app.state.dbsnap_state["total_backups"] == 1


# ============================================================================
# Catalog Tests
# ============================================================================

@pytest.mark.asyncio
async def test_list_missing_directory_is_empty(test_config, test_state, backup_dir: Path):
    assert not backup_dir.exists()

    assert await list_backups(test_config, test_state) == []
    assert not backup_dir.exists(), "Listing must not create the directory"


@pytest.mark.asyncio
async def test_list_ignores_companions_and_stray_files(
    test_config, test_state, database_path: Path, backup_dir: Path
):
    """Only main files are listed; companions fold into their snapshot."""
    database_path.with_name("dev.db-wal").write_bytes(b"wal")
    snapshot = await run_backup(test_config, test_state, "with wal")

    (backup_dir / "notes.txt").write_text("not a backup")
    (backup_dir / "backup_manual.db.tmp").write_bytes(b"partial")
    (backup_dir / "backup_subdir.db").mkdir()

    listed = await list_backups(test_config, test_state)

    assert [s.filename for s in listed] == [snapshot.filename]
    assert listed[0].has_wal
    assert listed[0].description == "with wal"
    assert listed[0].size == database_path.stat().st_size


@pytest.mark.asyncio
async def test_list_tolerates_corrupt_metadata(test_config, test_state, backup_dir: Path):
    """A corrupt sidecar drops the description but keeps the entry."""
    snapshot = await run_backup(test_config, test_state, "original description")

    (backup_dir / f"{snapshot.filename}.json").write_text("{not json")

    listed = await list_backups(test_config, test_state)

    assert len(listed) == 1
    assert listed[0].filename == snapshot.filename
    assert listed[0].description is None


@pytest.mark.asyncio
async def test_metadata_sidecar_format(test_config, test_state, backup_dir: Path):
    snapshot = await run_backup(test_config, test_state, "release 1.2")

    data = json.loads((backup_dir / f"{snapshot.filename}.json").read_text())

    assert data["description"] == "release 1.2"
    assert datetime.fromisoformat(data["createdAt"]).tzinfo is not None


@pytest.mark.asyncio
async def test_listing_is_idempotent(test_config, test_state):
    for i in range(3):
        await run_backup(test_config, test_state, f"backup {i}")

    first = await list_backups(test_config, test_state)
    second = await list_backups(test_config, test_state)

    assert first == second


@pytest.mark.asyncio
async def test_hand_copied_snapshot_is_listed(test_config, test_state, backup_dir: Path):
    """Names without an embedded timestamp sort by filesystem time."""
    from dbsnap.store import find_snapshot

    await run_backup(test_config, test_state)
    (backup_dir / "backup_manual-copy.db").write_bytes(b"copied by hand")

    listed = await list_backups(test_config, test_state)
    assert "backup_manual-copy.db" in [s.filename for s in listed]

    found = await find_snapshot(backup_dir, "backup_manual-copy.db")
    assert found is not None
    assert found.size == len(b"copied by hand")
    assert await find_snapshot(backup_dir, "missing.db") is None


# ============================================================================
# Naming Tests
# ============================================================================

def test_generated_names_parse_back(temp_dir: Path):
    from dbsnap.store.naming import generate_name, parse_name

    moment = datetime(2026, 10, 19, 14, 3, 7, 123456, tzinfo=UTC)

    name = generate_name(temp_dir, now=moment)
    assert name == "backup_2026-10-19_14-03-07-123456.db"

    parsed = parse_name(name)
    assert parsed.timestamp == moment
    assert parsed.counter == 0
    assert parsed.pre_restore is False

    pre = generate_name(temp_dir, pre_restore=True, now=moment)
    assert pre == "backup_2026-10-19_14-03-07-123456-pre-restore.db"
    assert parse_name(pre).pre_restore is True


def test_generate_name_never_reuses_existing(temp_dir: Path):
    from dbsnap.store.naming import generate_name, parse_name

    moment = datetime(2026, 1, 2, 3, 4, 5, 6, tzinfo=UTC)

    first = generate_name(temp_dir, now=moment)
    (temp_dir / first).write_bytes(b"x")
    second = generate_name(temp_dir, now=moment)
    (temp_dir / second).write_bytes(b"x")
    third = generate_name(temp_dir, now=moment)

    assert len({first, second, third}) == 3
    assert parse_name(second).counter == 1
    assert parse_name(third).counter == 2


def test_parse_name_accepts_millisecond_names():
    from dbsnap.store.naming import parse_name

    parsed = parse_name("backup_2025-06-01_08-15-30-250.db")

    assert parsed is not None
    assert parsed.timestamp == datetime(2025, 6, 1, 8, 15, 30, 250000, tzinfo=UTC)
    assert parse_name("backup_whatever.db") is None
    assert parse_name("dev.db") is None


def test_snapshot_name_filter():
    from dbsnap.store.naming import companion_paths, is_pre_restore_name, is_snapshot_name

    assert is_snapshot_name("backup_2026-10-19_14-03-07-123456.db")
    assert not is_snapshot_name("backup_2026-10-19_14-03-07-123456.db-wal")
    assert not is_snapshot_name("backup_2026-10-19_14-03-07-123456.db.json")
    assert not is_snapshot_name("backup_../dev.db")
    assert not is_snapshot_name("dev.db")

    assert is_pre_restore_name("backup_2026-10-19_14-03-07-123456-pre-restore.db")
    assert not is_pre_restore_name("backup_2026-10-19_14-03-07-123456.db")

    main, wal, meta = companion_paths(Path("/b/backup_x.db"))
    assert (main.name, wal.name, meta.name) == (
        "backup_x.db",
        "backup_x.db-wal",
        "backup_x.db.json",
    )


# ============================================================================
# Deletion and Stats Tests
# ============================================================================

@pytest.mark.asyncio
async def test_delete_removes_every_companion(
    test_config, test_state, database_path: Path, backup_dir: Path
):
    database_path.with_name("dev.db-wal").write_bytes(b"wal")
    snapshot = await run_backup(test_config, test_state, "delete me")

    await remove_backup(test_config, test_state, snapshot.filename)

    assert not (backup_dir / snapshot.filename).exists()
    assert not (backup_dir / f"{snapshot.filename}-wal").exists()
    assert not (backup_dir / f"{snapshot.filename}.json").exists()
    assert test_state["total_deleted"] == 1

    with pytest.raises(SnapshotNotFoundError):
        await remove_backup(test_config, test_state, snapshot.filename)


@pytest.mark.asyncio
async def test_metrics_count_companion_bytes(test_config, test_state, database_path: Path):
    database_path.with_name("dev.db-wal").write_bytes(b"w" * 100)
    snapshot = await run_backup(test_config, test_state)
    await run_restore(test_config, test_state, snapshot.filename)

    metrics = await get_metrics(test_config, test_state)

    assert metrics.total_backups == 1
    assert metrics.total_restores == 1
    assert metrics.snapshot_count == 2
    assert metrics.storage_bytes >= 2 * (database_path.stat().st_size + 100)
    assert metrics.last_error is None

    await shutdown_engine_state(test_state)


@pytest.mark.asyncio
async def test_backup_stats_split_pre_restore(test_config, test_state):
    from dbsnap.backup import get_backup_stats

    snapshot = await run_backup(test_config, test_state)
    await run_restore(test_config, test_state, snapshot.filename)

    stats = await get_backup_stats(test_config)

    assert stats["total_count"] == 2
    assert stats["standard_count"] == 1
    assert stats["pre_restore_count"] == 1
    assert stats["max_backups"] == 10
    assert stats["total_size"].endswith("B")


@pytest.mark.parametrize(
    "num_bytes,expected",
    [
        (0, "0 B"),
        (500, "500 B"),
        (1023, "1023 B"),
        (1024, "1.0 KB"),
        (1536, "1.5 KB"),
        (5 * 1024 * 1024, "5.0 MB"),
        (3 * 1024 * 1024 * 1024 // 2, "1.5 GB"),
    ],
)
def test_format_size(num_bytes, expected):
    from dbsnap import format_size

    assert format_size(num_bytes) == expected


# ============================================================================
# Configuration Tests
# ============================================================================

@pytest.mark.asyncio
async def test_builder_fluent_api(temp_dir: Path):
    """Test the functional builder API."""
    from dbsnap.builder import (
        build_config,
        build_from_steps,
        count_pre_restore_snapshots,
        create_empty_config,
        keep_last,
        run_daily_at,
        with_backup_dir,
        with_database,
        without_file_lock,
    )

    config = create_empty_config()
    config = with_database(config, temp_dir / "app.db")
    config = with_backup_dir(config, temp_dir / "snapshots")
    config = keep_last(config, 5)
    config = count_pre_restore_snapshots(config)
    config = without_file_lock(config)
    config = run_daily_at(config, "02:30")

    final = build_config(config)

    assert final.database_path == temp_dir / "app.db"
    assert final.backup_dir == temp_dir / "snapshots"
    assert final.max_backups == 5
    assert final.count_pre_restore_in_retention is True
    assert final.use_file_lock is False
    assert final.schedule_cron == "02:30"
    assert final.wal_path == temp_dir / "app.db-wal"

    piped = build_from_steps(
        lambda c: with_database(c, temp_dir / "app.db"),
        lambda c: keep_last(c, 3),
    )
    assert piped.max_backups == 3

    with pytest.raises(ValueError):
        keep_last(config, 0)

    with pytest.raises(ValueError):
        run_daily_at(config, "25:00")

    with pytest.raises(ConfigurationError):
        build_config(create_empty_config())


@pytest.mark.asyncio
async def test_config_validation(temp_dir: Path):
    """Test configuration validation."""
    from dbsnap import create_config

    # Valid config
    config = create_config(temp_dir / "app.db", backup_dir=temp_dir / "backups")
    assert config.max_backups == 10
    assert config.lock_path == temp_dir / "backups" / ".dbsnap.lock"

    # Strings are accepted for paths
    config = SnapshotConfig(database_path=str(temp_dir / "app.db"))
    assert isinstance(config.database_path, Path)

    # Every problem is reported at once
    with pytest.raises(ConfigurationError) as exc_info:
        SnapshotConfig(
            database_path=temp_dir / "app.db",
            max_backups=0,
            lock_timeout_seconds=0,
            schedule_cron="noon",
        )
    errors = exc_info.value.details["errors"]
    assert len(errors) == 3

    with pytest.raises(ConfigurationError):
        SnapshotConfig(database_path=temp_dir / "app.db", backup_dir=temp_dir / "app.db")


def test_config_is_immutable(test_config):
    from dataclasses import FrozenInstanceError

    with pytest.raises(FrozenInstanceError):
        test_config.max_backups = 3

    updated = test_config.with_updates(max_backups=3)
    assert updated.max_backups == 3
    assert test_config.max_backups == 10


def test_config_from_env(temp_dir: Path, monkeypatch):
    from dbsnap import create_config_from_env

    monkeypatch.setenv("DBSNAP_DATABASE_PATH", str(temp_dir / "cms.db"))
    monkeypatch.setenv("DBSNAP_BACKUP_DIR", str(temp_dir / "snaps"))
    monkeypatch.setenv("DBSNAP_MAX_BACKUPS", "4")
    monkeypatch.setenv("DBSNAP_FILE_LOCK", "off")
    monkeypatch.setenv("DBSNAP_SCHEDULE_CRON", "01:00")

    config = create_config_from_env()

    assert config.database_path == temp_dir / "cms.db"
    assert config.backup_dir == temp_dir / "snaps"
    assert config.max_backups == 4
    assert config.use_file_lock is False
    assert config.schedule_cron == "01:00"


def test_config_from_env_rejects_bad_values(temp_dir: Path, monkeypatch):
    from dbsnap import create_config_from_env

    monkeypatch.delenv("DBSNAP_DATABASE_PATH", raising=False)
    with pytest.raises(ConfigurationError) as exc_info:
        create_config_from_env()
    assert "DBSNAP_DATABASE_PATH" in str(exc_info.value)

    monkeypatch.setenv("DBSNAP_DATABASE_PATH", str(temp_dir / "cms.db"))
    monkeypatch.setenv("DBSNAP_MAX_BACKUPS", "many")
    with pytest.raises(ConfigurationError):
        create_config_from_env()

    monkeypatch.setenv("DBSNAP_MAX_BACKUPS", "3")
    monkeypatch.setenv("DBSNAP_FILE_LOCK", "sometimes")
    with pytest.raises(ConfigurationError):
        create_config_from_env()


@pytest.mark.asyncio
async def test_catalog_overview_waits_for_running_operation(test_config, test_state):
    """Stats are never read while another operation holds the lock."""
    await run_backup(test_config, test_state)

    release = asyncio.Event()

    async def restore_in_progress():
        async with test_state["lock"].hold("restore"):
            await release.wait()

    holder = asyncio.create_task(restore_in_progress())
    await asyncio.sleep(0.05)

    overview = asyncio.create_task(get_catalog_overview(test_config, test_state))
    await asyncio.sleep(0.1)
    assert not overview.done()

    release.set()
    snapshots, stats = await overview
    await holder

    assert stats["total_count"] == len(snapshots) == 1


@pytest.mark.asyncio
async def test_catalog_overview_without_directory(test_config, test_state, backup_dir: Path):
    snapshots, stats = await get_catalog_overview(test_config, test_state)

    assert snapshots == []
    assert stats["total_count"] == 0
    assert not backup_dir.exists()

# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Snapshot catalog - directory lifecycle, metadata sidecars and listing.

The catalog is never stored; it is rebuilt from the backup directory on
every call. Each snapshot is one main file plus optional ``-wal`` and
``.json`` companions sharing its name.
"""

import json
from dataclasses import dataclass
from datetime import datetime, UTC
from pathlib import Path
from typing import List, TypedDict

import aiofiles
import aiofiles.os
import structlog

from dbsnap.store.files import remove_if_exists, temp_path_for
from dbsnap.store.naming import (
    is_pre_restore_name,
    is_snapshot_name,
    metadata_path_for,
    parse_name,
    wal_path_for,
)

logger = structlog.get_logger()


class SnapshotMetadata(TypedDict, total=False):
    """Contents of a ``.json`` sidecar."""

    description: str
    createdAt: str  # ISO 8601


@dataclass
class Snapshot:
    """A point-in-time copy of the live database."""

    filename: str
    path: Path
    created_at: datetime
    size: int
    description: str | None = None
    has_wal: bool = False
    is_pre_restore: bool = False

    @property
    def sort_key(self) -> tuple[datetime, int, str]:
        """Embedded name timestamp, falling back to filesystem time."""
        parsed = parse_name(self.filename)
        if parsed is None:
            return (self.created_at, 0, self.filename)
        return (parsed.timestamp, parsed.counter, self.filename)


async def ensure_directory(backup_dir: Path) -> None:
    """Create the backup directory and any missing parents."""
    await aiofiles.os.makedirs(backup_dir, exist_ok=True)


def _created_at(stat_result) -> datetime:
    # st_birthtime is only exposed on some platforms
    birth = getattr(stat_result, "st_birthtime", None)
    return datetime.fromtimestamp(birth or stat_result.st_mtime, UTC)


async def write_metadata(main_path: Path, description: str) -> Path:
    """
    Write the description sidecar for a snapshot.

    Written to a temporary file first and renamed into place.
    """
    metadata_path = metadata_path_for(main_path)
    temp_path = temp_path_for(metadata_path)
    metadata: SnapshotMetadata = {
        "description": description,
        "createdAt": datetime.now(UTC).isoformat(),
    }

    try:
        async with aiofiles.open(temp_path, "w", encoding="utf-8") as f:
            await f.write(json.dumps(metadata, indent=2))
        await aiofiles.os.replace(temp_path, metadata_path)
    except BaseException:
        await remove_if_exists(temp_path, quiet=True)
        raise

    return metadata_path


async def read_metadata(main_path: Path) -> SnapshotMetadata:
    """
    Read a snapshot's sidecar, best effort.

    A missing sidecar is normal. An unreadable or corrupt one is logged
    and treated as missing so that one bad entry never breaks a listing.
    """
    metadata_path = metadata_path_for(main_path)
    try:
        async with aiofiles.open(metadata_path, "r", encoding="utf-8") as f:
            content = await f.read()
    except FileNotFoundError:
        return {}
    except OSError as e:
        logger.warning(
            "snapshot_metadata_unreadable",
            path=str(metadata_path),
            error=str(e),
        )
        return {}

    try:
        data = json.loads(content)
    except ValueError as e:
        logger.warning(
            "snapshot_metadata_corrupt",
            path=str(metadata_path),
            error=str(e),
        )
        return {}

    if not isinstance(data, dict):
        logger.warning("snapshot_metadata_corrupt", path=str(metadata_path), error="not an object")
        return {}

    metadata: SnapshotMetadata = {}
    if isinstance(data.get("description"), str):
        metadata["description"] = data["description"]
    if isinstance(data.get("createdAt"), str):
        metadata["createdAt"] = data["createdAt"]
    return metadata


async def read_snapshot(main_path: Path) -> Snapshot:
    """
    Build a Snapshot for an existing main file.

    Raises:
        FileNotFoundError: If the main file does not exist
    """
    stat_result = await aiofiles.os.stat(main_path)
    metadata = await read_metadata(main_path)

    return Snapshot(
        filename=main_path.name,
        path=main_path,
        created_at=_created_at(stat_result),
        size=stat_result.st_size,
        description=metadata.get("description"),
        has_wal=await aiofiles.os.path.exists(wal_path_for(main_path)),
        is_pre_restore=is_pre_restore_name(main_path.name),
    )


async def list_snapshots(backup_dir: Path) -> List[Snapshot]:
    """
    List every snapshot in the backup directory, newest first.

    Companion files are folded into their main file's entry. A missing
    directory yields an empty list.

    Args:
        backup_dir: Snapshot directory

    Returns:
        Snapshots sorted newest-first by their embedded timestamp
    """
    try:
        entries = await aiofiles.os.listdir(backup_dir)
    except FileNotFoundError:
        return []

    snapshots: List[Snapshot] = []
    for name in entries:
        if not is_snapshot_name(name):
            continue

        main_path = backup_dir / name
        if await aiofiles.os.path.islink(main_path):
            continue
        if not await aiofiles.os.path.isfile(main_path):
            continue

        try:
            snapshots.append(await read_snapshot(main_path))
        except OSError as e:
            # Removed between listdir and stat, or unreadable
            logger.warning("snapshot_stat_failed", filename=name, error=str(e))

    snapshots.sort(key=lambda s: s.sort_key, reverse=True)
    return snapshots


async def find_snapshot(backup_dir: Path, filename: str) -> Snapshot | None:
    """Look up a single snapshot by filename."""
    if not is_snapshot_name(filename):
        return None
    try:
        return await read_snapshot(backup_dir / filename)
    except FileNotFoundError:
        return None

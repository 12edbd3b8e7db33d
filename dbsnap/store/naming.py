# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Snapshot naming - filenames, companions and embedded timestamps.

Snapshot main files are named ``backup_<timestamp>.db`` where the
timestamp is UTC with microsecond precision and only filesystem-safe
separators, so that lexicographic order matches chronological order:

    backup_2026-10-19_14-03-07-123456.db
    backup_2026-10-19_14-03-07-123456_1.db           (collision counter)
    backup_2026-10-19_14-05-00-000001-pre-restore.db  (safety snapshot)

Names written with millisecond precision are also understood.
"""

import re
from datetime import datetime, UTC
from pathlib import Path
from typing import NamedTuple

SNAPSHOT_PREFIX = "backup_"
SNAPSHOT_SUFFIX = ".db"
PRE_RESTORE_MARKER = "-pre-restore"
WAL_SUFFIX = "-wal"
METADATA_SUFFIX = ".json"

_TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S-%f"

_NAME_RE = re.compile(
    r"^backup_"
    r"(?P<ts>\d{4}-\d{2}-\d{2}_\d{2}-\d{2}-\d{2})"
    r"(?:-(?P<frac>\d{3}|\d{6}))?"
    r"(?:_(?P<counter>\d+))?"
    r"(?P<pre>-pre-restore)?"
    r"\.db$"
)


class ParsedName(NamedTuple):
    """Components embedded in a generated snapshot filename."""

    timestamp: datetime
    counter: int
    pre_restore: bool


def format_timestamp(moment: datetime) -> str:
    """Render a moment as the filesystem-safe timestamp used in names."""
    return moment.astimezone(UTC).strftime(_TIMESTAMP_FORMAT)


def build_name(moment: datetime, counter: int = 0, pre_restore: bool = False) -> str:
    """Build a snapshot filename without touching the filesystem."""
    name = SNAPSHOT_PREFIX + format_timestamp(moment)
    if counter:
        name += f"_{counter}"
    if pre_restore:
        name += PRE_RESTORE_MARKER
    return name + SNAPSHOT_SUFFIX


def generate_name(
    backup_dir: Path,
    pre_restore: bool = False,
    now: datetime | None = None,
) -> str:
    """
    Generate a new snapshot filename from the current instant.

    A counter suffix is appended when a snapshot with the same timestamp
    already exists, so an existing snapshot is never overwritten. Callers
    hold the directory lock, which makes the existence check race-free.

    Args:
        backup_dir: Directory the snapshot will be written to
        pre_restore: Produce a safety-snapshot name
        now: Override the current instant (UTC)

    Returns:
        Bare filename of the new snapshot's main file
    """
    moment = now or datetime.now(UTC)
    counter = 0
    name = build_name(moment, counter, pre_restore)
    while (backup_dir / name).exists():
        counter += 1
        name = build_name(moment, counter, pre_restore)
    return name


def parse_name(filename: str) -> ParsedName | None:
    """
    Parse a generated snapshot filename.

    Returns None for names that look like snapshots but were not produced
    by generate_name (e.g. copied in by hand).
    """
    match = _NAME_RE.match(filename)
    if not match:
        return None

    frac = match.group("frac") or "0"
    try:
        base = datetime.strptime(match.group("ts"), "%Y-%m-%d_%H-%M-%S")
    except ValueError:
        return None
    micro = int(frac.ljust(6, "0"))
    timestamp = base.replace(microsecond=micro, tzinfo=UTC)

    return ParsedName(
        timestamp=timestamp,
        counter=int(match.group("counter") or 0),
        pre_restore=match.group("pre") is not None,
    )


def is_snapshot_name(filename: str) -> bool:
    """True for main-file names; companions and temp files are excluded."""
    return (
        filename.startswith(SNAPSHOT_PREFIX)
        and filename.endswith(SNAPSHOT_SUFFIX)
        and "/" not in filename
        and "\\" not in filename
    )


def is_pre_restore_name(filename: str) -> bool:
    return filename.endswith(PRE_RESTORE_MARKER + SNAPSHOT_SUFFIX)


def wal_path_for(main_path: Path) -> Path:
    return main_path.with_name(main_path.name + WAL_SUFFIX)


def metadata_path_for(main_path: Path) -> Path:
    return main_path.with_name(main_path.name + METADATA_SUFFIX)


def companion_paths(main_path: Path) -> tuple[Path, Path, Path]:
    """Main file, WAL companion and metadata sidecar of one snapshot."""
    return (main_path, wal_path_for(main_path), metadata_path_for(main_path))

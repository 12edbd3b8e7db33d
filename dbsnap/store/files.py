# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
File primitives shared by backup and restore.

Copies stream through aiofiles into a temporary sibling and are renamed
into place, so a reader never sees a partially written file.
"""

from pathlib import Path

import aiofiles
import aiofiles.os
import structlog

from dbsnap.config import DEFAULT_COPY_CHUNK_SIZE

logger = structlog.get_logger()

TEMP_SUFFIX = ".tmp"


def temp_path_for(path: Path) -> Path:
    return path.with_name(path.name + TEMP_SUFFIX)


async def stream_copy(
    source: Path,
    destination: Path,
    chunk_size: int = DEFAULT_COPY_CHUNK_SIZE,
) -> int:
    """
    Copy bytes from source to destination, overwriting it.

    Returns:
        Number of bytes copied
    """
    copied = 0
    async with aiofiles.open(source, "rb") as src:
        async with aiofiles.open(destination, "wb") as dst:
            while True:
                chunk = await src.read(chunk_size)
                if not chunk:
                    break
                await dst.write(chunk)
                copied += len(chunk)
            await dst.flush()
    return copied


async def copy_file(
    source: Path,
    destination: Path,
    chunk_size: int = DEFAULT_COPY_CHUNK_SIZE,
) -> int:
    """
    Copy a file atomically: temp file, then rename over the destination.

    Args:
        source: File to read
        destination: Final path
        chunk_size: Bytes per read

    Returns:
        Number of bytes copied

    Raises:
        OSError: If reading, writing or renaming fails. The temporary
            file is removed before the error propagates.
    """
    temp_path = temp_path_for(destination)
    try:
        copied = await stream_copy(source, temp_path, chunk_size)
        await aiofiles.os.replace(temp_path, destination)
    except BaseException:
        await remove_if_exists(temp_path, quiet=True)
        raise

    logger.debug(
        "file_copied",
        source=str(source),
        destination=str(destination),
        size=copied,
    )
    return copied


async def remove_if_exists(path: Path, quiet: bool = False) -> bool:
    """
    Delete a file if present.

    Args:
        path: File to delete
        quiet: Log and swallow errors other than absence instead of raising

    Returns:
        True if a file was deleted
    """
    try:
        await aiofiles.os.remove(path)
        return True
    except FileNotFoundError:
        return False
    except OSError as e:
        if not quiet:
            raise
        logger.warning("file_remove_failed", path=str(path), error=str(e))
        return False

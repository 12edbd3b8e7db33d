# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
dbsnap Lock - One logical operation at a time per backup directory.

Two layers:
- an asyncio.Lock serializes operations inside one process
- an fcntl.flock on ``<backup_dir>/.dbsnap.lock`` serializes processes

The lock file is created once and never written to or deleted, so a
waiting process can never end up holding a lock on an unlinked file.
Acquisition polls with LOCK_NB until the configured timeout.
"""

import asyncio
import fcntl
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, IO

import structlog

from dbsnap.exceptions import LockTimeoutError

logger = structlog.get_logger()

POLL_INTERVAL_SECONDS = 0.05


class SnapshotLock:
    """Advisory lock guarding the backup directory and live database."""

    def __init__(self, lock_path: Path | None, timeout_seconds: float = 30.0):
        self.lock_path = lock_path
        self.timeout_seconds = timeout_seconds
        self._lock = asyncio.Lock()

    @property
    def locked(self) -> bool:
        return self._lock.locked()

    @asynccontextmanager
    async def hold(self, operation: str) -> AsyncIterator[None]:
        """
        Hold the lock for the duration of one operation.

        Args:
            operation: Name used in log events

        Raises:
            LockTimeoutError: If another process keeps the lock file
                longer than the timeout
        """
        async with self._lock:
            handle = None
            if self.lock_path is not None:
                acquiring = asyncio.ensure_future(
                    asyncio.to_thread(self._acquire_file_lock, operation)
                )
                try:
                    handle = await asyncio.shield(acquiring)
                except asyncio.CancelledError:
                    # The worker thread may still win the flock after we give up
                    acquiring.add_done_callback(self._release_abandoned)
                    raise
            logger.debug("operation_lock_acquired", operation=operation)
            try:
                yield
            finally:
                if handle is not None:
                    self._release_file_lock(handle)
                logger.debug("operation_lock_released", operation=operation)

    def _acquire_file_lock(self, operation: str) -> IO[str]:
        assert self.lock_path is not None
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)

        # a+ never truncates; the file only carries the flock
        handle = open(self.lock_path, "a+")
        deadline = time.monotonic() + self.timeout_seconds
        while True:
            try:
                fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                break
            except BlockingIOError:
                if time.monotonic() >= deadline:
                    handle.close()
                    raise LockTimeoutError(
                        "Another backup operation is in progress",
                        details={
                            "lock_path": str(self.lock_path),
                            "operation": operation,
                            "timeout_seconds": self.timeout_seconds,
                        },
                    )
                time.sleep(POLL_INTERVAL_SECONDS)
            except BaseException:
                handle.close()
                raise

        return handle

    def _release_abandoned(self, acquiring: "asyncio.Future[IO[str]]") -> None:
        if acquiring.cancelled() or acquiring.exception() is not None:
            return
        logger.warning("operation_lock_released_after_cancel", lock_path=str(self.lock_path))
        self._release_file_lock(acquiring.result())

    def _release_file_lock(self, handle: IO[str]) -> None:
        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
        except OSError as e:
            logger.error("operation_lock_release_failed", error=str(e))
        finally:
            handle.close()

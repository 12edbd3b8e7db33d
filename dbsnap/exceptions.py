# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
dbsnap Exceptions - Custom exceptions for the dbsnap package.
"""


class DBSnapError(Exception):
    """Base exception for all dbsnap errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(DBSnapError):
    """Raised when configuration is invalid."""

    pass


class SourceMissingError(DBSnapError):
    """Raised when the file an operation reads from does not exist."""

    pass


class DatabaseNotFoundError(SourceMissingError):
    """Raised when the live database file is absent at backup time."""

    pass


class SnapshotNotFoundError(SourceMissingError):
    """Raised when a named snapshot is absent at restore or delete time."""

    pass


class BackupError(DBSnapError):
    """Raised when backup operations fail."""

    pass


class RestoreError(DBSnapError):
    """Raised when restore operations fail."""

    pass


class DeleteError(DBSnapError):
    """Raised when a snapshot cannot be deleted."""

    pass


class LockTimeoutError(DBSnapError):
    """Raised when the backup directory lock cannot be acquired in time."""

    pass

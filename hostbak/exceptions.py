# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
hostbak Exceptions - Custom exceptions for the hostbak package.

Failures local to a single source item or auxiliary exporter are logged and
absorbed by the callers; the single-point failures (space, compression,
extraction, verification) propagate as one of these types.
"""


class HostBakError(Exception):
    """Base exception for all hostbak errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(HostBakError):
    """Raised when configuration is invalid."""

    pass


class NotFoundError(HostBakError):
    """Raised when a source path or archive does not exist."""

    pass


class InsufficientSpaceError(HostBakError):
    """Raised when the target volume cannot hold the required bytes."""

    def __init__(
        self,
        message: str,
        required: int,
        available: int | None,
        details: dict | None = None,
    ):
        self.required = required
        self.available = available
        merged = {"required": required, "available": available}
        merged.update(details or {})
        super().__init__(message, details=merged)


class ToolUnavailableError(HostBakError):
    """Raised when an optional external tool is not installed."""

    pass


class PartialCopyError(HostBakError):
    """Raised when a single source item could not be copied."""

    pass


class FatalArchiveError(HostBakError):
    """Raised when compression or extraction of the archive itself fails."""

    pass


class VerificationError(HostBakError):
    """Base class for archive verification failures."""

    pass


class ArchiveNotReadableError(VerificationError):
    """Raised when an archive file is missing or unreadable."""

    pass


class CorruptArchiveError(VerificationError):
    """Raised when an archive cannot be listed structurally."""

    pass


class ChecksumMismatchError(VerificationError):
    """Raised when an archive no longer matches its recorded checksum."""

    pass


class BackupError(HostBakError):
    """Raised when backup operations fail."""

    pass


class RestoreError(HostBakError):
    """Raised when restore operations fail."""

    pass

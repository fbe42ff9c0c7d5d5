# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Human-friendly error message helpers for hostbak.

These helpers centralize wording for common failures so that every module
names the specific missing resource or shortfall instead of a generic error.
"""

from pathlib import Path

from hostbak.units import format_size


def explain_insufficient_space(
    required: int,
    available: int | None,
    location: Path | str,
) -> str:
    """
    Explain that a volume cannot hold the bytes an operation needs.
    """

    if available is None:
        return (
            f"Could not determine available space at {location}. "
            f"{format_size(required)} ({required} bytes) are required."
        )
    return (
        f"Not enough space at {location}: need {format_size(required)} "
        f"({required} bytes), only {format_size(available)} ({available} bytes) available. "
        f"Need additional {format_size(required - available)}."
    )


def explain_missing_archive(path: Path | str) -> str:
    """
    Explain that the selected backup archive is gone.
    """

    return f"Backup archive not found: {path}. It may have been pruned or moved."


def explain_unreadable_archive(path: Path | str) -> str:
    return f"Backup file is not readable or doesn't exist: {path}"


def explain_corrupt_archive(path: Path | str, reason: str) -> str:
    return f"Backup file is corrupted or not a valid tar.gz archive: {path} ({reason})"


def explain_checksum_mismatch(path: Path | str, expected: str, actual: str) -> str:
    """
    Explain that an archive diverged from its recorded checksum.
    """

    return (
        f"Backup file checksum verification failed for {path}: "
        f"recorded {expected or '<unparseable>'}, computed {actual}."
    )


def explain_missing_tool(tool: str, purpose: str) -> str:
    return f"{tool} is not installed; skipping {purpose}."


def explain_invalid_keep_env(value: str | None) -> str:
    """
    Explain that HOSTBAK_KEEP is invalid.
    """

    return (
        f"Invalid HOSTBAK_KEEP value: {value!r}. "
        "It must be a positive integer number of archives to retain."
    )


def explain_invalid_bool_env(name: str, value: str | None) -> str:
    return (
        f"Invalid {name} value: {value!r}. "
        "Expected one of: 1, 0, true, false, yes, no."
    )


def explain_unwritable_log_file(path: Path | str, reason: str) -> str:
    """
    Explain that the run log cannot be opened for appending.
    """

    return (
        f"Cannot open log file {path} for appending ({reason}). "
        "Set HOSTBAK_LOG_FILE to a writable location."
    )


def explain_not_root() -> str:
    return (
        "Please run as root. Backups of system directories and destructive "
        "restores need root privileges (set HOSTBAK_ALLOW_NON_ROOT=1 to override)."
    )

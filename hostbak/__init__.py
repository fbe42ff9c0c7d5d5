# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
hostbak - Interactive full-host backup and restore for Ubuntu servers.

Packs a fixed set of system directories plus database, package and service
exports into timestamped tar.gz archives, keeps the most recent ones,
verifies them with SHA-256 checksum records, and restores them with a
destructive sync after explicit confirmation.

Only one hostbak operation may run against a destination directory at a
time. Concurrent invocations are not locked against each other.
"""

__version__ = "0.1.0"

# Configuration creation (user-facing API)
from hostbak.builder import create_config

# Core functions
from hostbak.core import (
    BackupOutcome,
    check_space,
    run_backup,
    run_restore,
    summarize_sources,
)

# Environment-based configuration
from hostbak.env import create_config_from_env

__all__ = [
    # Version
    "__version__",
    # Configuration creation
    "create_config",
    "create_config_from_env",
    # Core orchestration functions
    "BackupOutcome",
    "check_space",
    "run_backup",
    "run_restore",
    "summarize_sources",
]

# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Backup Engine - Archive lifecycle, verification and restore operations.
"""

from hostbak.backup.manager import (
    BackupArchive,
    BackupManifest,
    BuildResult,
    archive_name,
    build_archive,
    cleanup_stale_working_areas,
    get_backup_stats,
    list_archives,
    prune_old_backups,
    working_area,
)

from hostbak.backup.verify import (
    VerifyResult,
    VerifyStatus,
    verify_archive,
)

from hostbak.backup.restore import (
    RestoreEngine,
    RestoreResult,
    RestoreState,
)

__all__ = [
    # Manager
    "BackupArchive",
    "BackupManifest",
    "BuildResult",
    "archive_name",
    "build_archive",
    "cleanup_stale_working_areas",
    "get_backup_stats",
    "list_archives",
    "prune_old_backups",
    "working_area",
    # Verify
    "VerifyResult",
    "VerifyStatus",
    "verify_archive",
    # Restore
    "RestoreEngine",
    "RestoreResult",
    "RestoreState",
]

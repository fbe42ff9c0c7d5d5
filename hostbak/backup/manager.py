# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
hostbak Backup Manager - Backup lifecycle management.

This module stages the configured sources and auxiliary exports in a
working area, packs them into one timestamped tar.gz in the destination
directory, and prunes old archives down to the retention count.
"""

import json
import re
import shutil
import socket
import tempfile
from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass, field
from datetime import datetime, UTC
from pathlib import Path
from typing import AsyncIterator, Dict, List, Sequence

import aiofiles
import structlog
from ulid import ULID

from hostbak.config import MANIFEST_NAME, BackupConfig
from hostbak.exceptions import (
    BackupError,
    FatalArchiveError,
    PartialCopyError,
    ToolUnavailableError,
)
from hostbak.tools import (
    AuxiliaryExporter,
    Compressor,
    LocalTreeSynchronizer,
    TarGzCompressor,
    TreeSynchronizer,
    default_exporters,
)
from hostbak.tools.blocking import run_blocking
from hostbak.tools.digest import checksum_path

logger = structlog.get_logger()

ARCHIVE_SUFFIX = ".tar.gz"
TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"
WORKING_AREA_PREFIX = "hostbak-work-"


# ============================================================================
# Archive naming and listing
# ============================================================================

def archive_name(prefix: str, when: datetime | None = None) -> str:
    """
    Build ``<prefix>_<YYYYMMDD>_<HHMMSS>.tar.gz`` for ``when`` (default: now).

    The zero-padded fields make names sort lexicographically by creation time.
    """
    when = when or datetime.now()
    return f"{prefix}_{when.strftime(TIMESTAMP_FORMAT)}{ARCHIVE_SUFFIX}"


def archive_pattern(prefix: str) -> re.Pattern:
    return re.compile(rf"^{re.escape(prefix)}_(\d{{8}}_\d{{6}}){re.escape(ARCHIVE_SUFFIX)}$")


def parse_archive_timestamp(name: str, prefix: str) -> datetime | None:
    """Timestamp encoded in an archive name, or None for non-matching names."""
    match = archive_pattern(prefix).match(name)
    if not match:
        return None
    try:
        return datetime.strptime(match.group(1), TIMESTAMP_FORMAT)
    except ValueError:
        return None


@dataclass
class BackupArchive:
    """A published archive in the destination directory."""

    name: str
    path: Path
    size: int
    created_at: datetime  # from filesystem mtime, UTC

    @property
    def checksum_path(self) -> Path:
        return checksum_path(self.path)

    @property
    def has_checksum(self) -> bool:
        return self.checksum_path.exists()

    @classmethod
    def from_path(cls, path: Path) -> "BackupArchive":
        st = path.stat()
        return cls(
            name=path.name,
            path=path,
            size=st.st_size,
            created_at=datetime.fromtimestamp(st.st_mtime, UTC),
        )


def list_archives(destination: Path, prefix: str) -> List[BackupArchive]:
    """
    The retention set: archives matching the naming convention, most recent first.

    Ordered by modification time, ties broken by name (which encodes the
    creation second).

    Args:
        destination: Backup directory
        prefix: Archive name prefix

    Returns:
        List of archives, newest first; empty if the directory is missing
    """
    if not destination.is_dir():
        return []

    pattern = archive_pattern(prefix)
    archives: List[BackupArchive] = []

    for path in destination.iterdir():
        if not pattern.match(path.name) or not path.is_file():
            continue
        try:
            archives.append(BackupArchive.from_path(path))
        except FileNotFoundError:
            # Removed between listing and stat
            continue

    archives.sort(key=lambda a: (a.created_at, a.name), reverse=True)
    return archives


# ============================================================================
# Working area
# ============================================================================

async def _release_working_area(path: Path) -> None:
    try:
        await run_blocking(shutil.rmtree, path)
        logger.debug("working_area_removed", path=str(path))
    except OSError as e:
        logger.error("working_area_cleanup_failed", path=str(path), error=str(e))


@asynccontextmanager
async def working_area(purpose: str) -> AsyncIterator[Path]:
    """
    Allocate a fresh staging directory owned by one operation.

    The directory is removed when the block exits normally or with an
    exception. On interruption (Ctrl-C, task cancellation) it is left in
    place and logged, for cleanup_stale_working_areas() to collect later.
    """
    path = Path(tempfile.mkdtemp(prefix=f"{WORKING_AREA_PREFIX}{purpose}-"))
    logger.info("working_area_created", path=str(path))

    try:
        yield path
    except Exception:
        await _release_working_area(path)
        raise
    except BaseException:
        logger.warning("working_area_left_for_cleanup", path=str(path))
        raise
    else:
        await _release_working_area(path)


def cleanup_stale_working_areas(base: Path | None = None) -> List[Path]:
    """
    Remove working areas left behind by interrupted runs.

    Must not run while another hostbak operation is active.

    Args:
        base: Directory holding working areas (default: system temp dir)

    Returns:
        The removed directories
    """
    base = base or Path(tempfile.gettempdir())
    removed: List[Path] = []

    for path in base.glob(f"{WORKING_AREA_PREFIX}*"):
        if not path.is_dir() or path.is_symlink():
            continue
        try:
            shutil.rmtree(path)
            removed.append(path)
            logger.info("stale_working_area_removed", path=str(path))
        except OSError as e:
            logger.warning("stale_working_area_cleanup_failed", path=str(path), error=str(e))

    return removed


# ============================================================================
# Manifest
# ============================================================================

@dataclass
class BackupManifest:
    """Maps top-level archive directories back to their live locations."""

    operation_id: str
    created_at: str  # ISO 8601
    hostname: str
    sources: Dict[str, str]  # archive name -> absolute source path
    exports: List[str] = field(default_factory=list)

    def target_for(self, name: str) -> Path:
        return Path(self.sources.get(name, f"/{name}"))


async def write_manifest(directory: Path, manifest: BackupManifest) -> Path:
    path = directory / MANIFEST_NAME
    async with aiofiles.open(path, "w") as f:
        await f.write(json.dumps(asdict(manifest), indent=2, sort_keys=True))
    return path


async def read_manifest(directory: Path) -> BackupManifest | None:
    """
    Load the manifest from an extracted archive.

    Returns:
        The manifest, or None when the archive carries none (or an unreadable one)
    """
    path = directory / MANIFEST_NAME
    if not path.is_file():
        return None

    try:
        async with aiofiles.open(path, "r") as f:
            data = json.loads(await f.read())
        return BackupManifest(
            operation_id=str(data["operation_id"]),
            created_at=str(data["created_at"]),
            hostname=str(data.get("hostname", "")),
            sources={str(k): str(v) for k, v in data["sources"].items()},
            exports=list(data.get("exports", [])),
        )
    except (ValueError, KeyError, TypeError, AttributeError) as e:
        logger.warning("manifest_unreadable", path=str(path), error=str(e))
        return None


# ============================================================================
# Build
# ============================================================================

@dataclass
class BuildResult:
    """Result of a backup run."""

    operation_id: str
    archive: BackupArchive
    copied_sources: List[Path]
    missing_sources: List[Path]
    failed_sources: Dict[str, str]  # source path -> error
    exports_written: List[str]
    exports_skipped: List[str]
    exports_failed: Dict[str, str]  # export name -> error
    pruned: List[Path] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def partial(self) -> bool:
        """True when at least one source could not be copied completely."""
        return bool(self.failed_sources)


async def _run_exporters(
    exporters: Sequence[AuxiliaryExporter],
    work: Path,
) -> tuple[List[str], List[str], Dict[str, str]]:
    """Run every exporter; failures are logged and never abort the backup."""
    written: List[str] = []
    skipped: List[str] = []
    failed: Dict[str, str] = {}

    for exporter in exporters:
        if not exporter.available():
            skipped.append(exporter.name)
            logger.info("auxiliary_export_skipped", export=exporter.name, reason="tool_unavailable")
            continue
        try:
            await exporter.export(work)
            written.append(exporter.name)
        except ToolUnavailableError as e:
            skipped.append(exporter.name)
            logger.info("auxiliary_export_skipped", export=exporter.name, reason=e.message)
        except (BackupError, OSError) as e:
            failed[exporter.name] = str(e)
            logger.error("auxiliary_export_failed", export=exporter.name, error=str(e))

    return written, skipped, failed


async def _copy_sources(
    sources: Sequence[Path],
    work: Path,
    synchronizer: TreeSynchronizer,
) -> tuple[List[Path], List[Path], Dict[str, str]]:
    """Copy each existing source to ``work/<basename>``; one failure never stops the rest."""
    copied: List[Path] = []
    missing: List[Path] = []
    failed: Dict[str, str] = {}

    for source in sources:
        if not source.exists() and not source.is_symlink():
            missing.append(source)
            logger.warning("source_missing", path=str(source))
            continue

        logger.info("source_backup_started", path=str(source))
        try:
            await synchronizer.copy_tree(source, work / source.name)
            copied.append(source)
        except PartialCopyError as e:
            failed[str(source)] = e.message
            logger.error("source_backup_failed", path=str(source), error=e.message)

    return copied, missing, failed


async def build_archive(
    config: BackupConfig,
    *,
    exporters: Sequence[AuxiliaryExporter] | None = None,
    compressor: Compressor | None = None,
    synchronizer: TreeSynchronizer | None = None,
    operation_id: str | None = None,
    now: datetime | None = None,
) -> BuildResult:
    """
    Create one archive of the configured sources and prune old archives.

    Steps:
    1. Allocate a working area
    2. Run the enabled auxiliary exporters (skips/failures are tolerated)
    3. Copy each existing source (per-item failures are tolerated)
    4. Write the manifest and compress the working area into the destination
    5. Release the working area
    6. Prune archives beyond ``config.keep_last``

    The space check is the caller's job and must run right before this.

    Args:
        config: Backup configuration
        exporters: Auxiliary exporters (default: enabled by config)
        compressor: Compressor (default: TarGzCompressor)
        synchronizer: Tree synchronizer (default: LocalTreeSynchronizer)
        operation_id: Run identifier (default: new ULID)
        now: Timestamp for the archive name (default: current local time)

    Returns:
        BuildResult describing the archive and per-item outcomes

    Raises:
        FatalArchiveError: If compression fails; no archive is left behind
    """
    operation_id = operation_id or str(ULID())
    compressor = compressor or TarGzCompressor()
    synchronizer = synchronizer or LocalTreeSynchronizer()
    if exporters is None:
        exporters = default_exporters(config)

    start_time = datetime.now(UTC)
    target = config.destination / archive_name(config.archive_prefix, now)

    logger.info("backup_started", operation_id=operation_id, archive=str(target))

    async with working_area("backup") as work:
        written, skipped, export_failures = await _run_exporters(exporters, work)
        copied, missing, copy_failures = await _copy_sources(config.sources, work, synchronizer)

        manifest = BackupManifest(
            operation_id=operation_id,
            created_at=start_time.isoformat(),
            hostname=socket.gethostname(),
            sources={s.name: str(s) for s in copied + [Path(p) for p in copy_failures]},
            exports=written,
        )
        await write_manifest(work, manifest)

        logger.info("archive_compression_started", archive=str(target))
        try:
            await compressor.compress(work, target)
        except FatalArchiveError as e:
            logger.error("backup_failed", operation_id=operation_id, error=e.message)
            raise

    archive = BackupArchive.from_path(target)
    pruned = await prune_old_backups(config.destination, config.archive_prefix, config.keep_last)
    duration = (datetime.now(UTC) - start_time).total_seconds()

    result = BuildResult(
        operation_id=operation_id,
        archive=archive,
        copied_sources=copied,
        missing_sources=missing,
        failed_sources=copy_failures,
        exports_written=written,
        exports_skipped=skipped,
        exports_failed=export_failures,
        pruned=pruned,
        duration_seconds=duration,
    )

    logger.info(
        "backup_completed",
        operation_id=operation_id,
        archive=str(archive.path),
        size=archive.size,
        copied=len(copied),
        missing=len(missing),
        failed=len(copy_failures),
        pruned=len(pruned),
        duration=round(duration, 1),
    )
    return result


# ============================================================================
# Retention
# ============================================================================

async def prune_old_backups(
    destination: Path,
    prefix: str,
    keep: int = 5,
) -> List[Path]:
    """
    Delete all but the ``keep`` most recent archives (and their checksum records).

    Only files matching ``<prefix>_<YYYYMMDD>_<HHMMSS>.tar.gz`` are considered;
    anything else in the directory is left untouched. Running it again is a no-op.

    Args:
        destination: Backup directory
        prefix: Archive name prefix
        keep: Number of archives to retain (>= 1)

    Returns:
        Paths of the deleted archives
    """
    if keep < 1:
        raise ValueError(f"keep must be >= 1, got {keep}")

    archives = list_archives(destination, prefix)
    deleted: List[Path] = []

    for archive in archives[keep:]:
        try:
            archive.path.unlink()
            archive.checksum_path.unlink(missing_ok=True)
            deleted.append(archive.path)
            logger.info("archive_pruned", archive=archive.name)
        except OSError as e:
            logger.warning("prune_archive_error", archive=archive.name, error=str(e))

    logger.info(
        "backup_pruning_complete",
        kept=min(len(archives), keep),
        deleted=len(deleted),
    )
    return deleted


def get_backup_stats(destination: Path, prefix: str) -> dict:
    """
    Get statistics about the archives in ``destination``.

    Returns:
        Dict with archive count, total bytes and oldest/newest timestamps
    """
    archives = list_archives(destination, prefix)

    return {
        "archive_count": len(archives),
        "total_bytes": sum(a.size for a in archives),
        "newest_backup": archives[0].created_at.isoformat() if archives else None,
        "oldest_backup": archives[-1].created_at.isoformat() if archives else None,
        "with_checksum": sum(1 for a in archives if a.has_checksum),
    }

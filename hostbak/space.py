# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
hostbak Space Estimator - Disk space accounting for backup and restore.

Pure computation over filesystem metadata: sizes of the configured sources,
free space of the volume holding the destination (or the restore target),
and the sufficiency check that gates both operations.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, List

import structlog

from hostbak.config import BackupConfig
from hostbak.errors import explain_insufficient_space
from hostbak.exceptions import InsufficientSpaceError
from hostbak.units import format_size

logger = structlog.get_logger()

# Free-space query: location -> free bytes, or None when unknown
SpaceProbe = Callable[[Path], "int | None"]


@dataclass
class SourceItem:
    """
    A top-level path designated for backup.

    ``exists`` is resolved on every access; the byte size is computed on
    first request and kept for the lifetime of the item.
    """

    path: Path
    _size: int | None = field(default=None, init=False, repr=False)

    @property
    def exists(self) -> bool:
        return os.path.lexists(self.path)

    @property
    def size(self) -> int:
        if self._size is None:
            self._size = directory_size(self.path) if self.exists else 0
        return self._size


@dataclass
class SpaceReport:
    """Outcome of a space check against one volume."""

    location: Path
    mount_point: Path | None
    required: int
    available: int | None

    @property
    def sufficient(self) -> bool:
        return has_sufficient_space(self.required, self.available)

    @property
    def shortfall(self) -> int:
        if self.available is None:
            return self.required
        return max(self.required - self.available, 0)

    @property
    def surplus(self) -> int:
        if self.available is None:
            return 0
        return max(self.available - self.required, 0)

    def require(self) -> "SpaceReport":
        """Raise InsufficientSpaceError unless the volume can hold ``required``."""
        if not self.sufficient:
            raise InsufficientSpaceError(
                explain_insufficient_space(self.required, self.available, self.location),
                required=self.required,
                available=self.available,
                details={"location": str(self.location)},
            )
        return self


def directory_size(path: Path) -> int:
    """
    Apparent size in bytes of ``path`` and everything below it.

    Symlinks are counted by their own size and never followed.
    Unreadable subdirectories are logged and skipped.
    """
    st = os.lstat(path)
    if not os.path.isdir(path) or os.path.islink(path):
        return st.st_size

    total = 0

    def _on_error(err: OSError) -> None:
        logger.warning("size_scan_skipped", path=err.filename, error=err.strerror)

    for dirpath, dirnames, filenames in os.walk(path, onerror=_on_error):
        for name in filenames + [d for d in dirnames if os.path.islink(os.path.join(dirpath, d))]:
            try:
                total += os.lstat(os.path.join(dirpath, name)).st_size
            except OSError as e:
                logger.warning("size_scan_skipped", path=e.filename, error=e.strerror)

    return total


def measure_sources(sources: Iterable[Path]) -> List[SourceItem]:
    """Build SourceItems for the configured paths, flagging missing ones."""
    items = [SourceItem(Path(s)) for s in sources]
    for item in items:
        if not item.exists:
            logger.warning("source_missing", path=str(item.path))
    return items


def estimate_required(sources: Iterable[Path | SourceItem]) -> int:
    """
    Sum the byte size of every existing source.

    Missing sources contribute 0 and are logged; they never fail the estimate.
    """
    total = 0
    for source in sources:
        item = source if isinstance(source, SourceItem) else SourceItem(Path(source))
        if not item.exists:
            logger.warning("source_missing", path=str(item.path))
            continue
        total += item.size
    return total


def estimate_available(location: Path, create: bool = True) -> int | None:
    """
    Free bytes available to unprivileged users on the volume holding ``location``.

    Args:
        location: Directory whose filesystem is queried
        create: Create ``location`` first if it does not exist

    Returns:
        Free bytes, or None when the value cannot be determined
    """
    try:
        if create:
            location.mkdir(parents=True, exist_ok=True)
        stats = os.statvfs(location)
    except OSError as e:
        logger.error("free_space_unavailable", location=str(location), error=e.strerror)
        return None

    return stats.f_bavail * stats.f_frsize


def has_sufficient_space(required: int, available: int | None) -> bool:
    """Undeterminable free space is never treated as sufficient."""
    if available is None:
        return False
    return available >= required


def find_mount_point(path: Path) -> Path | None:
    """Walk up from ``path`` to the mount point that contains it."""
    try:
        current = path.resolve()
    except OSError:
        return None
    while not os.path.ismount(current):
        if current.parent == current:
            return None
        current = current.parent
    return current


def check_backup_space(
    config: BackupConfig,
    sources: Iterable[Path | SourceItem] | None = None,
    probe: SpaceProbe | None = None,
) -> SpaceReport:
    """
    Compare the size of the configured sources with free space at the destination.

    Creates the destination directory if it is missing.
    """
    required = estimate_required(sources if sources is not None else config.sources)
    if probe is None:
        available = estimate_available(config.destination)
    else:
        available = probe(config.destination)

    report = SpaceReport(
        location=config.destination,
        mount_point=find_mount_point(config.destination),
        required=required,
        available=available,
    )

    logger.info(
        "backup_space_checked",
        destination=str(config.destination),
        required=format_size(required),
        available=format_size(available),
        sufficient=report.sufficient,
    )
    return report


def check_restore_space(
    required: int,
    target_root: Path,
    probe: SpaceProbe | None = None,
) -> SpaceReport:
    """Compare an archive's uncompressed size with free space at the restore target."""
    if probe is None:
        available = estimate_available(target_root, create=False)
    else:
        available = probe(target_root)

    report = SpaceReport(
        location=target_root,
        mount_point=find_mount_point(target_root),
        required=required,
        available=available,
    )

    logger.info(
        "restore_space_checked",
        target=str(target_root),
        required=format_size(required),
        available=format_size(available),
        sufficient=report.sufficient,
    )
    return report

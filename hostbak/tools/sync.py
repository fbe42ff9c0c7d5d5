# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
hostbak Tree Synchronizer - Attribute-preserving directory copies.

Two operations with deliberately different semantics:

- copy_tree(): additive copy of a source into the backup working area.
- mirror_tree(): destructive sync of a restored directory onto the live
  filesystem. Entries present live but absent from the backup are DELETED.
"""

import os
import shutil
import stat
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Tuple

import structlog

from hostbak.exceptions import PartialCopyError, RestoreError
from hostbak.tools.blocking import run_blocking

logger = structlog.get_logger()


@dataclass
class SyncStats:
    """Counters for one mirror_tree() call."""

    copied: int = 0
    unchanged: int = 0
    removed: int = 0
    errors: List[str] = field(default_factory=list)


def _is_root() -> bool:
    return hasattr(os, "geteuid") and os.geteuid() == 0


def _copy_owner(src: str, dst: str) -> None:
    """Carry uid/gid over; only meaningful (and permitted) for root."""
    if not _is_root():
        return
    st = os.lstat(src)
    os.chown(dst, st.st_uid, st.st_gid, follow_symlinks=False)


def _copy_entry(src: str, dst: str) -> str:
    """
    Copy one non-directory entry with its metadata.

    Symlinks are recreated, FIFOs and device nodes are recreated rather than
    read, sockets are skipped.
    """
    st = os.lstat(src)
    mode = st.st_mode

    if stat.S_ISLNK(mode):
        os.symlink(os.readlink(src), dst)
    elif stat.S_ISFIFO(mode):
        os.mkfifo(dst, stat.S_IMODE(mode))
        shutil.copystat(src, dst, follow_symlinks=False)
    elif stat.S_ISCHR(mode) or stat.S_ISBLK(mode):
        os.mknod(dst, mode, st.st_rdev)
        shutil.copystat(src, dst, follow_symlinks=False)
    elif stat.S_ISSOCK(mode):
        return dst
    else:
        shutil.copy2(src, dst, follow_symlinks=False)

    _copy_owner(src, dst)
    return dst


def _remove(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    else:
        path.unlink()


def _same_file_content(src_stat: os.stat_result, dst: Path) -> bool:
    """rsync's quick check: same type, size and modification time."""
    try:
        dst_stat = os.lstat(dst)
    except FileNotFoundError:
        return False
    return (
        stat.S_ISREG(dst_stat.st_mode)
        and dst_stat.st_size == src_stat.st_size
        and dst_stat.st_mtime_ns == src_stat.st_mtime_ns
    )


def _copy_tree_sync(source: Path, target: Path) -> None:
    """Additive copy; shutil.Error aggregates per-entry failures."""
    if source.is_dir() and not source.is_symlink():
        shutil.copytree(
            source,
            target,
            symlinks=True,
            copy_function=_copy_entry,
            dirs_exist_ok=True,
        )
        if _is_root():
            for dirpath, dirnames, _ in os.walk(source):
                rel = os.path.relpath(dirpath, source)
                _copy_owner(dirpath, os.path.join(target, rel))
    else:
        target.parent.mkdir(parents=True, exist_ok=True)
        _copy_entry(str(source), str(target))


def _mirror_entry_sync(source: Path, target: Path, stats: SyncStats) -> None:
    """Replace ``target`` with the single non-directory entry ``source``."""
    src_stat = os.lstat(source)
    if stat.S_ISREG(src_stat.st_mode) and _same_file_content(src_stat, target):
        shutil.copystat(source, target, follow_symlinks=False)
        _copy_owner(str(source), str(target))
        stats.unchanged += 1
        return

    target.parent.mkdir(parents=True, exist_ok=True)
    if os.path.lexists(target):
        _remove(target)
    _copy_entry(str(source), str(target))
    stats.copied += 1


def _mirror_sync(source: Path, target: Path, stats: SyncStats) -> None:
    """Make ``target`` an exact replica of ``source``, deleting extras."""
    if source.is_symlink() or not source.is_dir():
        _mirror_entry_sync(source, target, stats)
        return

    if os.path.lexists(target) and (target.is_symlink() or not target.is_dir()):
        target.unlink()
    target.mkdir(parents=True, exist_ok=True)

    wanted = {entry.name: entry for entry in os.scandir(source)}

    for entry in os.scandir(target):
        if entry.name not in wanted:
            try:
                _remove(Path(entry.path))
                stats.removed += 1
            except OSError as e:
                stats.errors.append(f"remove {entry.path}: {e}")

    for name, entry in sorted(wanted.items()):
        src = Path(entry.path)
        dst = target / name
        try:
            if entry.is_dir(follow_symlinks=False):
                _mirror_sync(src, dst, stats)
                continue

            src_stat = entry.stat(follow_symlinks=False)
            if stat.S_ISREG(src_stat.st_mode) and _same_file_content(src_stat, dst):
                shutil.copystat(src, dst, follow_symlinks=False)
                _copy_owner(str(src), str(dst))
                stats.unchanged += 1
                continue

            if os.path.lexists(dst):
                _remove(dst)
            _copy_entry(str(src), str(dst))
            stats.copied += 1
        except OSError as e:
            stats.errors.append(f"{src} -> {dst}: {e}")

    shutil.copystat(source, target, follow_symlinks=False)
    _copy_owner(str(source), str(target))


class LocalTreeSynchronizer:
    """TreeSynchronizer implemented with os/shutil."""

    async def copy_tree(self, source: Path, target: Path) -> None:
        """
        Copy ``source`` (directory or single file) to ``target``, preserving attributes.

        Raises:
            PartialCopyError: If any entry could not be copied
        """
        try:
            await run_blocking(_copy_tree_sync, source, target)
        except shutil.Error as e:
            failures: List[Tuple[str, str, str]] = e.args[0] if e.args else []
            raise PartialCopyError(
                f"Failed to copy {len(failures)} entries of {source}",
                details={"source": str(source), "failures": failures[:20]},
            ) from e
        except OSError as e:
            raise PartialCopyError(
                f"Failed to copy {source}: {e}",
                details={"source": str(source)},
            ) from e

    async def mirror_tree(self, source: Path, target: Path) -> SyncStats:
        """
        Replicate ``source`` (directory or single entry) onto ``target`` including deletions.

        Raises:
            RestoreError: If any entry could not be synchronized; the rest of
                the tree is still processed first
        """
        stats = SyncStats()
        try:
            await run_blocking(_mirror_sync, source, target, stats)
        except OSError as e:
            stats.errors.append(f"{source} -> {target}: {e}")

        logger.info(
            "tree_mirrored",
            source=str(source),
            target=str(target),
            copied=stats.copied,
            unchanged=stats.unchanged,
            removed=stats.removed,
            errors=len(stats.errors),
        )

        if stats.errors:
            raise RestoreError(
                f"Failed to synchronize {len(stats.errors)} entries onto {target}",
                details={"target": str(target), "errors": stats.errors[:20]},
            )
        return stats

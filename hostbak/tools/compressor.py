# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
hostbak Compressor - tar.gz packing, listing and extraction.

The archive is written to a hidden ``.partial`` file next to its final
name and published with an atomic rename only after the whole stream was
written and flushed, so a final archive name never points at a partial file.
"""

import gzip
import os
import tarfile
import zlib
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import List

import structlog

from hostbak.exceptions import CorruptArchiveError, FatalArchiveError
from hostbak.tools.blocking import run_blocking

logger = structlog.get_logger()

DEFAULT_GZIP_LEVEL = 6
_READ_CHUNK = 1024 * 1024

# Errors raised by gzip/tarfile for damaged or truncated archives
_ARCHIVE_ERRORS = (tarfile.TarError, EOFError, zlib.error, gzip.BadGzipFile, OSError)


@dataclass(frozen=True)
class ArchiveMember:
    """One entry of an archive listing."""

    name: str
    size: int
    is_dir: bool


def partial_path(target: Path) -> Path:
    """Temporary name the archive is written under before publication."""
    return target.with_name(f".{target.name}.partial")


class TarGzCompressor:
    """Compressor backed by the standard tarfile/gzip modules."""

    def __init__(self, level: int = DEFAULT_GZIP_LEVEL):
        self.level = level

    async def compress(self, source_dir: Path, target: Path) -> int:
        """
        Pack the contents of ``source_dir`` into ``target``.

        Top-level entries of ``source_dir`` become top-level archive members.

        Returns:
            Size of the published archive in bytes

        Raises:
            FatalArchiveError: If the archive could not be written
        """
        try:
            size = await run_blocking(_compress_sync, source_dir, target, self.level)
        except FatalArchiveError:
            raise
        except (OSError, tarfile.TarError, zlib.error) as e:
            raise FatalArchiveError(
                f"Failed to create archive {target}: {e}",
                details={"target": str(target), "source_dir": str(source_dir)},
            ) from e

        logger.info("archive_written", archive=str(target), size=size)
        return size

    async def list_members(self, archive: Path) -> List[ArchiveMember]:
        """
        List archive entries without extracting any payload.

        The whole compressed stream is decoded so truncation and CRC damage
        are detected, not only broken headers.

        Raises:
            CorruptArchiveError: If the archive cannot be decoded
        """
        try:
            return await run_blocking(_list_sync, archive)
        except _ARCHIVE_ERRORS as e:
            raise CorruptArchiveError(
                f"Cannot list archive {archive}: {e}",
                details={"archive": str(archive)},
            ) from e

    async def extract(self, archive: Path, target_dir: Path) -> None:
        """
        Expand ``archive`` into ``target_dir``.

        Raises:
            FatalArchiveError: If the archive is unsafe or extraction fails
        """
        try:
            await run_blocking(_extract_sync, archive, target_dir)
        except FatalArchiveError:
            raise
        except _ARCHIVE_ERRORS as e:
            raise FatalArchiveError(
                f"Failed to extract archive {archive}: {e}",
                details={"archive": str(archive), "target_dir": str(target_dir)},
            ) from e

        logger.info("archive_extracted", archive=str(archive), target_dir=str(target_dir))


def _compress_sync(source_dir: Path, target: Path, level: int) -> int:
    """Synchronous tar.gz creation with atomic publication."""
    if os.path.lexists(target):
        raise FatalArchiveError(
            f"Refusing to overwrite existing archive: {target}",
            details={"target": str(target)},
        )

    target.parent.mkdir(parents=True, exist_ok=True)
    temp_path = partial_path(target)

    try:
        with tarfile.open(temp_path, "w:gz", compresslevel=level) as tar:
            for child in sorted(source_dir.iterdir()):
                tar.add(child, arcname=child.name)

        with open(temp_path, "rb") as f:
            os.fsync(f.fileno())

        os.replace(temp_path, target)
    except BaseException:
        temp_path.unlink(missing_ok=True)
        raise

    return target.stat().st_size


def _list_sync(archive: Path) -> List[ArchiveMember]:
    """Decode the full gzip stream, then read every tar header."""
    with gzip.open(archive, "rb") as stream:
        while stream.read(_READ_CHUNK):
            pass

    with tarfile.open(archive, "r:gz") as tar:
        return [
            ArchiveMember(name=m.name, size=m.size, is_dir=m.isdir())
            for m in tar.getmembers()
        ]


def _check_members(archive: Path, members: List[tarfile.TarInfo]) -> None:
    """
    Reject members that would land outside the extraction directory.

    Absolute names, ``..`` components, hard links leaving the archive and
    paths that pass through a symlink member are refused. Symlink targets
    themselves may be absolute: they are resolved on the live system.
    """
    symlinks = {m.name.rstrip("/") for m in members if m.issym()}

    for member in members:
        path = PurePosixPath(member.name)
        if path.is_absolute() or ".." in path.parts:
            raise FatalArchiveError(
                f"Unsafe path in archive: {member.name}",
                details={"archive": str(archive)},
            )
        for parent in list(path.parents)[:-1]:
            if str(parent) in symlinks:
                raise FatalArchiveError(
                    f"Archive path passes through a symlink: {member.name}",
                    details={"archive": str(archive)},
                )
        if member.islnk():
            link = PurePosixPath(member.linkname)
            if link.is_absolute() or ".." in link.parts:
                raise FatalArchiveError(
                    f"Unsafe hard link in archive: {member.name} -> {member.linkname}",
                    details={"archive": str(archive)},
                )


def _extract_sync(archive: Path, target_dir: Path) -> None:
    """Synchronous, validated extraction preserving modes and numeric owners."""
    target_dir.mkdir(parents=True, exist_ok=True)

    with tarfile.open(archive, "r:gz") as tar:
        members = tar.getmembers()
        _check_members(archive, members)
        tar.extractall(
            target_dir,
            members=members,
            numeric_owner=True,
            filter="fully_trusted",
        )

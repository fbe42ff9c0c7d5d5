# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
hostbak Digester - SHA-256 digests and ``sha256sum`` style checksum records.
"""

import hashlib
import re
from pathlib import Path
from typing import Tuple

import aiofiles
import structlog

logger = structlog.get_logger()

CHECKSUM_SUFFIX = ".sha256"
_CHUNK_SIZE = 1024 * 1024
_RECORD_RE = re.compile(r"^([0-9a-fA-F]{64}) [ *](.+)$")


class Sha256Digester:
    """Digester computing hex SHA-256 digests of files."""

    algorithm = "sha256"

    async def hexdigest(self, path: Path) -> str:
        """
        Hash ``path`` in chunks.

        Args:
            path: File to hash

        Returns:
            Hex-encoded digest
        """
        sha256 = hashlib.sha256()
        async with aiofiles.open(path, "rb") as f:
            while True:
                chunk = await f.read(_CHUNK_SIZE)
                if not chunk:
                    break
                sha256.update(chunk)
        return sha256.hexdigest()


def checksum_path(archive: Path) -> Path:
    """Sidecar location: ``<archive>.sha256``."""
    return archive.with_name(archive.name + CHECKSUM_SUFFIX)


def format_record(digest: str, filename: str) -> str:
    """One ``sha256sum`` line: digest, two spaces, file name."""
    return f"{digest}  {filename}\n"


def parse_record(text: str) -> Tuple[str, str] | None:
    """
    Parse the first line of a checksum record.

    Returns:
        (digest, filename), or None if the record is malformed
    """
    line = text.strip().splitlines()[0] if text.strip() else ""
    match = _RECORD_RE.match(line)
    if not match:
        return None
    return match.group(1).lower(), match.group(2)


async def write_record(archive: Path, digest: str) -> Path:
    """
    Persist the checksum record for ``archive``.

    Written to a temp file and renamed into place so a reader never sees a
    half-written record.
    """
    record = checksum_path(archive)
    temp_path = record.with_name(record.name + ".tmp")

    async with aiofiles.open(temp_path, "w") as f:
        await f.write(format_record(digest, archive.name))

    temp_path.replace(record)
    return record


async def read_record(archive: Path) -> Tuple[str, str] | None:
    """Read and parse the sidecar of ``archive``; None if unreadable or malformed."""
    try:
        async with aiofiles.open(checksum_path(archive), "rb") as f:
            raw = await f.read()
    except OSError as e:
        logger.warning("checksum_record_unreadable", archive=str(archive), error=str(e))
        return None
    return parse_record(raw.decode("utf-8", errors="replace"))

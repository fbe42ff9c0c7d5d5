# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
hostbak Integrity Verifier - Structural and checksum verification of archives.

Verification is both a gate and a self-healing step: a missing checksum
record is created on first verification, while divergence from an existing
record is a failure. Nothing here ever deletes or rewrites an archive.
"""

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

import structlog

from hostbak.errors import (
    explain_checksum_mismatch,
    explain_corrupt_archive,
    explain_unreadable_archive,
)
from hostbak.exceptions import (
    ArchiveNotReadableError,
    ChecksumMismatchError,
    CorruptArchiveError,
)
from hostbak.tools import Compressor, Digester, Sha256Digester, TarGzCompressor
from hostbak.tools.digest import checksum_path, read_record, write_record

logger = structlog.get_logger()


class VerifyStatus(str, Enum):
    """Outcome of verify_archive()."""

    OK = "ok"
    CORRUPT_ARCHIVE = "corrupt_archive"
    CHECKSUM_MISMATCH = "checksum_mismatch"
    NOT_READABLE = "not_readable"


@dataclass
class VerifyResult:
    """Result of verifying one archive."""

    archive: Path
    status: VerifyStatus
    message: str
    digest: str | None = None
    checksum_created: bool = False
    member_count: int = 0

    @property
    def ok(self) -> bool:
        return self.status == VerifyStatus.OK

    def raise_for_status(self) -> "VerifyResult":
        """Turn a failed verification into the matching exception."""
        details = {"archive": str(self.archive), "status": self.status.value}
        if self.status == VerifyStatus.NOT_READABLE:
            raise ArchiveNotReadableError(self.message, details=details)
        if self.status == VerifyStatus.CORRUPT_ARCHIVE:
            raise CorruptArchiveError(self.message, details=details)
        if self.status == VerifyStatus.CHECKSUM_MISMATCH:
            raise ChecksumMismatchError(self.message, details=details)
        return self


async def verify_archive(
    archive: Path,
    compressor: Compressor | None = None,
    digester: Digester | None = None,
) -> VerifyResult:
    """
    Verify ``archive``, short-circuiting on the first failure.

    1. The file must exist and be readable       -> NOT_READABLE
    2. It must list cleanly without extraction   -> CORRUPT_ARCHIVE
    3. An existing checksum record must match    -> CHECKSUM_MISMATCH
    4. A missing checksum record is created      -> OK (checksum_created)

    Args:
        archive: Path to the .tar.gz archive
        compressor: Compressor used for the structural listing
        digester: Digester used for the checksum

    Returns:
        VerifyResult with the status and digest
    """
    compressor = compressor or TarGzCompressor()
    digester = digester or Sha256Digester()

    logger.info("verification_started", archive=str(archive))

    # Step 1: existence and readability
    if not archive.is_file() or not os.access(archive, os.R_OK):
        message = explain_unreadable_archive(archive)
        logger.error("verification_failed", archive=str(archive), status="not_readable")
        return VerifyResult(archive, VerifyStatus.NOT_READABLE, message)

    # Step 2: structural listing
    try:
        members = await compressor.list_members(archive)
    except CorruptArchiveError as e:
        message = explain_corrupt_archive(archive, str(e.__cause__ or e.message))
        logger.error("verification_failed", archive=str(archive), status="corrupt_archive")
        return VerifyResult(archive, VerifyStatus.CORRUPT_ARCHIVE, message)

    digest = await digester.hexdigest(archive)
    record_path = checksum_path(archive)

    # Step 4: first verification creates the record
    if not record_path.exists():
        await write_record(archive, digest)
        logger.warning("checksum_record_created", archive=str(archive), record=str(record_path))
        return VerifyResult(
            archive,
            VerifyStatus.OK,
            "Backup integrity verification passed (checksum record created).",
            digest=digest,
            checksum_created=True,
            member_count=len(members),
        )

    # Step 3: compare against the existing record
    record = await read_record(archive)
    expected = record[0] if record else ""
    if expected != digest:
        message = explain_checksum_mismatch(archive, expected, digest)
        logger.error(
            "verification_failed",
            archive=str(archive),
            status="checksum_mismatch",
            expected=expected,
            actual=digest,
        )
        return VerifyResult(archive, VerifyStatus.CHECKSUM_MISMATCH, message, digest=digest)

    logger.info("verification_passed", archive=str(archive), members=len(members))
    return VerifyResult(
        archive,
        VerifyStatus.OK,
        "Backup integrity verification passed.",
        digest=digest,
        member_count=len(members),
    )

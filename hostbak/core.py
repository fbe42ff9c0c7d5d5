# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
hostbak Core - Orchestration of the backup and restore operations.

This module ties the space estimator, archive builder, retention manager,
integrity verifier and restore engine together, and turns their typed
errors into result objects the operator surface can report.
"""

from dataclasses import dataclass, field
from datetime import datetime, UTC
from typing import List, Sequence

import structlog
from ulid import ULID

from hostbak.backup.manager import BackupArchive, BuildResult, build_archive, list_archives
from hostbak.backup.restore import RestoreEngine, RestoreResult
from hostbak.backup.verify import VerifyResult, verify_archive
from hostbak.config import BackupConfig
from hostbak.console import Console
from hostbak.exceptions import FatalArchiveError, InsufficientSpaceError
from hostbak.space import SourceItem, SpaceProbe, SpaceReport, check_backup_space, measure_sources
from hostbak.tools import (
    AuxiliaryExporter,
    Compressor,
    Digester,
    TreeSynchronizer,
)

logger = structlog.get_logger()


@dataclass
class BackupOutcome:
    """Result of a full backup run: space check, build and verification."""

    operation_id: str
    space: SpaceReport
    build: BuildResult | None = None
    verification: VerifyResult | None = None
    errors: List[str] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.build is not None and not self.errors

    @property
    def partial(self) -> bool:
        return self.build is not None and self.build.partial


@dataclass
class SourceSummary:
    """The configured sources with their sizes."""

    items: List[SourceItem]

    @property
    def total(self) -> int:
        return sum(item.size for item in self.items if item.exists)

    @property
    def missing(self) -> List[SourceItem]:
        return [item for item in self.items if not item.exists]


def summarize_sources(config: BackupConfig) -> SourceSummary:
    return SourceSummary(items=measure_sources(config.sources))


def check_space(config: BackupConfig, probe: SpaceProbe | None = None) -> SpaceReport:
    """Space check for a backup of the configured sources."""
    return check_backup_space(config, probe=probe)


async def run_backup(
    config: BackupConfig,
    *,
    probe: SpaceProbe | None = None,
    exporters: Sequence[AuxiliaryExporter] | None = None,
    compressor: Compressor | None = None,
    synchronizer: TreeSynchronizer | None = None,
    digester: Digester | None = None,
) -> BackupOutcome:
    """
    Run one complete backup.

    This is the main entry point for backups. It:
    1. Re-checks space right before building; insufficient space stops here
    2. Builds the archive and prunes old archives
    3. Verifies the new archive, creating its checksum record

    Per-source copy failures do not fail the run; they are reported through
    ``BackupOutcome.partial`` and ``build.failed_sources``.

    Args:
        config: Backup configuration
        probe: Free-space query override
        exporters: Auxiliary exporters override
        compressor: Compressor override
        synchronizer: Tree synchronizer override
        digester: Digester override

    Returns:
        BackupOutcome with the details of each stage
    """
    operation_id = str(ULID())
    start_time = datetime.now(UTC)

    with structlog.contextvars.bound_contextvars(operation_id=operation_id):
        report = check_space(config, probe)
        outcome = BackupOutcome(operation_id=operation_id, space=report)

        try:
            report.require()
        except InsufficientSpaceError as e:
            outcome.errors.append(e.message)
            logger.error("backup_aborted", reason="insufficient_space", shortfall=report.shortfall)
            return outcome

        try:
            outcome.build = await build_archive(
                config,
                exporters=exporters,
                compressor=compressor,
                synchronizer=synchronizer,
                operation_id=operation_id,
            )
        except FatalArchiveError as e:
            outcome.errors.append(e.message)
            outcome.duration_seconds = (datetime.now(UTC) - start_time).total_seconds()
            return outcome

        outcome.verification = await verify_archive(
            outcome.build.archive.path,
            compressor=compressor,
            digester=digester,
        )
        if not outcome.verification.ok:
            outcome.errors.append(outcome.verification.message)

        outcome.duration_seconds = (datetime.now(UTC) - start_time).total_seconds()

        if outcome.partial:
            logger.warning(
                "backup_partial",
                failed=sorted(outcome.build.failed_sources),
            )
        return outcome


async def run_restore(
    config: BackupConfig,
    console: Console,
    engine: RestoreEngine | None = None,
    archives: Sequence[BackupArchive] | None = None,
) -> RestoreResult:
    """
    Run the interactive restore over the retention set.

    Args:
        config: Backup configuration
        console: Operator console
        engine: Restore engine override
        archives: Archives to choose from (default: list_archives())

    Returns:
        RestoreResult of the run
    """
    engine = engine or RestoreEngine(config)
    if archives is None:
        archives = list_archives(config.destination, config.archive_prefix)
    return await engine.run(archives, console)

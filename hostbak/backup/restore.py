# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
hostbak Restore Engine - Restore a selected archive onto the live filesystem.

The restore walks an explicit state machine:

    SELECTING -> PREVIEWED -> SPACE_CHECKED -> CONFIRMED -> EXTRACTING
        -> REPLAYING -> AUXILIARY_RESTORING -> DONE

CANCELLED is reachable from every state before EXTRACTING and leaves no
side effects. FAILED ends a restore whose extraction or replay failed, and
also a restore aborted before extraction (missing archive, failed
verification, insufficient space).

Replaying is a destructive sync: files present live but absent from the
backup are deleted. This is the opposite of the additive copy used when
building an archive.
"""

import asyncio
import os
import re
from dataclasses import dataclass, field
from datetime import datetime, UTC
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Sequence

import structlog
from ulid import ULID

from hostbak.backup.manager import (
    BackupArchive,
    read_manifest,
    working_area,
)
from hostbak.backup.verify import verify_archive
from hostbak.config import DATABASE_DUMP_NAME, DATABASES_DIR, BackupConfig
from hostbak.console import Console
from hostbak.errors import explain_missing_archive
from hostbak.exceptions import (
    HostBakError,
    NotFoundError,
    RestoreError,
    ToolUnavailableError,
)
from hostbak.space import SpaceProbe, SpaceReport, check_restore_space
from hostbak.tools import (
    ArchiveMember,
    Compressor,
    DatabaseExporter,
    Digester,
    LocalTreeSynchronizer,
    MySQLDumpExporter,
    TarGzCompressor,
    TreeSynchronizer,
)
from hostbak.tools.exporters import run_command
from hostbak.units import format_size

logger = structlog.get_logger()

RESTART_DELAY_SECONDS = 10


class RestoreState(str, Enum):
    """States of one restore run."""

    SELECTING = "selecting"
    PREVIEWED = "previewed"
    SPACE_CHECKED = "space_checked"
    CONFIRMED = "confirmed"
    EXTRACTING = "extracting"
    REPLAYING = "replaying"
    AUXILIARY_RESTORING = "auxiliary_restoring"
    DONE = "done"
    CANCELLED = "cancelled"
    FAILED = "failed"


_CANCELLABLE = {
    RestoreState.SELECTING,
    RestoreState.PREVIEWED,
    RestoreState.SPACE_CHECKED,
    RestoreState.CONFIRMED,
}


@dataclass
class RestoreResult:
    """Result of a restore run."""

    operation_id: str
    state: RestoreState
    archive: BackupArchive | None = None
    replayed: List[str] = field(default_factory=list)
    failed_directories: Dict[str, str] = field(default_factory=dict)
    database_restored: bool = False
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.state == RestoreState.DONE


async def restart_host(delay: int = RESTART_DELAY_SECONDS) -> None:
    """Reboot the host after ``delay`` seconds."""
    await asyncio.sleep(delay)
    returncode, _, stderr = await run_command(("reboot",))
    if returncode != 0:
        raise RestoreError(
            f"reboot exited with status {returncode}",
            details={"stderr": stderr.strip()},
        )


def live_path(restore_root: Path, source: Path) -> Path:
    """Map an absolute source path under ``restore_root``."""
    return restore_root.joinpath(*source.parts[1:])


class RestoreEngine:
    """
    Drives one restore through its states.

    All collaborators are injectable; the defaults use tarfile, os/shutil,
    the mysql client and statvfs.
    """

    def __init__(
        self,
        config: BackupConfig,
        *,
        compressor: Compressor | None = None,
        synchronizer: TreeSynchronizer | None = None,
        database: DatabaseExporter | None = None,
        digester: Digester | None = None,
        space_probe: SpaceProbe | None = None,
        restart: Callable[[], Awaitable[None]] | None = None,
    ):
        self.config = config
        self.compressor = compressor or TarGzCompressor()
        self.synchronizer = synchronizer or LocalTreeSynchronizer()
        self.database = database if database is not None else MySQLDumpExporter()
        self.digester = digester
        self.space_probe = space_probe
        self.restart = restart or restart_host
        self.state = RestoreState.SELECTING

    def _transition(self, state: RestoreState) -> None:
        if state == RestoreState.CANCELLED and self.state not in _CANCELLABLE:
            raise RestoreError(f"Cannot cancel a restore in state {self.state.value}")
        logger.debug("restore_state_changed", previous=self.state.value, state=state.value)
        self.state = state

    # ------------------------------------------------------------------
    # Individual steps
    # ------------------------------------------------------------------

    def select_archive(
        self,
        archives: Sequence[BackupArchive],
        console: Console,
    ) -> BackupArchive | None:
        """
        Ask for an archive by 1-based index; invalid input asks again.

        Returns:
            The selected archive, or None if the operator quit
        """
        self._transition(RestoreState.SELECTING)
        if not archives:
            console.say("No backups found")
            return None

        max_index = len(archives)
        while True:
            answer = console.ask(
                f"Enter the number of the backup to restore [1-{max_index}] (or 'q' to quit): "
            )
            if answer is None or answer.lower() == "q":
                return None
            if re.fullmatch(r"[0-9]+", answer) and 1 <= int(answer) <= max_index:
                return archives[int(answer) - 1]
            console.say(f"Invalid selection. Please enter a number between 1 and {max_index}")

    async def preview(self, archive: BackupArchive, console: Console) -> List[ArchiveMember]:
        """
        Verify the archive and show the first entries.

        Raises:
            NotFoundError: If the archive disappeared
            VerificationError: If the archive is unreadable, corrupt or mismatching
        """
        if not archive.path.exists():
            raise NotFoundError(
                explain_missing_archive(archive.path),
                details={"archive": str(archive.path)},
            )

        console.say("\nVerifying backup integrity...")
        result = await verify_archive(archive.path, self.compressor, self.digester)
        console.say(result.message)
        result.raise_for_status()

        members = await self.compressor.list_members(archive.path)

        console.say("\nBackup contents:")
        shown = [m.name for m in members if m.name not in (".", "./")]
        for name in shown[: self.config.preview_limit]:
            console.say(name)
        if len(shown) > self.config.preview_limit:
            console.say("...")

        self._transition(RestoreState.PREVIEWED)
        return members

    def check_space(
        self,
        members: Sequence[ArchiveMember],
        console: Console,
        advance: bool = True,
    ) -> SpaceReport:
        """
        Compare the uncompressed archive size with free space at the restore root.

        Raises:
            InsufficientSpaceError: If the restore would not fit
        """
        console.say("\nChecking space requirements...")
        required = sum(m.size for m in members)
        report = check_restore_space(required, self.config.restore_root, self.space_probe)

        console.say(f"Required space: {format_size(report.required)}")
        console.say(f"Available space: {format_size(report.available)}")
        report.require()

        if advance:
            self._transition(RestoreState.SPACE_CHECKED)
        return report

    def confirm(self, console: Console) -> bool:
        """Only an exact ``yes`` confirms."""
        confirmed = console.confirm("Do you want to continue with the restore? (yes/no): ")
        if confirmed:
            self._transition(RestoreState.CONFIRMED)
        return confirmed

    async def replay(self, extracted: Path, console: Console) -> tuple[List[str], Dict[str, str]]:
        """
        Mirror each backed-up source onto its live location.

        With a manifest, every recorded source is replayed, including single
        files and symlinks. Without one, only top-level directories are.
        Every entry is attempted even if an earlier one fails.

        Returns:
            (replayed entry names, failed entry name -> error)
        """
        self._transition(RestoreState.REPLAYING)
        manifest = await read_manifest(extracted)
        replayed: List[str] = []
        failed: Dict[str, str] = {}

        if manifest is None:
            logger.warning("manifest_missing", extracted=str(extracted))
            entries = sorted(
                p for p in extracted.iterdir()
                if p.is_dir() and not p.is_symlink() and p.name != DATABASES_DIR
            )
        else:
            entries = []
            for name in sorted(manifest.sources):
                if Path(name).name != name or name in (".", ".."):
                    failed[name] = f"Refusing to restore archive entry {name!r}"
                    logger.error("replay_refused", directory=name)
                    continue
                if name == DATABASES_DIR:
                    logger.warning("replay_source_shadowed", directory=name)
                    continue
                if not os.path.lexists(extracted / name):
                    logger.warning("replay_source_absent", directory=name)
                    continue
                entries.append(extracted / name)

        for entry in entries:
            source = manifest.target_for(entry.name) if manifest else Path("/", entry.name)
            if not source.is_absolute() or source == Path(source.anchor):
                failed[entry.name] = f"Refusing to restore onto {source}"
                logger.error("replay_refused", directory=entry.name, target=str(source))
                continue

            target = live_path(self.config.restore_root, source)
            console.say(f"Restoring {target}...")
            logger.info("replay_started", directory=entry.name, target=str(target))
            try:
                await self.synchronizer.mirror_tree(entry, target)
                replayed.append(entry.name)
            except RestoreError as e:
                failed[entry.name] = e.message
                logger.error("replay_failed", directory=entry.name, error=e.message)

        return replayed, failed

    async def restore_auxiliary(self, extracted: Path, console: Console) -> tuple[bool, List[str]]:
        """
        Replay the database export if present and a client is installed.

        Returns:
            (database restored, warnings)
        """
        self._transition(RestoreState.AUXILIARY_RESTORING)
        dump = extracted / DATABASES_DIR / DATABASE_DUMP_NAME
        if not dump.is_file():
            return False, []

        console.say("Restoring databases...")
        try:
            await self.database.restore(dump)
            return True, []
        except ToolUnavailableError as e:
            console.say(e.message)
            logger.info("database_restore_skipped", reason=e.message)
            return False, [e.message]
        except RestoreError as e:
            console.say(f"Warning: {e.message}")
            logger.error("database_restore_failed", error=e.message)
            return False, [e.message]

    async def offer_restart(self, console: Console) -> bool:
        """Ask separately before rebooting; returns True if a restart was issued."""
        if not self.config.offer_restart:
            return False
        if not console.confirm("Would you like to restart the system now? (yes/no): "):
            return False
        console.say(f"System will restart in {RESTART_DELAY_SECONDS} seconds...")
        logger.warning("host_restart_requested")
        await self.restart()
        return True

    # ------------------------------------------------------------------
    # Full flow
    # ------------------------------------------------------------------

    async def run(self, archives: Sequence[BackupArchive], console: Console) -> RestoreResult:
        """
        Run the interactive restore over an explicit list of archives.

        Args:
            archives: The retention set, as returned by list_archives()
            console: Operator console

        Returns:
            RestoreResult; ``succeeded`` is True only in state DONE
        """
        operation_id = str(ULID())
        start_time = datetime.now(UTC)
        result = RestoreResult(operation_id=operation_id, state=RestoreState.SELECTING)

        with structlog.contextvars.bound_contextvars(operation_id=operation_id):
            archive = self.select_archive(archives, console)
            if archive is None:
                self._transition(RestoreState.CANCELLED)
                result.state = self.state
                return result
            result.archive = archive
            logger.info("restore_selected", archive=archive.name)

            console.say("\nWarning: This will restore the following backup:")
            console.say(f"Backup file: {archive.name}")
            console.say(
                "This operation will overwrite existing files. "
                "Make sure you have a current backup before proceeding."
            )

            try:
                members = await self.preview(archive, console)
                self.check_space(members, console)

                if not self.confirm(console):
                    console.say("Restore cancelled")
                    self._transition(RestoreState.CANCELLED)
                    logger.info("restore_cancelled", archive=archive.name)
                    result.state = self.state
                    return result

                console.say("\nStarting restore process...")
                async with working_area("restore") as work:
                    self._transition(RestoreState.EXTRACTING)
                    # Space may have changed while the operator was reading
                    self.check_space(members, console, advance=False)
                    console.say("Extracting backup...")
                    await self.compressor.extract(archive.path, work)

                    console.say("Restoring files...")
                    replayed, failed = await self.replay(work, console)
                    result.replayed = replayed
                    result.failed_directories = failed
                    if failed:
                        raise RestoreError(
                            f"Failed to restore {len(failed)} of {len(replayed) + len(failed)} directories",
                            details={"failed": sorted(failed)},
                        )

                    restored, warnings = await self.restore_auxiliary(work, console)
                    result.database_restored = restored
                    result.warnings.extend(warnings)

                self._transition(RestoreState.DONE)

            except HostBakError as e:
                self.state = RestoreState.FAILED
                result.errors.append(e.message)
                for name, error in result.failed_directories.items():
                    result.errors.append(f"{name}: {error}")
                console.say(f"Error: {e.message}")
                logger.error("restore_failed", archive=archive.name, error=e.message)

            result.state = self.state
            result.duration_seconds = (datetime.now(UTC) - start_time).total_seconds()

            if not result.succeeded:
                return result

            console.say("Restore completed successfully!")
            console.say("Note: Some services may need to be restarted for changes to take effect.")
            logger.info(
                "restore_completed",
                archive=archive.name,
                replayed=len(result.replayed),
                database_restored=result.database_restored,
                duration=round(result.duration_seconds, 1),
            )

            await self.offer_restart(console)
            return result

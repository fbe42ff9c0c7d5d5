# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
hostbak Menu - The interactive operator menu.

An explicit loop over a Console: each option runs one operation and returns
to the menu. End of input exits the loop.
"""

from typing import Sequence

import structlog

from hostbak.backup.manager import BackupArchive, list_archives
from hostbak.backup.restore import RestoreEngine
from hostbak.config import BackupConfig
from hostbak.console import Console
from hostbak.core import BackupOutcome, check_space, run_backup, run_restore, summarize_sources
from hostbak.space import SpaceProbe, SpaceReport
from hostbak.tools import AuxiliaryExporter
from hostbak.units import format_size

logger = structlog.get_logger()

MENU = """
Ubuntu Server Backup Utility
=========================
1. List directories to be backed up
2. Check disk space
3. List existing backups
4. Start backup
5. Restore backup <- USE AT YOUR OWN RISK!
6. Exit"""

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def show_sources(config: BackupConfig, console: Console) -> None:
    console.say("\nDirectories to be backed up:")
    console.say("==========================")
    console.say(f"{'Directory':<30} {'Size':<15} {'Status':<20}")
    console.say(f"{'---------':<30} {'----':<15} {'------':<20}")

    summary = summarize_sources(config)
    for item in summary.items:
        if item.exists:
            console.say(f"{str(item.path):<30} {format_size(item.size):<15} {'Available':<20}")
        else:
            console.say(f"{str(item.path):<30} {'N/A':<15} {'Not Found':<20}")

    console.say(f"\nTotal size of all available directories: {format_size(summary.total)}")


def show_space(report: SpaceReport, console: Console) -> None:
    console.say("\nDisk Space Analysis:")
    console.say(f"Backup location: {report.location}")
    console.say(f"Mount point: {report.mount_point or 'unknown'}")

    if report.available is None:
        console.say("Error: Could not determine available space!")
        return

    console.say(f"Available space: {format_size(report.available)}")
    console.say(f"Required space: {format_size(report.required)}")
    if report.sufficient:
        console.say("Sufficient space available for backup.")
        console.say(f"Extra space: {format_size(report.surplus)}")
    else:
        console.say("Warning: Not enough space for backup!")
        console.say(f"Need additional: {format_size(report.shortfall)}")


def show_archives(config: BackupConfig, console: Console) -> Sequence[BackupArchive]:
    """Print the retention set as a numbered table and return it."""
    console.say("\nExisting Backups:")
    console.say("=================")

    if not config.destination.is_dir():
        console.say("Backup directory does not exist")
        return []

    archives = list_archives(config.destination, config.archive_prefix)
    if not archives:
        console.say("No backups found")
        return []

    console.say(f"{'No.':<4} {'Backup Name':<40} {'Size':<15} {'Date Created':<20}")
    console.say(f"{'---':<4} {'-----------':<40} {'----':<15} {'------------':<20}")
    for index, archive in enumerate(archives, 1):
        created = archive.created_at.astimezone().strftime(DATE_FORMAT)
        console.say(f"{f'[{index}]':<4} {archive.name:<40} {format_size(archive.size):<15} {created:<20}")
    return archives


def report_backup(outcome: BackupOutcome, console: Console) -> None:
    if outcome.build is None:
        for error in outcome.errors:
            console.say(f"Error: {error}")
        console.say("Backup failed")
        return

    build = outcome.build
    console.say(f"Backup saved to {build.archive.path} ({format_size(build.archive.size)})")
    for source in build.missing_sources:
        console.say(f"Directory {source} does not exist")
    for name in build.exports_skipped:
        console.say(f"Skipped {name}: tool not installed")
    for name, error in build.exports_failed.items():
        console.say(f"Warning: {name} failed: {error}")
    if outcome.partial:
        console.say("Warning: the backup is incomplete. These sources could not be copied fully:")
        for source, error in sorted(build.failed_sources.items()):
            console.say(f"  {source}: {error}")
    for path in build.pruned:
        console.say(f"Removed old backup {path.name}")
    if outcome.verification is not None:
        console.say(outcome.verification.message)

    if outcome.succeeded:
        console.say("Backup process completed")
    else:
        for error in outcome.errors:
            console.say(f"Error: {error}")


async def run_menu(
    config: BackupConfig,
    console: Console | None = None,
    *,
    probe: SpaceProbe | None = None,
    exporters: Sequence[AuxiliaryExporter] | None = None,
    engine: RestoreEngine | None = None,
) -> None:
    """
    Run the 1-6 menu until the operator exits or input ends.

    Args:
        config: Backup configuration
        console: Operator console (default: stdin/stdout)
        probe: Free-space query override, shared by backup and restore
        exporters: Auxiliary exporters override for backups
        engine: Restore engine override
    """
    console = console or Console()
    if engine is None:
        engine = RestoreEngine(config, space_probe=probe)

    while True:
        console.say(MENU)
        choice = console.ask("Select an option (1-6): ")
        if choice is None:
            logger.info("menu_input_closed")
            return

        if choice == "1":
            show_sources(config, console)
        elif choice == "2":
            show_space(check_space(config, probe), console)
        elif choice == "3":
            show_archives(config, console)
        elif choice == "4":
            console.say("\nStarting backup process...")
            report = check_space(config, probe)
            show_space(report, console)
            if not report.sufficient:
                continue
            if console.ask("Continue with backup? (y/n): ") != "y":
                continue
            outcome = await run_backup(config, probe=probe, exporters=exporters)
            report_backup(outcome, console)
        elif choice == "5":
            console.say("\nBackup Restoration Utility")
            console.say("=======================")
            archives = show_archives(config, console)
            if archives:
                await run_restore(config, console, engine=engine, archives=archives)
        elif choice == "6":
            console.say("Exiting...")
            return
        else:
            console.say("Invalid option")

# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Operator menu tests, driven through a scripted console.
"""

from pathlib import Path

import pytest

from conftest import FakeDatabase, ScriptedConsole, make_archive
from hostbak.backup.manager import list_archives
from hostbak.backup.restore import RestoreEngine
from hostbak.menu import run_menu


@pytest.mark.asyncio
async def test_invalid_option_then_exit(make_config):
    console = ScriptedConsole(["9", "6"])

    await run_menu(make_config(), console)

    assert "Invalid option" in console.output
    assert console.output[-1] == "Exiting..."


@pytest.mark.asyncio
async def test_end_of_input_exits(make_config):
    console = ScriptedConsole([])

    await run_menu(make_config(), console)

    assert console.prompts == ["Select an option (1-6): "]


@pytest.mark.asyncio
async def test_list_sources(make_config, source_tree, temp_dir: Path):
    config = make_config(sources=(source_tree["src_a"], temp_dir / "missing"))
    console = ScriptedConsole(["1", "6"])

    await run_menu(config, console)

    text = console.text
    assert f"{str(source_tree['src_a']):<30} {'10B':<15} Available" in text
    assert "Not Found" in text
    assert "Total size of all available directories: 10B" in text


@pytest.mark.asyncio
async def test_check_space_shows_surplus(make_config, source_tree):
    console = ScriptedConsole(["2", "6"])

    await run_menu(make_config(), console, probe=lambda path: 1034)

    assert "Sufficient space available for backup." in console.output
    assert "Extra space: 1.0KiB" in console.output


@pytest.mark.asyncio
async def test_check_space_shows_shortfall(make_config, source_tree, no_space):
    console = ScriptedConsole(["2", "6"])

    await run_menu(make_config(), console, probe=no_space)

    assert "Warning: Not enough space for backup!" in console.output
    assert "Need additional: 10B" in console.output


@pytest.mark.asyncio
async def test_backup_requires_y(make_config, source_tree, plenty_of_space):
    config = make_config()
    console = ScriptedConsole(["4", "n", "6"])

    await run_menu(config, console, probe=plenty_of_space, exporters=[])

    assert "Continue with backup? (y/n): " in console.prompts
    assert list_archives(config.destination, config.archive_prefix) == []


@pytest.mark.asyncio
async def test_backup_runs_and_verifies(make_config, source_tree, plenty_of_space):
    config = make_config()
    console = ScriptedConsole(["4", "y", "3", "6"])

    await run_menu(config, console, probe=plenty_of_space, exporters=[])

    archives = list_archives(config.destination, config.archive_prefix)
    assert len(archives) == 1
    assert archives[0].has_checksum
    assert "Backup process completed" in console.output
    assert any(line.startswith("[1]") and archives[0].name in line for line in console.output)


@pytest.mark.asyncio
async def test_backup_not_offered_without_space(make_config, source_tree, no_space):
    config = make_config()
    console = ScriptedConsole(["4", "6"])

    await run_menu(config, console, probe=no_space, exporters=[])

    assert "Continue with backup? (y/n): " not in console.prompts
    assert list_archives(config.destination, config.archive_prefix) == []


@pytest.mark.asyncio
async def test_list_archives_without_directory(make_config):
    console = ScriptedConsole(["3", "6"])

    await run_menu(make_config(), console)

    assert "Backup directory does not exist" in console.output


@pytest.mark.asyncio
async def test_restore_from_menu(make_config, plenty_of_space):
    config = make_config()
    make_archive(
        config.destination,
        "ubuntu_backup_20260401_010000.tar.gz",
        {"etc/hostname": b"web01\n"},
    )
    engine = RestoreEngine(config, space_probe=plenty_of_space, database=FakeDatabase())
    console = ScriptedConsole(["5", "1", "yes", "6"])

    await run_menu(config, console, engine=engine)

    assert (config.restore_root / "etc" / "hostname").read_text() == "web01\n"
    assert "Restore completed successfully!" in console.output


@pytest.mark.asyncio
async def test_restore_with_no_archives_returns_to_menu(make_config):
    config = make_config()
    config.destination.mkdir(parents=True)
    console = ScriptedConsole(["5", "6"])

    await run_menu(config, console)

    assert "No backups found" in console.output
    assert console.output[-1] == "Exiting..."

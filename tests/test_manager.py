# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Archive builder and retention tests.
"""

import asyncio
import json
import tarfile
from datetime import datetime, timedelta
from pathlib import Path

import pytest

from conftest import FakeExporter, FlakySynchronizer, set_mtime
from hostbak.backup.manager import (
    BackupManifest,
    archive_name,
    build_archive,
    cleanup_stale_working_areas,
    get_backup_stats,
    list_archives,
    parse_archive_timestamp,
    prune_old_backups,
    read_manifest,
    working_area,
    write_manifest,
)
from hostbak.exceptions import FatalArchiveError
from hostbak.tools import TarGzCompressor


def _touch_archive(destination: Path, when: datetime, prefix: str = "ubuntu_backup") -> Path:
    destination.mkdir(parents=True, exist_ok=True)
    path = destination / archive_name(prefix, when)
    path.write_bytes(b"archive")
    set_mtime(path, when)
    return path


# ============================================================================
# Naming
# ============================================================================

def test_archive_names_sort_by_creation_time():
    base = datetime(2026, 1, 9, 23, 59, 58)
    moments = [base + timedelta(seconds=s) for s in (0, 1, 2, 3600, 86400 * 40)]

    names = [archive_name("ubuntu_backup", when) for when in moments]

    assert names == sorted(names)
    assert names[0] == "ubuntu_backup_20260109_235958.tar.gz"


def test_parse_archive_timestamp():
    when = datetime(2026, 3, 4, 5, 6, 7)

    assert parse_archive_timestamp(archive_name("web", when), "web") == when
    assert parse_archive_timestamp("web_2026.tar.gz", "web") is None
    assert parse_archive_timestamp(archive_name("web", when), "db") is None


def test_list_archives_newest_first_and_ignores_other_files(temp_dir: Path):
    destination = temp_dir / "backups"
    base = datetime(2026, 5, 1, 2, 0, 0)
    older = _touch_archive(destination, base)
    newer = _touch_archive(destination, base + timedelta(days=1))
    (destination / "notes.txt").write_text("keep me")
    (destination / "other_20260501_020000.tar.gz").write_bytes(b"x")

    archives = list_archives(destination, "ubuntu_backup")

    assert [a.path for a in archives] == [newer, older]


def test_list_archives_missing_directory(temp_dir: Path):
    assert list_archives(temp_dir / "nope", "ubuntu_backup") == []


# ============================================================================
# Retention
# ============================================================================

@pytest.mark.asyncio
@pytest.mark.parametrize("count", [0, 1, 5, 6, 9])
async def test_retention_keeps_most_recent(temp_dir: Path, count: int):
    destination = temp_dir / "backups"
    base = datetime(2026, 2, 1, 3, 0, 0)
    paths = [_touch_archive(destination, base + timedelta(hours=i)) for i in range(count)]

    deleted = await prune_old_backups(destination, "ubuntu_backup", keep=5)

    remaining = list_archives(destination, "ubuntu_backup")
    assert len(remaining) == min(count, 5)
    assert {a.path for a in remaining} == set(paths[-5:])
    assert set(deleted) == set(paths[:-5])


@pytest.mark.asyncio
async def test_retention_is_idempotent_and_leaves_other_files(temp_dir: Path):
    destination = temp_dir / "backups"
    base = datetime(2026, 2, 1, 3, 0, 0)
    paths = [_touch_archive(destination, base + timedelta(hours=i)) for i in range(7)]
    for path in paths:
        path.with_name(path.name + ".sha256").write_text(f"{'0' * 64}  {path.name}\n")
    stray = destination / "manual_copy.tar.gz"
    stray.write_bytes(b"mine")

    first = await prune_old_backups(destination, "ubuntu_backup", keep=5)
    second = await prune_old_backups(destination, "ubuntu_backup", keep=5)

    assert len(first) == 2
    assert second == []
    assert stray.exists()
    assert not paths[0].with_name(paths[0].name + ".sha256").exists()
    assert paths[6].with_name(paths[6].name + ".sha256").exists()


@pytest.mark.asyncio
async def test_retention_rejects_zero(temp_dir: Path):
    with pytest.raises(ValueError):
        await prune_old_backups(temp_dir, "ubuntu_backup", keep=0)


def test_backup_stats(temp_dir: Path):
    destination = temp_dir / "backups"
    base = datetime(2026, 2, 1, 3, 0, 0)
    for i in range(3):
        _touch_archive(destination, base + timedelta(hours=i))

    stats = get_backup_stats(destination, "ubuntu_backup")

    assert stats["archive_count"] == 3
    assert stats["total_bytes"] == 3 * len(b"archive")
    assert stats["with_checksum"] == 0


# ============================================================================
# Build
# ============================================================================

@pytest.mark.asyncio
async def test_build_single_small_source(make_config, source_tree):
    """A 10-byte file in src_a ends up in the archive with identical bytes."""
    config = make_config()

    result = await build_archive(config, exporters=[])

    assert result.archive.path.parent == config.destination
    assert result.archive.name.startswith("ubuntu_backup_")
    assert result.copied_sources == [source_tree["src_a"]]
    assert result.partial is False

    with tarfile.open(result.archive.path, "r:gz") as tar:
        names = tar.getnames()
        assert "src_a/hello.txt" in names
        assert "backup_manifest.json" in names
        assert tar.extractfile("src_a/hello.txt").read() == b"0123456789"
        manifest = json.loads(tar.extractfile("backup_manifest.json").read())

    assert manifest["sources"] == {"src_a": str(source_tree["src_a"])}
    assert manifest["operation_id"] == result.operation_id


@pytest.mark.asyncio
async def test_build_skips_missing_sources(make_config, source_tree, temp_dir: Path):
    config = make_config(sources=(source_tree["src_a"], temp_dir / "gone"))

    result = await build_archive(config, exporters=[])

    assert result.missing_sources == [temp_dir / "gone"]
    assert result.copied_sources == [source_tree["src_a"]]


@pytest.mark.asyncio
async def test_build_preserves_symlinks(make_config, source_tree):
    config = make_config(sources=(source_tree["src_b"],))

    result = await build_archive(config, exporters=[])

    with tarfile.open(result.archive.path, "r:gz") as tar:
        link = tar.getmember("src_b/link.ini")
        assert link.issym()
        assert link.linkname == "nested/config.ini"
        assert tar.getmember("src_b/nested/deeper/data.bin").size == 256


@pytest.mark.asyncio
async def test_partial_copy_failure_still_produces_archive(make_config, source_tree):
    config = make_config(sources=(source_tree["src_a"], source_tree["src_b"]))

    result = await build_archive(
        config,
        exporters=[],
        synchronizer=FlakySynchronizer(source_tree["src_b"]),
    )

    assert result.partial is True
    assert list(result.failed_sources) == [str(source_tree["src_b"])]
    assert result.archive.path.exists()
    with tarfile.open(result.archive.path, "r:gz") as tar:
        assert "src_a/hello.txt" in tar.getnames()


@pytest.mark.asyncio
async def test_exporters_written_skipped_and_failed(make_config, source_tree):
    config = make_config()
    exporters = [
        FakeExporter("installed package list", "installed_packages.txt", b"bash\tinstall\n"),
        FakeExporter("database dump", "databases/all_databases.sql", available=False),
        FakeExporter("service status", "service_status.txt", fail=True),
    ]

    result = await build_archive(config, exporters=exporters)

    assert result.exports_written == ["installed package list"]
    assert result.exports_skipped == ["database dump"]
    assert list(result.exports_failed) == ["service status"]
    assert exporters[1].calls == 0

    with tarfile.open(result.archive.path, "r:gz") as tar:
        names = tar.getnames()
    assert "installed_packages.txt" in names
    assert "service_status.txt" not in names
    assert not any(n.startswith("databases") for n in names)


class BrokenCompressor(TarGzCompressor):
    async def compress(self, source_dir: Path, target: Path) -> int:
        raise FatalArchiveError(f"Failed to create archive {target}: disk full")


@pytest.mark.asyncio
async def test_compression_failure_leaves_nothing(make_config, source_tree, isolated_working_areas):
    config = make_config()

    with pytest.raises(FatalArchiveError):
        await build_archive(config, exporters=[], compressor=BrokenCompressor())

    assert list_archives(config.destination, config.archive_prefix) == []
    assert list(isolated_working_areas.iterdir()) == []


@pytest.mark.asyncio
async def test_build_prunes_after_success(make_config, source_tree):
    config = make_config(keep_last=2)
    base = datetime(2020, 1, 1, 0, 0, 0)
    old = [_touch_archive(config.destination, base + timedelta(days=i)) for i in range(3)]

    result = await build_archive(config, exporters=[])

    remaining = list_archives(config.destination, config.archive_prefix)
    assert [a.path for a in remaining] == [result.archive.path, old[2]]
    assert set(result.pruned) == {old[0], old[1]}


# ============================================================================
# Working area and manifest
# ============================================================================

@pytest.mark.asyncio
async def test_working_area_removed_after_error():
    with pytest.raises(RuntimeError):
        async with working_area("test") as work:
            (work / "f").write_text("x")
            raise RuntimeError("boom")

    assert not work.exists()


@pytest.mark.asyncio
async def test_working_area_left_on_interruption(isolated_working_areas):
    with pytest.raises(asyncio.CancelledError):
        async with working_area("test") as work:
            raise asyncio.CancelledError()

    assert work.exists()

    removed = cleanup_stale_working_areas(isolated_working_areas)

    assert removed == [work]
    assert not work.exists()


@pytest.mark.asyncio
async def test_manifest_round_trip(temp_dir: Path):
    manifest = BackupManifest(
        operation_id="01ABC",
        created_at="2026-01-01T00:00:00+00:00",
        hostname="web01",
        sources={"www": "/var/www", "local": "/usr/local"},
        exports=["database dump"],
    )

    await write_manifest(temp_dir, manifest)
    loaded = await read_manifest(temp_dir)

    assert loaded == manifest
    assert loaded.target_for("www") == Path("/var/www")
    assert loaded.target_for("etc") == Path("/etc")


@pytest.mark.asyncio
async def test_unreadable_manifest_is_ignored(temp_dir: Path):
    (temp_dir / "backup_manifest.json").write_text("{not json")

    assert await read_manifest(temp_dir) is None

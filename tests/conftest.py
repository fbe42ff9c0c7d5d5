# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Test fixtures for hostbak tests.

Provides temporary directories, configuration factories, fake external
tools, a scripted operator console and helpers to build archives by hand.
"""

import io
import json
import os
import tarfile
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Dict, Generator, List

import pytest
import structlog

from hostbak.config import BackupConfig
from hostbak.console import Console
from hostbak.exceptions import BackupError, PartialCopyError, RestoreError, ToolUnavailableError
from hostbak.tools import LocalTreeSynchronizer


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture(autouse=True)
def isolated_working_areas(temp_dir: Path, monkeypatch) -> Path:
    """Keep working areas of each test inside its own temp directory."""
    work_base = temp_dir / "work"
    work_base.mkdir()
    monkeypatch.setattr(tempfile, "tempdir", str(work_base))
    return work_base


@pytest.fixture(autouse=True)
def reset_logging() -> Generator[None, None, None]:
    yield
    structlog.reset_defaults()


@pytest.fixture
def source_tree(temp_dir: Path) -> Dict[str, Path]:
    """Two small source directories with nested content."""
    src_a = temp_dir / "src_a"
    src_a.mkdir()
    (src_a / "hello.txt").write_bytes(b"0123456789")

    src_b = temp_dir / "src_b"
    (src_b / "nested" / "deeper").mkdir(parents=True)
    (src_b / "nested" / "config.ini").write_text("[main]\nkey = value\n")
    (src_b / "nested" / "deeper" / "data.bin").write_bytes(bytes(range(256)))
    os.symlink("nested/config.ini", src_b / "link.ini")

    return {"src_a": src_a, "src_b": src_b}


@pytest.fixture
def make_config(temp_dir: Path):
    """Factory for configurations rooted in the temp directory."""

    def _make(**overrides) -> BackupConfig:
        values = {
            "destination": temp_dir / "backups",
            "sources": (temp_dir / "src_a",),
            "log_file": temp_dir / "logs" / "backup.log",
            "restore_root": temp_dir / "restore_root",
            "offer_restart": False,
        }
        values.update(overrides)
        return BackupConfig(**values)

    return _make


@pytest.fixture
def plenty_of_space():
    """Space probe reporting 1 GiB free anywhere."""
    return lambda path: 1024 * 1024 * 1024


@pytest.fixture
def no_space():
    return lambda path: 0


# ============================================================================
# Scripted console
# ============================================================================

class ScriptedConsole(Console):
    """Console fed from a list of answers; EOF once the list runs out."""

    def __init__(self, answers: List[str]):
        self.answers = list(answers)
        self.prompts: List[str] = []
        self.output: List[str] = []
        super().__init__(read=self._next_answer, write=self.output.append)

    def _next_answer(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if not self.answers:
            raise EOFError
        return self.answers.pop(0)

    @property
    def text(self) -> str:
        return "\n".join(self.output)


# ============================================================================
# Fake external tools
# ============================================================================

class FakeExporter:
    """Auxiliary exporter writing fixed content, or failing on demand."""

    def __init__(
        self,
        name: str,
        relative_path: str,
        content: bytes = b"export\n",
        available: bool = True,
        fail: bool = False,
    ):
        self.name = name
        self.relative_path = relative_path
        self.content = content
        self._available = available
        self.fail = fail
        self.calls = 0

    def available(self) -> bool:
        return self._available

    async def export(self, working_area: Path) -> Path:
        self.calls += 1
        if self.fail:
            raise BackupError(f"{self.name} exited with status 2")
        output = working_area / self.relative_path
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_bytes(self.content)
        return output


class FakeDatabase(FakeExporter):
    """Database exporter that records the dumps it is asked to replay."""

    def __init__(self, client_available: bool = True, fail_restore: bool = False):
        super().__init__("database dump", "databases/all_databases.sql", b"CREATE DATABASE app;\n")
        self.client_available = client_available
        self.fail_restore = fail_restore
        self.restored: List[bytes] = []

    def restore_available(self) -> bool:
        return self.client_available

    async def restore(self, dump: Path) -> None:
        if not self.client_available:
            raise ToolUnavailableError("mysql is not installed; skipping database restore.")
        if self.fail_restore:
            raise RestoreError("Database restore failed: mysql exited with status 1")
        self.restored.append(dump.read_bytes())


class FlakySynchronizer(LocalTreeSynchronizer):
    """Fails to copy one named source."""

    def __init__(self, broken: Path):
        self.broken = broken

    async def copy_tree(self, source: Path, target: Path) -> None:
        if source == self.broken:
            raise PartialCopyError(f"Failed to copy 1 entries of {source}")
        await super().copy_tree(source, target)


class FakeRestart:
    def __init__(self):
        self.calls = 0

    async def __call__(self) -> None:
        self.calls += 1


@pytest.fixture
def fake_restart() -> FakeRestart:
    return FakeRestart()


# ============================================================================
# Archive helpers
# ============================================================================

def make_archive(
    destination: Path,
    name: str,
    files: Dict[str, bytes],
    manifest_sources: Dict[str, str] | None = None,
    mtime: datetime | None = None,
) -> Path:
    """
    Write a tar.gz by hand.

    Args:
        destination: Directory for the archive
        name: Archive file name
        files: Member path -> content (parent directories are added)
        manifest_sources: Optional manifest mapping top-level name -> live path
        mtime: Optional file modification time of the archive
    """
    destination.mkdir(parents=True, exist_ok=True)
    path = destination / name

    entries = dict(files)
    if manifest_sources is not None:
        manifest = {
            "operation_id": "01TESTOPERATION0000000000",
            "created_at": "2026-01-01T00:00:00+00:00",
            "hostname": "testhost",
            "sources": manifest_sources,
            "exports": [],
        }
        entries["backup_manifest.json"] = json.dumps(manifest).encode()

    with tarfile.open(path, "w:gz") as tar:
        added_dirs = set()
        for member_name, content in sorted(entries.items()):
            parts = member_name.split("/")
            for depth in range(1, len(parts)):
                directory = "/".join(parts[:depth])
                if directory not in added_dirs:
                    info = tarfile.TarInfo(directory)
                    info.type = tarfile.DIRTYPE
                    info.mode = 0o755
                    tar.addfile(info)
                    added_dirs.add(directory)
            info = tarfile.TarInfo(member_name)
            info.size = len(content)
            info.mode = 0o644
            tar.addfile(info, io.BytesIO(content))

    if mtime is not None:
        stamp = mtime.timestamp()
        os.utime(path, (stamp, stamp))
    return path


def set_mtime(path: Path, when: datetime) -> None:
    stamp = when.timestamp()
    os.utime(path, (stamp, stamp))

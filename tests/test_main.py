# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Console entry point tests.
"""

import logging
from pathlib import Path

import pytest

import hostbak.__main__ as entry
from hostbak.log import LOGGER_NAME


@pytest.fixture(autouse=True)
def hostbak_env(monkeypatch, temp_dir: Path):
    monkeypatch.setenv("HOSTBAK_DESTINATION", str(temp_dir / "backups"))
    monkeypatch.setenv("HOSTBAK_SOURCES", str(temp_dir / "src_a"))
    monkeypatch.setenv("HOSTBAK_LOG_FILE", str(temp_dir / "hostbak.log"))
    monkeypatch.delenv("HOSTBAK_ALLOW_NON_ROOT", raising=False)
    monkeypatch.delenv("HOSTBAK_KEEP", raising=False)
    yield
    stdlib_logger = logging.getLogger(LOGGER_NAME)
    for handler in list(stdlib_logger.handlers):
        stdlib_logger.removeHandler(handler)
        handler.close()


def test_refuses_to_run_without_root(monkeypatch, capsys):
    monkeypatch.setattr(entry.os, "geteuid", lambda: 1000)

    assert entry.main() == 1
    assert "Please run as root" in capsys.readouterr().err


def test_invalid_environment(monkeypatch, capsys):
    monkeypatch.setenv("HOSTBAK_KEEP", "none")

    assert entry.main() == 2
    assert "HOSTBAK_KEEP" in capsys.readouterr().err


def test_runs_menu_when_allowed(monkeypatch, temp_dir: Path):
    calls = []

    async def fake_menu(config):
        calls.append(config)

    monkeypatch.setattr(entry.os, "geteuid", lambda: 1000)
    monkeypatch.setenv("HOSTBAK_ALLOW_NON_ROOT", "1")
    monkeypatch.setattr(entry, "run_menu", fake_menu)

    assert entry.main() == 0
    assert calls[0].destination == temp_dir / "backups"
    assert "session_started" in (temp_dir / "hostbak.log").read_text()

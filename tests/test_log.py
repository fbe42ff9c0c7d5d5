# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Run log tests.
"""

import logging
import re
from pathlib import Path

import pytest
import structlog

from hostbak.exceptions import ConfigurationError
from hostbak.log import LOGGER_NAME, configure_logging, render_flat_line

LINE_RE = re.compile(r"^\[\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}\] ")


@pytest.fixture(autouse=True)
def detach_handlers():
    yield
    stdlib_logger = logging.getLogger(LOGGER_NAME)
    for handler in list(stdlib_logger.handlers):
        stdlib_logger.removeHandler(handler)
        handler.close()


def test_render_flat_line():
    line = render_flat_line(
        None,
        "info",
        {"event": "backup_completed", "timestamp": "2026-01-01 02:00:00", "level": "info", "size": 10},
    )

    assert line == "[2026-01-01 02:00:00] backup_completed size=10"


def test_render_flat_line_marks_errors():
    line = render_flat_line(
        None,
        "error",
        {"event": "restore_failed", "timestamp": "2026-01-01 02:00:00", "level": "error"},
    )

    assert line == "[2026-01-01 02:00:00] ERROR restore_failed"


def test_log_file_is_appended(temp_dir: Path, capsys):
    log_file = temp_dir / "logs" / "server_backup.log"
    log_file.parent.mkdir()
    log_file.write_text("[2025-12-31 23:59:59] earlier run\n")

    configure_logging(log_file)
    structlog.get_logger("hostbak.test").info("backup_started", archive="a.tar.gz")
    structlog.get_logger("hostbak.test").debug("hidden_detail")

    lines = log_file.read_text().splitlines()
    assert lines[0] == "[2025-12-31 23:59:59] earlier run"
    assert len(lines) == 2
    assert LINE_RE.match(lines[1])
    assert lines[1].endswith("backup_started archive=a.tar.gz")
    assert "backup_started" in capsys.readouterr().out


def test_context_is_merged(temp_dir: Path):
    log_file = temp_dir / "run.log"
    configure_logging(log_file, echo=False)

    with structlog.contextvars.bound_contextvars(operation_id="01ABC"):
        structlog.get_logger("hostbak.test").warning("source_missing", path="/var/www")

    line = log_file.read_text().strip()
    assert "WARNING source_missing" in line
    assert "operation_id=01ABC" in line
    assert "path=/var/www" in line


def test_unwritable_log_file(temp_dir: Path):
    blocker = temp_dir / "not_a_dir"
    blocker.write_text("file")

    with pytest.raises(ConfigurationError) as exc_info:
        configure_logging(blocker / "backup.log")

    assert "HOSTBAK_LOG_FILE" in exc_info.value.message

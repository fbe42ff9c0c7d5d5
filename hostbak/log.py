# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Run log configuration.

Modules log through ``structlog.get_logger()`` with snake_case events and
key/value context. configure_logging() routes those events through the
stdlib ``hostbak`` logger into an append-only text file, echoed to the
interactive session, one flat line per event:

    [2026-10-17 02:00:00] backup_completed archive=/mnt/backup/... size=1048576
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, MutableMapping

import structlog

from hostbak.errors import explain_unwritable_log_file
from hostbak.exceptions import ConfigurationError

LOG_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"
LOGGER_NAME = "hostbak"


def render_flat_line(
    logger: Any,
    method_name: str,
    event_dict: MutableMapping[str, Any],
) -> str:
    """Render an event as ``[timestamp] event key=value ...``."""
    timestamp = event_dict.pop("timestamp", None) or datetime.now().strftime(LOG_TIME_FORMAT)
    event = str(event_dict.pop("event", ""))
    level = event_dict.pop("level", method_name)

    if level in ("warning", "error", "critical", "exception"):
        event = f"{level.upper()} {event}"

    exc_text = event_dict.pop("exception", None)

    parts = [f"[{timestamp}] {event}"]
    parts.extend(f"{key}={value}" for key, value in event_dict.items())
    line = " ".join(parts)

    if exc_text:
        line = f"{line}\n{exc_text}"
    return line


def configure_logging(
    log_file: Path,
    echo: bool = True,
    level: int = logging.INFO,
) -> logging.Logger:
    """
    Send structlog events to ``log_file`` (append) and optionally stdout.

    Args:
        log_file: Flat text log, created with its parent directory if needed
        echo: Also write every line to stdout
        level: Minimum stdlib level

    Returns:
        The configured stdlib ``hostbak`` logger

    Raises:
        ConfigurationError: If the log file cannot be opened
    """
    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(
            explain_unwritable_log_file(log_file, e.strerror or str(e)),
            details={"log_file": str(log_file)},
        ) from e

    handlers: list[logging.Handler] = [file_handler]
    if echo:
        handlers.append(logging.StreamHandler(sys.stdout))

    stdlib_logger = logging.getLogger(LOGGER_NAME)
    for old in list(stdlib_logger.handlers):
        stdlib_logger.removeHandler(old)
        old.close()

    formatter = logging.Formatter("%(message)s")
    for handler in handlers:
        handler.setFormatter(formatter)
        stdlib_logger.addHandler(handler)
    stdlib_logger.setLevel(level)
    stdlib_logger.propagate = False

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt=LOG_TIME_FORMAT, utc=False),
            structlog.processors.format_exc_info,
            render_flat_line,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    return stdlib_logger

# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Environment-based configuration helpers.

hostbak does not read configuration files. The console entry point builds
its configuration from a small set of environment variables instead, passed
through create_config().
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import List

from hostbak.builder import create_config
from hostbak.config import (
    DEFAULT_DESTINATION,
    DEFAULT_KEEP_LAST,
    DEFAULT_LOG_FILE,
    DEFAULT_PREFIX,
    BackupConfig,
)
from hostbak.errors import explain_invalid_bool_env, explain_invalid_keep_env
from hostbak.exceptions import ConfigurationError

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _parse_keep(value: str | None) -> int:
    if not value:
        return DEFAULT_KEEP_LAST
    try:
        keep = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(explain_invalid_keep_env(value)) from exc
    if keep < 1:
        raise ConfigurationError(explain_invalid_keep_env(value))
    return keep


def _parse_sources(value: str | None) -> List[Path] | None:
    """Split a colon or comma separated list; unset means the default set."""
    if not value:
        return None
    return [Path(p.strip()) for p in re.split(r"[:,]", value) if p.strip()]


def parse_bool(name: str, value: str | None, default: bool) -> bool:
    if value is None or value == "":
        return default
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ConfigurationError(explain_invalid_bool_env(name, value))


def allow_non_root() -> bool:
    """Whether HOSTBAK_ALLOW_NON_ROOT lifts the root requirement."""
    return parse_bool(
        "HOSTBAK_ALLOW_NON_ROOT", os.getenv("HOSTBAK_ALLOW_NON_ROOT"), False
    )


def create_config_from_env() -> BackupConfig:
    """
    Create a BackupConfig from environment variables.

    Optional environment variables:
        - HOSTBAK_DESTINATION: Backup directory (default: /mnt/backup)
        - HOSTBAK_SOURCES: Colon or comma separated absolute paths
          (default: /etc, /home, /var/www, /var/log, /var/mail, /opt, /root, /usr/local)
        - HOSTBAK_KEEP: Number of archives to retain (default: 5)
        - HOSTBAK_PREFIX: Archive name prefix (default: ubuntu_backup)
        - HOSTBAK_LOG_FILE: Run log (default: /var/log/server_backup.log)
        - HOSTBAK_RESTORE_ROOT: Root restores are replayed under (default: /)
        - HOSTBAK_DB_DUMP: Include a mysqldump export (default: true)
        - HOSTBAK_OFFER_RESTART: Offer a reboot after restore (default: true)
    """

    destination = os.getenv("HOSTBAK_DESTINATION") or str(DEFAULT_DESTINATION)

    return create_config(
        destination=Path(destination),
        sources=_parse_sources(os.getenv("HOSTBAK_SOURCES")),
        keep=_parse_keep(os.getenv("HOSTBAK_KEEP")),
        prefix=os.getenv("HOSTBAK_PREFIX") or DEFAULT_PREFIX,
        log_file=Path(os.getenv("HOSTBAK_LOG_FILE") or str(DEFAULT_LOG_FILE)),
        restore_root=Path(os.getenv("HOSTBAK_RESTORE_ROOT") or "/"),
        dump_databases=parse_bool("HOSTBAK_DB_DUMP", os.getenv("HOSTBAK_DB_DUMP"), True),
        offer_restart=parse_bool(
            "HOSTBAK_OFFER_RESTART", os.getenv("HOSTBAK_OFFER_RESTART"), True
        ),
    )

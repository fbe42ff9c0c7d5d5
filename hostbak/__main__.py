# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Console entry point: ``hostbak`` / ``python -m hostbak``.
"""

import asyncio
import os
import sys

import structlog

from hostbak.backup.manager import cleanup_stale_working_areas
from hostbak.env import allow_non_root, create_config_from_env
from hostbak.errors import explain_not_root
from hostbak.exceptions import ConfigurationError
from hostbak.log import configure_logging
from hostbak.menu import run_menu

logger = structlog.get_logger()


def main() -> int:
    try:
        config = create_config_from_env()
        configure_logging(config.log_file)
        root_optional = allow_non_root()
    except ConfigurationError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 2

    if os.geteuid() != 0 and not root_optional:
        print(explain_not_root(), file=sys.stderr)
        return 1

    cleanup_stale_working_areas()
    logger.info("session_started", destination=str(config.destination), pid=os.getpid())

    try:
        asyncio.run(run_menu(config))
    except KeyboardInterrupt:
        logger.warning("session_interrupted")
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())

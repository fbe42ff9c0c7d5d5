# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
hostbak Builder - Functional builder pattern for configuration.

This module provides pure functions for building BackupConfig objects.
Each function takes a config dict and returns a new dict with the
modification applied (immutable updates).
"""

from pathlib import Path
from typing import Any, Callable, Dict, Iterable

from hostbak.config import (
    DEFAULT_DESTINATION,
    DEFAULT_KEEP_LAST,
    DEFAULT_LOG_FILE,
    DEFAULT_PREFIX,
    DEFAULT_SOURCES,
    BackupConfig,
)


# Type alias for builder functions
ConfigDict = Dict[str, Any]
BuilderFunc = Callable[[ConfigDict], ConfigDict]


def create_empty_config() -> ConfigDict:
    """
    Create an initial configuration dictionary.

    The source list starts empty; use include_source()/include_sources()
    or default_sources() to populate it.

    Returns:
        Dict with default values for all configuration fields
    """
    return {
        "destination": DEFAULT_DESTINATION,
        "sources": (),
        "keep_last": DEFAULT_KEEP_LAST,
        "archive_prefix": DEFAULT_PREFIX,
        "log_file": DEFAULT_LOG_FILE,
        "restore_root": Path("/"),
        "dump_databases": True,
        "save_package_list": True,
        "save_service_status": True,
        "offer_restart": True,
        "preview_limit": 10,
    }


def with_destination(config: ConfigDict, destination: Path | str) -> ConfigDict:
    """
    Set the directory archives are written to.

    Args:
        config: Current configuration dictionary
        destination: Absolute path of the backup directory

    Returns:
        New configuration dictionary with destination set
    """
    return {**config, "destination": Path(destination)}


def include_source(config: ConfigDict, source: Path | str) -> ConfigDict:
    """
    Add a single top-level path to back up.

    Args:
        config: Current configuration dictionary
        source: Absolute path (e.g. '/etc')

    Returns:
        New configuration dictionary with the source appended
    """
    return include_sources(config, [source])


def include_sources(config: ConfigDict, sources: Iterable[Path | str]) -> ConfigDict:
    """
    Add several top-level paths to back up.

    Args:
        config: Current configuration dictionary
        sources: Absolute paths, kept in the given order

    Returns:
        New configuration dictionary with sources appended
    """
    new_sources = tuple(config["sources"]) + tuple(Path(s) for s in sources)
    return {**config, "sources": new_sources}


def default_sources(config: ConfigDict) -> ConfigDict:
    """
    Back up the standard server directories (/etc, /home, /var/www, ...).
    """
    return include_sources(config, DEFAULT_SOURCES)


def keep_last(config: ConfigDict, count: int) -> ConfigDict:
    """
    Set how many recent archives survive retention pruning.

    Args:
        config: Current configuration dictionary
        count: Number of archives to keep (>= 1)

    Returns:
        New configuration dictionary with retention count set
    """
    if count < 1:
        raise ValueError(f"keep_last must be >= 1, got {count}")
    return {**config, "keep_last": count}


def with_prefix(config: ConfigDict, prefix: str) -> ConfigDict:
    """Set the archive name prefix."""
    return {**config, "archive_prefix": prefix}


def with_log_file(config: ConfigDict, log_file: Path | str) -> ConfigDict:
    """Set the flat text run log location."""
    return {**config, "log_file": Path(log_file)}


def restore_into(config: ConfigDict, root: Path | str) -> ConfigDict:
    """
    Replay restored directories under ``root`` instead of ``/``.

    Useful for inspecting a backup without touching the live system.
    """
    return {**config, "restore_root": Path(root)}


def without_database_dump(config: ConfigDict) -> ConfigDict:
    """Skip the mysqldump export."""
    return {**config, "dump_databases": False}


def without_package_list(config: ConfigDict) -> ConfigDict:
    """Skip the installed package manifest."""
    return {**config, "save_package_list": False}


def without_service_status(config: ConfigDict) -> ConfigDict:
    """Skip the service status snapshot."""
    return {**config, "save_service_status": False}


def without_restart_prompt(config: ConfigDict) -> ConfigDict:
    """Never offer a host restart after a restore."""
    return {**config, "offer_restart": False}


def build_config(config: ConfigDict) -> BackupConfig:
    """
    Build an immutable BackupConfig from a configuration dictionary.

    This validates all configuration and creates the frozen config object.

    Args:
        config: Configuration dictionary

    Returns:
        Validated, immutable BackupConfig

    Raises:
        ConfigurationError: If configuration is invalid
    """
    return BackupConfig(**config)


def pipe(*funcs: BuilderFunc) -> BuilderFunc:
    """
    Compose multiple builder functions into a single function.

        config = pipe(
            lambda c: with_destination(c, "/srv/backup"),
            default_sources,
            without_restart_prompt,
        )(create_empty_config())

    Args:
        *funcs: Builder functions to compose

    Returns:
        A single function that applies all functions in sequence
    """

    def composed(config: ConfigDict) -> ConfigDict:
        result = config
        for func in funcs:
            result = func(result)
        return result

    return composed


def build_from_steps(*steps: BuilderFunc) -> BackupConfig:
    """
    Build config by applying a sequence of builder functions.

    Example:
        config = build_from_steps(
            lambda c: with_destination(c, "/srv/backup"),
            lambda c: include_source(c, "/etc"),
            without_database_dump,
        )

    Args:
        *steps: Builder functions to apply in sequence

    Returns:
        Validated, immutable BackupConfig instance
    """
    return build_config(pipe(*steps)(create_empty_config()))


def create_config(
    *,
    destination: Path | str = DEFAULT_DESTINATION,
    sources: Iterable[Path | str] | None = None,
    keep: int = DEFAULT_KEEP_LAST,
    prefix: str = DEFAULT_PREFIX,
    log_file: Path | str = DEFAULT_LOG_FILE,
    restore_root: Path | str = "/",
    dump_databases: bool = True,
    save_package_list: bool = True,
    save_service_status: bool = True,
    offer_restart: bool = True,
) -> BackupConfig:
    """
    Create a BackupConfig in one call.

    Args:
        destination: Backup directory
        sources: Paths to back up (defaults to the standard server directories)
        keep: Number of archives to retain
        prefix: Archive name prefix
        log_file: Run log location
        restore_root: Root restored directories are replayed under
        dump_databases: Include a mysqldump export when mysqldump is present
        save_package_list: Include the dpkg selection list
        save_service_status: Include the systemctl service inventory
        offer_restart: Offer a reboot after a successful restore

    Returns:
        Validated, immutable BackupConfig
    """
    config = create_empty_config()
    config = with_destination(config, destination)
    if sources is None:
        config = default_sources(config)
    else:
        config = include_sources(config, sources)
    config = keep_last(config, keep)
    config = with_prefix(config, prefix)
    config = with_log_file(config, log_file)
    config = restore_into(config, restore_root)
    if not dump_databases:
        config = without_database_dump(config)
    if not save_package_list:
        config = without_package_list(config)
    if not save_service_status:
        config = without_service_status(config)
    if not offer_restart:
        config = without_restart_prompt(config)
    return build_config(config)

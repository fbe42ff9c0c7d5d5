# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
hostbak Configuration - Immutable configuration data structures.

All configuration is frozen (immutable) after creation to prevent
accidental modification while a backup or restore is running.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Tuple
import re


# Directories backed up by default (system config, user data, app state)
DEFAULT_SOURCES: Tuple[Path, ...] = (
    Path("/etc"),
    Path("/home"),
    Path("/var/www"),
    Path("/var/log"),
    Path("/var/mail"),
    Path("/opt"),
    Path("/root"),
    Path("/usr/local"),
)

DEFAULT_DESTINATION = Path("/mnt/backup")
DEFAULT_LOG_FILE = Path("/var/log/server_backup.log")
DEFAULT_PREFIX = "ubuntu_backup"
DEFAULT_KEEP_LAST = 5

# Names at the archive root that belong to auxiliary exports
DATABASES_DIR = "databases"
DATABASE_DUMP_NAME = "all_databases.sql"
PACKAGE_LIST_NAME = "installed_packages.txt"
SERVICE_STATUS_NAME = "service_status.txt"
MANIFEST_NAME = "backup_manifest.json"

RESERVED_ARCHIVE_NAMES = frozenset(
    {DATABASES_DIR, PACKAGE_LIST_NAME, SERVICE_STATUS_NAME, MANIFEST_NAME}
)


def _validate_prefix(prefix: str) -> bool:
    """Archive prefixes must be filename-safe."""
    return bool(prefix) and re.match(r"^[A-Za-z0-9][A-Za-z0-9_-]*$", prefix) is not None


def _validate_sources(sources: Tuple[Path, ...]) -> List[str]:
    """Collect problems with the source list."""
    errors: List[str] = []
    seen_paths: set = set()
    seen_names: dict = {}

    for source in sources:
        if not isinstance(source, Path):
            errors.append(f"Source must be a Path, got {type(source).__name__}")
            continue
        if not source.is_absolute():
            errors.append(f"Source must be an absolute path: {source}")
            continue
        if source == Path(source.anchor):
            errors.append("The filesystem root itself cannot be a backup source")
            continue
        if source in seen_paths:
            errors.append(f"Duplicate source: {source}")
            continue
        seen_paths.add(source)

        # Each source lands in the archive root under its basename
        name = source.name
        if name in RESERVED_ARCHIVE_NAMES:
            errors.append(f"Source {source} collides with reserved archive entry {name!r}")
        elif name in seen_names:
            errors.append(
                f"Sources {seen_names[name]} and {source} share the archive name {name!r}"
            )
        else:
            seen_names[name] = source

    return errors


@dataclass(frozen=True)
class BackupConfig:
    """
    Immutable configuration for the backup lifecycle.

    Concurrent invocations against the same destination are not supported:
    nothing here (or anywhere else in hostbak) locks the destination.
    """

    # Directory that receives the archives (flat layout)
    destination: Path = DEFAULT_DESTINATION

    # Top-level paths to back up
    sources: Tuple[Path, ...] = DEFAULT_SOURCES

    # Number of most recent archives to keep
    keep_last: int = DEFAULT_KEEP_LAST

    # Archive names are <prefix>_<YYYYMMDD>_<HHMMSS>.tar.gz
    archive_prefix: str = DEFAULT_PREFIX

    # Flat text run log
    log_file: Path = DEFAULT_LOG_FILE

    # Root that restored directories are replayed under
    restore_root: Path = field(default_factory=lambda: Path("/"))

    # Auxiliary exports
    dump_databases: bool = True
    save_package_list: bool = True
    save_service_status: bool = True

    # Offer a host restart once a restore finished
    offer_restart: bool = True

    # Number of archive entries shown before a restore
    preview_limit: int = 10

    def __post_init__(self) -> None:
        """Validate configuration after creation."""
        errors: List[str] = []

        # Normalize list input into an immutable tuple of Paths
        sources = tuple(Path(s) if isinstance(s, str) else s for s in self.sources)
        object.__setattr__(self, "sources", sources)
        object.__setattr__(self, "destination", Path(self.destination))
        object.__setattr__(self, "log_file", Path(self.log_file))
        object.__setattr__(self, "restore_root", Path(self.restore_root))

        if not sources:
            errors.append("At least one source path is required")
        errors.extend(_validate_sources(sources))

        if not self.destination.is_absolute():
            errors.append(f"destination must be an absolute path, got {self.destination}")
        elif any(self.destination == s or s in self.destination.parents for s in sources):
            errors.append(f"destination {self.destination} must not be inside a backup source")

        if not self.restore_root.is_absolute():
            errors.append(f"restore_root must be an absolute path, got {self.restore_root}")

        if self.keep_last < 1:
            errors.append(f"keep_last must be >= 1, got {self.keep_last}")

        if not _validate_prefix(self.archive_prefix):
            errors.append(f"Invalid archive_prefix: {self.archive_prefix!r}")

        if self.preview_limit < 0:
            errors.append(f"preview_limit must be >= 0, got {self.preview_limit}")

        # Raise all errors at once
        if errors:
            from hostbak.exceptions import ConfigurationError

            raise ConfigurationError(
                "Configuration validation failed",
                details={"errors": errors},
            )

    def with_updates(self, **kwargs) -> "BackupConfig":
        """
        Create a new config with updated values.

        Since the config is frozen, this creates a new instance.
        """
        from dataclasses import asdict

        current = asdict(self)
        current.update(kwargs)
        return BackupConfig(**current)

# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Capability interfaces - Narrow seams around archive, sync, digest and
external export tools, so the lifecycle engine can run against fakes.
"""

from pathlib import Path
from typing import List, Protocol

from hostbak.tools.compressor import ArchiveMember, TarGzCompressor
from hostbak.tools.digest import Sha256Digester
from hostbak.tools.exporters import (
    CommandExporter,
    MySQLDumpExporter,
    PackageManifestExporter,
    ServiceStatusExporter,
    default_exporters,
)
from hostbak.tools.sync import LocalTreeSynchronizer, SyncStats


class Compressor(Protocol):
    """Protocol for packing and unpacking a working area."""

    async def compress(self, source_dir: Path, target: Path) -> int:
        """Pack ``source_dir`` into ``target``; publish atomically; return size."""
        ...

    async def list_members(self, archive: Path) -> List[ArchiveMember]:
        """List entries without extracting payload; raise CorruptArchiveError."""
        ...

    async def extract(self, archive: Path, target_dir: Path) -> None:
        """Expand ``archive`` into ``target_dir``; raise FatalArchiveError."""
        ...


class TreeSynchronizer(Protocol):
    """Protocol for copying trees into and out of working areas."""

    async def copy_tree(self, source: Path, target: Path) -> None:
        """Additive, attribute-preserving copy; raise PartialCopyError."""
        ...

    async def mirror_tree(self, source: Path, target: Path) -> SyncStats:
        """Destructive sync including deletions; raise RestoreError."""
        ...


class Digester(Protocol):
    """Protocol for file digests used by checksum records."""

    algorithm: str

    async def hexdigest(self, path: Path) -> str:
        ...


class AuxiliaryExporter(Protocol):
    """Protocol for optional exports written into the working area."""

    name: str

    def available(self) -> bool:
        ...

    async def export(self, working_area: Path) -> Path:
        """Write the export; raise ToolUnavailableError or BackupError."""
        ...


class DatabaseExporter(AuxiliaryExporter, Protocol):
    """An auxiliary exporter that can also replay its own export."""

    relative_path: str

    def restore_available(self) -> bool:
        ...

    async def restore(self, dump: Path) -> None:
        """Replay ``dump``; raise ToolUnavailableError or RestoreError."""
        ...


__all__ = [
    # Protocols
    "Compressor",
    "TreeSynchronizer",
    "Digester",
    "AuxiliaryExporter",
    "DatabaseExporter",
    # Implementations
    "ArchiveMember",
    "TarGzCompressor",
    "LocalTreeSynchronizer",
    "SyncStats",
    "Sha256Digester",
    "CommandExporter",
    "MySQLDumpExporter",
    "PackageManifestExporter",
    "ServiceStatusExporter",
    "default_exporters",
]

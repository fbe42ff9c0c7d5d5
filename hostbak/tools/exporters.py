# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
hostbak Exporters - Auxiliary exports produced by external tools.

Each exporter runs one out-of-process command and streams its stdout into a
file inside the backup working area. Timeouts are left to the operating
environment. A missing tool raises ToolUnavailableError so the caller can
skip it; a failing tool raises BackupError and leaves no output file behind.
"""

import asyncio
import contextlib
import shutil
from pathlib import Path
from typing import List, Sequence, Tuple

import aiofiles
import structlog

from hostbak.config import (
    DATABASE_DUMP_NAME,
    DATABASES_DIR,
    PACKAGE_LIST_NAME,
    SERVICE_STATUS_NAME,
    BackupConfig,
)
from hostbak.errors import explain_missing_tool
from hostbak.exceptions import BackupError, RestoreError, ToolUnavailableError

logger = structlog.get_logger()

_CHUNK_SIZE = 256 * 1024


def tool_available(name: str) -> bool:
    return shutil.which(name) is not None


async def run_command(argv: Sequence[str]) -> Tuple[int, str, str]:
    """
    Run a command to completion.

    Returns:
        (return code, stdout, stderr)
    """
    proc = await asyncio.create_subprocess_exec(
        *argv,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout, stderr = await proc.communicate()
    return (
        proc.returncode,
        stdout.decode(errors="replace"),
        stderr.decode(errors="replace"),
    )


async def run_command_to_file(argv: Sequence[str], output: Path) -> int:
    """
    Stream a command's stdout into ``output``.

    Returns:
        Number of bytes written

    Raises:
        BackupError: If the command exits non-zero
    """
    proc = await asyncio.create_subprocess_exec(
        *argv,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stderr_task = asyncio.ensure_future(proc.stderr.read())

    written = 0
    try:
        async with aiofiles.open(output, "wb") as f:
            while True:
                chunk = await proc.stdout.read(_CHUNK_SIZE)
                if not chunk:
                    break
                await f.write(chunk)
                written += len(chunk)
    except BaseException:
        # The child would otherwise block on a full stdout pipe
        with contextlib.suppress(ProcessLookupError):
            proc.kill()
        await proc.wait()
        stderr_task.cancel()
        raise

    stderr = (await stderr_task).decode(errors="replace").strip()
    returncode = await proc.wait()

    if returncode != 0:
        raise BackupError(
            f"{argv[0]} exited with status {returncode}",
            details={"command": " ".join(argv), "stderr": stderr[-2000:]},
        )
    return written


class CommandExporter:
    """Export the stdout of one command to a path inside the working area."""

    def __init__(self, name: str, argv: Sequence[str], relative_path: str):
        self.name = name
        self.argv = tuple(argv)
        self.relative_path = relative_path

    @property
    def tool(self) -> str:
        return self.argv[0]

    def available(self) -> bool:
        return tool_available(self.tool)

    async def export(self, working_area: Path) -> Path:
        """
        Write the export below ``working_area``.

        Raises:
            ToolUnavailableError: If the command is not installed
            BackupError: If the command fails
        """
        if not self.available():
            raise ToolUnavailableError(
                explain_missing_tool(self.tool, self.name),
                details={"tool": self.tool},
            )

        output = working_area / self.relative_path
        output.parent.mkdir(parents=True, exist_ok=True)

        try:
            size = await run_command_to_file(self.argv, output)
        except BaseException:
            if output.is_file() or output.is_symlink():
                output.unlink()
            if output.parent != working_area and not any(output.parent.iterdir()):
                output.parent.rmdir()
            raise

        logger.info("auxiliary_exported", export=self.name, path=self.relative_path, size=size)
        return output

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"


class MySQLDumpExporter(CommandExporter):
    """
    Full MySQL/MariaDB dump via ``mysqldump --all-databases``.

    Also restores a dump through the ``mysql`` client.
    """

    def __init__(self, user: str = "root"):
        super().__init__(
            name="database dump",
            argv=("mysqldump", "--all-databases", "-u", user),
            relative_path=f"{DATABASES_DIR}/{DATABASE_DUMP_NAME}",
        )
        self.client_argv = ("mysql", "-u", user)

    def restore_available(self) -> bool:
        return tool_available(self.client_argv[0])

    async def restore(self, dump: Path) -> None:
        """
        Replay ``dump`` through the mysql client.

        Raises:
            ToolUnavailableError: If the mysql client is not installed
            RestoreError: If the client fails
        """
        if not self.restore_available():
            raise ToolUnavailableError(
                explain_missing_tool(self.client_argv[0], "database restore"),
                details={"tool": self.client_argv[0]},
            )

        with open(dump, "rb") as stdin:
            proc = await asyncio.create_subprocess_exec(
                *self.client_argv,
                stdin=stdin,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            _, stderr = await proc.communicate()

        if proc.returncode != 0:
            raise RestoreError(
                f"Database restore failed: mysql exited with status {proc.returncode}",
                details={"dump": str(dump), "stderr": stderr.decode(errors="replace")[-2000:]},
            )

        logger.info("database_restored", dump=str(dump))


class PackageManifestExporter(CommandExporter):
    """Installed package selections (``dpkg --get-selections``)."""

    def __init__(self):
        super().__init__(
            name="installed package list",
            argv=("dpkg", "--get-selections"),
            relative_path=PACKAGE_LIST_NAME,
        )


class ServiceStatusExporter(CommandExporter):
    """Service inventory (``systemctl list-units --type=service --all``)."""

    def __init__(self):
        super().__init__(
            name="service status",
            argv=("systemctl", "list-units", "--type=service", "--all", "--no-pager"),
            relative_path=SERVICE_STATUS_NAME,
        )


def default_exporters(config: BackupConfig) -> List[CommandExporter]:
    """Exporters enabled by ``config``, in the order they run."""
    exporters: List[CommandExporter] = []
    if config.dump_databases:
        exporters.append(MySQLDumpExporter())
    if config.save_package_list:
        exporters.append(PackageManifestExporter())
    if config.save_service_status:
        exporters.append(ServiceStatusExporter())
    return exporters

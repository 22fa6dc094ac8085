"""
NFS connection variant (system mount).

Mount-based: connect() mounts host:/export read-only with soft timeouts on a
fresh temporary directory, after which every operation is a plain filesystem
call under the mount root. Other exports on the same host get mounts of their
own when first touched. disconnect() unmounts them all and removes the
directories.

Soft mounts surface server loss as EIO/ETIMEDOUT/ESTALE instead of hanging,
and those are reported as connection errors so the change detector retries.
"""

import asyncio
import errno
import logging
import os
import sys
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional

from mdviewer.remote.base import (
    ConnectionConfig,
    DirectoryEntry,
    RemoteConnection,
    join_remote_path,
)
from mdviewer.remote.errors import (
    MountFailedError,
    NotFoundError,
    PermissionDeniedError,
    RemoteConnectionError,
)
from mdviewer.remote.target import NFS

logger = logging.getLogger(__name__)

MOUNT_OPTIONS = "ro,soft,timeo=10"

# Not every platform defines all of these
_CONNECTION_ERRNOS = {
    getattr(errno, name)
    for name in ("EIO", "ETIMEDOUT", "ESTALE", "EHOSTDOWN", "EHOSTUNREACH")
    if hasattr(errno, name)
}


def mount_command(source: str, mount_point: str) -> list[str]:
    if sys.platform == "win32":
        return ["mount", "-o", "anon", source, mount_point]
    return ["mount", "-t", "nfs", "-o", MOUNT_OPTIONS, source, mount_point]


def unmount_command(mount_point: str) -> list[str]:
    return ["umount", mount_point]


@contextmanager
def _translate_errors(path: Optional[str] = None) -> Iterator[None]:
    try:
        yield
    except FileNotFoundError as e:
        raise NotFoundError(f"File not found: {path}", path) from e
    except PermissionError as e:
        raise PermissionDeniedError(f"Permission denied: {path}", path) from e
    except OSError as e:
        if e.errno in _CONNECTION_ERRNOS:
            raise RemoteConnectionError(f"NFS server not responding: {e}", path) from e
        raise


async def _run(command: list[str]) -> tuple[int, str]:
    """Run a command, returning (exit code, combined output)."""
    process = await asyncio.create_subprocess_exec(
        *command,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout, stderr = await process.communicate()
    output = (stderr or b"").decode(errors="replace").strip() or (stdout or b"").decode(
        errors="replace"
    ).strip()
    return process.returncode, output


class NfsConnection(RemoteConnection):
    """
    Connection for nfs:// targets.

    Paths start with the export they live in (nfs://host/export/dir/file.md
    is read as "/export/dir/file.md"). The export the connection was opened
    with is mounted by connect(); other exports on the same host are mounted
    on first use, each on its own directory.
    """

    protocol = NFS
    requires_credentials = False

    def __init__(self) -> None:
        super().__init__()
        # export -> mount directory
        self.mounts: dict[str, Path] = {}

    @property
    def mount_point(self) -> Optional[Path]:
        """Mount directory of the export given to connect()."""
        if self._config is None:
            return None
        return self.mounts.get(self._config.export or "")

    async def _do_connect(self, config: ConnectionConfig) -> None:
        await self._mount(config.export or "")

    async def _mount(self, export: str) -> Path:
        source = f"{self._config.host}:/{export}"
        mount_point = Path(tempfile.mkdtemp(prefix="mdviewer-nfs-"))

        try:
            returncode, output = await _run(mount_command(source, str(mount_point)))
        except OSError as e:
            # mount binary missing or not executable
            _remove_dir(mount_point)
            raise MountFailedError(f"NFS mount failed: {e}", str(e)) from e

        if returncode != 0:
            _remove_dir(mount_point)
            raise MountFailedError(f"NFS mount failed: {output or f'exit code {returncode}'}", output)

        existing = self.mounts.get(export)
        if existing is not None:
            # A concurrent call mounted the same export first
            await self._unmount(mount_point)
            return existing

        self.mounts[export] = mount_point
        logger.info(f"Mounted {source} on {mount_point}")
        return mount_point

    async def _do_disconnect(self) -> None:
        mount_points = list(self.mounts.values())
        self.mounts.clear()
        for mount_point in mount_points:
            await self._unmount(mount_point)

    async def _unmount(self, mount_point: Path) -> None:
        try:
            returncode, output = await _run(unmount_command(str(mount_point)))
            if returncode != 0:
                logger.warning(f"umount {mount_point} failed: {output}")
        except OSError as e:
            logger.warning(f"umount {mount_point} failed: {e}")
        finally:
            _remove_dir(mount_point)

    async def local_path(self, path: str) -> Path:
        """
        Translate a remote path to its location under its export's mount.

        Raises:
            PermissionDeniedError: The path climbs out of the export with ".."
            MountFailedError: The export was not mounted yet and mounting failed
        """
        parts = [part for part in path.split("/") if part]
        export = parts.pop(0) if parts else (self._config.export or "")
        if export in (".", ".."):
            raise PermissionDeniedError(f"Path outside any NFS export: {path}", path)

        mount_point = self.mounts.get(export)
        if mount_point is None:
            mount_point = await self._mount(export)

        local = Path(os.path.normpath(mount_point.joinpath(*parts)))
        if local != mount_point and mount_point not in local.parents:
            raise PermissionDeniedError(f"Path outside the NFS export: {path}", path)
        return local

    async def _do_read_file(self, path: str) -> str:
        local = await self.local_path(path)
        with _translate_errors(path):
            # Undecodable bytes show up as U+FFFD instead of failing the open
            return await asyncio.to_thread(local.read_text, encoding="utf-8", errors="replace")

    async def _do_get_modified_marker(self, path: str) -> Any:
        local = await self.local_path(path)
        with _translate_errors(path):
            stat_result = await asyncio.to_thread(local.stat)
        return stat_result.st_mtime_ns

    def _scan(self, local: Path, path: str) -> list[DirectoryEntry]:
        entries = []
        with os.scandir(local) as it:
            for entry in it:
                is_dir = entry.is_dir()
                info = entry.stat()
                entries.append(
                    DirectoryEntry(
                        name=entry.name,
                        path=join_remote_path(path, entry.name),
                        is_directory=is_dir,
                        size=None if is_dir else info.st_size,
                        modified=info.st_mtime,
                    )
                )
        return entries

    async def _do_list_directory(self, path: str) -> list[DirectoryEntry]:
        local = await self.local_path(path)
        with _translate_errors(path):
            return await asyncio.to_thread(self._scan, local, path)

    async def _do_exists(self, path: str) -> bool:
        local = await self.local_path(path)
        return await asyncio.to_thread(local.exists)


def _remove_dir(mount_point: Path) -> None:
    try:
        mount_point.rmdir()
    except OSError as e:
        logger.warning(f"Could not remove mount point {mount_point}: {e}")

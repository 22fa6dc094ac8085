"""
SMB connection variant (smbprotocol's smbclient).

Share-oriented: one session per host. Paths arrive share-qualified
("/docs/dir/file.md") and become UNC paths (\\\\host\\docs\\dir\\file.md), so
the same connection reads from any share on the host. smbclient is a blocking
library, so every call runs in a worker thread via asyncio.to_thread.

Modification marker: this variant has no stat primitive in the viewer's
design. get_modified_marker reads the file and returns the wall-clock time of
that successful read, so the marker changes on every poll and the change
detector falls through to its content-hash comparison every time. That costs a
full read per poll; it is a known limitation, not something to paper over
with guessed timestamps.
"""

import asyncio
import errno
import logging
import time
from contextlib import contextmanager
from typing import Any, Iterator, Optional

import smbclient
from smbprotocol.exceptions import SMBConnectionClosed, SMBException, SMBOSError

from mdviewer.remote.base import (
    ConnectionConfig,
    DirectoryEntry,
    RemoteConnection,
    join_remote_path,
)
from mdviewer.remote.errors import (
    NotFoundError,
    PermissionDeniedError,
    RemoteConnectionError,
    RemoteFileError,
)
from mdviewer.remote.target import SMB

logger = logging.getLogger(__name__)


@contextmanager
def _translate_errors(path: Optional[str] = None) -> Iterator[None]:
    """Map smbprotocol/OS exceptions onto the remote error taxonomy."""
    try:
        yield
    except SMBOSError as e:
        if e.errno == errno.ENOENT:
            raise NotFoundError(f"File not found: {path}", path) from e
        if e.errno == errno.EACCES:
            raise PermissionDeniedError(f"Permission denied: {path}", path) from e
        raise
    except SMBConnectionClosed as e:
        raise RemoteConnectionError(f"SMB connection closed: {e}", path) from e
    except (ConnectionError, TimeoutError) as e:
        raise RemoteConnectionError(f"SMB connection failed: {e}", path) from e
    except SMBException as e:
        raise RemoteFileError(f"SMB error: {e}", path) from e


class SmbConnection(RemoteConnection):
    """Connection for smb:// and UNC targets."""

    protocol = SMB

    def __init__(self) -> None:
        super().__init__()
        # Private cache so disconnect() only tears down this connection's sessions
        self._connection_cache: dict[str, Any] = {}

    def _unc_path(self, path: str) -> str:
        """'/share/dir/file.md' -> '\\\\host\\share\\dir\\file.md'"""
        parts = [part for part in path.split("/") if part]
        return "\\".join(["", "", self._config.host, *parts])

    def _session_kwargs(self) -> dict[str, Any]:
        return {
            "username": self._username(),
            "password": self._config.password,
            "port": self._config.port or 445,
            "connection_cache": self._connection_cache,
        }

    def _username(self) -> Optional[str]:
        credentials = self._config.credentials
        if credentials is None or not credentials.username:
            return None
        if credentials.domain:
            return f"{credentials.domain}\\{credentials.username}"
        return credentials.username

    async def _do_connect(self, config: ConnectionConfig) -> None:
        if not config.share:
            raise RemoteConnectionError(f"SMB target on {config.host} has no share name")

        kwargs = self._session_kwargs()
        try:
            await asyncio.to_thread(
                smbclient.register_session,
                config.host,
                connection_timeout=int(config.connect_timeout),
                **kwargs,
            )
            # Listing the share root proves the share exists and is readable
            await asyncio.to_thread(smbclient.listdir, self._unc_path(config.share), **kwargs)
        except (SMBException, OSError, ValueError) as e:
            await self._reset_cache()
            raise RemoteConnectionError(
                f"SMB connection to \\\\{config.host}\\{config.share} failed: {e}"
            ) from e

    async def _do_disconnect(self) -> None:
        await self._reset_cache()

    async def _reset_cache(self) -> None:
        try:
            await asyncio.to_thread(
                smbclient.reset_connection_cache,
                fail_on_error=False,
                connection_cache=self._connection_cache,
            )
        finally:
            self._connection_cache.clear()

    def _read_text(self, path: str) -> str:
        with smbclient.open_file(self._unc_path(path), mode="rb", **self._session_kwargs()) as handle:
            data = handle.read()
        # Undecodable bytes show up as U+FFFD instead of failing the open
        return data.decode("utf-8", errors="replace")

    async def _do_read_file(self, path: str) -> str:
        with _translate_errors(path):
            return await asyncio.to_thread(self._read_text, path)

    async def _do_get_modified_marker(self, path: str) -> Any:
        with _translate_errors(path):
            await asyncio.to_thread(self._read_text, path)
        return time.time_ns()

    def _scan(self, path: str) -> list[DirectoryEntry]:
        return [
            DirectoryEntry(
                name=entry.name,
                path=join_remote_path(path, entry.name),
                is_directory=entry.is_dir(),
            )
            for entry in smbclient.scandir(self._unc_path(path), **self._session_kwargs())
        ]

    async def _do_list_directory(self, path: str) -> list[DirectoryEntry]:
        with _translate_errors(path):
            return await asyncio.to_thread(self._scan, path)

    async def _do_exists(self, path: str) -> bool:
        try:
            with _translate_errors(path):
                await asyncio.to_thread(
                    smbclient.stat, self._unc_path(path), **self._session_kwargs()
                )
        except NotFoundError:
            return False
        return True

"""
SSH/SFTP connection variant (asyncssh).

Session-oriented: one SSH connection with an SFTP subsystem on top. The
server reports a real mtime, so get_modified_marker is a single stat call
and the change detector only re-reads content when the mtime moves. The
marker is the nanosecond mtime when the server sends one (SFTPv4+) and the
whole-second mtime otherwise.
"""

import logging
import stat
from contextlib import contextmanager
from typing import Any, Iterator, Optional

import asyncssh

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
from mdviewer.remote.target import SSH

logger = logging.getLogger(__name__)


@contextmanager
def _translate_errors(path: Optional[str] = None) -> Iterator[None]:
    """Map asyncssh/OS exceptions onto the remote error taxonomy."""
    try:
        yield
    except asyncssh.SFTPNoSuchFile as e:
        raise NotFoundError(f"File not found: {path}", path) from e
    except asyncssh.SFTPPermissionDenied as e:
        raise PermissionDeniedError(f"Permission denied: {path}", path) from e
    except (asyncssh.SFTPConnectionLost, asyncssh.SFTPNoConnection) as e:
        raise RemoteConnectionError(f"SFTP connection lost: {e}", path) from e
    except asyncssh.SFTPError as e:
        raise RemoteFileError(f"SFTP error: {e.reason or e}", path) from e
    except asyncssh.DisconnectError as e:
        raise RemoteConnectionError(f"SSH connection dropped: {e}", path) from e
    except (ConnectionError, TimeoutError) as e:
        raise RemoteConnectionError(f"SSH connection failed: {e}", path) from e


def _client_keys(config: ConnectionConfig) -> Optional[list[Any]]:
    """Private key may be given as key text or as a key file path."""
    credentials = config.credentials
    if credentials is None or not credentials.private_key:
        return None
    key = credentials.private_key
    if "-----BEGIN" in key:
        return [asyncssh.import_private_key(key, credentials.passphrase)]
    return [asyncssh.read_private_key(key, credentials.passphrase)]


class SftpConnection(RemoteConnection):
    """Connection for ssh:// and sftp:// targets."""

    protocol = SSH

    def __init__(self, known_hosts: Any = None) -> None:
        """
        Args:
            known_hosts: Passed to asyncssh.connect. None disables host key
                checking, matching how the viewer has always behaved.
        """
        super().__init__()
        self._known_hosts = known_hosts
        self._ssh: Optional[asyncssh.SSHClientConnection] = None
        self._sftp: Optional[asyncssh.SFTPClient] = None

    async def _do_connect(self, config: ConnectionConfig) -> None:
        options: dict[str, Any] = {
            "port": config.port or 22,
            "known_hosts": self._known_hosts,
            "connect_timeout": config.connect_timeout,
        }
        if config.username:
            options["username"] = config.username
        if config.password:
            options["password"] = config.password

        try:
            client_keys = _client_keys(config)
            if client_keys:
                options["client_keys"] = client_keys
            self._ssh = await asyncssh.connect(config.host, **options)
            self._sftp = await self._ssh.start_sftp_client()
        except (asyncssh.Error, asyncssh.KeyImportError, OSError) as e:
            await self._close_quietly()
            raise RemoteConnectionError(
                f"SSH connection to {config.host}:{options['port']} failed: {e}"
            ) from e

    async def _do_disconnect(self) -> None:
        await self._close_quietly()

    async def _close_quietly(self) -> None:
        if self._sftp is not None:
            self._sftp.exit()
            self._sftp = None
        if self._ssh is not None:
            self._ssh.close()
            try:
                await self._ssh.wait_closed()
            except (asyncssh.Error, OSError) as e:
                logger.debug(f"Error while closing SSH connection: {e}")
            self._ssh = None

    async def _do_read_file(self, path: str) -> str:
        with _translate_errors(path):
            handle = await self._sftp.open(path, "r", encoding="utf-8", errors="replace")
            try:
                return await handle.read()
            finally:
                await handle.close()

    async def _do_get_modified_marker(self, path: str) -> Any:
        with _translate_errors(path):
            attrs = await self._sftp.stat(path)
        mtime_ns = getattr(attrs, "mtime_ns", None)
        return mtime_ns if mtime_ns is not None else attrs.mtime

    async def _do_list_directory(self, path: str) -> list[DirectoryEntry]:
        with _translate_errors(path):
            names = await self._sftp.readdir(path)
        return [
            DirectoryEntry(
                name=item.filename,
                path=join_remote_path(path, item.filename),
                is_directory=stat.S_ISDIR(item.attrs.permissions or 0),
                size=item.attrs.size,
                modified=item.attrs.mtime,
            )
            for item in names
        ]

    async def _do_exists(self, path: str) -> bool:
        with _translate_errors(path):
            return await self._sftp.exists(path)

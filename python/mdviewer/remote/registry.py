"""
Connection Registry - owns the live remote connections.

At most one connection per (protocol, host, port), keyed
"protocol://host:port". Callers ask for a target and get the cached
connection when it is still connected, or a freshly created one.

A connection serves every share (SMB) or export (NFS) on its host, so reads
and listings go through RemoteTarget.connection_path, which names the share
or export in its first segment.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from mdviewer.remote.base import ConnectionConfig, DirectoryEntry, RemoteConnection
from mdviewer.remote.credentials import CredentialManager, Credentials
from mdviewer.remote.errors import (
    AuthenticationCancelled,
    NotConnectedError,
    UnsupportedProtocolError,
)
from mdviewer.remote.target import (
    NFS,
    SFTP,
    SMB,
    SSH,
    RemoteTarget,
    connection_key,
    default_port,
    is_remote,
    parse,
)

logger = logging.getLogger(__name__)


def _sftp_connection() -> RemoteConnection:
    from mdviewer.remote.sftp import SftpConnection

    return SftpConnection()


def _smb_connection() -> RemoteConnection:
    from mdviewer.remote.smb import SmbConnection

    return SmbConnection()


def _nfs_connection() -> RemoteConnection:
    from mdviewer.remote.nfs import NfsConnection

    return NfsConnection()


# Client libraries are imported on first use of their protocol
DEFAULT_FACTORIES = {
    SSH: _sftp_connection,
    SFTP: _sftp_connection,
    SMB: _smb_connection,
    NFS: _nfs_connection,
}


@dataclass
class OpenedFile:
    """Result of ConnectionRegistry.open_file()."""

    type: str  # "local" or "remote"
    path: str  # Path inside the host (or the local path)
    full_path: str  # What the user asked for
    target: RemoteTarget
    protocol: Optional[str] = None
    content: Optional[str] = None
    connection: Optional[RemoteConnection] = None

    @property
    def is_remote(self) -> bool:
        return self.type == "remote"


class ConnectionRegistry:
    """
    Table of live connections, one per protocol/host/port.

    The registry is the only thing that adds or removes table entries. No
    lock is held while connecting: if two requests for the same key race,
    the first connection stored wins and the later one is disconnected
    instead of being left orphaned.
    """

    def __init__(
        self,
        credentials: Optional[CredentialManager] = None,
        factories: Optional[dict[str, Any]] = None,
    ) -> None:
        """
        Args:
            credentials: Credential collaborator (None: never prompt)
            factories: protocol -> zero-arg callable returning an unconnected
                RemoteConnection (default: SFTP/SMB/NFS variants)
        """
        self.credentials = credentials
        self._factories = dict(factories) if factories is not None else dict(DEFAULT_FACTORIES)
        self._connections: dict[str, RemoteConnection] = {}

    @property
    def connections(self) -> dict[str, RemoteConnection]:
        """Snapshot of the table."""
        return dict(self._connections)

    async def connect(
        self, target: RemoteTarget, credentials: Optional[Credentials] = None
    ) -> RemoteConnection:
        """
        Return a connected connection for the target's host.

        Args:
            target: Parsed remote target
            credentials: Explicit credentials (skip all lookups)

        Returns:
            Cached connection if still connected, otherwise a new one

        Raises:
            UnsupportedProtocolError: No variant for target.protocol
            AuthenticationCancelled: Credentials needed but none were given
            RemoteConnectionError: Connecting failed (not retried here)
        """
        factory = self._factories.get(target.protocol)
        if factory is None:
            raise UnsupportedProtocolError(target.protocol)

        key = connection_key(target)
        existing = self._connections.get(key)
        if existing is not None and existing.connected:
            return existing

        connection = factory()
        resolved = await self._resolve_credentials(target, connection, credentials)
        config = ConnectionConfig.from_target(target, resolved)

        await connection.connect(config)

        current = self._connections.get(key)
        if current is not None and current is not existing and current.connected:
            # Another task connected the same key while we were connecting
            logger.info(f"Duplicate connection for {key} created concurrently, keeping the first")
            await self._disconnect_quietly(key, connection)
            return current

        self._connections[key] = connection
        return connection

    async def connect_config(
        self,
        protocol: str,
        host: str,
        port: Optional[int] = None,
        credentials: Optional[Credentials] = None,
        share: Optional[str] = None,
        resource_path: str = "/",
    ) -> RemoteConnection:
        """Connect from dialog fields instead of a URI."""
        target = RemoteTarget(
            protocol=protocol,
            host=host,
            port=port if port is not None else default_port(protocol),
            share=share,
            resource_path=resource_path,
        )
        return await self.connect(target, credentials)

    async def _resolve_credentials(
        self,
        target: RemoteTarget,
        connection: RemoteConnection,
        provided: Optional[Credentials],
    ) -> Optional[Credentials]:
        """provided -> embedded in the URI -> credential collaborator."""
        if provided is not None:
            return provided
        if target.username:
            return Credentials(username=target.username, password=target.password)
        if not connection.requires_credentials or self.credentials is None:
            return None

        found = await self.credentials.get_credentials(target)
        if found is None:
            raise AuthenticationCancelled()
        return found

    async def open_file(
        self, remote_path: str, credentials: Optional[Credentials] = None
    ) -> OpenedFile:
        """
        Parse, connect and read in one go.

        Local paths are not read here; they come back as type "local".
        """
        target = parse(remote_path)
        if target.is_local:
            return OpenedFile(
                type="local", path=target.resource_path, full_path=remote_path, target=target
            )

        connection = await self.connect(target, credentials)
        content = await connection.read_file(target.connection_path)
        return OpenedFile(
            type="remote",
            path=target.resource_path,
            full_path=remote_path,
            target=target,
            protocol=target.protocol,
            content=content,
            connection=connection,
        )

    async def list_directory(self, remote_path: str) -> list[DirectoryEntry]:
        """
        List a remote directory through its existing connection.

        Raises:
            NotConnectedError: No live connection for that host
        """
        target = parse(remote_path)
        connection = self._connections.get(connection_key(target))
        if connection is None or not connection.connected:
            raise NotConnectedError(remote_path)
        return await connection.list_directory(target.connection_path)

    def get_client(self, remote_path: str) -> Optional[RemoteConnection]:
        return self._connections.get(connection_key(parse(remote_path)))

    async def close_client(self, remote_path: str) -> bool:
        """
        Disconnect and forget the connection serving remote_path.

        Returns:
            True if there was one
        """
        key = connection_key(parse(remote_path))
        connection = self._connections.pop(key, None)
        if connection is None:
            return False
        await connection.disconnect()
        return True

    async def close_all(self) -> None:
        """Disconnect everything; one failing disconnect never blocks the rest."""
        connections = list(self._connections.items())
        self._connections.clear()
        for key, connection in connections:
            await self._disconnect_quietly(key, connection)

    async def _disconnect_quietly(self, key: str, connection: RemoteConnection) -> None:
        try:
            await connection.disconnect()
        except Exception as e:
            logger.error(f"Error disconnecting {key}: {e}", exc_info=True)

    def is_remote_path(self, value: str) -> bool:
        return is_remote(value)

    def parse_path(self, value: str) -> RemoteTarget:
        return parse(value)

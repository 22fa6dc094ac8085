"""
Connection interface shared by the SFTP, SMB and NFS variants.

The protocols differ a lot (session vs share vs mount) but the viewer only
needs five things from any of them: connect, read a file, get a cheap
"has it changed" marker, list a directory, disconnect. RemoteConnection
pins that surface down; each variant implements the _do_* hooks and
translates its library's exceptions into mdviewer.remote.errors.
"""

import logging
import posixpath
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from mdviewer.remote.credentials import Credentials
from mdviewer.remote.errors import NotConnectedError
from mdviewer.remote.target import NFS, RemoteTarget

logger = logging.getLogger(__name__)

MARKDOWN_EXTENSIONS = (".md", ".markdown")

# Seconds allowed for the initial handshake/mount
DEFAULT_CONNECT_TIMEOUT = 10.0


@dataclass(frozen=True)
class ConnectionConfig:
    """Everything a variant needs to (re)connect."""

    host: str
    port: Optional[int] = None
    share: Optional[str] = None
    export: Optional[str] = None
    credentials: Optional[Credentials] = None
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT

    @classmethod
    def from_target(
        cls, target: RemoteTarget, credentials: Optional[Credentials] = None
    ) -> "ConnectionConfig":
        export = None
        if target.protocol == NFS:
            # nfs://host/export/dir/file.md -> export "export"
            segments = [s for s in target.resource_path.split("/") if s]
            export = segments[0] if segments else ""
        return cls(
            host=target.host or "",
            port=target.port,
            share=target.share,
            export=export,
            credentials=credentials,
        )

    @property
    def username(self) -> Optional[str]:
        return self.credentials.username if self.credentials else None

    @property
    def password(self) -> Optional[str]:
        return self.credentials.password if self.credentials else None


@dataclass(frozen=True)
class DirectoryEntry:
    """One row of a remote directory listing."""

    name: str
    path: str
    is_directory: bool
    size: Optional[int] = None
    modified: Optional[Any] = None

    def to_dict(self) -> dict[str, Any]:
        entry: dict[str, Any] = {
            "name": self.name,
            "path": self.path,
            "isDirectory": self.is_directory,
        }
        if self.size is not None:
            entry["size"] = self.size
        if self.modified is not None:
            entry["modified"] = self.modified
        return entry


def is_markdown_name(name: str) -> bool:
    return name.lower().endswith(MARKDOWN_EXTENSIONS)


def join_remote_path(parent: str, name: str) -> str:
    """parent + '/' + name with repeated slashes collapsed."""
    return re.sub(r"/+", "/", f"{parent}/{name}")


def markdown_listing(entries: Iterable[DirectoryEntry]) -> list[DirectoryEntry]:
    """
    Apply the listing policy every variant shares.

    Keeps directories and markdown files (dropping "." and ".."), then sorts
    directories first and names case-insensitively, ties broken by exact name.
    """
    kept = [
        entry
        for entry in entries
        if entry.name not in (".", "..") and (entry.is_directory or is_markdown_name(entry.name))
    ]
    return sorted(kept, key=lambda e: (not e.is_directory, e.name.casefold(), e.name))


class RemoteConnection(ABC):
    """
    Base class for one live connection to one host.

    Lifecycle: created unconnected -> connect(config) -> read/stat/list ->
    disconnect(). reconnect() replays the stored config.
    """

    protocol: str = ""
    # NFS mounts anonymously; the others need a login
    requires_credentials: bool = True

    def __init__(self) -> None:
        self._config: Optional[ConnectionConfig] = None
        self._connected = False

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def config(self) -> Optional[ConnectionConfig]:
        return self._config

    async def connect(self, config: ConnectionConfig) -> None:
        """
        Open the connection.

        Raises:
            RemoteConnectionError: host unreachable, login refused, mount failed
        """
        self._config = config
        logger.info(f"Connecting {self.protocol}://{config.host}:{config.port}")
        await self._do_connect(config)
        self._connected = True
        logger.info(f"Connected {self.protocol}://{config.host}:{config.port}")

    async def disconnect(self) -> None:
        if not self._connected:
            return
        try:
            await self._do_disconnect()
        finally:
            self._connected = False
            if self._config is not None:
                logger.info(f"Disconnected {self.protocol}://{self._config.host}:{self._config.port}")

    async def reconnect(self) -> None:
        if self._config is None:
            raise NotConnectedError()
        await self.disconnect()
        await self.connect(self._config)

    async def read_file(self, path: str) -> str:
        """Read a whole file as UTF-8 text."""
        self._require_connected(path)
        return await self._do_read_file(path)

    async def get_modified_marker(self, path: str) -> Any:
        """
        Cheap comparable value that changes when the file changes.

        Two equal markers mean "probably unchanged"; callers verify a
        changed marker with a content hash.
        """
        self._require_connected(path)
        return await self._do_get_modified_marker(path)

    async def list_directory(self, path: str) -> list[DirectoryEntry]:
        """Directories and markdown files in path, directories first."""
        self._require_connected(path)
        return markdown_listing(await self._do_list_directory(path))

    async def exists(self, path: str) -> bool:
        self._require_connected(path)
        return await self._do_exists(path)

    def _require_connected(self, path: Optional[str] = None) -> None:
        if not self._connected:
            raise NotConnectedError(path)

    @abstractmethod
    async def _do_connect(self, config: ConnectionConfig) -> None: ...

    @abstractmethod
    async def _do_disconnect(self) -> None: ...

    @abstractmethod
    async def _do_read_file(self, path: str) -> str: ...

    @abstractmethod
    async def _do_get_modified_marker(self, path: str) -> Any: ...

    @abstractmethod
    async def _do_list_directory(self, path: str) -> list[DirectoryEntry]: ...

    @abstractmethod
    async def _do_exists(self, path: str) -> bool: ...

    def __repr__(self) -> str:
        host = self._config.host if self._config else None
        port = self._config.port if self._config else None
        state = "connected" if self._connected else "disconnected"
        return f"<{type(self).__name__} {self.protocol}://{host}:{port} {state}>"


def remote_basename(path: str) -> str:
    return posixpath.basename(path.rstrip("/")) or path

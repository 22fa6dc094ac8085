"""
Remote file access: target parsing, per-protocol connections, credentials.

Typical usage:
--------------
    from mdviewer.remote import ConnectionRegistry, CredentialManager, parse

    registry = ConnectionRegistry(credentials=CredentialManager(prompt=prompt))
    target = parse("sftp://alice@server/home/alice/notes.md")
    connection = await registry.connect(target)
    content = await connection.read_file(target.connection_path)
    ...
    await registry.close_all()

Protocol client libraries (asyncssh, smbprotocol) are imported only when a
connection of that protocol is first created.
"""

from mdviewer.remote.base import ConnectionConfig, DirectoryEntry, RemoteConnection
from mdviewer.remote.credentials import (
    CredentialManager,
    CredentialRequest,
    Credentials,
    InMemoryCredentialStore,
    NotifierCredentialPrompt,
)
from mdviewer.remote.errors import (
    AuthenticationCancelled,
    MountFailedError,
    NotConnectedError,
    NotFoundError,
    PermissionDeniedError,
    RemoteConnectionError,
    RemoteFileError,
    UnsupportedProtocolError,
    describe_error,
)
from mdviewer.remote.registry import ConnectionRegistry, OpenedFile
from mdviewer.remote.target import RemoteTarget, build_url, connection_key, is_remote, parse

__all__ = [
    "AuthenticationCancelled",
    "ConnectionConfig",
    "ConnectionRegistry",
    "CredentialManager",
    "CredentialRequest",
    "Credentials",
    "DirectoryEntry",
    "InMemoryCredentialStore",
    "MountFailedError",
    "NotConnectedError",
    "NotFoundError",
    "NotifierCredentialPrompt",
    "OpenedFile",
    "PermissionDeniedError",
    "RemoteConnection",
    "RemoteConnectionError",
    "RemoteFileError",
    "RemoteTarget",
    "UnsupportedProtocolError",
    "build_url",
    "connection_key",
    "describe_error",
    "is_remote",
    "parse",
]

"""
Error taxonomy for remote file access.

Every connection variant translates its native library exceptions into these
classes at its boundary, so the registry, the change detector and the viewer
never need to know which client library raised.

    RemoteFileError
    ├── NotFoundError             resource removed / never existed
    ├── PermissionDeniedError     resource exists but is not readable
    ├── RemoteConnectionError     refused, dropped, timed out
    │   ├── NotConnectedError     operation on a closed connection
    │   └── MountFailedError      NFS mount command failed
    ├── AuthenticationCancelled   user declined (or ignored) the prompt
    └── UnsupportedProtocolError  no connection variant for the scheme
"""

import errno
from typing import Optional


class RemoteFileError(Exception):
    """Base class for remote file access failures."""

    def __init__(self, message: str, path: Optional[str] = None) -> None:
        super().__init__(message)
        self.path = path


class NotFoundError(RemoteFileError):
    """The remote resource does not exist."""


class PermissionDeniedError(RemoteFileError):
    """The remote resource exists but access was refused."""


class RemoteConnectionError(RemoteFileError):
    """The connection was refused, dropped or timed out."""


class NotConnectedError(RemoteConnectionError):
    """An operation was attempted on a connection that is not connected."""

    def __init__(self, path: Optional[str] = None) -> None:
        super().__init__("Not connected", path)


class MountFailedError(RemoteConnectionError):
    """Mounting a remote export failed; carries the mount diagnostic."""

    def __init__(self, message: str, diagnostic: str = "") -> None:
        super().__init__(message)
        self.diagnostic = diagnostic


class AuthenticationCancelled(RemoteFileError):
    """No credentials were supplied for a target that needs them."""

    def __init__(self, message: str = "Authentication cancelled") -> None:
        super().__init__(message)


class UnsupportedProtocolError(RemoteFileError):
    """The target's protocol has no connection variant."""

    def __init__(self, protocol: str) -> None:
        super().__init__(f"Unsupported protocol: {protocol}")
        self.protocol = protocol


def describe_error(error: BaseException) -> str:
    """
    Turn an exception into the message shown to the user.

    Local OS errors get short fixed messages; everything else uses the
    exception text.
    """
    if isinstance(error, OSError):
        if error.errno == errno.ENOENT:
            return "File not found"
        if error.errno == errno.EACCES:
            return "Permission denied"
        if error.errno == errno.EISDIR:
            return "Cannot open directory"
    return str(error) or "Unknown error"

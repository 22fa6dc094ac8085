"""
Resilience policy for remote polling.

Two pieces:
- classify_error() sorts whatever a connection raised into NOT_FOUND,
  CONNECTION or OTHER. Taxonomy classes from mdviewer.remote.errors win;
  raw builtin/OS errors and library messages are recognised as a fallback.
- ResiliencePolicy counts consecutive connection failures against a hard
  ceiling. Success resets the count. There is no backoff: the poller keeps
  its cadence and the policy only decides when to give up.
"""

import errno
from enum import Enum

from mdviewer.remote.errors import NotFoundError, RemoteConnectionError, RemoteFileError
from mdviewer.watcher.types import MAX_RETRIES


class ErrorClass(Enum):
    """What a failed check cycle means for the watch."""

    NOT_FOUND = "not_found"  # Terminal: file is gone
    CONNECTION = "connection"  # Retry up to the bound
    OTHER = "other"  # Log and keep polling


_NOT_FOUND_ERRNOS = {errno.ENOENT}
_CONNECTION_ERRNOS = {
    getattr(errno, name)
    for name in (
        "ECONNREFUSED",
        "ECONNRESET",
        "ECONNABORTED",
        "EPIPE",
        "ETIMEDOUT",
        "EHOSTUNREACH",
        "ENETUNREACH",
        "ENETDOWN",
        "ESTALE",
    )
    if hasattr(errno, name)
}


def classify_error(error: BaseException) -> ErrorClass:
    """
    Classify an exception raised during a check cycle.

    Args:
        error: Exception from get_modified_marker/read_file

    Returns:
        ErrorClass for the failure
    """
    if isinstance(error, NotFoundError):
        return ErrorClass.NOT_FOUND
    if isinstance(error, RemoteConnectionError):
        return ErrorClass.CONNECTION
    if isinstance(error, RemoteFileError):
        # Already translated; messages may contain file names
        return ErrorClass.OTHER

    if isinstance(error, FileNotFoundError):
        return ErrorClass.NOT_FOUND
    if isinstance(error, (ConnectionError, TimeoutError)):
        return ErrorClass.CONNECTION

    code = getattr(error, "errno", None)
    if code in _NOT_FOUND_ERRNOS:
        return ErrorClass.NOT_FOUND
    if code in _CONNECTION_ERRNOS:
        return ErrorClass.CONNECTION

    message = str(error).lower()
    if "not found" in message or "no such file" in message:
        return ErrorClass.NOT_FOUND
    if "connection" in message:
        return ErrorClass.CONNECTION

    return ErrorClass.OTHER


class ResiliencePolicy:
    """
    Bounded counter of consecutive connection failures.

    Example:
    --------
    >>> policy = ResiliencePolicy(max_retries=3)
    >>> policy.record_connection_failure()
    False
    >>> policy.record_success()
    True
    >>> policy.retry_count
    0
    """

    def __init__(self, max_retries: int = MAX_RETRIES) -> None:
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self.max_retries = max_retries
        self.retry_count = 0

    @property
    def exhausted(self) -> bool:
        return self.retry_count >= self.max_retries

    @property
    def retrying(self) -> bool:
        return 0 < self.retry_count < self.max_retries

    def record_success(self) -> bool:
        """
        Reset after a successful check.

        Returns:
            True if this success ended a run of failures
        """
        recovered = self.retry_count > 0
        self.retry_count = 0
        return recovered

    def record_connection_failure(self) -> bool:
        """
        Count one connection failure.

        Returns:
            True if the bound is now reached and the watch must give up
        """
        self.retry_count += 1
        return self.exhausted

    def reset(self) -> None:
        self.retry_count = 0

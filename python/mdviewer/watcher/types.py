"""
Watcher type definitions and protocol.

This module defines the core types shared by the local and remote watchers:
- FileEvent enum: raw local file system events
- WatchState enum: lifecycle of a remote watch session
- Poll interval bounds and clamping
- FileWatcherProtocol: interface contract both watchers follow
"""

from enum import Enum
from typing import Protocol

# Remote poll interval bounds (milliseconds)
MIN_POLL_INTERVAL_MS = 500
MAX_POLL_INTERVAL_MS = 30_000
DEFAULT_POLL_INTERVAL_MS = 2_000

# Consecutive connection failures tolerated before a remote watch gives up
MAX_RETRIES = 3

# Local change events are collapsed over this window (milliseconds)
LOCAL_DEBOUNCE_MS = 300


def clamp_poll_interval(ms: int) -> int:
    """Clamp a poll interval into [MIN_POLL_INTERVAL_MS, MAX_POLL_INTERVAL_MS]."""
    return max(MIN_POLL_INTERVAL_MS, min(MAX_POLL_INTERVAL_MS, int(ms)))


class FileEvent(Enum):
    """Local file system event types."""

    CREATED = "created"  # File appeared (also: atomic-save rename onto it)
    MODIFIED = "modified"  # Existing file content changed
    DELETED = "deleted"  # File removed (or renamed away)


class WatchState(Enum):
    """
    Remote watch session lifecycle.

        INITIALIZING -> ACTIVE -> (RETRYING <-> ACTIVE) -> STOPPED | DELETED | FAILED

    DELETED and FAILED are terminal: nothing resumes them except a new watch.
    STOPPED is the result of an explicit stop().
    """

    INITIALIZING = "initializing"
    ACTIVE = "active"
    RETRYING = "retrying"
    STOPPED = "stopped"
    DELETED = "deleted"
    FAILED = "failed"

    @property
    def is_live(self) -> bool:
        """True while the session is still polling (or about to)."""
        return self in (WatchState.INITIALIZING, WatchState.ACTIVE, WatchState.RETRYING)

    @property
    def is_terminal(self) -> bool:
        return self in (WatchState.DELETED, WatchState.FAILED)


class FileWatcherProtocol(Protocol):
    """
    Protocol defining what a watcher looks like to its owner.

    Expected Behavior:
    ------------------
    1. At most one watched file at a time; starting a watch stops the previous
    2. Changes are reported to the notifier, never returned
    3. Errors are logged or reported as notifications, never raised from timers
    4. stop() is idempotent and safe from any state

    Post-conditions of stop():
    --------------------------
    - is_running() returns False
    - No further notifications are emitted
    """

    def stop(self) -> None:
        ...

    def is_running(self) -> bool:
        ...

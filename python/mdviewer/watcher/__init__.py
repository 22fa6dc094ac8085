"""
Change detection for the open document.

Local files are watched with watchdog (OS push events, debounced). Remote
files are polled through their connection: a cheap modification marker
first, then a content hash to confirm, with bounded retries when the
connection drops.

Typical usage:
--------------
    from mdviewer.watcher import FileWatcherManager

    manager = FileWatcherManager(notifier, poll_interval_ms=2000)
    manager.watch(Path("/notes/todo.md"))              # local
    await manager.watch_remote(target, connection)     # remote
    manager.set_poll_interval(5000)
    manager.stop()

NOTIFICATIONS
=============

file-changed               {type: "modified", content} | {type: "deleted"}
                           (remote ones carry remote: True)
remote-connection-lost     {path, retryCount, maxRetries}
remote-connection-failed   {path}
file-error                 {message, path}

STATES (remote)
===============

INITIALIZING -> ACTIVE <-> RETRYING
ACTIVE/RETRYING -> DELETED     file gone, polling ends
RETRYING -> FAILED             max_retries consecutive connection failures
any live state -> STOPPED      stop() or a newer watch()

BOUNDARIES
==========

- Poll interval is clamped to [500, 30000] ms
- A marker change with identical content is not a modification
- The remote watcher never reconnects; recovery is the connection's own
"""

from mdviewer.watcher.debouncer import DebounceQueue
from mdviewer.watcher.handlers import LocalFileEventHandler
from mdviewer.watcher.local import LocalFileWatcher
from mdviewer.watcher.manager import FileWatcherManager
from mdviewer.watcher.remote import RemoteFileWatcher, WatchSession, hash_content
from mdviewer.watcher.resilience import ErrorClass, ResiliencePolicy, classify_error
from mdviewer.watcher.types import (
    FileEvent,
    FileWatcherProtocol,
    WatchState,
    clamp_poll_interval,
)

__all__ = [
    "DebounceQueue",
    "ErrorClass",
    "FileEvent",
    "FileWatcherManager",
    "FileWatcherProtocol",
    "LocalFileEventHandler",
    "LocalFileWatcher",
    "RemoteFileWatcher",
    "ResiliencePolicy",
    "WatchSession",
    "WatchState",
    "clamp_poll_interval",
    "classify_error",
    "hash_content",
]

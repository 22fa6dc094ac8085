"""
Watcher manager: one active watch per consumer.

Owns a LocalFileWatcher and a RemoteFileWatcher and guarantees that at most
one of them is watching at any moment. Starting either kind of watch stops
whatever was being watched before.
"""

import logging
from pathlib import Path
from typing import Any, Optional

from mdviewer.notifications import Notifier
from mdviewer.remote.target import RemoteTarget
from mdviewer.watcher.local import LocalFileWatcher
from mdviewer.watcher.remote import RemoteFileWatcher
from mdviewer.watcher.types import (
    DEFAULT_POLL_INTERVAL_MS,
    LOCAL_DEBOUNCE_MS,
    MAX_RETRIES,
    WatchState,
)

logger = logging.getLogger(__name__)


class FileWatcherManager:
    """
    Routes watch requests to the local or remote watcher.

    Example Usage:
    --------------
    >>> manager = FileWatcherManager(notifier)
    >>> manager.watch(Path("/notes/todo.md"))
    >>> await manager.watch_remote(target, connection, poll_interval_ms=2000)
    >>> manager.set_poll_interval(5000)
    >>> manager.stop()
    """

    def __init__(
        self,
        notifier: Notifier,
        poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
        max_retries: int = MAX_RETRIES,
        debounce_ms: int = LOCAL_DEBOUNCE_MS,
    ) -> None:
        self.local_watcher = LocalFileWatcher(notifier, debounce_ms=debounce_ms)
        self.remote_watcher = RemoteFileWatcher(
            notifier, poll_interval_ms=poll_interval_ms, max_retries=max_retries
        )
        self.current_type: Optional[str] = None

    def watch(self, file_path: Path) -> None:
        """Watch a local file."""
        self.stop()
        self.current_type = "local"
        self.local_watcher.watch(file_path)

    async def watch_remote(
        self,
        target: RemoteTarget,
        connection: Any,
        poll_interval_ms: Optional[int] = None,
        path: Optional[str] = None,
    ) -> WatchState:
        """Watch a remote file through an existing connection."""
        self.stop()
        self.current_type = "remote"
        return await self.remote_watcher.watch(
            target, connection, poll_interval_ms=poll_interval_ms, path=path
        )

    def stop(self) -> None:
        self.local_watcher.stop()
        self.remote_watcher.stop()
        self.current_type = None

    def set_poll_interval(self, ms: int) -> Optional[int]:
        """
        Apply a new poll interval to the active remote watch.

        Returns:
            Effective interval, or None when no remote watch is active
        """
        if self.current_type != "remote":
            return None
        return self.remote_watcher.set_poll_interval(ms)

    def set_enabled(self, enabled: bool) -> None:
        if not enabled:
            self.stop()

    def is_running(self) -> bool:
        return self.local_watcher.is_running() or self.remote_watcher.is_running()

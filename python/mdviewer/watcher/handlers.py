"""
Internal event handler for watchdog file system monitoring.

watchdog watches directories, not files, so the observer is scheduled on the
watched file's parent directory and this handler drops every event that does
not concern the watched file. It runs on the observer thread and hands events
to the watcher's event loop.
"""

import asyncio
from pathlib import Path

from mdviewer.watcher.types import FileEvent


class LocalFileEventHandler:
    """
    Routes watchdog events about one file to its LocalFileWatcher.

    Renames are normalised the way editors use them: renaming the watched
    file away is a deletion, renaming another file onto it (atomic save) is a
    modification.
    """

    def __init__(self, watcher: "LocalFileWatcher", file_path: Path) -> None:  # noqa: F821
        """
        Args:
        -----
        watcher: LocalFileWatcher instance to route events to
        file_path: Resolved path of the watched file
        """
        self.watcher = watcher
        self.file_path = file_path

    def dispatch(self, event) -> None:
        """Called on the observer thread for every event in the directory."""
        from watchdog.events import (
            FileCreatedEvent,
            FileDeletedEvent,
            FileModifiedEvent,
            FileMovedEvent,
        )

        if getattr(event, "is_directory", False):
            return

        if isinstance(event, FileMovedEvent):
            if self._matches(event.src_path):
                event_type = FileEvent.DELETED
            elif self._matches(event.dest_path):
                event_type = FileEvent.MODIFIED
            else:
                return
        elif not self._matches(event.src_path):
            return
        elif isinstance(event, FileModifiedEvent):
            event_type = FileEvent.MODIFIED
        elif isinstance(event, FileCreatedEvent):
            event_type = FileEvent.CREATED
        elif isinstance(event, FileDeletedEvent):
            event_type = FileEvent.DELETED
        else:
            return

        asyncio.run_coroutine_threadsafe(
            self.watcher.handle_event(event_type, self.file_path), self.watcher.loop
        )

    def _matches(self, raw_path) -> bool:
        if isinstance(raw_path, bytes):
            raw_path = raw_path.decode(errors="replace")
        return Path(raw_path).resolve() == self.file_path

"""
Local file watching.

The local counterpart of RemoteFileWatcher: the OS pushes change events
(inotify, FSEvents, ReadDirectoryChangesW via watchdog), so there is no
polling and no content hashing. Bursts of events are debounced for 300ms,
then the file is re-read and reported, or reported deleted.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

from mdviewer import notifications
from mdviewer.notifications import Notifier
from mdviewer.remote.errors import describe_error
from mdviewer.watcher.debouncer import DebounceQueue
from mdviewer.watcher.handlers import LocalFileEventHandler
from mdviewer.watcher.types import LOCAL_DEBOUNCE_MS, FileEvent

logger = logging.getLogger(__name__)


class LocalFileWatcher:
    """
    Watches one local file and reports settled changes to a notifier.

    Constructor Args:
    -----------------
    notifier: Receives file-changed / file-error notifications
    debounce_ms: Quiet period before a burst of events is reported

    Thread Safety:
    --------------
    - watchdog observer runs in its own thread
    - Events are handed to the event loop with run_coroutine_threadsafe
    - Debounce timer, file reads and notifications happen on the loop
    """

    def __init__(self, notifier: Notifier, debounce_ms: int = LOCAL_DEBOUNCE_MS) -> None:
        self._notifier = notifier
        self._debounce_delay = debounce_ms / 1000

        self._file_path: Optional[Path] = None
        self.loop: Optional[asyncio.AbstractEventLoop] = None
        self._observer = None
        self._debounce_queue: Optional[DebounceQueue] = None
        self._event_handler: Optional[LocalFileEventHandler] = None

    @property
    def file_path(self) -> Optional[Path]:
        return self._file_path

    def watch(self, file_path: Path) -> None:
        """
        Start watching a file, replacing any previous watch.

        Must be called from a coroutine (needs the running loop).

        Raises:
        -------
        FileNotFoundError: If the file's directory does not exist
        """
        from watchdog.observers import Observer

        self.stop()

        file_path = Path(file_path).resolve()
        if not file_path.parent.is_dir():
            raise FileNotFoundError(f"Directory does not exist: {file_path.parent}")

        self.loop = asyncio.get_running_loop()
        self._file_path = file_path
        self._debounce_queue = DebounceQueue(
            debounce_delay=self._debounce_delay,
            flush_callback=self._on_flush,
            loop=self.loop,
        )
        self._event_handler = LocalFileEventHandler(watcher=self, file_path=file_path)

        self._observer = Observer()
        self._observer.schedule(self._event_handler, str(file_path.parent), recursive=False)
        self._observer.start()

        logger.info(f"Watching local file {file_path}")

    async def handle_event(self, event_type: FileEvent, file_path: Path) -> None:
        """
        Handle a file event from watchdog (internal callback).

        Stale events for a previously watched file are dropped.
        """
        if self._debounce_queue is None or file_path != self._file_path:
            return
        self._debounce_queue.add(event_type, file_path)

    async def _on_flush(self, events: list[tuple[FileEvent, Path]]) -> None:
        for event_type, file_path in events:
            if file_path != self._file_path:
                continue
            if event_type == FileEvent.DELETED:
                logger.info(f"Local file deleted: {file_path}")
                self._send(notifications.FILE_CHANGED, {"type": "deleted"})
                continue
            await self._report_modified(file_path)

    async def _report_modified(self, file_path: Path) -> None:
        try:
            content = await asyncio.to_thread(file_path.read_text, encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Could not re-read {file_path}: {e}")
            self._send(
                notifications.FILE_ERROR,
                {"message": describe_error(e), "path": str(file_path)},
            )
            return
        if file_path != self._file_path:
            return
        self._send(notifications.FILE_CHANGED, {"type": "modified", "content": content})

    def _send(self, channel: str, payload: dict) -> None:
        try:
            self._notifier.send(channel, payload)
        except Exception as e:
            logger.error(f"Error delivering {channel} notification: {e}", exc_info=True)

    def stop(self) -> None:
        """Stop watching and drop any pending (not yet flushed) events."""
        if self._observer is not None:
            logger.info(f"Stopping local file watcher for {self._file_path}")
            self._observer.stop()
            self._observer.join()
            self._observer = None
        if self._debounce_queue is not None:
            self._debounce_queue.cancel()
            self._debounce_queue = None
        self._event_handler = None
        self._file_path = None

    def is_running(self) -> bool:
        return self._observer is not None and self._observer.is_alive()

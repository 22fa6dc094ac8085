"""
Event debouncing for the local file watcher.

An editor save is rarely one event: it is often truncate + write + chmod, or
write-temp + rename. DebounceQueue holds events until the file has been quiet
for the debounce delay, then hands over at most one settled event per file.
"""

import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable, Optional, Union

from mdviewer.watcher.types import LOCAL_DEBOUNCE_MS, FileEvent

logger = logging.getLogger(__name__)

FlushCallback = Callable[[list[tuple[FileEvent, Path]]], Union[None, Awaitable[None]]]

# (pending, incoming) -> settled event; None drops the file entirely.
# Pairs not listed settle to the incoming event.
_MERGE_RULES: dict[tuple[FileEvent, FileEvent], Optional[FileEvent]] = {
    (FileEvent.CREATED, FileEvent.MODIFIED): FileEvent.CREATED,
    (FileEvent.CREATED, FileEvent.DELETED): None,
}


def merge_events(pending: Optional[FileEvent], incoming: FileEvent) -> Optional[FileEvent]:
    """
    Combine a pending event with a newer one for the same file.

    MODIFIED + MODIFIED  → MODIFIED
    CREATED  + MODIFIED  → CREATED
    MODIFIED + DELETED   → DELETED
    CREATED  + DELETED   → nothing (the file came and went)
    DELETED  + CREATED   → CREATED (atomic save)
    """
    if pending is None:
        return incoming
    return _MERGE_RULES.get((pending, incoming), incoming)


class DebounceQueue:
    """
    Collects file events and flushes them once things settle down.

    Timeline:
    ---------
    notes.md modified at t=0ms    }
    notes.md modified at t=40ms   } each add() restarts the timer
    notes.md modified at t=90ms   }
    → flush at t=390ms with one MODIFIED (300ms delay)
    """

    def __init__(
        self,
        debounce_delay: float = LOCAL_DEBOUNCE_MS / 1000,
        flush_callback: Optional[FlushCallback] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        """
        Args:
        -----
        debounce_delay: Quiet period in seconds, in (0, 10]
        flush_callback: Sync or async callable receiving the settled events
        loop: Loop the timer is scheduled on (default: the running loop)

        Raises:
        -------
        ValueError: If debounce_delay is out of range
        """
        if not 0 < debounce_delay <= 10:
            raise ValueError("debounce_delay must be between 0 and 10 seconds")

        self._delay = debounce_delay
        self._callback = flush_callback
        self._loop = loop or asyncio.get_running_loop()

        self._pending: dict[Path, FileEvent] = {}
        self._timer: Optional[asyncio.TimerHandle] = None
        self._flush_tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def add(self, event_type: FileEvent, file_path: Path) -> None:
        """Queue an event (merged with any pending one) and restart the timer."""
        settled = merge_events(self._pending.get(file_path), event_type)
        if settled is None:
            self._pending.pop(file_path, None)
        else:
            self._pending[file_path] = settled

        self._cancel_timer()
        self._timer = self._loop.call_later(self._delay, self._on_quiet)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_quiet(self) -> None:
        self._timer = None
        task = self._loop.create_task(self.flush())
        self._flush_tasks.add(task)
        task.add_done_callback(self._flush_tasks.discard)

    async def flush(self) -> None:
        """Hand every pending event to the callback now. Callback errors are logged."""
        self._cancel_timer()
        settled = [(event, path) for path, event in self._pending.items()]
        self._pending.clear()

        if self._callback is None:
            return
        try:
            outcome = self._callback(settled)
            if asyncio.iscoroutine(outcome):
                await outcome
        except Exception as e:
            # The watcher keeps running after a failed delivery
            logger.error(f"Debounced flush of {len(settled)} event(s) failed: {e}", exc_info=True)

    def cancel(self) -> None:
        """Forget pending events without flushing them."""
        self._cancel_timer()
        self._pending.clear()

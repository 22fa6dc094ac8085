"""
Notifications sent from the back end to the UI collaborator.

Channel names and payload keys are the wire contract with the renderer and
keep their established spelling:

    file-changed              {type: "modified", remote: true, content}
                              {type: "deleted", remote: true}
    remote-connection-lost    {path, retryCount, maxRetries}
    remote-connection-failed  {path}
    file-error                {message, path}
    file-opened               {content, path, fileName, isRemote, protocol?}
    file-reloaded             {content, path}
    loading-start             {message}
    loading-end               {}
    disconnected              {}
    request-credentials       {protocol, host, defaultUsername}

Local-file notifications omit the "remote" key.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Protocol, Union

logger = logging.getLogger(__name__)

FILE_CHANGED = "file-changed"
REMOTE_CONNECTION_LOST = "remote-connection-lost"
REMOTE_CONNECTION_FAILED = "remote-connection-failed"
FILE_ERROR = "file-error"
FILE_OPENED = "file-opened"
FILE_RELOADED = "file-reloaded"
LOADING_START = "loading-start"
LOADING_END = "loading-end"
DISCONNECTED = "disconnected"
REQUEST_CREDENTIALS = "request-credentials"

Payload = dict[str, Any]


class Notifier(Protocol):
    """Anything that can deliver a notification to the UI."""

    def send(self, channel: str, payload: Payload) -> None:
        ...


class CallbackNotifier:
    """
    Notifier that forwards to a callable.

    The callback may be sync or async. Async callbacks are scheduled on the
    running loop. Callback failures are logged and never reach the watcher
    that emitted the notification.
    """

    def __init__(
        self,
        callback: Callable[[str, Payload], Union[None, Awaitable[None]]],
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        if not callable(callback):
            raise TypeError("callback must be callable")
        self._callback = callback
        self._loop = loop
        self._pending: set[asyncio.Task] = set()

    def send(self, channel: str, payload: Payload) -> None:
        try:
            result = self._callback(channel, payload)
        except Exception as e:
            logger.error(f"Error in notification callback for {channel}: {e}", exc_info=True)
            return

        if asyncio.iscoroutine(result):
            loop = self._loop or asyncio.get_running_loop()
            task = loop.create_task(self._await(channel, result))
            # Keep a reference until done so the task is not garbage collected
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _await(self, channel: str, coro: Awaitable[None]) -> None:
        try:
            await coro
        except Exception as e:
            logger.error(f"Error in notification callback for {channel}: {e}", exc_info=True)


class LoggingNotifier:
    """Notifier for headless use: writes every notification to the log."""

    def send(self, channel: str, payload: Payload) -> None:
        summary = {k: (f"<{len(v)} chars>" if k == "content" else v) for k, v in payload.items()}
        logger.info(f"{channel}: {summary}")

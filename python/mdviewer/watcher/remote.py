"""
Remote file change detection.

Remote protocols have no watch/subscribe primitive, so a remote file is
polled. Each poll is two-phase:

1. Ask the connection for a cheap modification marker (mtime for SFTP/NFS).
   Unchanged marker -> nothing to do.
2. Marker moved -> read the full content and compare its hash with the last
   one. Only a different hash is reported as a modification; a marker that
   ticked over identical content just updates the stored marker.

Failures during a poll are classified by the resilience policy: a deleted
file ends the watch, connection failures are retried (at the same cadence)
up to a bound, anything else is logged and polling continues.

Concurrency:
------------
The timer reschedules itself on every fire, independent of how long the
check takes. A session-level busy flag makes overlapping fires skip, so two
cycles never interleave their marker/hash updates. Every await in a cycle is
followed by a "still the current, live session?" check, so a cycle that
resumes after stop() (or after a newer watch() replaced its session) drops
its result without touching state or emitting anything.
"""

import asyncio
import hashlib
import logging
from dataclasses import dataclass
from typing import Any, Optional

from mdviewer import notifications
from mdviewer.notifications import Notifier
from mdviewer.remote.errors import describe_error
from mdviewer.remote.target import RemoteTarget, build_url
from mdviewer.watcher.resilience import ErrorClass, ResiliencePolicy, classify_error
from mdviewer.watcher.types import (
    DEFAULT_POLL_INTERVAL_MS,
    MAX_RETRIES,
    WatchState,
    clamp_poll_interval,
)

logger = logging.getLogger(__name__)

_POLLING_STATES = (WatchState.ACTIVE, WatchState.RETRYING)


def hash_content(content: str) -> str:
    """Content fingerprint used to confirm a marker change."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


@dataclass(eq=False)
class WatchSession:
    """State of one watched remote file."""

    target: RemoteTarget
    connection: Any  # RemoteConnection, shared with the registry (not owned)
    path: str  # Display path used in notifications
    policy: ResiliencePolicy
    state: WatchState = WatchState.INITIALIZING
    last_marker: Any = None
    last_hash: Optional[str] = None
    busy: bool = False

    @property
    def is_live(self) -> bool:
        return self.state.is_live

    @property
    def retry_count(self) -> int:
        return self.policy.retry_count


class RemoteFileWatcher:
    """
    Polls one remote file at a time and reports changes to a notifier.

    Example Usage:
    --------------
    >>> watcher = RemoteFileWatcher(notifier, poll_interval_ms=2000)
    >>> connection = await registry.connect(target)
    >>> await watcher.watch(target, connection)
    >>> # ... file-changed / remote-connection-* notifications arrive ...
    >>> watcher.stop()
    """

    def __init__(
        self,
        notifier: Notifier,
        poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
        max_retries: int = MAX_RETRIES,
    ) -> None:
        self._notifier = notifier
        self._poll_interval_ms = clamp_poll_interval(poll_interval_ms)
        self._max_retries = max_retries

        self._session: Optional[WatchSession] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._timer_handle: Optional[asyncio.TimerHandle] = None

        # Running check cycles (kept referenced until they finish)
        self._cycle_tasks: set[asyncio.Task] = set()

    @property
    def session(self) -> Optional[WatchSession]:
        return self._session

    @property
    def state(self) -> Optional[WatchState]:
        return self._session.state if self._session else None

    @property
    def retry_count(self) -> int:
        return self._session.retry_count if self._session else 0

    @property
    def max_retries(self) -> int:
        return self._max_retries

    @property
    def poll_interval_ms(self) -> int:
        return self._poll_interval_ms

    @property
    def timer_active(self) -> bool:
        return self._timer_handle is not None

    def is_running(self) -> bool:
        return self._session is not None and self._session.is_live

    async def watch(
        self,
        target: RemoteTarget,
        connection: Any,
        poll_interval_ms: Optional[int] = None,
        path: Optional[str] = None,
    ) -> WatchState:
        """
        Start watching a remote file, replacing any previous watch.

        Fetches the initial marker (first, so a change racing the read is
        caught by the next poll) and content, then starts polling.

        Args:
            target: Parsed remote target; connection_path is what gets polled
            connection: Connected RemoteConnection for the target's host
            poll_interval_ms: Optional new interval (clamped)
            path: Path reported in notifications (default: build_url(target))

        Returns:
            State after initialization: ACTIVE, or FAILED if the initial
            fetch failed (a file-error notification is sent), or STOPPED if
            stop() was called meanwhile
        """
        self.stop()

        if poll_interval_ms is not None:
            self._poll_interval_ms = clamp_poll_interval(poll_interval_ms)
        self._loop = asyncio.get_running_loop()

        session = WatchSession(
            target=target,
            connection=connection,
            path=path or build_url(target),
            policy=ResiliencePolicy(self._max_retries),
        )
        self._session = session
        resource = target.connection_path

        try:
            marker = await connection.get_modified_marker(resource)
            content = await connection.read_file(resource)
        except Exception as e:
            if session.state is not WatchState.INITIALIZING:
                return session.state
            logger.error(f"Failed to start remote watcher for {session.path}: {e}")
            session.state = WatchState.FAILED
            self._send(
                notifications.FILE_ERROR,
                {"message": describe_error(e), "path": session.path},
            )
            return session.state

        if session.state is not WatchState.INITIALIZING:
            # stop() or a newer watch() happened while we were fetching
            return session.state

        session.last_marker = marker
        session.last_hash = hash_content(content)
        session.state = WatchState.ACTIVE
        self._start_timer()

        logger.info(f"Watching remote file {session.path} (every {self._poll_interval_ms}ms)")
        return session.state

    def stop(self) -> None:
        """Stop polling. Idempotent; safe from any state, including mid-cycle."""
        self._cancel_timer()
        session = self._session
        if session is not None and session.is_live:
            session.state = WatchState.STOPPED
            logger.info(f"Stopped watching remote file {session.path}")

    def set_poll_interval(self, ms: int) -> int:
        """
        Change the poll cadence, keeping marker/hash state.

        Returns:
            The effective (clamped) interval in milliseconds
        """
        self._poll_interval_ms = clamp_poll_interval(ms)
        session = self._session
        if session is not None and session.state in _POLLING_STATES:
            self._start_timer()
            logger.debug(f"Poll interval for {session.path} set to {self._poll_interval_ms}ms")
        return self._poll_interval_ms

    async def check_for_changes(self) -> None:
        """Run one check cycle now (no-op if a cycle is already in flight)."""
        session = self._session
        if session is not None:
            await self._check_session(session)

    # ------------------------------------------------------------------
    # Timer
    # ------------------------------------------------------------------

    def _start_timer(self) -> None:
        self._cancel_timer()
        self._timer_handle = self._loop.call_later(self._poll_interval_ms / 1000, self._on_timer)

    def _cancel_timer(self) -> None:
        if self._timer_handle is not None:
            self._timer_handle.cancel()
            self._timer_handle = None

    def _on_timer(self) -> None:
        self._timer_handle = None
        session = self._session
        if session is None or session.state not in _POLLING_STATES:
            return

        # Next fire is scheduled whether or not this cycle finishes in time
        self._start_timer()

        if session.busy:
            logger.debug(f"Previous check of {session.path} still running, skipping this poll")
            return

        task = self._loop.create_task(self._check_session(session))
        self._cycle_tasks.add(task)
        task.add_done_callback(self._cycle_tasks.discard)

    # ------------------------------------------------------------------
    # Check cycle
    # ------------------------------------------------------------------

    def _is_current(self, session: WatchSession) -> bool:
        return session is self._session and session.state in _POLLING_STATES

    async def _check_session(self, session: WatchSession) -> None:
        if session.busy or not self._is_current(session):
            return
        session.busy = True
        try:
            await self._run_cycle(session)
        finally:
            session.busy = False

    async def _run_cycle(self, session: WatchSession) -> None:
        try:
            changed_content = await self._detect_change(session)
        except Exception as e:
            if not self._is_current(session):
                logger.debug(f"Ignoring late error from stopped watch of {session.path}: {e}")
                return
            self._handle_error(session, e)
            return

        if not self._is_current(session):
            return

        if session.policy.record_success():
            logger.info(f"Connection for {session.path} recovered")
        session.state = WatchState.ACTIVE

        if changed_content is not None:
            logger.info(f"Remote file changed: {session.path}")
            self._send(
                notifications.FILE_CHANGED,
                {"type": "modified", "remote": True, "content": changed_content},
            )

    async def _detect_change(self, session: WatchSession) -> Optional[str]:
        """
        Poll marker, verify with hash.

        Returns:
            New content if it really changed, else None
        """
        resource = session.target.connection_path

        marker = await session.connection.get_modified_marker(resource)
        if not self._is_current(session) or marker == session.last_marker:
            return None

        content = await session.connection.read_file(resource)
        if not self._is_current(session):
            return None

        new_hash = hash_content(content)
        session.last_marker = marker
        if new_hash == session.last_hash:
            logger.debug(f"Marker of {session.path} changed but content did not")
            return None

        session.last_hash = new_hash
        return content

    def _handle_error(self, session: WatchSession, error: Exception) -> None:
        kind = classify_error(error)

        if kind is ErrorClass.NOT_FOUND:
            logger.info(f"Remote file deleted: {session.path}")
            self._finish(session, WatchState.DELETED)
            self._send(notifications.FILE_CHANGED, {"type": "deleted", "remote": True})
            return

        if kind is ErrorClass.CONNECTION:
            exhausted = session.policy.record_connection_failure()
            session.state = WatchState.RETRYING
            logger.warning(
                f"Connection lost while checking {session.path} "
                f"({session.retry_count}/{session.policy.max_retries}): {error}"
            )
            self._send(
                notifications.REMOTE_CONNECTION_LOST,
                {
                    "path": session.path,
                    "retryCount": session.retry_count,
                    "maxRetries": session.policy.max_retries,
                },
            )
            if exhausted and self._is_current(session):
                logger.error(f"Giving up on {session.path} after {session.retry_count} failed checks")
                self._finish(session, WatchState.FAILED)
                self._send(notifications.REMOTE_CONNECTION_FAILED, {"path": session.path})
            return

        # Transient and not actionable: keep polling
        logger.error(f"Remote file check error for {session.path}: {error}", exc_info=True)

    def _finish(self, session: WatchSession, state: WatchState) -> None:
        self._cancel_timer()
        session.state = state

    def _send(self, channel: str, payload: dict[str, Any]) -> None:
        try:
            self._notifier.send(channel, payload)
        except Exception as e:
            logger.error(f"Error delivering {channel} notification: {e}", exc_info=True)

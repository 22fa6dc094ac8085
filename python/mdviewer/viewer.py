"""
Viewer back end: opening, reloading and live-updating one document.

This is the layer the UI talks to. Every outcome reaches the UI as a
notification (file-opened, file-reloaded, file-error, ...); the methods that
the UI calls for a value (connect_remote, list_remote_directory) return a
{"success": ...} dict instead of raising.
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import Any, Optional

from mdviewer import notifications
from mdviewer.context import AppContext
from mdviewer.remote.base import RemoteConnection, remote_basename
from mdviewer.remote.credentials import Credentials, NotifierCredentialPrompt
from mdviewer.remote.errors import RemoteFileError, describe_error
from mdviewer.remote.target import RemoteTarget, is_remote

logger = logging.getLogger(__name__)


class Viewer:
    """
    Back end of one viewer window.

    Args:
        context: Shared components (settings, registry, watchers, notifier)
    """

    def __init__(self, context: AppContext) -> None:
        self.context = context
        self.current_path: Optional[str] = None
        self.is_remote_file = False
        self._current_target: Optional[RemoteTarget] = None

    @property
    def settings(self):
        return self.context.settings

    def _send(self, channel: str, payload: Optional[dict[str, Any]] = None) -> None:
        try:
            self.context.notifier.send(channel, payload or {})
        except Exception as e:
            logger.error(f"Error delivering {channel} notification: {e}", exc_info=True)

    def _persist_settings(self) -> None:
        if self.settings.path is None:
            return
        try:
            self.settings.save()
        except OSError as e:
            logger.warning(f"Could not save settings to {self.settings.path}: {e}")

    def get_initial_state(self) -> dict[str, Any]:
        return {
            "recentFiles": list(self.settings.recent_files),
            "liveUpdates": self.settings.live_updates,
            "pollInterval": self.settings.poll_interval_ms,
        }

    # ------------------------------------------------------------------
    # Opening
    # ------------------------------------------------------------------

    async def open_path(self, path: str, credentials: Optional[Credentials] = None) -> bool:
        """Open a local path or a remote target, whichever path is."""
        if is_remote(path):
            return await self.open_remote_file(path, credentials)
        return await self.open_file(path)

    async def open_file(self, file_path: str) -> bool:
        """
        Open a local file and start watching it (when live updates are on).

        Returns:
            True if the file was opened
        """
        path = Path(file_path)
        try:
            content = await asyncio.to_thread(path.read_text, encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Could not open {file_path}: {e}")
            self._send(notifications.FILE_ERROR, {"message": describe_error(e), "path": file_path})
            return False

        self.context.watchers.stop()
        self.current_path = file_path
        self.is_remote_file = False
        self._current_target = None

        self._send(
            notifications.FILE_OPENED,
            {
                "content": content,
                "path": file_path,
                "fileName": os.path.basename(file_path),
                "isRemote": False,
            },
        )
        self._add_recent_file(file_path)

        if self.settings.live_updates:
            self._watch_local(file_path)
        logger.info(f"📄 Opened {file_path}")
        return True

    async def open_remote_file(
        self, remote_path: str, credentials: Optional[Credentials] = None
    ) -> bool:
        """
        Connect (or reuse a connection), read a remote file and start polling it.

        Connection and read errors end as loading-end followed by one
        file-error; nothing is retried here.

        Returns:
            True if the file was opened
        """
        self._send(notifications.LOADING_START, {"message": "Connecting..."})
        try:
            opened = await self.context.registry.open_file(remote_path, credentials)
        except (RemoteFileError, OSError) as e:
            logger.warning(f"Could not open {remote_path}: {e}")
            self._send(notifications.LOADING_END)
            self._send(notifications.FILE_ERROR, {"message": describe_error(e), "path": remote_path})
            return False

        if not opened.is_remote:
            # Parsed as local after all (e.g. malformed URI fell back)
            self._send(notifications.LOADING_END)
            return await self.open_file(opened.path)

        self.context.watchers.stop()
        self.current_path = remote_path
        self.is_remote_file = True
        self._current_target = opened.target

        self._send(
            notifications.FILE_OPENED,
            {
                "content": opened.content,
                "path": remote_path,
                "fileName": remote_basename(opened.path),
                "isRemote": True,
                "protocol": opened.protocol,
            },
        )
        self._add_recent_file(remote_path)

        if self.settings.live_updates:
            await self._watch_remote(opened.target, opened.connection)

        self._send(notifications.LOADING_END)
        logger.info(f"🌐 Opened remote file {remote_path}")
        return True

    async def reload_file(self) -> None:
        """Re-read the current document and send file-reloaded."""
        if self.current_path is None:
            return
        path = self.current_path

        try:
            if self.is_remote_file:
                opened = await self.context.registry.open_file(path)
                content = opened.content
            else:
                content = await asyncio.to_thread(Path(path).read_text, encoding="utf-8")
        except (RemoteFileError, OSError, UnicodeDecodeError) as e:
            logger.warning(f"Could not reload {path}: {e}")
            self._send(notifications.FILE_ERROR, {"message": describe_error(e), "path": path})
            return

        self._send(notifications.FILE_RELOADED, {"content": content, "path": path})

    # ------------------------------------------------------------------
    # Live updates
    # ------------------------------------------------------------------

    async def toggle_live_updates(self) -> bool:
        """
        Flip live updates; turning them on resumes watching the current file.

        Returns:
            The new setting
        """
        enabled = not self.settings.live_updates
        self.settings.live_updates = enabled
        self._persist_settings()

        self.context.watchers.set_enabled(enabled)
        if enabled and self.current_path is not None:
            if self.is_remote_file:
                await self._resume_remote_watch()
            else:
                self._watch_local(self.current_path)

        logger.info(f"Live updates {'enabled' if enabled else 'disabled'}")
        return enabled

    def set_poll_interval(self, ms: int) -> int:
        """
        Store a new remote poll interval and apply it to the active watch.

        Returns:
            The effective (clamped) interval
        """
        effective = self.settings.set_poll_interval(ms)
        self._persist_settings()
        self.context.watchers.set_poll_interval(effective)
        return effective

    def _watch_local(self, file_path: str) -> None:
        try:
            self.context.watchers.watch(Path(file_path))
        except OSError as e:
            # The document stays open, just without live updates
            logger.warning(f"Could not watch {file_path}: {e}")

    async def _watch_remote(self, target: RemoteTarget, connection: RemoteConnection) -> None:
        await self.context.watchers.watch_remote(
            target,
            connection,
            poll_interval_ms=self.settings.poll_interval_ms,
            path=self.current_path,
        )

    async def _resume_remote_watch(self) -> None:
        target = self._current_target
        if target is None:
            return
        try:
            connection = await self.context.registry.connect(target)
        except RemoteFileError as e:
            logger.warning(f"Could not resume watching {self.current_path}: {e}")
            self._send(
                notifications.FILE_ERROR,
                {"message": describe_error(e), "path": self.current_path},
            )
            return
        await self._watch_remote(target, connection)

    # ------------------------------------------------------------------
    # Remote browsing
    # ------------------------------------------------------------------

    async def connect_remote(
        self,
        protocol: str,
        host: str,
        port: Optional[int] = None,
        credentials: Optional[Credentials] = None,
        share: Optional[str] = None,
    ) -> dict[str, Any]:
        try:
            await self.context.registry.connect_config(
                protocol, host, port=port, credentials=credentials, share=share
            )
        except RemoteFileError as e:
            logger.warning(f"Could not connect to {protocol}://{host}: {e}")
            return {"success": False, "error": describe_error(e)}
        return {"success": True}

    async def list_remote_directory(self, remote_path: str) -> dict[str, Any]:
        try:
            entries = await self.context.registry.list_directory(remote_path)
        except (RemoteFileError, OSError) as e:
            logger.warning(f"Could not list {remote_path}: {e}")
            return {"success": False, "error": describe_error(e)}
        return {"success": True, "files": [entry.to_dict() for entry in entries]}

    async def disconnect_remote(self) -> None:
        """Close every remote connection if the current document is remote."""
        if not self.is_remote_file:
            return
        self.context.watchers.stop()
        await self.context.registry.close_all()
        self.current_path = None
        self.is_remote_file = False
        self._current_target = None
        self._send(notifications.DISCONNECTED)
        logger.info("🔌 Disconnected from remote")

    # ------------------------------------------------------------------
    # Credential dialog
    # ------------------------------------------------------------------

    def submit_credentials(self, credentials: Credentials, remember: bool = False) -> bool:
        """Answer the request-credentials notification the UI is showing."""
        prompt = self.context.credentials.prompt
        if not isinstance(prompt, NotifierCredentialPrompt):
            return False
        return prompt.respond(credentials, remember=remember)

    def cancel_credentials(self) -> None:
        prompt = self.context.credentials.prompt
        if isinstance(prompt, NotifierCredentialPrompt):
            prompt.cancel()

    # ------------------------------------------------------------------
    # Recent files
    # ------------------------------------------------------------------

    def _add_recent_file(self, path: str) -> None:
        self.settings.add_recent_file(path)
        self._persist_settings()

    def clear_recent_files(self) -> None:
        self.settings.recent_files = []
        self._persist_settings()

    async def shutdown(self) -> None:
        await self.context.close()
        self.current_path = None
        self.is_remote_file = False
        self._current_target = None
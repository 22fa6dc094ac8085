"""
Application context: the components shared by one viewer window.

Everything that used to be process-wide (settings, the connection table, the
credential cache, the active watcher) lives on one AppContext that is created
at startup and passed explicitly.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from mdviewer.config import Settings
from mdviewer.notifications import LoggingNotifier, Notifier
from mdviewer.remote.credentials import CredentialManager, CredentialPrompt, CredentialStore
from mdviewer.remote.registry import ConnectionRegistry
from mdviewer.watcher.manager import FileWatcherManager

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    settings: Settings
    notifier: Notifier
    credentials: CredentialManager
    registry: ConnectionRegistry
    watchers: FileWatcherManager

    @classmethod
    def create(
        cls,
        settings: Optional[Settings] = None,
        notifier: Optional[Notifier] = None,
        prompt: Optional[CredentialPrompt] = None,
        store: Optional[CredentialStore] = None,
        settings_path: Optional[Path] = None,
        registry: Optional[ConnectionRegistry] = None,
    ) -> "AppContext":
        """
        Wire up the components.

        Args:
            settings: Preloaded settings (default: Settings.load(settings_path))
            notifier: Where notifications go (default: the log)
            prompt: Interactive credential prompt (None: never prompt)
            store: Credential store (default: in memory)
            settings_path: Settings file, when settings is not given
            registry: Pre-built registry (tests inject fake connections here)
        """
        if settings is None:
            settings = Settings.load(settings_path)
        if notifier is None:
            notifier = LoggingNotifier()

        credentials = CredentialManager(
            store=store,
            prompt=prompt,
            prompt_timeout=settings.credential_prompt_timeout,
        )
        if registry is None:
            registry = ConnectionRegistry(credentials=credentials)
        elif registry.credentials is None:
            registry.credentials = credentials

        watchers = FileWatcherManager(
            notifier,
            poll_interval_ms=settings.poll_interval_ms,
            max_retries=settings.max_retries,
            debounce_ms=settings.local_debounce_ms,
        )
        return cls(
            settings=settings,
            notifier=notifier,
            credentials=credentials,
            registry=registry,
            watchers=watchers,
        )

    async def close(self) -> None:
        """Stop watching and disconnect everything."""
        self.watchers.stop()
        await self.registry.close_all()
        logger.info("Application context closed")

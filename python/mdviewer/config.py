"""
Viewer settings.

Persisted as YAML in ~/.mdviewer/settings.yaml. A missing file means
defaults; unknown keys are ignored. A few settings can be overridden from the
environment:

    MDVIEWER_POLL_INTERVAL   remote poll interval in ms (clamped)
    MDVIEWER_LIVE_UPDATES    "1"/"true"/"yes"/"on" or "0"/"false"/"no"/"off"
    MDVIEWER_MAX_RETRIES     consecutive connection failures before giving up
"""

import logging
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Optional

import yaml

from mdviewer.remote.credentials import PROMPT_TIMEOUT_SECONDS
from mdviewer.watcher.types import (
    DEFAULT_POLL_INTERVAL_MS,
    LOCAL_DEBOUNCE_MS,
    MAX_RETRIES,
    clamp_poll_interval,
)

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS_PATH = Path.home() / ".mdviewer" / "settings.yaml"
MAX_RECENT_FILES = 10

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _parse_bool(value: str) -> Optional[bool]:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    return None


@dataclass
class Settings:
    live_updates: bool = True
    poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS
    max_retries: int = MAX_RETRIES
    credential_prompt_timeout: float = PROMPT_TIMEOUT_SECONDS
    local_debounce_ms: int = LOCAL_DEBOUNCE_MS
    recent_files: list[str] = field(default_factory=list)

    # Where save() writes; not itself persisted
    path: Optional[Path] = field(default=None, repr=False, compare=False)

    def __post_init__(self) -> None:
        self.poll_interval_ms = clamp_poll_interval(self.poll_interval_ms)
        if self.max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self.recent_files = list(self.recent_files)[:MAX_RECENT_FILES]

    @classmethod
    def load(
        cls, path: Optional[Path] = None, environ: Optional[dict[str, str]] = None
    ) -> "Settings":
        """
        Load settings from YAML and apply environment overrides.

        Args:
            path: Settings file (default: ~/.mdviewer/settings.yaml)
            environ: Environment mapping (default: os.environ)

        Returns:
            Settings bound to path, so save() writes back to it

        Raises:
            ValueError: If the file is not a YAML mapping, or a value is invalid
        """
        path = Path(path) if path is not None else DEFAULT_SETTINGS_PATH
        environ = os.environ if environ is None else environ

        data: dict[str, Any] = {}
        if path.is_file():
            loaded = yaml.safe_load(path.read_text(encoding="utf-8"))
            if loaded is None:
                loaded = {}
            if not isinstance(loaded, dict):
                raise ValueError(f"Invalid settings file: {path} (expected a mapping)")
            data = loaded

        known = {f.name for f in fields(cls) if f.name != "path"}
        unknown = set(data) - known
        if unknown:
            logger.warning(f"Ignoring unknown settings in {path}: {', '.join(sorted(unknown))}")
        values = {key: value for key, value in data.items() if key in known}

        values.update(cls._env_overrides(environ))
        return cls(path=path, **values)

    @staticmethod
    def _env_overrides(environ) -> dict[str, Any]:
        overrides: dict[str, Any] = {}

        poll_interval = environ.get("MDVIEWER_POLL_INTERVAL")
        if poll_interval:
            try:
                overrides["poll_interval_ms"] = int(poll_interval)
            except ValueError:
                logger.warning(f"Ignoring invalid MDVIEWER_POLL_INTERVAL={poll_interval!r}")

        live_updates = environ.get("MDVIEWER_LIVE_UPDATES")
        if live_updates:
            parsed = _parse_bool(live_updates)
            if parsed is None:
                logger.warning(f"Ignoring invalid MDVIEWER_LIVE_UPDATES={live_updates!r}")
            else:
                overrides["live_updates"] = parsed

        max_retries = environ.get("MDVIEWER_MAX_RETRIES")
        if max_retries:
            try:
                overrides["max_retries"] = int(max_retries)
            except ValueError:
                logger.warning(f"Ignoring invalid MDVIEWER_MAX_RETRIES={max_retries!r}")

        return overrides

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data.pop("path")
        return data

    def save(self, path: Optional[Path] = None) -> Path:
        """Write settings as YAML (to path, else where they were loaded from)."""
        target = Path(path) if path is not None else (self.path or DEFAULT_SETTINGS_PATH)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(
            yaml.dump(self.to_dict(), default_flow_style=False, sort_keys=True, allow_unicode=True),
            encoding="utf-8",
        )
        self.path = target
        return target

    def add_recent_file(self, file_path: str) -> None:
        """Move file_path to the front of the recent list (deduplicated, max 10)."""
        recent = [entry for entry in self.recent_files if entry != file_path]
        recent.insert(0, file_path)
        self.recent_files = recent[:MAX_RECENT_FILES]

    def set_poll_interval(self, ms: int) -> int:
        self.poll_interval_ms = clamp_poll_interval(ms)
        return self.poll_interval_ms

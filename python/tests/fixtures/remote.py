"""
Remote fixtures: a scripted in-memory connection and a recording notifier.

ScriptedConnection is a real RemoteConnection subclass whose markers and
contents come from lists. Each call takes the next item; the last item
repeats once the list is down to one. An item that is an exception instance
is raised instead of returned.
"""
import asyncio
from typing import Any, Optional

import pytest

from mdviewer.remote.base import ConnectionConfig, DirectoryEntry, RemoteConnection
from mdviewer.remote.target import parse


def _take(queue: list) -> Any:
    if not queue:
        raise AssertionError("script exhausted")
    value = queue.pop(0) if len(queue) > 1 else queue[0]
    if isinstance(value, BaseException):
        raise value
    return value


class ScriptedConnection(RemoteConnection):
    """In-memory connection driven by marker/content scripts."""

    protocol = "ssh"

    def __init__(
        self,
        markers: Optional[list] = None,
        contents: Optional[list] = None,
        connected: bool = False,
        connect_error: Optional[BaseException] = None,
        connect_delay: float = 0.0,
        entries: Optional[list[DirectoryEntry]] = None,
    ) -> None:
        super().__init__()
        self.markers = list(markers) if markers is not None else [1]
        self.contents = list(contents) if contents is not None else ["# Notes\n"]
        self.connect_error = connect_error
        self.connect_delay = connect_delay
        self.entries = list(entries or [])

        self.connect_calls = 0
        self.disconnect_calls = 0
        self.marker_calls = 0
        self.read_calls = 0
        # Every path handed to a read, marker or listing call, in order
        self.paths: list[str] = []

        # When set, get_modified_marker / read_file block until the event is set
        self.gate: Optional[asyncio.Event] = None
        self.read_gate: Optional[asyncio.Event] = None
        self.marker_started = asyncio.Event()
        self.read_started = asyncio.Event()

        if connected:
            self._config = ConnectionConfig(host="server", port=22)
            self._connected = True

    async def _do_connect(self, config: ConnectionConfig) -> None:
        self.connect_calls += 1
        if self.connect_delay:
            await asyncio.sleep(self.connect_delay)
        if self.connect_error is not None:
            raise self.connect_error

    async def _do_disconnect(self) -> None:
        self.disconnect_calls += 1

    async def _do_read_file(self, path: str) -> str:
        self.read_calls += 1
        self.paths.append(path)
        self.read_started.set()
        if self.read_gate is not None:
            await self.read_gate.wait()
        return _take(self.contents)

    async def _do_get_modified_marker(self, path: str) -> Any:
        self.marker_calls += 1
        self.paths.append(path)
        self.marker_started.set()
        if self.gate is not None:
            await self.gate.wait()
        return _take(self.markers)

    async def _do_list_directory(self, path: str) -> list[DirectoryEntry]:
        self.paths.append(path)
        return list(self.entries)

    async def _do_exists(self, path: str) -> bool:
        return True


class RecordingNotifier:
    """Notifier that keeps every (channel, payload) it is sent."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, dict]] = []

    def send(self, channel: str, payload: dict) -> None:
        self.sent.append((channel, payload))

    @property
    def channels(self) -> list[str]:
        return [channel for channel, _ in self.sent]

    def payloads(self, channel: str) -> list[dict]:
        return [payload for sent_channel, payload in self.sent if sent_channel == channel]


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def ssh_target():
    return parse("sftp://alice@server/home/alice/notes.md")


@pytest.fixture
def scripted_connection():
    """Factory for connected ScriptedConnections."""

    def make(markers=None, contents=None, **kwargs) -> ScriptedConnection:
        kwargs.setdefault("connected", True)
        return ScriptedConnection(markers=markers, contents=contents, **kwargs)

    return make

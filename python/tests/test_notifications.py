"""
Tests for the notifier implementations.
"""

import asyncio
import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from mdviewer.notifications import CallbackNotifier, LoggingNotifier


def test_sync_callback():
    callback = MagicMock()
    CallbackNotifier(callback).send("file-changed", {"type": "deleted", "remote": True})

    callback.assert_called_once_with("file-changed", {"type": "deleted", "remote": True})


def test_raising_callback_is_contained():
    callback = MagicMock(side_effect=RuntimeError("renderer gone"))

    CallbackNotifier(callback).send("loading-end", {})

    callback.assert_called_once()


def test_callback_must_be_callable():
    with pytest.raises(TypeError):
        CallbackNotifier("not a function")


@pytest.mark.asyncio
async def test_async_callback_is_scheduled():
    callback = AsyncMock()
    notifier = CallbackNotifier(callback)

    notifier.send("loading-start", {"message": "Connecting..."})
    await asyncio.sleep(0)

    callback.assert_awaited_once_with("loading-start", {"message": "Connecting..."})


@pytest.mark.asyncio
async def test_failing_async_callback_is_contained():
    callback = AsyncMock(side_effect=RuntimeError("boom"))
    notifier = CallbackNotifier(callback)

    notifier.send("loading-end", {})
    await asyncio.sleep(0)
    await asyncio.sleep(0)

    callback.assert_awaited_once()


def test_logging_notifier_summarises_content(caplog):
    with caplog.at_level(logging.INFO, logger="mdviewer.notifications"):
        LoggingNotifier().send("file-changed", {"type": "modified", "content": "x" * 42})

    assert "file-changed" in caplog.text
    assert "<42 chars>" in caplog.text
    assert "x" * 42 not in caplog.text

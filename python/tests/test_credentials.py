"""
Tests for CredentialManager - cache/store/prompt order and prompt timeout.
"""

import asyncio

import pytest

from mdviewer.remote.credentials import (
    CredentialManager,
    CredentialRequest,
    Credentials,
    InMemoryCredentialStore,
    NotifierCredentialPrompt,
    credential_key,
)
from mdviewer.remote.target import parse

TARGET = parse("sftp://server.example.com/home/alice/notes.md")
KEY = "sftp://server.example.com"


class AnsweringPrompt:
    """Prompt that answers immediately (or cancels when credentials is None)."""

    def __init__(self, credentials=None, remember=False):
        self.credentials = credentials
        self.remember = remember
        self.requests: list[CredentialRequest] = []

    def request(self, request: CredentialRequest) -> None:
        self.requests.append(request)
        if self.credentials is None:
            request.cancel()
        else:
            request.respond(self.credentials, remember=self.remember)


class SilentPrompt:
    """Prompt that never answers."""

    def __init__(self):
        self.requests: list[CredentialRequest] = []

    async def request(self, request: CredentialRequest) -> None:
        self.requests.append(request)


def test_credential_key_is_protocol_and_host():
    assert credential_key(TARGET) == KEY
    assert credential_key(parse("sftp://server.example.com:2222/x.md")) == KEY


def test_credentials_repr_hides_secrets():
    credentials = Credentials(username="alice", password="s3cret", passphrase="phrase")
    assert "s3cret" not in repr(credentials)
    assert "phrase" not in repr(credentials)


def test_credentials_dict_round_trip():
    credentials = Credentials(username="alice", password="pw", domain="CORP")
    assert credentials.to_dict() == {"username": "alice", "password": "pw", "domain": "CORP"}
    assert Credentials.from_dict(credentials.to_dict()) == credentials


@pytest.mark.asyncio
async def test_session_cache_wins_over_store():
    store = InMemoryCredentialStore()
    store.save(KEY, Credentials(username="stored"))
    manager = CredentialManager(store=store, prompt=AnsweringPrompt(Credentials("prompted")))
    manager.save_credentials(KEY, Credentials(username="cached"))

    assert (await manager.get_credentials(TARGET)).username == "cached"


@pytest.mark.asyncio
async def test_store_wins_over_prompt():
    store = InMemoryCredentialStore()
    store.save(KEY, Credentials(username="stored"))
    prompt = AnsweringPrompt(Credentials("prompted"))
    manager = CredentialManager(store=store, prompt=prompt)

    assert (await manager.get_credentials(TARGET)).username == "stored"
    assert prompt.requests == []


@pytest.mark.asyncio
async def test_prompt_answer_is_cached_for_session():
    prompt = AnsweringPrompt(Credentials(username="alice", password="pw"))
    manager = CredentialManager(prompt=prompt)

    first = await manager.get_credentials(TARGET)
    second = await manager.get_credentials(TARGET)

    assert first == second == Credentials(username="alice", password="pw")
    assert len(prompt.requests) == 1
    assert manager.list_saved_credentials() == []


@pytest.mark.asyncio
async def test_remembered_answer_goes_to_store():
    prompt = AnsweringPrompt(Credentials(username="alice", password="pw"), remember=True)
    manager = CredentialManager(prompt=prompt)

    await manager.get_credentials(TARGET)

    assert manager.list_saved_credentials() == [KEY]
    assert manager.get_stored_credentials(KEY).username == "alice"


@pytest.mark.asyncio
async def test_prompt_request_payload():
    prompt = AnsweringPrompt(Credentials(username="alice"))
    manager = CredentialManager(prompt=prompt)

    await manager.get_credentials(parse("sftp://bob@server.example.com/a.md"))

    assert prompt.requests[0].to_payload() == {
        "protocol": "sftp",
        "host": "server.example.com",
        "defaultUsername": "bob",
    }


@pytest.mark.asyncio
async def test_cancelled_prompt_returns_none():
    manager = CredentialManager(prompt=AnsweringPrompt(None))
    assert await manager.get_credentials(TARGET) is None


@pytest.mark.asyncio
async def test_unanswered_prompt_times_out():
    prompt = SilentPrompt()
    manager = CredentialManager(prompt=prompt, prompt_timeout=0.05)

    assert await manager.get_credentials(TARGET) is None

    # A late answer is ignored
    request = prompt.requests[0]
    assert request.done
    request.respond(Credentials(username="late"))
    assert manager.list_saved_credentials() == []


@pytest.mark.asyncio
async def test_answer_from_another_task():
    prompt = SilentPrompt()
    manager = CredentialManager(prompt=prompt)

    task = asyncio.create_task(manager.get_credentials(TARGET))
    while not prompt.requests:
        await asyncio.sleep(0)
    prompt.requests[0].respond(Credentials(username="alice"))

    assert (await task).username == "alice"


@pytest.mark.asyncio
async def test_no_prompt_returns_none():
    assert await CredentialManager().get_credentials(TARGET) is None


def test_clear_credentials():
    manager = CredentialManager()
    manager.save_credentials(KEY, Credentials(username="a"), persist=True)
    manager.save_credentials("smb://other", Credentials(username="b"))

    manager.clear_credentials(KEY)
    assert manager.get_stored_credentials(KEY) is None

    manager.clear_all_credentials()
    assert manager.list_saved_credentials() == []


# ============================================================================
# UI PROMPT
# ============================================================================


@pytest.mark.asyncio
async def test_notifier_prompt_round_trip(notifier):
    prompt = NotifierCredentialPrompt(notifier)
    manager = CredentialManager(prompt=prompt)

    task = asyncio.create_task(manager.get_credentials(parse("smb://bob@fileserver/docs/a.md")))
    while prompt.pending is None:
        await asyncio.sleep(0)

    assert notifier.sent == [
        ("request-credentials", {"protocol": "smb", "host": "fileserver", "defaultUsername": "bob"})
    ]
    assert prompt.respond(Credentials(username="bob", password="pw"), remember=True) is True
    assert (await task).password == "pw"
    assert manager.list_saved_credentials() == ["smb://fileserver"]
    assert prompt.respond(Credentials(username="again")) is False


@pytest.mark.asyncio
async def test_newer_request_cancels_older(notifier):
    prompt = NotifierCredentialPrompt(notifier)
    manager = CredentialManager(prompt=prompt)

    first = asyncio.create_task(manager.get_credentials(parse("sftp://one/a.md")))
    while prompt.pending is None:
        await asyncio.sleep(0)
    second = asyncio.create_task(manager.get_credentials(parse("sftp://two/a.md")))
    while len(notifier.sent) < 2:
        await asyncio.sleep(0)

    prompt.cancel()

    assert await first is None
    assert await second is None


@pytest.mark.asyncio
async def test_failing_async_prompt_cancels_request():
    class BrokenPrompt:
        async def request(self, request):
            raise RuntimeError("no terminal")

    manager = CredentialManager(prompt=BrokenPrompt(), prompt_timeout=5)

    assert await manager.get_credentials(TARGET) is None

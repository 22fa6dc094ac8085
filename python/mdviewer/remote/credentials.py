"""
Credential lookup for remote targets.

CredentialManager answers get_credentials(target) from, in order:
1. the session cache (credentials entered earlier in this process)
2. the pluggable CredentialStore (persistence is the store's business)
3. an interactive prompt

The prompt is a single future per request. The UI side receives a
CredentialRequest and calls respond() or cancel() on it; the manager races
that future against a timeout. There is no global table of pending prompts:
the request object is the only handle, and it dies with the call.
"""

import asyncio
import getpass
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Optional, Protocol

from mdviewer import notifications
from mdviewer.notifications import Notifier
from mdviewer.remote.target import RemoteTarget

logger = logging.getLogger(__name__)

# Unanswered prompts resolve as "cancelled" after 5 minutes
PROMPT_TIMEOUT_SECONDS = 300.0


@dataclass(frozen=True)
class Credentials:
    """Login material for one host."""

    username: str
    password: Optional[str] = field(default=None, repr=False)
    private_key: Optional[str] = field(default=None, repr=False)
    passphrase: Optional[str] = field(default=None, repr=False)
    domain: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Credentials":
        return cls(
            username=data.get("username") or "",
            password=data.get("password"),
            private_key=data.get("private_key"),
            passphrase=data.get("passphrase"),
            domain=data.get("domain"),
        )


class CredentialStore(Protocol):
    """Persistent credential storage (encryption is the implementation's concern)."""

    def get(self, key: str) -> Optional[Credentials]: ...

    def save(self, key: str, credentials: Credentials) -> None: ...

    def delete(self, key: str) -> None: ...

    def clear(self) -> None: ...

    def keys(self) -> list[str]: ...


class InMemoryCredentialStore:
    """CredentialStore that forgets everything when the process exits."""

    def __init__(self) -> None:
        self._entries: dict[str, Credentials] = {}

    def get(self, key: str) -> Optional[Credentials]:
        return self._entries.get(key)

    def save(self, key: str, credentials: Credentials) -> None:
        self._entries[key] = credentials

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def keys(self) -> list[str]:
        return list(self._entries)


class CredentialRequest:
    """
    One pending credential prompt.

    Handed to the CredentialPrompt; whoever shows the dialog calls respond()
    or cancel() exactly once. Late answers (after timeout) are ignored.
    """

    def __init__(
        self,
        protocol: str,
        host: Optional[str],
        default_username: str,
        future: "asyncio.Future[Optional[tuple[Credentials, bool]]]",
    ) -> None:
        self.protocol = protocol
        self.host = host
        self.default_username = default_username
        self._future = future

    @property
    def done(self) -> bool:
        return self._future.done()

    def respond(self, credentials: Credentials, remember: bool = False) -> None:
        if not self._future.done():
            self._future.set_result((credentials, remember))

    def cancel(self) -> None:
        if not self._future.done():
            self._future.set_result(None)

    def to_payload(self) -> dict[str, Any]:
        return {
            "protocol": self.protocol,
            "host": self.host,
            "defaultUsername": self.default_username,
        }


class CredentialPrompt(Protocol):
    """UI hook that asks the user for credentials (sync or async)."""

    def request(self, request: CredentialRequest) -> Any: ...


def credential_key(target: RemoteTarget) -> str:
    """Credentials are shared by every port of a host, per protocol."""
    return f"{target.protocol}://{target.host}"


class CredentialManager:
    """Resolves credentials from cache, store, then prompt."""

    def __init__(
        self,
        store: Optional[CredentialStore] = None,
        prompt: Optional[CredentialPrompt] = None,
        prompt_timeout: float = PROMPT_TIMEOUT_SECONDS,
    ) -> None:
        self.store: CredentialStore = store if store is not None else InMemoryCredentialStore()
        self.prompt = prompt
        self.prompt_timeout = prompt_timeout
        self._session_credentials: dict[str, Credentials] = {}

    async def get_credentials(self, target: RemoteTarget) -> Optional[Credentials]:
        """
        Find credentials for a target.

        Returns:
            Credentials, or None if nothing is cached/stored and the prompt
            was cancelled, timed out, or no prompt is configured
        """
        key = credential_key(target)

        cached = self._session_credentials.get(key)
        if cached is not None:
            return cached

        stored = self.get_stored_credentials(key)
        if stored is not None:
            return stored

        if self.prompt is not None:
            return await self.prompt_for_credentials(target)

        return None

    def get_stored_credentials(self, key: str) -> Optional[Credentials]:
        try:
            return self.store.get(key)
        except Exception as e:
            # Unreadable store entry behaves like a missing one
            logger.warning(f"Could not read stored credentials for {key}: {e}")
            return None

    def save_credentials(self, key: str, credentials: Credentials, persist: bool = False) -> None:
        """Cache credentials for this session, and persist them if asked."""
        if persist:
            try:
                self.store.save(key, credentials)
                return
            except Exception as e:
                logger.error(f"Failed to save credentials for {key}: {e}")
                # Fall back to session storage
        self._session_credentials[key] = credentials

    async def prompt_for_credentials(self, target: RemoteTarget) -> Optional[Credentials]:
        """Ask the user, waiting at most prompt_timeout seconds."""
        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()
        request = CredentialRequest(
            protocol=target.protocol,
            host=target.host,
            default_username=target.username or _login_name(),
            future=future,
        )

        prompt_task: Optional[asyncio.Task] = None
        result = self.prompt.request(request)
        if asyncio.iscoroutine(result):
            # Async prompts run alongside the timeout, not before it
            prompt_task = asyncio.ensure_future(result)
            prompt_task.add_done_callback(lambda task: _prompt_finished(task, request))

        try:
            response = await asyncio.wait_for(future, timeout=self.prompt_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                f"Credential prompt for {target.protocol}://{target.host} timed out "
                f"after {self.prompt_timeout:.0f}s"
            )
            return None
        finally:
            if prompt_task is not None and not prompt_task.done():
                prompt_task.cancel()

        if response is None:
            logger.info(f"Credential prompt for {target.protocol}://{target.host} cancelled")
            return None

        credentials, remember = response
        self.save_credentials(credential_key(target), credentials, persist=remember)
        return credentials

    def clear_credentials(self, key: str) -> None:
        self.store.delete(key)
        self._session_credentials.pop(key, None)

    def clear_all_credentials(self) -> None:
        self.store.clear()
        self._session_credentials.clear()

    def list_saved_credentials(self) -> list[str]:
        return self.store.keys()


def _prompt_finished(task: asyncio.Task, request: CredentialRequest) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.error(f"Credential prompt failed: {error}", exc_info=error)
        request.cancel()


class NotifierCredentialPrompt:
    """
    Prompt that asks the UI through a request-credentials notification.

    The UI answers later with respond() or cancel(); only the most recent
    request is pending; a new request cancels the previous one.
    """

    def __init__(self, notifier: Notifier) -> None:
        self._notifier = notifier
        self.pending: Optional[CredentialRequest] = None

    def request(self, request: CredentialRequest) -> None:
        if self.pending is not None:
            self.pending.cancel()
        self.pending = request
        self._notifier.send(notifications.REQUEST_CREDENTIALS, request.to_payload())

    def respond(self, credentials: Credentials, remember: bool = False) -> bool:
        """Answer the pending request. Returns False if nothing was pending."""
        request, self.pending = self.pending, None
        if request is None or request.done:
            return False
        request.respond(credentials, remember=remember)
        return True

    def cancel(self) -> None:
        request, self.pending = self.pending, None
        if request is not None:
            request.cancel()


def _login_name() -> str:
    try:
        return getpass.getuser()
    except (OSError, KeyError, ImportError):
        return ""

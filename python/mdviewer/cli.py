"""
mdviewer-watch: follow a local or remote markdown file from the terminal.

Opens the target, then prints every notification as one JSON object per line
on stdout until the file is deleted, the connection is given up on, or Ctrl-C:

    mdviewer-watch notes/todo.md
    mdviewer-watch sftp://alice@server/home/alice/notes.md --poll-interval 5000
    mdviewer-watch '\\\\fileserver\\docs\\README.md'
    MDVIEWER_POLL_INTERVAL=1000 mdviewer-watch nfs://nas/export/notes.md

Logs go to ~/.mdviewer/logs (add --console to also get them on stderr).
Credential prompts are written to stderr.
"""

import argparse
import asyncio
import getpass
import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional, TextIO

from mdviewer import __version__, notifications
from mdviewer.config import Settings
from mdviewer.context import AppContext
from mdviewer.logging_config import setup_logging
from mdviewer.remote.credentials import CredentialRequest, Credentials
from mdviewer.viewer import Viewer

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_OPEN_FAILED = 1
EXIT_CONNECTION_FAILED = 2
EXIT_INTERRUPTED = 130


class JsonLinesNotifier:
    """
    Writes notifications as JSON lines and remembers why watching ended.

    Deletion and remote-connection-failed end the session; finished is set
    when one of them arrives.
    """

    def __init__(self, stream: Optional[TextIO] = None) -> None:
        self.stream = stream if stream is not None else sys.stdout
        self.finished = asyncio.Event()
        self.exit_code = EXIT_OK

    def send(self, channel: str, payload: dict[str, Any]) -> None:
        self.stream.write(json.dumps({"channel": channel, "payload": payload}) + "\n")
        self.stream.flush()

        if channel == notifications.FILE_CHANGED and payload.get("type") == "deleted":
            self.finished.set()
        elif channel == notifications.REMOTE_CONNECTION_FAILED:
            self.exit_code = EXIT_CONNECTION_FAILED
            self.finished.set()


class TerminalCredentialPrompt:
    """Asks for credentials on the controlling terminal."""

    def __init__(self, stream: Optional[TextIO] = None) -> None:
        self.stream = stream if stream is not None else sys.stderr

    async def request(self, request: CredentialRequest) -> None:
        try:
            credentials = await asyncio.to_thread(self._ask, request)
        except (EOFError, KeyboardInterrupt):
            request.cancel()
            return
        if credentials is None:
            request.cancel()
        else:
            request.respond(credentials)

    def _ask(self, request: CredentialRequest) -> Optional[Credentials]:
        self.stream.write(f"Credentials for {request.protocol}://{request.host}\n")
        self.stream.flush()

        default = request.default_username
        prompt = f"Username [{default}]: " if default else "Username: "
        self.stream.write(prompt)
        self.stream.flush()
        username = sys.stdin.readline()
        if not username:
            return None
        username = username.strip() or default
        if not username:
            return None

        password = getpass.getpass("Password: ", stream=self.stream)
        return Credentials(username=username, password=password)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mdviewer-watch",
        description="Follow a local or remote (sftp/ssh/smb/nfs) markdown file",
    )
    parser.add_argument("target", help="Local path, URI (sftp://, smb://, nfs://) or UNC path")
    parser.add_argument(
        "--poll-interval",
        type=int,
        default=None,
        help="Remote poll interval in ms, clamped to 500-30000 "
        "(default: settings file, or MDVIEWER_POLL_INTERVAL env var)",
    )
    parser.add_argument(
        "--no-live-updates",
        action="store_true",
        help="Print the file once and exit",
    )
    parser.add_argument(
        "--settings",
        type=Path,
        default=None,
        help="Settings file (default: ~/.mdviewer/settings.yaml)",
    )
    parser.add_argument(
        "--log-dir",
        type=Path,
        default=None,
        help="Log directory (default: ~/.mdviewer/logs)",
    )
    parser.add_argument("--console", action="store_true", help="Also log to stderr")
    parser.add_argument("--debug", action="store_true", help="Log at DEBUG level")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


async def run(args: argparse.Namespace, notifier: Optional[JsonLinesNotifier] = None) -> int:
    """Open args.target and follow it until a terminal notification arrives."""
    settings = Settings.load(args.settings)
    # Command-line overrides are not written back
    settings.path = None
    if args.poll_interval is not None:
        settings.set_poll_interval(args.poll_interval)
    if args.no_live_updates:
        settings.live_updates = False

    notifier = notifier or JsonLinesNotifier()
    context = AppContext.create(
        settings=settings,
        notifier=notifier,
        prompt=TerminalCredentialPrompt(),
    )
    viewer = Viewer(context)

    try:
        if not await viewer.open_path(args.target):
            return EXIT_OPEN_FAILED
        if not settings.live_updates:
            return EXIT_OK
        if not context.watchers.is_running():
            return EXIT_OPEN_FAILED
        await notifier.finished.wait()
        return notifier.exit_code
    finally:
        await viewer.shutdown()


def main(argv: Optional[list[str]] = None) -> int:
    """CLI entry point."""
    args = build_parser().parse_args(argv)
    setup_logging(
        log_dir=args.log_dir,
        level=logging.DEBUG if args.debug else logging.INFO,
        console=args.console,
    )

    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        logger.info("🛑 Interrupted, shutting down")
        return EXIT_INTERRUPTED


if __name__ == "__main__":
    sys.exit(main())

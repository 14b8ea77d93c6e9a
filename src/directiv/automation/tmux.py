"""tmux-backed terminal multiplexer."""

from __future__ import annotations

import asyncio
import logging
import time

from ..models import Session
from .runner import CommandError, CommandRunner

logger = logging.getLogger(__name__)

_LIST_FORMAT = "#{session_name}\t#{session_attached}\t#{session_windows}\t#{session_created}"
_NO_SERVER_MARKERS = ("no server running", "failed to connect to server", "error connecting to")


class SessionNotReadyError(CommandError):
    """Raised when a session does not become interactive in time."""


class TmuxMultiplexer:
    """Drive tmux sessions through its command line interface."""

    def __init__(self, runner: CommandRunner | None = None, *, executable: str = "tmux") -> None:
        self._runner = runner or CommandRunner()
        self._executable = executable

    async def list_sessions(self) -> list[Session]:
        result = await self._runner.run(self._executable, "list-sessions", "-F", _LIST_FORMAT)
        if not result.ok:
            if any(marker in result.stderr.lower() for marker in _NO_SERVER_MARKERS):
                return []
            raise CommandError(result.describe(), result=result)
        return parse_sessions(result.stdout)

    async def create_session(self, name: str, working_dir: str | None = None) -> Session:
        args = [self._executable, "new-session", "-d", "-s", name]
        if working_dir:
            args.extend(["-c", working_dir])
        await self._runner.run(*args, check=True)
        logger.info("Created tmux session", extra={"session": name, "working_dir": working_dir})
        return Session(name=name, attached=False, windows=1)

    async def kill_session(self, name: str) -> None:
        await self._runner.run(self._executable, "kill-session", "-t", f"={name}", check=True)
        logger.info("Killed tmux session", extra={"session": name})

    async def send_keys(self, name: str, text: str) -> None:
        await self._runner.run(self._executable, "send-keys", "-t", name, text, "Enter", check=True)

    async def capture_pane(self, name: str) -> str:
        result = await self._runner.run(self._executable, "capture-pane", "-p", "-t", name, check=True)
        return result.stdout

    async def wait_until_ready(self, name: str, timeout_ms: int | None = None, *, poll_ms: int = 100) -> None:
        """Wait until the session's pane shows any output, such as a prompt."""

        deadline = time.monotonic() + (timeout_ms if timeout_ms is not None else 10_000) / 1000
        while True:
            content = await self.capture_pane(name)
            if content.strip():
                return
            if time.monotonic() >= deadline:
                raise SessionNotReadyError(f"Session '{name}' was not ready within {timeout_ms} ms")
            await asyncio.sleep(poll_ms / 1000)


def parse_sessions(output: str) -> list[Session]:
    sessions: list[Session] = []
    for line in output.splitlines():
        if not line.strip():
            continue
        parts = line.split("\t")
        name = parts[0]
        attached = len(parts) > 1 and parts[1].strip() not in {"", "0"}
        try:
            windows = int(parts[2]) if len(parts) > 2 else 1
        except ValueError:
            windows = 1
        created = parts[3].strip() if len(parts) > 3 else ""
        sessions.append(Session(name=name, attached=attached, windows=windows, created=created))
    return sessions

"""Async runner for external commands."""

from __future__ import annotations

import asyncio
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from .utils import sanitize_environment


class CommandError(RuntimeError):
    """Raised when an external command exits unsuccessfully."""

    def __init__(self, message: str, *, result: "CommandResult | None" = None) -> None:
        super().__init__(message)
        self.result = result


class CommandNotFoundError(CommandError):
    """Raised when a required executable cannot be located."""


@dataclass(slots=True)
class CommandResult:
    """Holds the outcome of a command invocation."""

    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def describe(self) -> str:
        detail = self.stderr.strip() or self.stdout.strip() or f"exit code {self.returncode}"
        return f"`{' '.join(self.args)}` failed: {detail}"


class CommandRunner:
    """Execute commands asynchronously without a shell."""

    def resolve(self, executable: str) -> str:
        candidate = Path(executable)
        if candidate.is_absolute():
            if candidate.exists() and candidate.is_file():
                return str(candidate)
            raise CommandNotFoundError(f"Executable not found at {candidate}")
        binary = shutil.which(executable)
        if binary is None:
            raise CommandNotFoundError(f"'{executable}' executable not found on PATH")
        return binary

    async def run(
        self,
        *args: str,
        cwd: str | Path | None = None,
        check: bool = False,
    ) -> CommandResult:
        result = await self._invoke(args, cwd=str(cwd) if cwd is not None else None)
        if check and not result.ok:
            raise CommandError(result.describe(), result=result)
        return result

    async def spawn(self, *args: str, cwd: str | Path | None = None) -> None:
        """Start a detached process without waiting for it to finish."""

        executable = self.resolve(args[0])
        await asyncio.create_subprocess_exec(
            executable,
            *args[1:],
            cwd=str(cwd) if cwd is not None else None,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
            env=sanitize_environment(),
            start_new_session=True,
        )

    async def _invoke(self, args: tuple[str, ...], *, cwd: str | None) -> CommandResult:
        executable = self.resolve(args[0])
        process = await asyncio.create_subprocess_exec(
            executable,
            *args[1:],
            cwd=cwd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=sanitize_environment(),
        )
        stdout_bytes, stderr_bytes = await process.communicate()
        stdout = stdout_bytes.decode("utf-8", errors="replace")
        stderr = stderr_bytes.decode("utf-8", errors="replace")
        return CommandResult(args=tuple(args), returncode=process.returncode, stdout=stdout, stderr=stderr)


class FakeCommandRunner(CommandRunner):
    """Test double that records invocations and replays canned results.

    ``responses`` maps a command prefix (e.g. ``("tmux", "has-session")``) to
    the results returned, in order, for invocations starting with it. The last
    result for a prefix is reused once the queue is down to one entry.
    """

    def __init__(
        self,
        responses: dict[tuple[str, ...], Iterable[CommandResult]] | None = None,
    ) -> None:
        self._responses = {prefix: list(results) for prefix, results in (responses or {}).items()}
        self._invocations: list[tuple[str, ...]] = []
        self._cwds: list[str | None] = []
        self._spawned: list[tuple[str, ...]] = []

    def resolve(self, executable: str) -> str:  # type: ignore[override]
        return executable

    async def spawn(self, *args: str, cwd: str | Path | None = None) -> None:  # type: ignore[override]
        self._spawned.append(tuple(args))

    async def _invoke(self, args: tuple[str, ...], *, cwd: str | None) -> CommandResult:  # type: ignore[override]
        self._invocations.append(tuple(args))
        self._cwds.append(cwd)
        best: tuple[str, ...] | None = None
        for prefix in self._responses:
            if args[: len(prefix)] == prefix and (best is None or len(prefix) > len(best)):
                best = prefix
        if best is not None:
            queue = self._responses[best]
            if queue:
                return queue.pop(0) if len(queue) > 1 else queue[0]
        return CommandResult(args=tuple(args), returncode=0, stdout="", stderr="")

    @property
    def invocations(self) -> list[tuple[str, ...]]:
        return self._invocations

    @property
    def cwds(self) -> list[str | None]:
        return self._cwds

    @property
    def spawned(self) -> list[tuple[str, ...]]:
        return self._spawned


def ok(stdout: str = "", *args: str) -> CommandResult:
    return CommandResult(args=tuple(args), returncode=0, stdout=stdout, stderr="")


def failed(stderr: str = "", returncode: int = 1, *args: str) -> CommandResult:
    return CommandResult(args=tuple(args), returncode=returncode, stdout="", stderr=stderr)

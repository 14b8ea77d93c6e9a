"""Run configured start-up commands inside a checkout."""

from __future__ import annotations

import logging
from typing import Sequence

from .runner import CommandError, CommandRunner

logger = logging.getLogger(__name__)


class ShellHookRunner:
    """Run hook commands one at a time through ``sh -c``; stop at the first failure."""

    def __init__(self, runner: CommandRunner | None = None, *, shell: str = "sh") -> None:
        self._runner = runner or CommandRunner()
        self._shell = shell

    async def run(self, commands: Sequence[str], working_dir: str) -> None:
        for command in commands:
            result = await self._runner.run(self._shell, "-c", command, cwd=working_dir)
            if not result.ok:
                raise CommandError(
                    f"Hook `{command}` failed: {result.stderr.strip() or result.returncode}",
                    result=result,
                )
            logger.debug("Hook finished", extra={"command": command, "cwd": working_dir})

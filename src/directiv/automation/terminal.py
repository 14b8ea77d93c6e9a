"""Open terminal emulators and editors on provisioned sessions."""

from __future__ import annotations

import os

from .runner import CommandError, CommandRunner

TERMINAL_EMULATORS = ("ghostty", "iterm2", "terminal", "alacritty")
EDITORS = {"zed": "zed", "cursor": "cursor", "vscode": "code", "code": "code"}


class TerminalLauncher:
    """Attach a terminal window to a tmux session, or open a path in an editor."""

    def __init__(self, runner: CommandRunner | None = None) -> None:
        self._runner = runner or CommandRunner()

    async def open_terminal(self, emulator: str, session_name: str) -> None:
        await self._runner.spawn(*terminal_command(emulator, session_name))

    async def open_editor(self, editor_id: str, path: str) -> None:
        try:
            binary = EDITORS[editor_id]
        except KeyError as exc:
            raise CommandError(f"Unknown editor: {editor_id}") from exc
        await self._runner.spawn(binary, path)


def terminal_command(emulator: str, session_name: str, *, shell: str | None = None) -> list[str]:
    user_shell = shell or os.environ.get("SHELL", "/bin/zsh")
    attach = f"tmux attach -t {session_name}"
    if emulator in {"ghostty", "alacritty"}:
        app = "Ghostty" if emulator == "ghostty" else "Alacritty"
        return ["open", "-n", "-a", app, "--args", "-e", user_shell, "-lc", attach]
    if emulator == "iterm2":
        script = (
            'tell application "iTerm"\n'
            "    activate\n"
            "    create window with default profile\n"
            "    tell current session of current window\n"
            f'        write text "tmux -CC attach -t {session_name}"\n'
            "    end tell\n"
            "end tell"
        )
        return ["osascript", "-e", script]
    if emulator == "terminal":
        script = (
            'tell application "Terminal"\n'
            "    activate\n"
            f"    do script \"{user_shell} -lc '{attach}'\"\n"
            "end tell"
        )
        return ["osascript", "-e", script]
    raise CommandError(f"Unknown terminal emulator: {emulator}")

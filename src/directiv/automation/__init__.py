"""Process automation: tmux, git worktrees, hooks, and terminal launchers."""

from .git import GitWorktrees, checkout_path
from .hooks import ShellHookRunner
from .runner import CommandError, CommandNotFoundError, CommandResult, CommandRunner
from .terminal import TerminalLauncher
from .tmux import SessionNotReadyError, TmuxMultiplexer
from .utils import to_session_name

__all__ = [
    "CommandError",
    "CommandNotFoundError",
    "CommandResult",
    "CommandRunner",
    "GitWorktrees",
    "SessionNotReadyError",
    "ShellHookRunner",
    "TerminalLauncher",
    "TmuxMultiplexer",
    "checkout_path",
    "to_session_name",
]

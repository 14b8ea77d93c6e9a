"""Utility helpers for process automation."""

from __future__ import annotations

import os
import re
from typing import Mapping

_SANITIZED_VARS = {
    "PYTHONHOME",
    "PYTHONPATH",
    "VIRTUAL_ENV",
    "PIP_RESPECT_VIRTUALENV",
    "TMUX",
    "TMUX_PANE",
}

_SESSION_NAME_INVALID = re.compile(r"[^a-zA-Z0-9_-]")


def sanitize_environment(additional: Mapping[str, str] | None = None) -> dict[str, str]:
    """Return a sanitized environment suitable for subprocess execution.

    ``TMUX`` is dropped so that sessions can be created from inside an
    attached tmux client.
    """

    env = dict(os.environ)
    for key in _SANITIZED_VARS:
        env.pop(key, None)
    if additional:
        env.update(additional)
    return env


def to_session_name(name: str) -> str:
    """Sanitize a branch name or identifier into a valid tmux session name."""

    return _SESSION_NAME_INVALID.sub("-", name)

"""Detect whether the agent in each session is working or waiting for input."""

from __future__ import annotations

from enum import Enum
from typing import Mapping


class AgentActivity(str, Enum):
    UNKNOWN = "unknown"
    ACTIVE = "active"
    WAITING = "waiting"


def detect_agent_states(
    current: Mapping[str, str],
    previous: Mapping[str, str] | None,
) -> dict[str, AgentActivity]:
    """Compare two successive pane captures per session.

    Changed output means the agent is streaming; identical output means it is
    waiting. Empty panes and sessions without an earlier capture are unknown.
    """

    states: dict[str, AgentActivity] = {}
    for session, content in current.items():
        if not content.strip() or previous is None or session not in previous:
            states[session] = AgentActivity.UNKNOWN
            continue
        states[session] = AgentActivity.WAITING if content == previous[session] else AgentActivity.ACTIVE
    return states


__all__ = ["AgentActivity", "detect_agent_states"]

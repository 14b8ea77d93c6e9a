from __future__ import annotations

from directiv.agents import AgentActivity, detect_agent_states
from directiv.notices import RATE_LIMIT_MESSAGE, NoticeBoard


def test_rate_limit_notice_is_debounced() -> None:
    now = [0.0]
    board = NoticeBoard(rate_limit_interval=10, clock=lambda: now[0])

    assert board.rate_limited() is not None
    now[0] = 9.5
    assert board.rate_limited() is None
    now[0] = 10.5
    notice = board.rate_limited()

    assert notice is not None
    assert notice.message == RATE_LIMIT_MESSAGE
    assert notice.level == "error"
    assert len(board.recent()) == 2


def test_recent_keeps_latest_notices() -> None:
    board = NoticeBoard(limit=3)
    for index in range(5):
        board.warning(f"warning {index}")

    assert [notice.message for notice in board.recent()] == ["warning 2", "warning 3", "warning 4"]
    assert [notice.message for notice in board.recent(1)] == ["warning 4"]
    assert board.recent(0) == []
    board.clear()
    assert board.recent() == []


def test_agent_states_compare_successive_captures() -> None:
    states = detect_agent_states(
        {"ENG-1": "thinking...", "ENG-2": "$ ", "ENG-3": "   ", "ENG-4": "new"},
        {"ENG-1": "thinking..", "ENG-2": "$ ", "ENG-3": "   "},
    )

    assert states == {
        "ENG-1": AgentActivity.ACTIVE,
        "ENG-2": AgentActivity.WAITING,
        "ENG-3": AgentActivity.UNKNOWN,
        "ENG-4": AgentActivity.UNKNOWN,
    }


def test_agent_states_without_previous_capture_are_unknown() -> None:
    assert detect_agent_states({"ENG-1": "output"}, None) == {"ENG-1": AgentActivity.UNKNOWN}

from __future__ import annotations

import asyncio
from pathlib import Path

from directiv.app import TEAM_VIEW, VIEWER_VIEW, Application
from directiv.automation.runner import FakeCommandRunner
from directiv.config import DirectivSettings
from directiv.models import Checkout, PullRequestRecord, Task
from directiv.repos import RepoConfig
from directiv.scheduler import build_default_schedule
from directiv.store import CHECKOUTS, PANE_CAPTURES, PULL_REQUESTS, SESSIONS, TASKS


class StubTracker:
    def __init__(self) -> None:
        self.calls: list[bool] = []

    async def list_tasks(self, *, project_id=None, assigned_to_viewer=False):
        self.calls.append(assigned_to_viewer)
        if assigned_to_viewer:
            return [Task(id="t2", identifier="ENG-2", title="Mine")]
        return [Task(id="t1", identifier="ENG-1", title="Team"), Task(id="t2", identifier="ENG-2", title="Mine")]


class StubReviews:
    async def viewer_pull_requests(self):
        return [PullRequestRecord(number=1, url="https://gh/1", branch="ENG-1")]

    async def review_requests(self):
        return [
            PullRequestRecord(number=1, url="https://gh/1", branch="ENG-1"),
            PullRequestRecord(number=2, url="https://gh/2", branch="ENG-9"),
        ]


class FlakyWorktrees:
    async def list(self, repo_root: str) -> list[Checkout]:
        if repo_root.endswith("broken"):
            raise RuntimeError("not a git repository")
        return [Checkout(branch="main", path=repo_root)]


def settings() -> DirectivSettings:
    return DirectivSettings(linear_api_key=None, github_token=None, local_refresh_seconds=0.01)


def test_default_schedule_with_tracker_and_reviews(tmp_path: Path) -> None:
    tracker = StubTracker()
    app = Application(
        settings(),
        repos=[],
        runner=FakeCommandRunner(),
        tracker=tracker,
        reviews=StubReviews(),
    )
    build_default_schedule(app)

    assert [(timer.name, timer.collection) for timer in app.scheduler.timers] == [
        ("tasks:team", TASKS),
        ("tasks:mine", TASKS),
        (PULL_REQUESTS, PULL_REQUESTS),
        (SESSIONS, SESSIONS),
        (PANE_CAPTURES, PANE_CAPTURES),
        (CHECKOUTS, CHECKOUTS),
    ]

    asyncio.run(app.scheduler.invalidate(TASKS, PULL_REQUESTS))

    assert [task.id for task in app.store.tasks(TEAM_VIEW)] == ["t1", "t2"]
    assert [task.id for task in app.store.tasks(VIEWER_VIEW)] == ["t2"]
    assert sorted(task.id for task in app.store.all_tasks()) == ["t1", "t2"]
    assert sorted(record.number for record in app.store.pull_requests) == [1, 2]
    assert app.find_task("eng-2").title == "Mine"
    assert app.find_task("t1").identifier == "ENG-1"
    assert app.find_task("ENG-404") is None


def test_fetch_checkouts_skips_failing_repository(tmp_path: Path) -> None:
    repos = [RepoConfig(id="ok", path=str(tmp_path / "ok")), RepoConfig(id="broken", path=str(tmp_path / "broken"))]
    app = Application(settings(), repos=repos, worktrees=FlakyWorktrees(), runner=FakeCommandRunner())
    app.store.replace_checkouts(str(tmp_path / "broken"), [Checkout(branch="trunk", path=str(tmp_path / "broken"))])

    inventory = asyncio.run(app.fetch_checkouts())
    app.apply_checkouts(inventory)

    assert list(inventory) == [str(tmp_path / "ok")]
    roots = {entry.repo_root: entry for entry in app.store.checkouts}
    assert roots[str(tmp_path / "broken")].primary.branch == "trunk"


def test_without_tracker_there_is_no_mutator(tmp_path: Path) -> None:
    app = Application(settings(), repos=[], runner=FakeCommandRunner())
    build_default_schedule(app)

    assert app.mutator is None
    assert all(timer.collection != TASKS for timer in app.scheduler.timers)
    assert asyncio.run(app.fetch_team_tasks()) == []
    assert asyncio.run(app.fetch_pull_requests()) == []


def test_polling_runs_on_the_callers_event_loop(tmp_path: Path) -> None:
    app = Application(settings(), repos=[], runner=FakeCommandRunner())
    loops: list[asyncio.AbstractEventLoop] = []

    async def fetch():
        loops.append(asyncio.get_running_loop())
        return []

    app.scheduler.register(SESSIONS, 0.01, fetch, app.store.replace_sessions)

    async def scenario():
        async with app.polling():
            task = app.start_polling()
            assert app.start_polling() is task
            for _ in range(200):
                if len(loops) >= 2:
                    break
                await asyncio.sleep(0.01)
        return asyncio.get_running_loop(), task

    loop, task = asyncio.run(scenario())

    assert len(loops) >= 2
    assert set(loops) == {loop}
    assert task.done()
    assert app._poll_task is None


def test_stop_polling_without_start_is_a_no_op(tmp_path: Path) -> None:
    app = Application(settings(), repos=[], runner=FakeCommandRunner())
    asyncio.run(app.stop_polling())
    assert app._poll_task is None

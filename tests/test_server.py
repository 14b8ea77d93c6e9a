from __future__ import annotations

import asyncio
from pathlib import Path

from fastmcp import Client

from directiv import __version__
from directiv.app import Application
from directiv.automation.runner import FakeCommandRunner, ok
from directiv.config import DirectivSettings
from directiv.models import BlockingRelation, Task
from directiv.server import create_server, status_payload
from directiv.store import CHECKOUTS, PANE_CAPTURES, SESSIONS


def make_workspace(tmp_path: Path) -> Path:
    workspace = tmp_path / "workspace"
    (workspace / "app" / ".git").mkdir(parents=True, exist_ok=True)
    return workspace


def make_app(tmp_path: Path, runner: FakeCommandRunner) -> Application:
    settings = DirectivSettings(
        workspace_paths=[make_workspace(tmp_path)],
        linear_api_key=None,
        github_token=None,
    )
    return Application(settings, runner=runner)


def test_create_server_without_priming_registers_local_timers(tmp_path: Path) -> None:
    runner = FakeCommandRunner()
    app = make_app(tmp_path, runner)

    server = create_server(app.settings, app, prime=False)

    assert getattr(server, "app") is app
    assert getattr(server, "tool_handles").board is not None
    assert [timer.name for timer in app.scheduler.timers] == [SESSIONS, PANE_CAPTURES, CHECKOUTS]
    assert [repo.id for repo in app.repos()] == ["app"]
    assert runner.invocations == []


def test_create_server_primes_the_store(tmp_path: Path) -> None:
    repo_path = str(make_workspace(tmp_path) / "app")
    runner = FakeCommandRunner(
        {
            ("tmux", "list-sessions"): [ok("ENG-1\t0\t1\t1700000000\n")],
            ("git", "worktree", "list"): [
                ok(f"worktree {repo_path}\nHEAD abc\nbranch refs/heads/main\n\n")
            ],
        }
    )
    app = make_app(tmp_path, runner)

    create_server(app.settings, app)

    assert [session.name for session in app.store.sessions] == ["ENG-1"]
    assert [inventory.repo_root for inventory in app.store.checkouts] == [repo_path]


def test_status_payload_summarizes_state(tmp_path: Path) -> None:
    app = make_app(tmp_path, FakeCommandRunner())
    create_server(app.settings, app, prime=False)
    pending = BlockingRelation.optimistic(blocker_id="t1", blocker_identifier="ENG-1")
    app.store.replace_tasks("team", [Task(id="t2", identifier="ENG-2", title="API", blocked_by=(pending,))])
    app.notices.warning("Failed to open terminal")

    payload = status_payload(app)

    assert payload["server_version"] == __version__
    assert payload["repos"] == {"count": 1, "ids": ["app"], "error": None}
    assert payload["tracker"] == {"available": False}
    assert payload["store"]["tasks"] == 1
    assert payload["store"]["pending_relations"] == 1
    assert payload["timers"][SESSIONS]["collection"] == SESSIONS
    assert payload["notices"] == 1


def test_status_payload_reports_repo_errors(tmp_path: Path) -> None:
    workspace = make_workspace(tmp_path)
    (workspace / "app" / ".directiv.yml").write_text("- not a mapping\n", encoding="utf-8")
    settings = DirectivSettings(workspace_paths=[workspace], linear_api_key=None, github_token=None)
    app = Application(settings, runner=FakeCommandRunner())

    create_server(settings, app, prime=False)
    payload = status_payload(app)

    assert payload["repos"]["count"] == 0
    assert "must be a mapping" in payload["repos"]["error"]


def test_server_lifespan_polls_on_the_server_loop(tmp_path: Path) -> None:
    runner = FakeCommandRunner()
    app = make_app(tmp_path, runner)
    server = create_server(app.settings, app, prime=False)

    async def scenario():
        async with Client(server) as client:
            names = {tool.name for tool in await client.list_tools()}
            task = app._poll_task
            running = task is not None and not task.done()
            for _ in range(200):
                if app.scheduler.timer(SESSIONS).last_success is not None:
                    break
                await asyncio.sleep(0.01)
        return names, running, task

    names, running, task = asyncio.run(scenario())

    assert {"board", "create_blocked_by", "cleanup_merged"} <= names
    assert running is True
    assert app.scheduler.timer(SESSIONS).last_success is not None
    assert task.done()
    assert app._poll_task is None
    assert ("tmux", "list-sessions") in {invocation[:2] for invocation in runner.invocations}


def test_server_without_polling_leaves_scheduler_idle(tmp_path: Path) -> None:
    app = make_app(tmp_path, FakeCommandRunner())
    server = create_server(app.settings, app, prime=False, poll=False)

    async def scenario():
        async with Client(server) as client:
            await client.list_tools()
            return app._poll_task

    assert asyncio.run(scenario()) is None

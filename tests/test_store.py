from __future__ import annotations

from dataclasses import replace

from directiv.models import BlockingRelation, Checkout, PullRequestRecord, Session, Task
from directiv.store import CHECKOUTS, PANE_CAPTURES, TASKS, SessionStore


def make_task(task_id: str, identifier: str, **kwargs) -> Task:
    return Task(id=task_id, identifier=identifier, title=f"Task {identifier}", **kwargs)


def test_replace_tasks_notifies_and_all_tasks_deduplicates() -> None:
    store = SessionStore()
    seen: list[str] = []
    unsubscribe = store.subscribe(seen.append)

    store.replace_tasks("team", [make_task("1", "ENG-1"), make_task("2", "ENG-2")])
    store.replace_tasks("mine", [make_task("2", "ENG-2")])
    unsubscribe()
    store.replace_tasks("mine", [])

    assert seen == [TASKS, TASKS]
    assert [task.id for task in store.all_tasks()] == ["1", "2"]
    assert store.tasks("missing") == ()


def test_update_task_touches_every_view_holding_the_task() -> None:
    store = SessionStore()
    store.replace_tasks("team", [make_task("1", "ENG-1"), make_task("2", "ENG-2")])
    store.replace_tasks("mine", [make_task("1", "ENG-1")])
    store.replace_tasks("other", [make_task("3", "ENG-3")])
    before = store.snapshot_tasks()

    relation = BlockingRelation.optimistic(blocker_id="3", blocker_identifier="ENG-3")
    touched = store.update_task("1", lambda task: replace(task, blocked_by=task.blocked_by + (relation,)))

    assert touched == 2
    assert store.tasks("team")[0].blocked_by == (relation,)
    assert store.tasks("mine")[0].blocked_by == (relation,)
    assert store.tasks("other") is before["other"]
    assert before["team"][0].blocked_by == ()


def test_update_unknown_task_is_a_no_op() -> None:
    store = SessionStore()
    store.replace_tasks("team", [make_task("1", "ENG-1")])
    seen: list[str] = []
    store.subscribe(seen.append)

    assert store.update_task("missing", lambda task: task) == 0
    assert seen == []


def test_restore_tasks_brings_back_the_exact_snapshot() -> None:
    store = SessionStore()
    store.replace_tasks("team", [make_task("1", "ENG-1")])
    snapshot = store.snapshot_tasks()

    store.update_task("1", lambda task: replace(task, blocked_by=(BlockingRelation("r1", "9", "ENG-9"),)))
    store.restore_tasks(snapshot)

    assert store.task_views == snapshot


def test_pending_relations_lists_temporary_ids() -> None:
    store = SessionStore()
    pending = BlockingRelation.optimistic(blocker_id="2", blocker_identifier="ENG-2")
    synced = BlockingRelation("rel-1", "3", "ENG-3")
    store.replace_tasks("team", [make_task("1", "ENG-1", blocked_by=(pending, synced))])

    assert store.pending_relations() == [("1", pending)]
    assert pending.pending and not synced.pending


def test_lookups_are_case_insensitive_and_skip_primary_checkout() -> None:
    store = SessionStore()
    store.replace_sessions([Session(name="feature-FOO_1-2")])
    store.replace_checkouts(
        "/src/app",
        [Checkout(branch="main", path="/src/app"), Checkout(branch="ENG-1", path="/src/app-ENG-1")],
    )
    store.replace_pull_requests([PullRequestRecord(number=4, url="u", branch="eng-1")])

    assert store.session_by_name("feature/FOO_1.2") is not None
    assert store.checkout_by_branch("eng-1") == ("/src/app", Checkout(branch="ENG-1", path="/src/app-ENG-1"))
    assert store.checkout_by_branch("main") is None
    assert store.pull_request_by_branch("ENG-1").number == 4
    assert store.checkouts[0].primary.branch == "main"


def test_replace_checkouts_is_per_repository() -> None:
    store = SessionStore()
    seen: list[str] = []
    store.subscribe(seen.append)
    store.replace_checkouts("/src/a", [Checkout(branch="main", path="/src/a")])
    store.replace_checkouts("/src/b", [Checkout(branch="main", path="/src/b")])
    store.replace_checkouts("/src/a", [Checkout(branch="trunk", path="/src/a")])

    roots = {inventory.repo_root: inventory for inventory in store.checkouts}
    assert set(roots) == {"/src/a", "/src/b"}
    assert roots["/src/a"].primary.branch == "trunk"
    assert seen == [CHECKOUTS] * 3


def test_pane_captures_keep_one_previous_generation() -> None:
    store = SessionStore()
    seen: list[str] = []
    store.subscribe(seen.append)

    store.replace_pane_captures({"ENG-1": "a"})
    assert store.previous_pane_captures is None
    store.replace_pane_captures({"ENG-1": "b"})
    assert store.previous_pane_captures == {"ENG-1": "a"}
    assert store.pane_captures == {"ENG-1": "b"}
    assert seen == [PANE_CAPTURES, PANE_CAPTURES]

"""In-memory snapshot container for polled collections."""

from __future__ import annotations

import logging
from typing import Callable, Iterable, Mapping

from .automation.utils import to_session_name
from .models import (
    BlockingRelation,
    Checkout,
    PullRequestRecord,
    RepoCheckouts,
    Session,
    Task,
)

logger = logging.getLogger(__name__)

TASKS = "tasks"
SESSIONS = "sessions"
CHECKOUTS = "checkouts"
PULL_REQUESTS = "pull_requests"
PANE_CAPTURES = "pane_captures"

COLLECTIONS = (TASKS, SESSIONS, CHECKOUTS, PULL_REQUESTS, PANE_CAPTURES)

TaskViews = dict[str, tuple[Task, ...]]
Listener = Callable[[str], None]


class SessionStore:
    """Hold the latest snapshot of every polled collection.

    Snapshots are replaced wholesale and never mutated in place, so any
    snapshot handed out stays valid for rollbacks. Listeners are told which
    collection changed.
    """

    def __init__(self) -> None:
        self._task_views: TaskViews = {}
        self._sessions: tuple[Session, ...] = ()
        self._checkouts: dict[str, RepoCheckouts] = {}
        self._pull_requests: tuple[PullRequestRecord, ...] = ()
        self._pane_captures: dict[str, str] = {}
        self._previous_pane_captures: dict[str, str] | None = None
        self._listeners: list[Listener] = []

    # ------------------------------------------------------------------
    # subscription
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, collection: str) -> None:
        for listener in list(self._listeners):
            listener(collection)

    # ------------------------------------------------------------------
    # snapshot replacement
    # ------------------------------------------------------------------

    def replace_tasks(self, view: str, tasks: Iterable[Task]) -> None:
        """Replace one cached task view with an authoritative fetch.

        Optimistic relations in the old snapshot are dropped, not merged.
        """

        views = dict(self._task_views)
        views[view] = tuple(tasks)
        self._task_views = views
        self._notify(TASKS)

    def replace_sessions(self, sessions: Iterable[Session]) -> None:
        self._sessions = tuple(sessions)
        self._notify(SESSIONS)

    def replace_checkouts(self, repo_root: str, checkouts: Iterable[Checkout]) -> None:
        inventory = dict(self._checkouts)
        inventory[repo_root] = RepoCheckouts(repo_root=repo_root, checkouts=tuple(checkouts))
        self._checkouts = inventory
        self._notify(CHECKOUTS)

    def replace_pull_requests(self, pull_requests: Iterable[PullRequestRecord]) -> None:
        self._pull_requests = tuple(pull_requests)
        self._notify(PULL_REQUESTS)

    def replace_pane_captures(self, captures: Mapping[str, str]) -> None:
        self._previous_pane_captures = self._pane_captures if self._pane_captures else None
        self._pane_captures = dict(captures)
        self._notify(PANE_CAPTURES)

    # ------------------------------------------------------------------
    # snapshot access
    # ------------------------------------------------------------------

    @property
    def task_views(self) -> TaskViews:
        return dict(self._task_views)

    def tasks(self, view: str) -> tuple[Task, ...]:
        return self._task_views.get(view, ())

    def all_tasks(self) -> list[Task]:
        """Union of every cached view; the first occurrence of an id wins."""

        seen: set[str] = set()
        merged: list[Task] = []
        for tasks in self._task_views.values():
            for task in tasks:
                if task.id in seen:
                    continue
                seen.add(task.id)
                merged.append(task)
        return merged

    @property
    def sessions(self) -> tuple[Session, ...]:
        return self._sessions

    @property
    def checkouts(self) -> list[RepoCheckouts]:
        return list(self._checkouts.values())

    @property
    def pull_requests(self) -> tuple[PullRequestRecord, ...]:
        return self._pull_requests

    @property
    def pane_captures(self) -> dict[str, str]:
        return dict(self._pane_captures)

    @property
    def previous_pane_captures(self) -> dict[str, str] | None:
        if self._previous_pane_captures is None:
            return None
        return dict(self._previous_pane_captures)

    # ------------------------------------------------------------------
    # lookups
    # ------------------------------------------------------------------

    def task_by_id(self, task_id: str) -> Task | None:
        for tasks in self._task_views.values():
            for task in tasks:
                if task.id == task_id:
                    return task
        return None

    def session_by_name(self, name: str) -> Session | None:
        needle = to_session_name(name).lower()
        for session in self._sessions:
            if session.name.lower() == needle:
                return session
        return None

    def checkout_by_branch(self, branch: str) -> tuple[str, Checkout] | None:
        needle = branch.lower()
        for inventory in self._checkouts.values():
            for checkout in inventory.linked:
                if checkout.branch.lower() == needle:
                    return inventory.repo_root, checkout
        return None

    def pull_request_by_branch(self, branch: str) -> PullRequestRecord | None:
        needle = branch.lower()
        for pull_request in self._pull_requests:
            if pull_request.branch.lower() == needle:
                return pull_request
        return None

    def pending_relations(self) -> list[tuple[str, BlockingRelation]]:
        """Return ``(task_id, relation)`` pairs still awaiting server sync."""

        pending: list[tuple[str, BlockingRelation]] = []
        for task in self.all_tasks():
            pending.extend((task.id, relation) for relation in task.blocked_by if relation.pending)
        return pending

    # ------------------------------------------------------------------
    # copy-on-write task updates
    # ------------------------------------------------------------------

    def snapshot_tasks(self) -> TaskViews:
        return dict(self._task_views)

    def restore_tasks(self, snapshot: TaskViews) -> None:
        self._task_views = dict(snapshot)
        self._notify(TASKS)

    def update_task(self, task_id: str, transform: Callable[[Task], Task]) -> int:
        """Apply ``transform`` to ``task_id`` in every cached view.

        Returns the number of views that held the task.
        """

        touched = 0
        views: TaskViews = {}
        for view, tasks in self._task_views.items():
            if any(task.id == task_id for task in tasks):
                touched += 1
                views[view] = tuple(transform(task) if task.id == task_id else task for task in tasks)
            else:
                views[view] = tasks
        if touched:
            self._task_views = views
            self._notify(TASKS)
        else:
            logger.debug("Task not cached in any view", extra={"task_id": task_id})
        return touched


__all__ = [
    "CHECKOUTS",
    "COLLECTIONS",
    "PANE_CAPTURES",
    "PULL_REQUESTS",
    "SESSIONS",
    "SessionStore",
    "TASKS",
]

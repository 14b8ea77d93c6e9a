"""Join tracker tasks with sessions, checkouts, and pull requests.

Every collection is polled independently, so nothing here assumes that the
four inputs agree with one another. The join is recomputed from scratch on
each call.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Sequence

from .automation.utils import to_session_name
from .models import (
    Checkout,
    EnrichedTask,
    Grouping,
    OrphanRecord,
    PullRequestRecord,
    RepoCheckouts,
    ReviewState,
    Session,
    Task,
    WorkflowStatus,
)

ORPHAN_GROUPING = "__orphan__"
NO_PROJECT_GROUPING = "__no_project__"


@dataclass(slots=True)
class BoardView:
    grouping: str | None
    tasks: list[EnrichedTask] = field(default_factory=list)
    orphans: list[OrphanRecord] = field(default_factory=list)

    @property
    def has_orphans(self) -> bool:
        return bool(self.orphans)


@dataclass(slots=True)
class _Lookups:
    sessions: dict[str, Session]
    pull_requests: dict[str, PullRequestRecord]
    pull_request_list: list[PullRequestRecord]
    checkouts: dict[str, tuple[str, Checkout]]
    linked: list[tuple[str, Checkout]]


def _build_lookups(
    sessions: Iterable[Session],
    checkouts: Iterable[RepoCheckouts],
    pull_requests: Iterable[PullRequestRecord],
) -> _Lookups:
    session_map: dict[str, Session] = {}
    for session in sessions:
        session_map.setdefault(session.name.lower(), session)

    pr_list = list(pull_requests)
    pr_map: dict[str, PullRequestRecord] = {}
    for pull_request in pr_list:
        pr_map.setdefault(pull_request.branch.lower(), pull_request)

    checkout_map: dict[str, tuple[str, Checkout]] = {}
    linked: list[tuple[str, Checkout]] = []
    for inventory in checkouts:
        for checkout in inventory.linked:
            linked.append((inventory.repo_root, checkout))
            if checkout.branch:
                checkout_map.setdefault(checkout.branch.lower(), (inventory.repo_root, checkout))

    return _Lookups(
        sessions=session_map,
        pull_requests=pr_map,
        pull_request_list=pr_list,
        checkouts=checkout_map,
        linked=linked,
    )


def _pull_request_mentioning(identifier: str, pull_requests: Sequence[PullRequestRecord]) -> PullRequestRecord | None:
    needle = identifier.lower()
    for pull_request in pull_requests:
        if needle in pull_request.branch.lower():
            return pull_request
    return None


def _latest_review_states(pull_request: PullRequestRecord) -> list[ReviewState]:
    """Keep the most recent review per author; earlier verdicts are superseded."""

    latest: dict[str, tuple[str, int, ReviewState]] = {}
    for index, review in enumerate(pull_request.reviews):
        key = review.author.lower()
        candidate = (review.submitted_at, index, review.state)
        current = latest.get(key)
        if current is None or candidate[:2] >= current[:2]:
            latest[key] = candidate
    return [state for _, _, state in latest.values()]


def derive_workflow_status(session: Session | None, pull_request: PullRequestRecord | None) -> WorkflowStatus:
    if pull_request is None:
        return WorkflowStatus.IN_DEV if session is not None else WorkflowStatus.TODO

    states = _latest_review_states(pull_request)
    approved = ReviewState.APPROVED in states
    changes_requested = ReviewState.CHANGES_REQUESTED in states

    if approved and not changes_requested:
        return WorkflowStatus.TO_DEPLOY
    if changes_requested:
        return WorkflowStatus.IN_DEV
    if pull_request.requested_reviewer_count > 0 or pull_request.reviews:
        return WorkflowStatus.IN_REVIEW
    return WorkflowStatus.PERSONAL_REVIEW


def _in_grouping(task: Task, grouping: str | None) -> bool:
    if grouping is None:
        return True
    if grouping == ORPHAN_GROUPING:
        return False
    return (task.project_id or NO_PROJECT_GROUPING) == grouping


def _enrich(task: Task, lookups: _Lookups) -> EnrichedTask:
    key = task.identifier.lower()

    located = lookups.checkouts.get(key)
    if located is None:
        candidate = _pull_request_mentioning(task.identifier, lookups.pull_request_list)
        if candidate is not None:
            located = lookups.checkouts.get(candidate.branch.lower())
    repo_root, checkout = located if located is not None else (None, None)

    pull_request = lookups.pull_requests.get(key)
    if pull_request is None and checkout is not None:
        pull_request = lookups.pull_requests.get(checkout.branch.lower())
    if pull_request is None:
        pull_request = _pull_request_mentioning(task.identifier, lookups.pull_request_list)

    session = lookups.sessions.get(to_session_name(task.identifier).lower())

    return EnrichedTask(
        task=task,
        workflow_status=derive_workflow_status(session, pull_request),
        checkout=checkout,
        checkout_repo=repo_root,
        session=session,
        pull_request=pull_request,
    )


def find_orphans(
    tasks: Iterable[Task],
    checkouts: Iterable[RepoCheckouts],
    sessions: Iterable[Session] = (),
    pull_requests: Iterable[PullRequestRecord] = (),
) -> list[OrphanRecord]:
    """Linked checkouts whose branch matches no identifier in ``tasks``.

    Pass the full task set here, not a filtered grouping.
    """

    lookups = _build_lookups(sessions, checkouts, pull_requests)
    return _orphans(tasks, lookups)


def _orphans(tasks: Iterable[Task], lookups: _Lookups) -> list[OrphanRecord]:
    identifiers = {task.identifier.lower() for task in tasks}
    orphans: list[OrphanRecord] = []
    for repo_root, checkout in lookups.linked:
        if checkout.branch.lower() in identifiers:
            continue
        orphans.append(
            OrphanRecord(
                checkout=checkout,
                repo_root=repo_root,
                session=lookups.sessions.get(to_session_name(checkout.branch).lower()),
                pull_request=lookups.pull_requests.get(checkout.branch.lower()),
            )
        )
    return orphans


def reconcile(
    tasks: Iterable[Task],
    sessions: Iterable[Session],
    checkouts: Iterable[RepoCheckouts],
    pull_requests: Iterable[PullRequestRecord],
    grouping: str | None = None,
) -> BoardView:
    """Build the per-task view for ``grouping`` plus the orphan set.

    ``tasks`` is the full unfiltered task set; orphans are computed against
    all of it while only tasks in ``grouping`` are enriched.
    """

    all_tasks = list(tasks)
    lookups = _build_lookups(sessions, checkouts, pull_requests)
    enriched = [_enrich(task, lookups) for task in all_tasks if _in_grouping(task, grouping)]
    return BoardView(grouping=grouping, tasks=enriched, orphans=_orphans(all_tasks, lookups))


def list_groupings(tasks: Iterable[Task]) -> list[Grouping]:
    """Projects represented in ``tasks``, sorted by name; the no-project bucket goes last."""

    groupings: dict[str, Grouping] = {}
    for task in tasks:
        key = task.project_id or NO_PROJECT_GROUPING
        grouping = groupings.get(key)
        if grouping is None:
            name = task.project_name or ("No project" if key == NO_PROJECT_GROUPING else key)
            grouping = groupings[key] = Grouping(id=key, name=name)
        grouping.task_count += 1
        grouping.identifiers.append(task.identifier)
    return sorted(
        groupings.values(),
        key=lambda item: (item.id == NO_PROJECT_GROUPING, item.name.lower(), item.id),
    )


__all__ = [
    "BoardView",
    "NO_PROJECT_GROUPING",
    "ORPHAN_GROUPING",
    "derive_workflow_status",
    "find_orphans",
    "list_groupings",
    "reconcile",
]

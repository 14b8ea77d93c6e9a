"""Record types shared by the reconciler, layout engine, and mutators."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from uuid import uuid4

TEMP_RELATION_PREFIX = "temp-"


class StatusCategory(str, Enum):
    TRIAGE = "triage"
    UNSTARTED = "unstarted"
    STARTED = "started"
    DONE = "done"
    CANCELED = "canceled"


ACTIVE_STATUS_CATEGORIES = (
    StatusCategory.TRIAGE,
    StatusCategory.UNSTARTED,
    StatusCategory.STARTED,
)


class WorkflowStatus(str, Enum):
    TODO = "todo"
    IN_DEV = "in-dev"
    PERSONAL_REVIEW = "personal-review"
    IN_REVIEW = "in-review"
    TO_DEPLOY = "to-deploy"


class ReviewState(str, Enum):
    APPROVED = "approved"
    CHANGES_REQUESTED = "changes_requested"
    COMMENTED = "commented"
    PENDING = "pending"

    @classmethod
    def parse(cls, value: str) -> "ReviewState":
        """Accept both ``APPROVED`` and ``approved`` spellings."""

        return cls(value.strip().lower())


@dataclass(frozen=True, slots=True)
class BlockingRelation:
    """An incoming "blocked by" edge, with blocker fields cached for display."""

    relation_id: str
    blocker_id: str
    blocker_identifier: str
    blocker_title: str = ""
    blocker_url: str = ""

    @property
    def pending(self) -> bool:
        return self.relation_id.startswith(TEMP_RELATION_PREFIX)

    @property
    def correlation_key(self) -> str:
        return self.blocker_id

    @classmethod
    def optimistic(
        cls,
        *,
        blocker_id: str,
        blocker_identifier: str,
        blocker_title: str = "",
        blocker_url: str = "",
    ) -> "BlockingRelation":
        return cls(
            relation_id=f"{TEMP_RELATION_PREFIX}{uuid4()}",
            blocker_id=blocker_id,
            blocker_identifier=blocker_identifier,
            blocker_title=blocker_title,
            blocker_url=blocker_url,
        )


@dataclass(frozen=True, slots=True)
class Task:
    id: str
    identifier: str
    title: str
    priority: int = 0
    status: str = ""
    status_category: StatusCategory | None = None
    url: str = ""
    project_id: str | None = None
    project_name: str | None = None
    assignee_id: str | None = None
    assignee_name: str | None = None
    blocked_by: tuple[BlockingRelation, ...] = ()

    @property
    def is_blocked(self) -> bool:
        return len(self.blocked_by) > 0


@dataclass(frozen=True, slots=True)
class Checkout:
    """A source-control worktree bound to one branch."""

    branch: str
    path: str
    is_dirty: bool = False
    ahead: int = 0
    behind: int = 0


@dataclass(frozen=True, slots=True)
class RepoCheckouts:
    """Inventory of one repository; the first checkout is the primary one."""

    repo_root: str
    checkouts: tuple[Checkout, ...] = ()

    @property
    def primary(self) -> Checkout | None:
        return self.checkouts[0] if self.checkouts else None

    @property
    def linked(self) -> tuple[Checkout, ...]:
        return self.checkouts[1:]


@dataclass(frozen=True, slots=True)
class Session:
    name: str
    attached: bool = False
    windows: int = 1
    created: str = ""


@dataclass(frozen=True, slots=True)
class PullRequestReview:
    author: str
    state: ReviewState
    submitted_at: str = ""


@dataclass(frozen=True, slots=True)
class PullRequestRecord:
    number: int
    url: str
    branch: str
    title: str = ""
    draft: bool = False
    requested_reviewer_count: int = 0
    reviews: tuple[PullRequestReview, ...] = ()


@dataclass(frozen=True, slots=True)
class EnrichedTask:
    """A task joined with the local and review state observed for it."""

    task: Task
    workflow_status: WorkflowStatus
    checkout: Checkout | None = None
    checkout_repo: str | None = None
    session: Session | None = None
    pull_request: PullRequestRecord | None = None

    @property
    def id(self) -> str:
        return self.task.id

    @property
    def identifier(self) -> str:
        return self.task.identifier

    @property
    def priority(self) -> int:
        return self.task.priority

    @property
    def blocked_by(self) -> tuple[BlockingRelation, ...]:
        return self.task.blocked_by

    @property
    def is_blocked(self) -> bool:
        return self.task.is_blocked


@dataclass(frozen=True, slots=True)
class OrphanRecord:
    """A linked checkout that no tracked task claims."""

    checkout: Checkout
    repo_root: str
    session: Session | None = None
    pull_request: PullRequestRecord | None = None


@dataclass(frozen=True, slots=True)
class BlockerInfo:
    """Display fields of a task about to become a blocker."""

    id: str
    identifier: str
    title: str = ""
    url: str = ""


@dataclass(slots=True)
class Grouping:
    id: str
    name: str
    task_count: int = 0
    identifiers: list[str] = field(default_factory=list)


__all__ = [
    "ACTIVE_STATUS_CATEGORIES",
    "BlockerInfo",
    "BlockingRelation",
    "Checkout",
    "EnrichedTask",
    "Grouping",
    "OrphanRecord",
    "PullRequestRecord",
    "PullRequestReview",
    "RepoCheckouts",
    "ReviewState",
    "Session",
    "StatusCategory",
    "TEMP_RELATION_PREFIX",
    "Task",
    "WorkflowStatus",
]

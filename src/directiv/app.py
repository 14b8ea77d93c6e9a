"""Application state container wiring the store, scheduler, and mutators."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from typing import AsyncIterator, Awaitable, Callable, Sequence

from .agents import AgentActivity, detect_agent_states
from .automation import CommandRunner, GitWorktrees, ShellHookRunner, TerminalLauncher, TmuxMultiplexer
from .config import DirectivSettings
from .layout import GraphLayout, NodePosition, compute_layout, grid_positions
from .lifecycle import LifecycleOrchestrator
from .models import Checkout, PullRequestRecord, Session, Task
from .notices import NoticeBoard
from .ports import CheckoutInventory, CodeReview, HookRunner, IssueTracker, Launcher, TerminalMultiplexer
from .reconciler import BoardView, reconcile
from .relations import RelationMutator
from .remote import GitHubReviews, LinearTracker
from .repos import RepoConfig, RepoConfigLoader
from .scheduler import PollingScheduler
from .store import SessionStore

logger = logging.getLogger(__name__)

TEAM_VIEW = "team"
VIEWER_VIEW = "mine"


@dataclass(slots=True)
class BoardSnapshot:
    view: BoardView
    layout: GraphLayout
    orphan_positions: list[NodePosition] = field(default_factory=list)


class Application:
    """Owns every long-lived collaborator; nothing here is a module global."""

    def __init__(
        self,
        settings: DirectivSettings,
        *,
        store: SessionStore | None = None,
        notices: NoticeBoard | None = None,
        repos: Sequence[RepoConfig] | None = None,
        runner: CommandRunner | None = None,
        worktrees: CheckoutInventory | None = None,
        multiplexer: TerminalMultiplexer | None = None,
        hooks: HookRunner | None = None,
        launcher: Launcher | None = None,
        tracker: IssueTracker | None = None,
        reviews: CodeReview | None = None,
        clock: Callable[[], float] | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        self.settings = settings
        self.store = store or SessionStore()
        self.notices = notices or NoticeBoard(
            rate_limit_interval=settings.rate_limit_notice_seconds, clock=clock
        )

        runner = runner or CommandRunner()
        self.worktrees = worktrees or GitWorktrees(runner)
        self.multiplexer = multiplexer or TmuxMultiplexer(runner)
        self.hooks = hooks or ShellHookRunner(runner)
        self.launcher = launcher or TerminalLauncher(runner)

        if tracker is None and settings.linear_api_key:
            tracker = LinearTracker(settings.linear_api_key, settings.linear_team_ids)
        if reviews is None and settings.github_token:
            reviews = GitHubReviews(settings.github_token)
        self.tracker = tracker
        self.reviews = reviews

        self.repo_loader = RepoConfigLoader(settings.workspace_paths)
        self._repos: list[RepoConfig] | None = list(repos) if repos is not None else None

        self.scheduler = PollingScheduler(self.notices, clock=clock, sleep=sleep)
        self.orchestrator = LifecycleOrchestrator(
            worktrees=self.worktrees,
            multiplexer=self.multiplexer,
            hooks=self.hooks,
            launcher=self.launcher,
            settings=settings,
            tracker=self.tracker,
            notices=self.notices,
            invalidate=self.scheduler.invalidate,
        )
        self._poll_task: asyncio.Task | None = None

        self.mutator: RelationMutator | None = None
        if self.tracker is not None:
            self.mutator = RelationMutator(
                self.store,
                self.tracker,
                notices=self.notices,
                invalidate=self.scheduler.invalidate,
                hold=self.scheduler.hold,
            )

    # ------------------------------------------------------------------
    # repositories
    # ------------------------------------------------------------------

    def repos(self, *, reload: bool = False) -> list[RepoConfig]:
        if self._repos is None or reload:
            self._repos = self.repo_loader.load_all()
        return list(self._repos)

    def repo(self, repo_id: str) -> RepoConfig:
        for repo in self.repos():
            if repo.id == repo_id:
                return repo
        raise KeyError(f"Unknown repository '{repo_id}'")

    # ------------------------------------------------------------------
    # fetchers used by the polling schedule
    # ------------------------------------------------------------------

    async def fetch_team_tasks(self) -> list[Task]:
        if self.tracker is None:
            return []
        return await self.tracker.list_tasks()

    async def fetch_viewer_tasks(self) -> list[Task]:
        if self.tracker is None:
            return []
        return await self.tracker.list_tasks(assigned_to_viewer=True)

    async def fetch_sessions(self) -> list[Session]:
        return await self.multiplexer.list_sessions()

    async def fetch_checkouts(self) -> dict[str, list[Checkout]]:
        """Inventory of every configured repository.

        A repository that fails to list is left out so the store keeps its
        previous inventory.
        """

        roots = [repo.path for repo in self.repos()]
        results = await asyncio.gather(
            *(self.worktrees.list(root) for root in roots),
            return_exceptions=True,
        )
        inventory: dict[str, list[Checkout]] = {}
        for root, result in zip(roots, results):
            if isinstance(result, Exception):
                logger.warning("Could not list checkouts", extra={"repo": root, "error": str(result)})
                continue
            inventory[root] = result
        return inventory

    async def fetch_pull_requests(self) -> list[PullRequestRecord]:
        if self.reviews is None:
            return []
        authored, requested = await asyncio.gather(
            self.reviews.viewer_pull_requests(),
            self.reviews.review_requests(),
        )
        merged: dict[str, PullRequestRecord] = {}
        for record in [*authored, *requested]:
            merged.setdefault(record.url or f"{record.branch}#{record.number}", record)
        return list(merged.values())

    async def fetch_pane_captures(self) -> dict[str, str]:
        names = [session.name for session in self.store.sessions]
        results = await asyncio.gather(
            *(self.multiplexer.capture_pane(name) for name in names),
            return_exceptions=True,
        )
        captures: dict[str, str] = {}
        for name, result in zip(names, results):
            if isinstance(result, Exception):
                logger.debug("Pane capture skipped", extra={"session": name, "error": str(result)})
                continue
            captures[name] = result
        return captures

    def apply_checkouts(self, inventory: dict[str, list[Checkout]]) -> None:
        for root, checkouts in inventory.items():
            self.store.replace_checkouts(root, checkouts)

    # ------------------------------------------------------------------
    # background polling
    # ------------------------------------------------------------------

    def start_polling(self) -> asyncio.Task:
        """Schedule the polling loop on the running event loop.

        Tool handlers and timers share this loop, so store updates never
        interleave mid-operation.
        """

        if self._poll_task is not None and not self._poll_task.done():
            return self._poll_task
        self.scheduler.resume()
        self._poll_task = asyncio.create_task(self.scheduler.run(), name="directiv-poller")
        return self._poll_task

    async def stop_polling(self) -> None:
        self.scheduler.stop()
        task, self._poll_task = self._poll_task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    @contextlib.asynccontextmanager
    async def polling(self) -> AsyncIterator["Application"]:
        """Keep the polling loop running for the lifetime of the block."""

        self.start_polling()
        logger.info("Background polling started", extra={"timers": [t.name for t in self.scheduler.timers]})
        try:
            yield self
        finally:
            await self.stop_polling()
            logger.info("Background polling stopped")

    # ------------------------------------------------------------------
    # derived views
    # ------------------------------------------------------------------

    def board(self, grouping: str | None = None) -> BoardSnapshot:
        view = reconcile(
            self.store.all_tasks(),
            self.store.sessions,
            self.store.checkouts,
            self.store.pull_requests,
            grouping=grouping,
        )
        orphan_ids = [orphan.checkout.branch for orphan in view.orphans]
        return BoardSnapshot(
            view=view,
            layout=compute_layout(view.tasks),
            orphan_positions=grid_positions(orphan_ids),
        )

    def agent_states(self) -> dict[str, AgentActivity]:
        return detect_agent_states(self.store.pane_captures, self.store.previous_pane_captures)

    def find_task(self, reference: str) -> Task | None:
        """Look up a cached task by id or case-insensitive identifier."""

        task = self.store.task_by_id(reference)
        if task is not None:
            return task
        needle = reference.lower()
        for candidate in self.store.all_tasks():
            if candidate.identifier.lower() == needle:
                return candidate
        return None


__all__ = ["Application", "BoardSnapshot", "TEAM_VIEW", "VIEWER_VIEW"]

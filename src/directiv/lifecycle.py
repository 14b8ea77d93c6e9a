"""Start and stop work sessions: checkout, tmux session, and tracker status."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Iterator, Sequence

from .automation.git import checkout_path
from .automation.utils import to_session_name
from .config import DirectivSettings
from .errors import CheckoutDirtyError, LifecycleError, TaskBusyError
from .models import Checkout, StatusCategory
from .notices import NoticeBoard
from .ports import CheckoutInventory, HookRunner, IssueTracker, Launcher, TerminalMultiplexer
from .repos import RepoConfig
from .store import CHECKOUTS, SESSIONS, TASKS

logger = logging.getLogger(__name__)

Invalidate = Callable[..., Awaitable[None]]


class LifecycleStage(str, Enum):
    IDLE = "idle"
    CHECKOUT_READY = "checkout-ready"
    SESSION_READY = "session-ready"
    HOOKED = "hooked"
    ANNOUNCED = "announced"
    DONE = "done"
    ROLLED_BACK = "rolled-back"


@dataclass(slots=True)
class StartOutcome:
    identifier: str
    session_name: str
    checkout: Checkout | None = None
    session_created: bool = False
    stage: LifecycleStage = LifecycleStage.IDLE
    warnings: list[str] = field(default_factory=list)


@dataclass(slots=True)
class StopOutcome:
    identifier: str
    session_killed: bool = False
    repo_root: str | None = None
    removed_path: str | None = None


@dataclass(slots=True)
class MergedCheckout:
    repo_id: str
    repo_root: str
    checkout: Checkout


@dataclass(slots=True)
class CleanupOutcome:
    removed: list[MergedCheckout] = field(default_factory=list)
    failures: list[str] = field(default_factory=list)


class LifecycleOrchestrator:
    """Drives the create/reuse/rollback sequence for one task at a time."""

    def __init__(
        self,
        *,
        worktrees: CheckoutInventory,
        multiplexer: TerminalMultiplexer,
        hooks: HookRunner,
        launcher: Launcher,
        settings: DirectivSettings,
        tracker: IssueTracker | None = None,
        notices: NoticeBoard | None = None,
        invalidate: Invalidate | None = None,
    ) -> None:
        self._worktrees = worktrees
        self._multiplexer = multiplexer
        self._hooks = hooks
        self._launcher = launcher
        self._settings = settings
        self._tracker = tracker
        self._notices = notices or NoticeBoard()
        self._invalidate = invalidate
        self._busy: set[str] = set()

    def is_busy(self, identifier: str) -> bool:
        return identifier.lower() in self._busy

    @contextmanager
    def _claim(self, identifier: str) -> Iterator[None]:
        key = identifier.lower()
        if key in self._busy:
            raise TaskBusyError(identifier)
        self._busy.add(key)
        try:
            yield
        finally:
            self._busy.discard(key)

    def launch_command(self, identifier: str, skill: str | None = None) -> str:
        command = self._settings.agent_command
        if skill:
            return f'{command} "/{skill} {identifier}"'
        return command

    # ------------------------------------------------------------------
    # start
    # ------------------------------------------------------------------

    async def start_task(
        self,
        *,
        task_id: str,
        identifier: str,
        repo: RepoConfig,
        skill: str | None = None,
    ) -> StartOutcome:
        """Provision the checkout and session for a tracked task, then mark it started."""

        with self._claim(identifier):
            outcome = await self._provision(
                identifier,
                repo,
                self.launch_command(identifier, skill if skill is not None else self._settings.skill),
            )
            await self._mark_started(task_id, outcome)
        await self._refresh(TASKS, SESSIONS, CHECKOUTS)
        return outcome

    async def start_branch(self, *, branch: str, repo: RepoConfig) -> StartOutcome:
        """Provision a checkout and session for a branch with no tracked task."""

        with self._claim(branch):
            outcome = await self._provision(branch, repo, self._settings.agent_command)
        await self._refresh(SESSIONS, CHECKOUTS)
        return outcome

    async def _provision(self, identifier: str, repo: RepoConfig, command: str) -> StartOutcome:
        session_name = to_session_name(identifier)
        outcome = StartOutcome(identifier=identifier, session_name=session_name)

        outcome.checkout = await self._ensure_checkout(identifier, repo)
        outcome.stage = LifecycleStage.CHECKOUT_READY

        sessions = await self._multiplexer.list_sessions()
        if any(session.name == session_name for session in sessions):
            logger.info("Reusing existing session", extra={"session": session_name})
            outcome.stage = LifecycleStage.SESSION_READY
        else:
            await self._multiplexer.create_session(session_name, outcome.checkout.path)
            outcome.session_created = True
            try:
                await self._multiplexer.wait_until_ready(session_name, self._settings.ready_timeout_ms)
                outcome.stage = LifecycleStage.SESSION_READY
                if repo.on_start:
                    await self._hooks.run(repo.on_start, outcome.checkout.path)
                outcome.stage = LifecycleStage.HOOKED
                await self._multiplexer.send_keys(session_name, command)
                outcome.stage = LifecycleStage.ANNOUNCED
            except Exception as exc:
                logger.warning(
                    "Session setup failed; rolling back",
                    extra={"session": session_name, "stage": outcome.stage.value, "error": str(exc)},
                )
                outcome.stage = LifecycleStage.ROLLED_BACK
                await self._kill_quietly(session_name)
                raise

        try:
            await self._launcher.open_terminal(self._settings.terminal, session_name)
        except Exception as exc:
            outcome.warnings.append(f"Failed to open terminal: {exc}")
            self._notices.warning(f"Failed to open terminal: {exc}")

        outcome.stage = LifecycleStage.DONE
        return outcome

    async def _ensure_checkout(self, identifier: str, repo: RepoConfig) -> Checkout:
        checkouts = await self._worktrees.list(repo.path)
        needle = identifier.lower()
        for checkout in checkouts[1:]:
            if checkout.branch.lower() == needle:
                logger.info("Reusing existing checkout", extra={"branch": identifier, "path": checkout.path})
                return checkout
        return await self._worktrees.create(
            repo.path,
            identifier,
            repo.copy_paths,
            repo.base_branch,
            repo.fetch_before,
        )

    async def _mark_started(self, task_id: str, outcome: StartOutcome) -> None:
        if self._tracker is None:
            logger.debug("No issue tracker configured; skipping status update", extra={"task_id": task_id})
            return
        try:
            await self._tracker.update_status(
                task_id, StatusCategory.STARTED, self._settings.started_status_name
            )
        except Exception as exc:
            outcome.warnings.append(f"Failed to update task status: {exc}")
            self._notices.warning(f"Failed to update task status: {exc}")

    # ------------------------------------------------------------------
    # stop
    # ------------------------------------------------------------------

    async def stop_task(
        self,
        *,
        identifier: str,
        repos: Sequence[RepoConfig | str],
        force: bool = False,
    ) -> StopOutcome:
        """Kill the session and remove the checkout.

        Raises :class:`CheckoutDirtyError` when the checkout has uncommitted
        changes and ``force`` is false; nothing is torn down in that case.
        """

        roots = [repo.path if isinstance(repo, RepoConfig) else repo for repo in repos]
        with self._claim(identifier):
            located = await self._locate_checkout(identifier, roots)
            if located is not None and located[1].is_dirty and not force:
                raise CheckoutDirtyError(identifier, located[1].path)

            outcome = StopOutcome(identifier=identifier)
            outcome.session_killed = await self._kill_quietly(to_session_name(identifier))

            candidates = [(root, str(checkout_path(root, identifier))) for root in roots]
            if located is not None and (located[0], located[1].path) not in candidates:
                candidates.append((located[0], located[1].path))

            failures: list[str] = []
            last_error: Exception | None = None
            for root, path in candidates:
                try:
                    await self._worktrees.remove(root, path)
                except Exception as exc:
                    failures.append(f"{path}: {exc}")
                    last_error = exc
                    continue
                outcome.repo_root = root
                outcome.removed_path = path
                break

            if outcome.removed_path is None and located is not None:
                raise LifecycleError(
                    f"Could not remove checkout for '{identifier}': {'; '.join(failures)}"
                ) from last_error
            if outcome.removed_path is None:
                logger.debug("No checkout to remove", extra={"identifier": identifier})

        await self._refresh(SESSIONS, CHECKOUTS)
        return outcome

    async def _locate_checkout(self, identifier: str, roots: Sequence[str]) -> tuple[str, Checkout] | None:
        needle = identifier.lower()
        for root in roots:
            try:
                checkouts = await self._worktrees.list(root)
            except Exception as exc:
                logger.warning("Could not list checkouts", extra={"repo": root, "error": str(exc)})
                continue
            for checkout in checkouts[1:]:
                if checkout.branch.lower() == needle:
                    return root, checkout
        return None

    # ------------------------------------------------------------------
    # merged cleanup
    # ------------------------------------------------------------------

    async def scan_merged(self, repos: Sequence[RepoConfig]) -> list[MergedCheckout]:
        """Find linked checkouts whose branch is already merged into the base branch.

        Branches that cannot be checked are skipped.
        """

        merged: list[MergedCheckout] = []
        for repo in repos:
            try:
                checkouts = await self._worktrees.list(repo.path)
            except Exception as exc:
                logger.warning("Could not list checkouts", extra={"repo": repo.path, "error": str(exc)})
                continue
            for checkout in checkouts[1:]:
                if not checkout.branch:
                    continue
                try:
                    is_merged = await self._worktrees.is_merged(repo.path, checkout.branch, repo.base_branch)
                except Exception as exc:
                    logger.debug(
                        "Merge check skipped",
                        extra={"repo": repo.path, "branch": checkout.branch, "error": str(exc)},
                    )
                    continue
                if is_merged:
                    merged.append(MergedCheckout(repo_id=repo.id, repo_root=repo.path, checkout=checkout))
        logger.info("Merged checkout scan finished", extra={"merged": [m.checkout.branch for m in merged]})
        return merged

    async def cleanup_merged(self, merged: Sequence[MergedCheckout]) -> CleanupOutcome:
        """Kill the session and delete checkout and branch for each merged entry.

        A failed removal is recorded and the remaining entries are still
        processed.
        """

        outcome = CleanupOutcome()
        for entry in merged:
            branch = entry.checkout.branch
            try:
                with self._claim(branch):
                    await self._kill_quietly(to_session_name(branch))
                    await self._worktrees.remove(
                        entry.repo_root, entry.checkout.path, branch, delete_branch=True
                    )
            except Exception as exc:
                outcome.failures.append(f"{branch}: {exc}")
                self._notices.error(f"Failed to clean up {branch}", str(exc))
                continue
            outcome.removed.append(entry)

        await self._refresh(SESSIONS, CHECKOUTS)
        return outcome

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    async def open_editor(self, path: str) -> None:
        await self._launcher.open_editor(self._settings.editor, path)

    async def _kill_quietly(self, session_name: str) -> bool:
        try:
            await self._multiplexer.kill_session(session_name)
        except Exception as exc:
            logger.debug("Session kill skipped", extra={"session": session_name, "error": str(exc)})
            return False
        return True

    async def _refresh(self, *collections: str) -> None:
        if self._invalidate is not None:
            await self._invalidate(*collections)


__all__ = [
    "CleanupOutcome",
    "LifecycleOrchestrator",
    "LifecycleStage",
    "MergedCheckout",
    "StartOutcome",
    "StopOutcome",
]

"""Tool registration for the Directiv MCP server."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any

from fastmcp import Context, FastMCP

from ..app import Application
from ..errors import CheckoutDirtyError, RelationNotSyncedError
from ..lifecycle import MergedCheckout, StartOutcome, StopOutcome
from ..models import BlockerInfo, EnrichedTask, OrphanRecord, Task
from ..reconciler import list_groupings
from ..relations import relation_warnings
from ..store import COLLECTIONS


@dataclass(slots=True)
class ToolHandles:
    board: Any
    orphans: Any
    groupings: Any
    start_task: Any
    start_branch: Any
    stop_task: Any
    create_blocked_by: Any
    delete_blocked_by: Any
    relation_warnings: Any
    agent_states: Any
    refresh: Any
    open_editor: Any
    merged_checkouts: Any
    cleanup_merged: Any
    notices: Any


def _task_payload(task: EnrichedTask) -> dict[str, Any]:
    payload = asdict(task.task)
    payload["is_blocked"] = task.is_blocked
    payload["workflow_status"] = task.workflow_status.value
    payload["checkout"] = asdict(task.checkout) if task.checkout else None
    payload["checkout_repo"] = task.checkout_repo
    payload["session"] = asdict(task.session) if task.session else None
    payload["pull_request"] = asdict(task.pull_request) if task.pull_request else None
    return payload


def _orphan_payload(orphan: OrphanRecord) -> dict[str, Any]:
    return {
        "branch": orphan.checkout.branch,
        "path": orphan.checkout.path,
        "repo_root": orphan.repo_root,
        "is_dirty": orphan.checkout.is_dirty,
        "session": orphan.session.name if orphan.session else None,
        "pull_request": orphan.pull_request.url if orphan.pull_request else None,
    }


def _start_payload(outcome: StartOutcome) -> dict[str, Any]:
    return {
        "identifier": outcome.identifier,
        "session_name": outcome.session_name,
        "checkout": asdict(outcome.checkout) if outcome.checkout else None,
        "session_created": outcome.session_created,
        "stage": outcome.stage.value,
        "warnings": list(outcome.warnings),
    }


def _stop_payload(outcome: StopOutcome) -> dict[str, Any]:
    return {
        "status": "stopped",
        "identifier": outcome.identifier,
        "session_killed": outcome.session_killed,
        "repo_root": outcome.repo_root,
        "removed_path": outcome.removed_path,
    }


def _merged_payload(entry: MergedCheckout) -> dict[str, Any]:
    return {
        "repo_id": entry.repo_id,
        "repo_root": entry.repo_root,
        "branch": entry.checkout.branch,
        "path": entry.checkout.path,
    }


def _blocker_info(task: Task) -> BlockerInfo:
    return BlockerInfo(id=task.id, identifier=task.identifier, title=task.title, url=task.url)


def _warning_message(blocker: Task, target: Task, warnings: list[str]) -> str:
    if "duplicate" in warnings:
        return f"{target.identifier} is already blocked by {blocker.identifier}"
    return f"{target.identifier} already blocks {blocker.identifier}; linking would create a cycle"


def register_tools(server: FastMCP, *, app: Application) -> ToolHandles:
    """Register Directiv's MCP tools on the server."""

    def _require_task(reference: str) -> Task:
        task = app.find_task(reference)
        if task is None:
            raise ValueError(f"Task '{reference}' not found")
        return task

    def _require_mutator():
        if app.mutator is None:
            raise RuntimeError("Issue tracker is unavailable; cannot edit blocking links")
        return app.mutator

    def _board(grouping: str | None = None, *, context: Context | None = None) -> dict[str, Any]:
        """Return enriched tasks with graph positions for one grouping."""

        snapshot = app.board(grouping)
        _emit_log(
            context,
            "debug",
            "Rendering board",
            extra={"grouping": grouping, "tasks": len(snapshot.view.tasks)},
        )
        return {
            "grouping": grouping,
            "tasks": [_task_payload(task) for task in snapshot.view.tasks],
            "positions": [asdict(position) for position in snapshot.layout.positions],
            "edges": [asdict(edge) for edge in snapshot.layout.edges],
            "orphans": [_orphan_payload(orphan) for orphan in snapshot.view.orphans],
            "orphan_positions": [asdict(position) for position in snapshot.orphan_positions],
        }

    def _orphans(*, context: Context | None = None) -> list[dict[str, Any]]:
        view = app.board().view
        return [_orphan_payload(orphan) for orphan in view.orphans]

    def _groupings(*, context: Context | None = None) -> list[dict[str, Any]]:
        return [asdict(grouping) for grouping in list_groupings(app.store.all_tasks())]

    async def _start_task(
        task: str,
        repo_id: str,
        *,
        skill: str | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Create or reuse the checkout and session for a task and launch the agent."""

        record = _require_task(task)
        repo = app.repo(repo_id)
        outcome = await app.orchestrator.start_task(
            task_id=record.id,
            identifier=record.identifier,
            repo=repo,
            skill=skill,
        )
        _emit_log(
            context,
            "info",
            "Task started",
            extra={"identifier": record.identifier, "repo": repo.id, "created": outcome.session_created},
        )
        return _start_payload(outcome)

    async def _start_branch(branch: str, repo_id: str, *, context: Context | None = None) -> dict[str, Any]:
        outcome = await app.orchestrator.start_branch(branch=branch, repo=app.repo(repo_id))
        _emit_log(context, "info", "Branch session started", extra={"branch": branch, "repo": repo_id})
        return _start_payload(outcome)

    async def _stop_task(
        identifier: str,
        *,
        force: bool = False,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Kill the session and remove the checkout; dirty checkouts need ``force``."""

        try:
            outcome = await app.orchestrator.stop_task(
                identifier=identifier,
                repos=app.repos(),
                force=force,
            )
        except CheckoutDirtyError as exc:
            _emit_log(context, "warning", "Stop needs confirmation", extra={"identifier": identifier, "path": exc.path})
            return {
                "status": "confirmation_required",
                "identifier": identifier,
                "path": exc.path,
                "message": str(exc),
            }
        _emit_log(context, "info", "Task stopped", extra={"identifier": identifier, "path": outcome.removed_path})
        return _stop_payload(outcome)

    async def _create_blocked_by(
        blocker: str,
        target: str,
        *,
        force: bool = False,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Mark ``target`` as blocked by ``blocker`` (ids or identifiers).

        Duplicate links and direct cycles are reported without touching the
        tracker unless ``force`` is set.
        """

        mutator = _require_mutator()
        blocker_task = _require_task(blocker)
        target_task = _require_task(target)
        warnings = sorted(
            warning.value for warning in relation_warnings(blocker_task.id, target_task.id, app.store.all_tasks())
        )
        if warnings and not force:
            _emit_log(
                context,
                "warning",
                "Blocking link not created",
                extra={"blocker": blocker_task.identifier, "target": target_task.identifier, "warnings": warnings},
            )
            return {
                "status": "warning",
                "blocker_id": blocker_task.id,
                "target_id": target_task.id,
                "warnings": warnings,
                "message": _warning_message(blocker_task, target_task, warnings),
            }
        relation = await mutator.create_blocked_by(_blocker_info(blocker_task), target_task.id)
        _emit_log(
            context,
            "info",
            "Blocking link created",
            extra={"blocker": blocker_task.identifier, "target": target_task.identifier},
        )
        return {
            "status": "created",
            "relation": asdict(relation),
            "target_id": target_task.id,
            "warnings": warnings,
        }

    async def _delete_blocked_by(
        relation_id: str,
        target: str,
        *,
        context: Context | None = None,
    ) -> dict[str, Any]:
        mutator = _require_mutator()
        target_task = _require_task(target)
        try:
            await mutator.delete_blocked_by(relation_id, target_task.id)
        except RelationNotSyncedError as exc:
            return {"status": "not_synced", "relation_id": relation_id, "message": str(exc)}
        _emit_log(context, "info", "Blocking link removed", extra={"relation_id": relation_id})
        return {"status": "deleted", "relation_id": relation_id, "target_id": target_task.id}

    def _relation_warnings(blocker: str, target: str, *, context: Context | None = None) -> list[str]:
        blocker_task = _require_task(blocker)
        target_task = _require_task(target)
        warnings = relation_warnings(blocker_task.id, target_task.id, app.store.all_tasks())
        return sorted(warning.value for warning in warnings)

    def _agent_states(*, context: Context | None = None) -> dict[str, str]:
        return {name: state.value for name, state in app.agent_states().items()}

    async def _refresh(
        collections: list[str] | None = None,
        *,
        context: Context | None = None,
    ) -> dict[str, bool]:
        """Refresh the named collections now, or every timer when none are given."""

        if collections is None:
            return await app.scheduler.refresh_all()
        unknown = sorted(set(collections) - set(COLLECTIONS))
        if unknown:
            raise ValueError(f"Unknown collections {unknown}. Must be within {list(COLLECTIONS)}")
        return await app.scheduler.invalidate(*collections)

    async def _open_editor(
        identifier: str | None = None,
        *,
        path: str | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        if path is None:
            if identifier is None:
                raise ValueError("Provide either an identifier or a path")
            located = app.store.checkout_by_branch(identifier)
            if located is None:
                raise ValueError(f"No checkout found for '{identifier}'")
            path = located[1].path
        await app.orchestrator.open_editor(path)
        return {"editor": app.settings.editor, "path": path}

    async def _merged_checkouts(*, context: Context | None = None) -> list[dict[str, Any]]:
        """List linked checkouts whose branch is merged into its repository's base branch."""

        merged = await app.orchestrator.scan_merged(app.repos())
        return [_merged_payload(entry) for entry in merged]

    async def _cleanup_merged(
        branches: list[str] | None = None,
        *,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Remove merged checkouts and their branches; ``branches`` narrows the selection."""

        merged = await app.orchestrator.scan_merged(app.repos())
        if branches is not None:
            wanted = {branch.lower() for branch in branches}
            merged = [entry for entry in merged if entry.checkout.branch.lower() in wanted]
        outcome = await app.orchestrator.cleanup_merged(merged)
        _emit_log(
            context,
            "info" if not outcome.failures else "warning",
            "Merged checkouts cleaned up",
            extra={"removed": len(outcome.removed), "failures": outcome.failures},
        )
        return {
            "removed": [_merged_payload(entry) for entry in outcome.removed],
            "failures": list(outcome.failures),
        }

    def _notices(limit: int = 20, *, context: Context | None = None) -> list[dict[str, Any]]:
        return [
            {
                "level": notice.level,
                "message": notice.message,
                "description": notice.description,
                "created_at": notice.created_at.isoformat(),
            }
            for notice in app.notices.recent(limit)
        ]

    tool_board = server.tool(
        name="board",
        description="Return enriched tasks, graph positions, and orphan checkouts for a grouping.",
    )(_board)

    tool_orphans = server.tool(
        name="orphans",
        description="List linked checkouts that no tracked task claims.",
    )(_orphans)

    tool_groupings = server.tool(
        name="groupings",
        description="List the projects present in the cached task views.",
    )(_groupings)

    tool_start_task = server.tool(
        name="start_task",
        description="Create or reuse a checkout and tmux session for a task and launch the agent.",
    )(_start_task)

    tool_start_branch = server.tool(
        name="start_branch",
        description="Create or reuse a checkout and tmux session for a branch without a tracked task.",
    )(_start_branch)

    tool_stop_task = server.tool(
        name="stop_task",
        description="Kill a task's session and remove its checkout.",
    )(_stop_task)

    tool_create_blocked_by = server.tool(
        name="create_blocked_by",
        description="Record that one task blocks another.",
    )(_create_blocked_by)

    tool_delete_blocked_by = server.tool(
        name="delete_blocked_by",
        description="Remove a blocking link from a task.",
    )(_delete_blocked_by)

    tool_relation_warnings = server.tool(
        name="relation_warnings",
        description="Check a prospective blocking link for duplicates and direct cycles.",
    )(_relation_warnings)

    tool_agent_states = server.tool(
        name="agent_states",
        description="Report whether the agent in each session is active or waiting.",
    )(_agent_states)

    tool_refresh = server.tool(
        name="refresh",
        description="Refresh cached collections immediately.",
    )(_refresh)

    tool_open_editor = server.tool(
        name="open_editor",
        description="Open a task's checkout in the configured editor.",
    )(_open_editor)

    tool_merged_checkouts = server.tool(
        name="merged_checkouts",
        description="List checkouts whose branch is already merged into the base branch.",
    )(_merged_checkouts)

    tool_cleanup_merged = server.tool(
        name="cleanup_merged",
        description="Kill sessions and delete checkouts and branches that are already merged.",
    )(_cleanup_merged)

    tool_notices = server.tool(
        name="notices",
        description="Return recent user-visible notices.",
    )(_notices)

    return ToolHandles(
        board=tool_board,
        orphans=tool_orphans,
        groupings=tool_groupings,
        start_task=tool_start_task,
        start_branch=tool_start_branch,
        stop_task=tool_stop_task,
        create_blocked_by=tool_create_blocked_by,
        delete_blocked_by=tool_delete_blocked_by,
        relation_warnings=tool_relation_warnings,
        agent_states=tool_agent_states,
        refresh=tool_refresh,
        open_editor=tool_open_editor,
        merged_checkouts=tool_merged_checkouts,
        cleanup_merged=tool_cleanup_merged,
        notices=tool_notices,
    )


__all__ = ["register_tools", "ToolHandles"]

logger = logging.getLogger(__name__)


def _emit_log(
    context: Context | None,
    level: str,
    message: str,
    *,
    extra: dict[str, Any] | None = None,
) -> None:
    """Best-effort logging that prefers the MCP context logger when available."""

    payload = extra or {}

    if context is not None:
        ctx_logger = getattr(context, "logger", None)
        if ctx_logger is not None:
            log_method = getattr(ctx_logger, level, None)
            if callable(log_method):
                log_method(message, extra=payload)
                return

    fallback = getattr(logger, level, logger.info)
    fallback(message, extra=payload)

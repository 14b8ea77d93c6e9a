"""Protocols for the external collaborators the core drives."""

from __future__ import annotations

from typing import Protocol, Sequence

from .models import (
    Checkout,
    PullRequestRecord,
    Session,
    StatusCategory,
    Task,
)


class CheckoutInventory(Protocol):
    async def list(self, repo_root: str) -> list[Checkout]:
        ...

    async def create(
        self,
        repo_root: str,
        identifier: str,
        aux_paths: Sequence[str] = (),
        base_branch: str | None = None,
        fetch_first: bool = False,
    ) -> Checkout:
        ...

    async def remove(
        self,
        repo_root: str,
        path: str,
        branch: str | None = None,
        delete_branch: bool = False,
    ) -> None:
        ...

    async def is_merged(self, repo_root: str, branch: str, base_branch: str | None = None) -> bool:
        ...

    async def fetch_and_prune(self, repo_root: str) -> None:
        ...


class TerminalMultiplexer(Protocol):
    async def list_sessions(self) -> list[Session]:
        ...

    async def create_session(self, name: str, working_dir: str | None = None) -> Session:
        ...

    async def kill_session(self, name: str) -> None:
        ...

    async def send_keys(self, name: str, text: str) -> None:
        ...

    async def wait_until_ready(self, name: str, timeout_ms: int | None = None) -> None:
        ...

    async def capture_pane(self, name: str) -> str:
        ...


class Launcher(Protocol):
    async def open_terminal(self, emulator: str, session_name: str) -> None:
        ...

    async def open_editor(self, editor_id: str, path: str) -> None:
        ...


class HookRunner(Protocol):
    async def run(self, commands: Sequence[str], working_dir: str) -> None:
        ...


class IssueTracker(Protocol):
    async def list_tasks(
        self,
        *,
        project_id: str | None = None,
        assigned_to_viewer: bool = False,
    ) -> list[Task]:
        ...

    async def update_status(self, task_id: str, category: StatusCategory, name: str) -> None:
        ...

    async def create_blocking_relation(self, blocker_id: str, target_id: str) -> str:
        ...

    async def delete_blocking_relation(self, relation_id: str) -> None:
        ...

    async def task_for_branch(self, branch: str) -> Task | None:
        ...


class CodeReview(Protocol):
    async def viewer_pull_requests(self) -> list[PullRequestRecord]:
        ...

    async def review_requests(self) -> list[PullRequestRecord]:
        ...


__all__ = [
    "CheckoutInventory",
    "CodeReview",
    "HookRunner",
    "IssueTracker",
    "Launcher",
    "TerminalMultiplexer",
]

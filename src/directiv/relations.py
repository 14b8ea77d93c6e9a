"""Optimistic creation and deletion of blocking relations."""

from __future__ import annotations

import contextlib
import logging
from dataclasses import replace
from enum import Enum
from typing import Awaitable, Callable, ContextManager, Iterable

from .errors import RelationMutationError, RelationNotSyncedError, SelfRelationError
from .models import BlockerInfo, BlockingRelation, Task
from .notices import NoticeBoard
from .ports import IssueTracker
from .store import TASKS, SessionStore

logger = logging.getLogger(__name__)

Invalidate = Callable[..., Awaitable[None]]
Hold = Callable[..., ContextManager[None]]


class RelationWarning(str, Enum):
    DUPLICATE = "duplicate"
    CYCLE = "cycle"


def relation_warnings(blocker_id: str, target_id: str, tasks: Iterable[Task]) -> set[RelationWarning]:
    """Advisory checks for the call site before ``create_blocked_by``.

    Only direct two-task cycles are detected; the tracker decides on deeper
    ones.
    """

    warnings: set[RelationWarning] = set()
    for task in tasks:
        if task.id == target_id and any(rel.correlation_key == blocker_id for rel in task.blocked_by):
            warnings.add(RelationWarning.DUPLICATE)
        if task.id == blocker_id and any(rel.correlation_key == target_id for rel in task.blocked_by):
            warnings.add(RelationWarning.CYCLE)
    return warnings


class RelationMutator:
    """Apply relation edits to every cached view before the tracker confirms them."""

    def __init__(
        self,
        store: SessionStore,
        tracker: IssueTracker,
        *,
        notices: NoticeBoard | None = None,
        invalidate: Invalidate | None = None,
        hold: Hold | None = None,
    ) -> None:
        self._store = store
        self._tracker = tracker
        self._notices = notices or NoticeBoard()
        self._invalidate = invalidate
        self._hold = hold

    async def create_blocked_by(self, blocker: BlockerInfo, target_id: str) -> BlockingRelation:
        """Mark ``target_id`` as blocked by ``blocker``.

        Returns the optimistic relation; its temporary id is replaced by the
        server-assigned one on the next task refresh.
        """

        if blocker.id == target_id:
            raise SelfRelationError(target_id)

        relation = BlockingRelation.optimistic(
            blocker_id=blocker.id,
            blocker_identifier=blocker.identifier,
            blocker_title=blocker.title,
            blocker_url=blocker.url,
        )
        with self._holding():
            snapshot = self._store.snapshot_tasks()
            self._store.update_task(
                target_id,
                lambda task: replace(task, blocked_by=task.blocked_by + (relation,)),
            )

            try:
                await self._tracker.create_blocking_relation(blocker.id, target_id)
            except Exception as exc:
                self._store.restore_tasks(snapshot)
                self._notices.error("Failed to create blocking link", str(exc))
                raise RelationMutationError(f"Failed to create blocking link: {exc}") from exc

        logger.info(
            "Created blocking relation",
            extra={"blocker_id": blocker.id, "target_id": target_id},
        )
        await self._refresh()
        return relation

    async def delete_blocked_by(self, relation_id: str, target_id: str) -> None:
        """Remove one relation from ``target_id``.

        Raises :class:`RelationNotSyncedError` for relations that still carry
        a temporary id; no server call is made for those.
        """

        candidate = BlockingRelation(relation_id=relation_id, blocker_id="", blocker_identifier="")
        if candidate.pending:
            raise RelationNotSyncedError(relation_id)

        with self._holding():
            snapshot = self._store.snapshot_tasks()
            self._store.update_task(
                target_id,
                lambda task: replace(
                    task,
                    blocked_by=tuple(rel for rel in task.blocked_by if rel.relation_id != relation_id),
                ),
            )

            try:
                await self._tracker.delete_blocking_relation(relation_id)
            except Exception as exc:
                self._store.restore_tasks(snapshot)
                self._notices.error("Failed to remove blocking link", str(exc))
                raise RelationMutationError(f"Failed to remove blocking link: {exc}") from exc

        logger.info(
            "Deleted blocking relation",
            extra={"relation_id": relation_id, "target_id": target_id},
        )
        await self._refresh()

    def _holding(self) -> ContextManager[None]:
        if self._hold is None:
            return contextlib.nullcontext()
        return self._hold(TASKS)

    async def _refresh(self) -> None:
        if self._invalidate is not None:
            await self._invalidate(TASKS)


__all__ = ["RelationMutator", "RelationWarning", "relation_warnings"]

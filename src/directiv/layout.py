"""Dependency graph layout.

Tasks are stacked by topological depth (y) and packed into fixed-pitch
columns (x), keeping blocked tasks under their blockers where a slot is free.
Everything here is a pure function of its input order.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Sequence

CARD_WIDTH = 380
CARD_HEIGHT = 180
H_GAP = 100
V_GAP = 80

COLUMN_PITCH = CARD_WIDTH + H_GAP
ROW_PITCH = CARD_HEIGHT + V_GAP

_MAX_PROBE = 3


class BlockerRef(Protocol):
    blocker_id: str
    blocker_identifier: str


class LayoutTask(Protocol):
    @property
    def id(self) -> str: ...

    @property
    def identifier(self) -> str: ...

    @property
    def priority(self) -> int: ...

    @property
    def blocked_by(self) -> Sequence[BlockerRef]: ...


@dataclass(frozen=True, slots=True)
class NodePosition:
    id: str
    x: int
    y: int
    depth: int
    column: int


@dataclass(frozen=True, slots=True)
class Edge:
    source: str
    target: str
    relation_id: str | None = None


@dataclass(slots=True)
class GraphLayout:
    positions: list[NodePosition]
    edges: list[Edge]

    def position_of(self, task_id: str) -> NodePosition | None:
        for position in self.positions:
            if position.id == task_id:
                return position
        return None


class _Resolver:
    def __init__(self, tasks: Sequence[LayoutTask]) -> None:
        self._by_id = {task.id: task for task in tasks}
        self._by_identifier = {task.identifier: task for task in tasks}

    def __call__(self, blocker: BlockerRef) -> LayoutTask | None:
        found = self._by_id.get(blocker.blocker_id)
        if found is None:
            found = self._by_identifier.get(blocker.blocker_identifier)
        return found


def calculate_depths(tasks: Sequence[LayoutTask]) -> dict[str, int]:
    """Assign each task its topological depth.

    Unblocked tasks sit at depth 0. A blocked task sits one below its deepest
    blocker; blockers outside ``tasks`` count as depth 0. Tasks still
    unresolved after ``len(tasks) + 1`` passes (cycles) fall back to 0.
    """

    resolve = _Resolver(tasks)
    depths: dict[str, int] = {}
    for task in tasks:
        if not task.blocked_by:
            depths[task.id] = 0

    changed = True
    iterations = 0
    max_iterations = len(tasks) + 1
    while changed and iterations < max_iterations:
        changed = False
        iterations += 1
        for task in tasks:
            if task.id in depths:
                continue

            blocker_depths: list[int] = []
            resolved = True
            for blocker in task.blocked_by:
                blocker_task = resolve(blocker)
                if blocker_task is None:
                    blocker_depths.append(0)
                elif blocker_task.id in depths:
                    blocker_depths.append(depths[blocker_task.id])
                else:
                    resolved = False
                    break

            if resolved:
                depths[task.id] = max(blocker_depths, default=0) + 1
                changed = True

    for task in tasks:
        depths.setdefault(task.id, 0)
    return depths


def _free_column_near(preferred: int, used: set[int]) -> int | None:
    if preferred not in used:
        return preferred
    for offset in range(1, _MAX_PROBE + 1):
        if preferred + offset not in used:
            return preferred + offset
        if preferred - offset >= 0 and preferred - offset not in used:
            return preferred - offset
    return None


def calculate_positions(tasks: Sequence[LayoutTask]) -> list[NodePosition]:
    depths = calculate_depths(tasks)
    resolve = _Resolver(tasks)

    by_depth: dict[int, list[LayoutTask]] = {}
    for task in tasks:
        by_depth.setdefault(depths[task.id], []).append(task)

    placed: dict[str, NodePosition] = {}
    for depth in sorted(by_depth):
        used: set[int] = set()

        def has_placed_blocker(task: LayoutTask) -> bool:
            for blocker in task.blocked_by:
                blocker_task = resolve(blocker)
                if blocker_task is not None and blocker_task.id in placed:
                    return True
            return False

        level = sorted(by_depth[depth], key=lambda task: (not has_placed_blocker(task), task.priority))

        for task in level:
            column: int | None = None
            for blocker in task.blocked_by:
                blocker_task = resolve(blocker)
                if blocker_task is None or blocker_task.id not in placed:
                    continue
                column = _free_column_near(placed[blocker_task.id].column, used)
                if column is not None:
                    break

            if column is None:
                column = 0
                while column in used:
                    column += 1

            used.add(column)
            placed[task.id] = NodePosition(
                id=task.id,
                x=column * COLUMN_PITCH,
                y=depth * ROW_PITCH,
                depth=depth,
                column=column,
            )

    return list(placed.values())


def calculate_edges(tasks: Sequence[LayoutTask]) -> list[Edge]:
    """Directed ``blocker -> task`` edges; blockers outside ``tasks`` are skipped."""

    resolve = _Resolver(tasks)
    edges: list[Edge] = []
    for task in tasks:
        for blocker in task.blocked_by:
            blocker_task = resolve(blocker)
            if blocker_task is None:
                continue
            edges.append(
                Edge(
                    source=blocker_task.id,
                    target=task.id,
                    relation_id=getattr(blocker, "relation_id", None),
                )
            )
    return edges


def compute_layout(tasks: Sequence[LayoutTask]) -> GraphLayout:
    return GraphLayout(positions=calculate_positions(tasks), edges=calculate_edges(tasks))


def grid_positions(ids: Sequence[str], per_row: int = 3) -> list[NodePosition]:
    """Lay cards out left to right, ``per_row`` to a row (used for orphans)."""

    if per_row < 1:
        raise ValueError("per_row must be >= 1")
    return [
        NodePosition(
            id=item,
            x=(index % per_row) * COLUMN_PITCH,
            y=(index // per_row) * ROW_PITCH,
            depth=index // per_row,
            column=index % per_row,
        )
        for index, item in enumerate(ids)
    ]


__all__ = [
    "CARD_HEIGHT",
    "CARD_WIDTH",
    "Edge",
    "GraphLayout",
    "H_GAP",
    "NodePosition",
    "V_GAP",
    "calculate_depths",
    "calculate_edges",
    "calculate_positions",
    "compute_layout",
    "grid_positions",
]

"""Reconciliation planner — diff goal vs current into create/delete operations."""

from __future__ import annotations

import asyncio
import functools
from collections.abc import Awaitable, Callable
from enum import StrEnum

from pydantic import BaseModel

from megaverse.api.client import GridService
from megaverse.domain.grid import (
    CurrentGrid,
    Entity,
    GoalGrid,
    check_same_shape,
    parse_cell,
    parse_token,
)
from megaverse.errors.retry import retry
from megaverse.types import RetryPolicy, Task


class Action(StrEnum):
    CREATE = "create"
    DELETE = "delete"


class GridOperation(BaseModel):
    action: Action
    entity: Entity

    def describe(self) -> str:
        e = self.entity
        return f"{self.action.value} {e.token} at ({e.row}, {e.column})"


def plan_sync(goal: GoalGrid, current: CurrentGrid) -> list[GridOperation]:
    """Minimal operations turning ``current`` into ``goal``.

    A wrong occupant is deleted before the right one is created; matching
    cells produce nothing.
    """
    check_same_shape(goal, current)
    ops: list[GridOperation] = []
    for r, row in enumerate(goal):
        for c, token in enumerate(row):
            wanted = parse_token(token, r, c)
            have = parse_cell(current[r][c], r, c)
            if wanted is None and have is None:
                continue
            if wanted is not None and wanted.same_object(have):
                continue
            if have is not None:
                ops.append(GridOperation(action=Action.DELETE, entity=have))
            if wanted is not None:
                ops.append(GridOperation(action=Action.CREATE, entity=wanted))
    return ops


def plan_clean(current: CurrentGrid) -> list[GridOperation]:
    """Delete everything on the grid."""
    ops: list[GridOperation] = []
    for r, row in enumerate(current):
        for c, cell in enumerate(row):
            have = parse_cell(cell, r, c)
            if have is not None:
                ops.append(GridOperation(action=Action.DELETE, entity=have))
    return ops


def _bind(op: GridOperation, service: GridService) -> Callable[[], Awaitable[None]]:
    e = op.entity
    if op.action == Action.CREATE:
        return lambda: service.create_entity(e.kind, e.row, e.column, **e.attrs)
    return lambda: service.delete_entity(e.kind, e.row, e.column)


def to_tasks(
    operations: list[GridOperation],
    service: GridService,
    policy: RetryPolicy | None = None,
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> list[Task]:
    """Bind operations to the service as zero-argument coroutine factories.

    With a policy, every task retries on its own before reporting failure.
    """
    tasks: list[Task] = []
    for op in operations:
        call = _bind(op, service)
        if policy is None:
            tasks.append(call)
        else:
            tasks.append(functools.partial(retry, call, policy, sleep=sleep))
    return tasks

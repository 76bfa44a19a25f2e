"""Grid model: goal tokens, current cells and the entities they describe."""

from __future__ import annotations

import logging
from enum import IntEnum, StrEnum
from typing import Any

from pydantic import BaseModel

logger = logging.getLogger(__name__)

SPACE = "SPACE"

GoalGrid = list[list[str]]
CurrentCell = dict[str, Any] | None
CurrentGrid = list[list[CurrentCell]]


class EntityKind(StrEnum):
    POLYANET = "polyanet"
    SOLOON = "soloon"
    COMETH = "cometh"

    @property
    def resource(self) -> str:
        """REST collection name, e.g. ``polyanets``."""
        return f"{self.value}s"


class CellType(IntEnum):
    """Numeric ``type`` used by the current-map payload."""

    POLYANET = 0
    SOLOON = 1
    COMETH = 2


class SoloonColor(StrEnum):
    BLUE = "blue"
    RED = "red"
    PURPLE = "purple"
    WHITE = "white"


class ComethDirection(StrEnum):
    UP = "up"
    DOWN = "down"
    LEFT = "left"
    RIGHT = "right"


_KIND_BY_TYPE = {
    CellType.POLYANET: EntityKind.POLYANET,
    CellType.SOLOON: EntityKind.SOLOON,
    CellType.COMETH: EntityKind.COMETH,
}


class Entity(BaseModel):
    kind: EntityKind
    row: int
    column: int
    color: SoloonColor | None = None
    direction: ComethDirection | None = None

    @property
    def attrs(self) -> dict[str, str]:
        """Extra fields the create call needs."""
        if self.kind == EntityKind.SOLOON and self.color:
            return {"color": self.color.value}
        if self.kind == EntityKind.COMETH and self.direction:
            return {"direction": self.direction.value}
        return {}

    def same_object(self, other: Entity | None) -> bool:
        """Equal kind and attributes, ignoring position."""
        return (
            other is not None
            and self.kind == other.kind
            and self.color == other.color
            and self.direction == other.direction
        )

    @property
    def token(self) -> str:
        if self.kind == EntityKind.SOLOON and self.color:
            return f"{self.color.value.upper()}_SOLOON"
        if self.kind == EntityKind.COMETH and self.direction:
            return f"{self.direction.value.upper()}_COMETH"
        return "POLYANET"


def parse_token(token: str, row: int, column: int) -> Entity | None:
    """Turn a goal-map token into the entity it asks for (None for SPACE)."""
    if token == SPACE:
        return None
    if token == "POLYANET":
        return Entity(kind=EntityKind.POLYANET, row=row, column=column)

    prefix, _, suffix = token.partition("_")
    try:
        if suffix == "SOLOON":
            return Entity(
                kind=EntityKind.SOLOON, row=row, column=column, color=SoloonColor(prefix.lower())
            )
        if suffix == "COMETH":
            return Entity(
                kind=EntityKind.COMETH,
                row=row,
                column=column,
                direction=ComethDirection(prefix.lower()),
            )
    except ValueError:
        pass

    logger.warning("Unknown goal token %r at (%d, %d), treating as SPACE", token, row, column)
    return None


def parse_cell(cell: CurrentCell, row: int, column: int) -> Entity | None:
    """Turn a current-map cell payload into an entity (None when empty)."""
    if not cell:
        return None
    try:
        kind = _KIND_BY_TYPE[CellType(cell["type"])]
        color = cell.get("color") if kind == EntityKind.SOLOON else None
        direction = cell.get("direction") if kind == EntityKind.COMETH else None
        return Entity(kind=kind, row=row, column=column, color=color, direction=direction)
    except (KeyError, ValueError):
        logger.warning("Unknown cell %r at (%d, %d), treating as empty", cell, row, column)
        return None


def cell_matches(token: str, cell: CurrentCell, row: int = 0, column: int = 0) -> bool:
    """True when the current cell already holds what the goal token wants."""
    wanted = parse_token(token, row, column)
    have = parse_cell(cell, row, column)
    if wanted is None:
        return have is None
    return wanted.same_object(have)


def check_same_shape(goal: GoalGrid, current: CurrentGrid) -> None:
    if len(goal) != len(current) or any(
        len(g) != len(c) for g, c in zip(goal, current, strict=True)
    ):
        raise ValueError("Goal and current grids have different shapes")

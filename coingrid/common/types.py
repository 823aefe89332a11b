from __future__ import annotations

from enum import Enum
from typing import Tuple

Cell = Tuple[int, int]


class Direction(str, Enum):
    UP = "U"
    DOWN = "D"
    LEFT = "L"
    RIGHT = "R"

    @property
    def delta(self) -> Cell:
        return DIRECTION_DELTAS[self]

    @classmethod
    def parse(cls, token: object) -> Direction | None:
        """Return the direction for a wire token, or None if unrecognized."""
        if isinstance(token, Direction):
            return token
        if not isinstance(token, str):
            return None
        try:
            return cls(token)
        except ValueError:
            return None


DIRECTION_DELTAS: dict[Direction, Cell] = {
    Direction.UP: (0, -1),
    Direction.DOWN: (0, 1),
    Direction.LEFT: (-1, 0),
    Direction.RIGHT: (1, 0),
}


class RegistrationOutcome(str, Enum):
    OK = "ok"
    INVALID_NAME = "invalid_name"
    NAME_TAKEN = "name_taken"


class MoveOutcome(str, Enum):
    IGNORED = "ignored"
    MOVED = "moved"
    COLLECTED = "collected"


def format_cell(cell: Cell) -> str:
    x, y = cell
    return f"{x},{y}"


def parse_cell(text: str) -> Cell:
    """Parse the ``"x,y"`` wire form of a cell."""
    parts = text.split(",")
    if len(parts) != 2:
        raise ValueError(f"Malformed cell: {text!r}")
    return (int(parts[0]), int(parts[1]))

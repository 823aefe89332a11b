from __future__ import annotations

import random

from coingrid.common.constants import HEIGHT, WIDTH
from coingrid.common.types import Cell, Direction


def clamp(value: int, lo: int, hi: int) -> int:
    return max(lo, min(hi, value))


def random_point(rng: random.Random, width: int = WIDTH, height: int = HEIGHT) -> Cell:
    """Return a uniformly random cell of a ``width`` x ``height`` board."""
    return (rng.randrange(width), rng.randrange(height))


def permutation(rng: random.Random, n: int) -> list[int]:
    """Return a uniformly random permutation of ``range(n)``."""
    values = list(range(n))
    rng.shuffle(values)
    return values


def index_to_cell(index: int) -> Cell:
    """Map a row-major board index to its cell."""
    return (index % WIDTH, index // WIDTH)


def step(cell: Cell, direction: Direction) -> Cell:
    """Move one cell in ``direction``, clamping each axis to the board.

    Moving into a wall leaves that axis unchanged.
    """
    dx, dy = direction.delta
    x, y = cell
    return (clamp(x + dx, 0, WIDTH - 1), clamp(y + dy, 0, HEIGHT - 1))

from __future__ import annotations

from dataclasses import dataclass, field

from coingrid.common.types import Cell, MoveOutcome, format_cell


@dataclass(frozen=True)
class MoveApplied:
    """Result of the store's atomic move primitive."""

    collected: int | None
    coins_remaining: int


@dataclass
class MoveResult:
    outcome: MoveOutcome
    position: Cell | None = None
    collected: int = 0
    replenished: bool = False


@dataclass
class CoinPlacement:
    placed: list[tuple[Cell, int]] = field(default_factory=list)
    failed: list[Cell] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.failed


@dataclass
class Snapshot:
    positions: list[tuple[str, Cell]] = field(default_factory=list)
    scores: list[tuple[str, int]] = field(default_factory=list)
    coins: list[tuple[Cell, int]] = field(default_factory=list)

    def position_of(self, name: str) -> Cell | None:
        for player, cell in self.positions:
            if player == name:
                return cell
        return None

    def score_of(self, name: str) -> int | None:
        for player, score in self.scores:
            if player == name:
                return score
        return None

    def to_dict(self) -> dict:
        """Wire form; cells are serialized as ``"x,y"``."""
        return {
            "positions": [[name, format_cell(cell)] for name, cell in self.positions],
            "scores": [[name, score] for name, score in self.scores],
            "coins": [[format_cell(cell), value] for cell, value in self.coins],
        }

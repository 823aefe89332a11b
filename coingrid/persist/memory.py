from __future__ import annotations

import threading

from coingrid.common.errors import UnknownPlayer
from coingrid.common.types import Cell
from coingrid.engine.state import MoveApplied, Snapshot
from coingrid.persist.base import StateStore


class InMemoryStore(StateStore):
    """Process-local store; every primitive runs under one re-entrant lock."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._used_names: set[str] = set()
        self._positions: dict[str, Cell] = {}
        # insertion order doubles as the leaderboard tie-breaker
        self._scores: dict[str, int] = {}
        self._coins: dict[Cell, int] = {}

    def is_name_used(self, name: str) -> bool:
        with self._lock:
            return name in self._used_names

    def claim_name(self, name: str) -> bool:
        with self._lock:
            if name in self._used_names:
                return False
            self._used_names.add(name)
            return True

    def create_player(self, name: str, cell: Cell) -> None:
        with self._lock:
            self._positions[name] = cell
            self._scores.setdefault(name, 0)

    def set_player_position(self, name: str, cell: Cell) -> None:
        with self._lock:
            self._positions[name] = cell

    def get_player_position(self, name: str) -> Cell | None:
        with self._lock:
            return self._positions.get(name)

    def set_score(self, name: str, score: int) -> None:
        with self._lock:
            self._scores[name] = score

    def increment_score(self, name: str, delta: int) -> int:
        with self._lock:
            score = self._scores.get(name, 0) + delta
            self._scores[name] = score
            return score

    def list_player_positions(self) -> list[tuple[str, Cell]]:
        with self._lock:
            return list(self._positions.items())

    def ranked_scores(self) -> list[tuple[str, int]]:
        with self._lock:
            entries = list(self._scores.items())
        return sorted(entries, key=lambda entry: -entry[1])

    def set_coin(self, cell: Cell, value: int) -> None:
        with self._lock:
            self._coins[cell] = value

    def get_coin(self, cell: Cell) -> int | None:
        with self._lock:
            return self._coins.get(cell)

    def remove_coin(self, cell: Cell) -> int | None:
        with self._lock:
            return self._coins.pop(cell, None)

    def coin_count(self) -> int:
        with self._lock:
            return len(self._coins)

    def list_coins(self) -> list[tuple[Cell, int]]:
        with self._lock:
            return list(self._coins.items())

    def apply_move(self, name: str, cell: Cell) -> MoveApplied:
        with self._lock:
            if name not in self._positions:
                raise UnknownPlayer(name)
            self._positions[name] = cell
            value = self._coins.pop(cell, None)
            if value is not None:
                self._scores[name] = self._scores.get(name, 0) + value
            return MoveApplied(collected=value, coins_remaining=len(self._coins))

    def snapshot(self) -> Snapshot:
        with self._lock:
            return Snapshot(
                positions=self.list_player_positions(),
                scores=self.ranked_scores(),
                coins=self.list_coins(),
            )

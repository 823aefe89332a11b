from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

from coingrid.common.types import Cell
from coingrid.engine.state import MoveApplied, Snapshot


class StateStore(ABC):
    """Atomic primitives over the registry, positions, scores and coins.

    Every method is atomic on its own. ``claim_name`` is add-if-absent,
    ``remove_coin`` is remove-if-present and ``apply_move`` commits the
    position update together with any coin collection. Backend failures are
    raised as ``StoreUnavailable``.
    """

    @abstractmethod
    def is_name_used(self, name: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def claim_name(self, name: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def create_player(self, name: str, cell: Cell) -> None:
        raise NotImplementedError

    @abstractmethod
    def set_player_position(self, name: str, cell: Cell) -> None:
        raise NotImplementedError

    @abstractmethod
    def get_player_position(self, name: str) -> Optional[Cell]:
        raise NotImplementedError

    @abstractmethod
    def set_score(self, name: str, score: int) -> None:
        raise NotImplementedError

    @abstractmethod
    def increment_score(self, name: str, delta: int) -> int:
        raise NotImplementedError

    @abstractmethod
    def list_player_positions(self) -> List[Tuple[str, Cell]]:
        raise NotImplementedError

    @abstractmethod
    def ranked_scores(self) -> List[Tuple[str, int]]:
        raise NotImplementedError

    @abstractmethod
    def set_coin(self, cell: Cell, value: int) -> None:
        raise NotImplementedError

    @abstractmethod
    def get_coin(self, cell: Cell) -> Optional[int]:
        raise NotImplementedError

    @abstractmethod
    def remove_coin(self, cell: Cell) -> Optional[int]:
        raise NotImplementedError

    @abstractmethod
    def coin_count(self) -> int:
        raise NotImplementedError

    @abstractmethod
    def list_coins(self) -> List[Tuple[Cell, int]]:
        raise NotImplementedError

    @abstractmethod
    def apply_move(self, name: str, cell: Cell) -> MoveApplied:
        raise NotImplementedError

    @abstractmethod
    def snapshot(self) -> Snapshot:
        raise NotImplementedError

    def close(self) -> None:
        pass

from __future__ import annotations

import logging
import random
import threading

from coingrid.common.constants import HEIGHT, MAX_PLAYER_NAME_LENGTH, WIDTH
from coingrid.common.errors import UnknownPlayer
from coingrid.common.types import Direction, MoveOutcome, RegistrationOutcome
from coingrid.engine.coins import place_coins
from coingrid.engine.geometry import random_point, step
from coingrid.engine.state import CoinPlacement, MoveResult, Snapshot
from coingrid.persist.base import StateStore

logger = logging.getLogger(__name__)


def validate_name(name: object) -> bool:
    return isinstance(name, str) and 0 < len(name) <= MAX_PLAYER_NAME_LENGTH


class GameEngine:
    """Authoritative game engine over an injected state store.

    The engine holds no game state of its own; every read and write goes
    through the store's atomic primitives, so many engine calls may run
    concurrently from different threads.
    """

    def __init__(self, store: StateStore, seed: int | None = None) -> None:
        self.store = store
        self.rng = random.Random(seed)
        self._replenish_lock = threading.Lock()
        self.replenishments = 0

    def start(self) -> CoinPlacement | None:
        """Seed the board with coins unless some are already in play."""
        return self.place_coins()

    def place_coins(self) -> CoinPlacement | None:
        """Place a fresh batch of coins if the board has none left.

        Returns None when coins are still in play.
        """
        return self._replenish()

    def claim_player(self, name: str) -> RegistrationOutcome:
        """Register ``name`` and report why a rejected registration failed."""
        if not validate_name(name):
            return RegistrationOutcome.INVALID_NAME
        if self.store.is_name_used(name):
            return RegistrationOutcome.NAME_TAKEN
        # is_name_used is only a fast path; the claim decides concurrent races
        if not self.store.claim_name(name):
            return RegistrationOutcome.NAME_TAKEN
        self.store.create_player(name, random_point(self.rng, WIDTH, HEIGHT))
        logger.info("Registered player %s", name)
        return RegistrationOutcome.OK

    def register_player(self, name: str) -> bool:
        return self.claim_player(name) is RegistrationOutcome.OK

    def move(self, direction: object, name: str) -> MoveResult:
        """Move ``name`` one cell, collecting any coin on the destination.

        Unrecognized directions are ignored. Raises ``UnknownPlayer`` for a
        name that was never registered.
        """
        parsed = Direction.parse(direction)
        if parsed is None:
            return MoveResult(outcome=MoveOutcome.IGNORED)
        current = self.store.get_player_position(name)
        if current is None:
            raise UnknownPlayer(name)
        target = step(current, parsed)
        applied = self.store.apply_move(name, target)
        if applied.collected is None:
            result = MoveResult(outcome=MoveOutcome.MOVED, position=target)
        else:
            result = MoveResult(
                outcome=MoveOutcome.COLLECTED, position=target, collected=applied.collected
            )
        # an empty board after any move also retries a refill that failed earlier
        if applied.coins_remaining == 0:
            result.replenished = self._replenish() is not None
        return result

    def state(self) -> Snapshot:
        return self.store.snapshot()

    def _replenish(self) -> CoinPlacement | None:
        with self._replenish_lock:
            # another collector may have refilled the board while we waited
            if self.store.coin_count() > 0:
                return None
            placement = place_coins(self.store, self.rng)
            self.replenishments += 1
        logger.info(
            "Coin supply exhausted; placed batch %s (%s coins)",
            self.replenishments,
            len(placement.placed),
        )
        return placement

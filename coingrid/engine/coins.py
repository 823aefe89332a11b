from __future__ import annotations

import logging
import random

from coingrid.common.constants import COIN_TIERS, HEIGHT, NUM_COINS, WIDTH
from coingrid.common.errors import StoreUnavailable
from coingrid.engine.geometry import index_to_cell, permutation
from coingrid.engine.state import CoinPlacement
from coingrid.persist.base import StateStore

logger = logging.getLogger(__name__)


def coin_value(rank: int) -> int:
    """Value of the coin placed at position ``rank`` of a batch."""
    for bound, value in COIN_TIERS:
        if rank < bound:
            return value
    raise ValueError(f"Coin rank out of range: {rank}")


def place_coins(store: StateStore, rng: random.Random) -> CoinPlacement:
    """Scatter a batch of NUM_COINS coins over distinct cells.

    Cells come from a random permutation of the board, so no two coins in a
    batch share a cell. Each write is independent: failed cells are recorded
    and the remaining coins are still placed. Raises ``StoreUnavailable`` only
    if not a single coin could be written.
    """
    result = CoinPlacement()
    last_error: StoreUnavailable | None = None
    for rank, index in enumerate(permutation(rng, WIDTH * HEIGHT)[:NUM_COINS]):
        cell = index_to_cell(index)
        value = coin_value(rank)
        try:
            store.set_coin(cell, value)
        except StoreUnavailable as exc:
            last_error = exc
            result.failed.append(cell)
            continue
        result.placed.append((cell, value))
    if not result.complete:
        logger.warning(
            "Coin placement incomplete: %s placed, %s failed (%s)",
            len(result.placed),
            len(result.failed),
            last_error,
        )
        if not result.placed:
            raise StoreUnavailable("No coins could be placed") from last_error
    return result

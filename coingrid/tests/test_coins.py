import random
from collections import Counter

import pytest

from coingrid.common.constants import NUM_COINS
from coingrid.common.errors import StoreUnavailable
from coingrid.engine.coins import coin_value, place_coins
from coingrid.engine.engine import GameEngine
from coingrid.persist.memory import InMemoryStore


class FlakyStore(InMemoryStore):
    """Fails every ``every``-th coin write."""

    def __init__(self, every: int) -> None:
        super().__init__()
        self.every = every
        self.writes = 0

    def set_coin(self, cell, value):
        self.writes += 1
        if self.writes % self.every == 0:
            raise StoreUnavailable("write dropped")
        super().set_coin(cell, value)


def test_coin_value_tiers():
    assert coin_value(0) == 1
    assert coin_value(49) == 1
    assert coin_value(50) == 2
    assert coin_value(74) == 2
    assert coin_value(75) == 5
    assert coin_value(94) == 5
    assert coin_value(95) == 10
    assert coin_value(99) == 10
    with pytest.raises(ValueError):
        coin_value(100)


def test_place_coins_distinct_cells_and_tiers():
    store = InMemoryStore()
    placement = place_coins(store, random.Random(5))
    assert placement.complete
    assert store.coin_count() == NUM_COINS
    cells = [cell for cell, _ in placement.placed]
    assert len(set(cells)) == NUM_COINS
    assert Counter(v for _, v in store.list_coins()) == {1: 50, 2: 25, 5: 20, 10: 5}


def test_place_coins_tolerates_partial_failure():
    store = FlakyStore(every=10)
    placement = place_coins(store, random.Random(5))
    assert len(placement.failed) == 10
    assert len(placement.placed) == 90
    assert not placement.complete
    assert store.coin_count() == 90


def test_place_coins_raises_when_nothing_written():
    store = FlakyStore(every=1)
    with pytest.raises(StoreUnavailable):
        place_coins(store, random.Random(5))
    assert store.coin_count() == 0


def test_engine_start_seeds_once():
    engine = GameEngine(InMemoryStore(), seed=8)
    assert engine.start() is not None
    assert engine.start() is None
    assert engine.store.coin_count() == NUM_COINS
    assert engine.replenishments == 1


def test_engine_place_coins_refills_board():
    engine = GameEngine(InMemoryStore(), seed=8)
    engine.start()
    for cell, _ in engine.store.list_coins():
        engine.store.remove_coin(cell)
    placement = engine.place_coins()
    assert len(placement.placed) == NUM_COINS
    assert engine.store.coin_count() == NUM_COINS
    assert engine.replenishments == 2


def test_engine_place_coins_keeps_board_at_budget():
    engine = GameEngine(InMemoryStore(), seed=8)
    engine.start()
    engine.store.remove_coin(engine.store.list_coins()[0][0])
    assert engine.place_coins() is None
    assert engine.store.coin_count() == NUM_COINS - 1
    assert engine.replenishments == 1

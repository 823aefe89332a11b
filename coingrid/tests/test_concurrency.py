import random
import tempfile
import threading
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from pathlib import Path

import pytest

from coingrid.common.constants import COIN_TIERS, HEIGHT, NUM_COINS, WIDTH
from coingrid.common.types import MoveOutcome
from coingrid.engine.engine import GameEngine
from coingrid.persist.memory import InMemoryStore
from coingrid.persist.sqlite import SqliteStore

BACKENDS = ["memory", "sqlite"]
# sqlite moves go through the writer thread, so its runs are shorter
MOVES_PER_WALKER = {"memory": 3000, "sqlite": 300}
RACE_ROUNDS = {"memory": 200, "sqlite": 40}


@contextmanager
def _open_engine(backend: str, seed: int):
    if backend == "memory":
        yield GameEngine(InMemoryStore(), seed=seed)
        return
    with tempfile.TemporaryDirectory() as tmpdir:
        store = SqliteStore(str(Path(tmpdir) / "game.db"))
        try:
            yield GameEngine(store, seed=seed)
        finally:
            store.close()


def _race_registrations(engine: GameEngine, name: str, n: int) -> list[bool]:
    barrier = threading.Barrier(n)

    def _register() -> bool:
        barrier.wait()
        return engine.register_player(name)

    with ThreadPoolExecutor(max_workers=n) as pool:
        futures = [pool.submit(_register) for _ in range(n)]
        return [f.result() for f in futures]


def _walk(engine: GameEngine, name: str, seed: int, moves: int, totals: dict, lock) -> None:
    rng = random.Random(seed)
    for _ in range(moves):
        result = engine.move(rng.choice("UDLR"), name)
        if result.outcome is MoveOutcome.COLLECTED:
            with lock:
                totals["collected"] += 1
                totals["value"] += result.collected


@pytest.mark.parametrize("backend", BACKENDS)
def test_concurrent_same_name_registration(backend):
    with _open_engine(backend, seed=1) as engine:
        results = _race_registrations(engine, "alice", 16)
        assert results.count(True) == 1
        assert results.count(False) == 15
        assert len(engine.state().positions) == 1


@pytest.mark.parametrize("backend", BACKENDS)
def test_two_players_race_for_one_coin(backend):
    with _open_engine(backend, seed=2) as engine:
        engine.start()
        engine.register_player("left")
        engine.register_player("right")
        for _ in range(RACE_ROUNDS[backend]):
            engine.store.set_player_position("left", (9, 10))
            engine.store.set_player_position("right", (11, 10))
            engine.store.set_coin((10, 10), 5)
            before = dict(engine.store.ranked_scores())
            barrier = threading.Barrier(2)

            def _go(direction: str, name: str):
                barrier.wait()
                return engine.move(direction, name)

            with ThreadPoolExecutor(max_workers=2) as pool:
                futures = [pool.submit(_go, "R", "left"), pool.submit(_go, "L", "right")]
                results = [f.result() for f in futures]
            collected = [r for r in results if r.outcome is MoveOutcome.COLLECTED]
            assert len(collected) == 1
            after = dict(engine.store.ranked_scores())
            gained = sum(after[n] - before[n] for n in ("left", "right"))
            assert gained == 5
            assert engine.store.get_coin((10, 10)) is None


@pytest.mark.parametrize("backend", BACKENDS)
def test_snapshots_never_show_half_applied_collection(backend):
    with _open_engine(backend, seed=6) as engine:
        placement = engine.start()
        total_value = sum(value for _, value in placement.placed)
        names = ["p%d" % i for i in range(4)]
        for name in names:
            engine.register_player(name)
        stop = threading.Event()
        problems: list[str] = []
        observed = [0]
        totals = {"collected": 0, "value": 0}
        lock = threading.Lock()

        def _observer() -> None:
            while not stop.is_set():
                snapshot = engine.state()
                observed[0] += 1
                scored = sum(score for _, score in snapshot.scores)
                remaining = sum(value for _, value in snapshot.coins)
                # collected value sits in exactly one of scores or coins
                if scored + remaining != total_value:
                    problems.append("scores %s + coins %s" % (scored, remaining))

        observer = threading.Thread(target=_observer)
        observer.start()
        with ThreadPoolExecutor(max_workers=len(names)) as pool:
            futures = [
                pool.submit(_walk, engine, n, i, MOVES_PER_WALKER[backend], totals, lock)
                for i, n in enumerate(names)
            ]
            for f in futures:
                f.result()
        stop.set()
        observer.join()

        # the board never emptied, so one batch accounts for every point
        assert engine.replenishments == 1
        assert observed[0] > 0
        assert problems == []
        assert sum(score for _, score in engine.state().scores) == totals["value"]


@pytest.mark.parametrize("backend", BACKENDS)
def test_concurrent_moves_keep_invariants(backend):
    with _open_engine(backend, seed=3) as engine:
        engine.start()
        names = ["p%d" % i for i in range(8)]
        for name in names:
            engine.register_player(name)
        coin_values = {value for _, value in COIN_TIERS}
        stop = threading.Event()
        problems: list[str] = []
        totals = {"collected": 0, "value": 0}
        lock = threading.Lock()

        def _observer() -> None:
            while not stop.is_set():
                snapshot = engine.state()
                if len(snapshot.positions) != len(names):
                    problems.append("missing position")
                for _, (x, y) in snapshot.positions:
                    if not (0 <= x < WIDTH and 0 <= y < HEIGHT):
                        problems.append("out of bounds")
                if len(snapshot.coins) > NUM_COINS:
                    problems.append("too many coins")
                if any(v not in coin_values for _, v in snapshot.coins):
                    problems.append("bad coin value")

        observer = threading.Thread(target=_observer)
        observer.start()
        with ThreadPoolExecutor(max_workers=len(names)) as pool:
            futures = [
                pool.submit(_walk, engine, n, i, MOVES_PER_WALKER[backend], totals, lock)
                for i, n in enumerate(names)
            ]
            for f in futures:
                f.result()
        stop.set()
        observer.join()

        assert problems == []
        snapshot = engine.state()
        assert totals["collected"] + len(snapshot.coins) == NUM_COINS * engine.replenishments
        assert sum(score for _, score in snapshot.scores) == totals["value"]

from __future__ import annotations

import logging
import queue
import sqlite3
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager

from coingrid.common.errors import CoinGridError, StoreUnavailable, UnknownPlayer
from coingrid.common.types import Cell, format_cell, parse_cell
from coingrid.engine.state import MoveApplied, Snapshot
from coingrid.persist.base import StateStore

logger = logging.getLogger(__name__)

WRITER_POLL_SECONDS = 0.5


class SqliteStore(StateStore):
    """SQLite-backed store.

    All writes run on one writer thread, one transaction per primitive, so
    compound primitives (``claim_name``, ``remove_coin``, ``apply_move``) never
    interleave. Reads use per-thread connections; WAL mode lets them proceed
    while the writer commits.
    """

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path
        self._pragmas = (
            "PRAGMA journal_mode=WAL",
            "PRAGMA synchronous=NORMAL",
            "PRAGMA busy_timeout=5000",
        )
        self._local = threading.local()
        try:
            self._init_db()
        except sqlite3.Error as exc:
            raise StoreUnavailable(f"Cannot open {db_path}: {exc}") from exc
        self._write_queue: queue.Queue[
            tuple[Callable[[sqlite3.Connection], object], threading.Event, dict[str, object]] | None
        ] = queue.Queue()
        self._writer_stop = threading.Event()
        self._writer_thread = threading.Thread(
            target=self._writer_loop, name="sqlite-writer", daemon=True
        )
        self._writer_thread.start()

    def _writer_loop(self) -> None:
        try:
            conn = sqlite3.connect(self.db_path)
            self._apply_pragmas(conn)
        except sqlite3.Error:
            logger.exception("SQLite writer could not connect to %s", self.db_path)
            self._writer_stop.set()
            return
        while True:
            task = self._write_queue.get()
            if task is None:
                self._write_queue.task_done()
                break
            fn, event, holder = task
            try:
                holder["result"] = fn(conn)
                conn.commit()
            except CoinGridError as exc:
                conn.rollback()
                holder["error"] = exc
            except Exception as exc:
                conn.rollback()
                holder["error"] = exc
                logger.exception("SQLite write failed")
            finally:
                event.set()
                self._write_queue.task_done()
        conn.close()

    def _run_write(self, fn: Callable[[sqlite3.Connection], object]):
        if self._writer_stop.is_set():
            raise StoreUnavailable("Store writer stopped")
        event = threading.Event()
        holder: dict[str, object] = {"result": None, "error": None}
        self._write_queue.put((fn, event, holder))
        while not event.wait(WRITER_POLL_SECONDS):
            # close() or a failed connect can leave the task with no writer
            if not self._writer_thread.is_alive() and not event.is_set():
                raise StoreUnavailable("Store writer stopped")
        error = holder["error"]
        if isinstance(error, sqlite3.Error):
            raise StoreUnavailable(str(error)) from error
        if error is not None:
            raise error
        return holder["result"]

    @contextmanager
    def _reading(self) -> Iterator[sqlite3.Connection]:
        if self._writer_stop.is_set():
            raise StoreUnavailable("Store closed")
        try:
            yield self._get_conn()
        except sqlite3.Error as exc:
            raise StoreUnavailable(str(exc)) from exc

    def flush(self) -> None:
        self._write_queue.join()

    def _init_db(self) -> None:
        conn = self._get_conn()
        conn.execute("""
                CREATE TABLE IF NOT EXISTS used_names (
                    name TEXT PRIMARY KEY
                )
                """)
        conn.execute("""
                CREATE TABLE IF NOT EXISTS players (
                    name TEXT PRIMARY KEY,
                    cell TEXT NOT NULL
                )
                """)
        conn.execute("""
                CREATE TABLE IF NOT EXISTS scores (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL UNIQUE,
                    score INTEGER NOT NULL DEFAULT 0
                )
                """)
        conn.execute("""
                CREATE TABLE IF NOT EXISTS coins (
                    cell TEXT PRIMARY KEY,
                    value INTEGER NOT NULL
                )
                """)
        conn.execute("CREATE INDEX IF NOT EXISTS idx_scores_rank ON scores(score DESC, seq ASC)")
        conn.commit()

    def _apply_pragmas(self, conn: sqlite3.Connection) -> None:
        for pragma in self._pragmas:
            conn.execute(pragma)

    def _get_conn(self) -> sqlite3.Connection:
        conn = getattr(self._local, "conn", None)
        if conn is None:
            conn = sqlite3.connect(self.db_path)
            self._apply_pragmas(conn)
            self._local.conn = conn
        return conn

    def close(self) -> None:
        if self._writer_stop.is_set():
            return
        self.flush()
        self._writer_stop.set()
        self._write_queue.put(None)
        self._writer_thread.join(timeout=2)
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            conn.close()
            self._local.conn = None

    def reset(self) -> None:
        """Drop all game state (names, players, scores and coins)."""

        def _task(conn: sqlite3.Connection) -> None:
            for table in ("used_names", "players", "scores", "coins"):
                conn.execute(f"DELETE FROM {table}")

        self._run_write(_task)

    # Registry

    def is_name_used(self, name: str) -> bool:
        with self._reading() as conn:
            row = conn.execute("SELECT 1 FROM used_names WHERE name = ?", (name,)).fetchone()
        return row is not None

    def claim_name(self, name: str) -> bool:
        def _task(conn: sqlite3.Connection) -> bool:
            cur = conn.execute("INSERT OR IGNORE INTO used_names(name) VALUES (?)", (name,))
            return cur.rowcount == 1

        return bool(self._run_write(_task))

    # Players and scores

    def create_player(self, name: str, cell: Cell) -> None:
        def _task(conn: sqlite3.Connection) -> None:
            self._upsert_position(conn, name, cell)
            conn.execute("INSERT OR IGNORE INTO scores(name, score) VALUES (?, 0)", (name,))

        self._run_write(_task)

    def _upsert_position(self, conn: sqlite3.Connection, name: str, cell: Cell) -> None:
        conn.execute(
            "INSERT INTO players(name, cell) VALUES (?, ?) "
            "ON CONFLICT(name) DO UPDATE SET cell = excluded.cell",
            (name, format_cell(cell)),
        )

    def set_player_position(self, name: str, cell: Cell) -> None:
        def _task(conn: sqlite3.Connection) -> None:
            self._upsert_position(conn, name, cell)

        self._run_write(_task)

    def get_player_position(self, name: str) -> Cell | None:
        with self._reading() as conn:
            row = conn.execute("SELECT cell FROM players WHERE name = ?", (name,)).fetchone()
        return parse_cell(row[0]) if row else None

    def set_score(self, name: str, score: int) -> None:
        def _task(conn: sqlite3.Connection) -> None:
            conn.execute(
                "INSERT INTO scores(name, score) VALUES (?, ?) "
                "ON CONFLICT(name) DO UPDATE SET score = excluded.score",
                (name, score),
            )

        self._run_write(_task)

    def increment_score(self, name: str, delta: int) -> int:
        def _task(conn: sqlite3.Connection) -> int:
            return self._add_score(conn, name, delta)

        return int(self._run_write(_task))

    def _add_score(self, conn: sqlite3.Connection, name: str, delta: int) -> int:
        conn.execute(
            "INSERT INTO scores(name, score) VALUES (?, ?) "
            "ON CONFLICT(name) DO UPDATE SET score = score + excluded.score",
            (name, delta),
        )
        row = conn.execute("SELECT score FROM scores WHERE name = ?", (name,)).fetchone()
        return int(row[0])

    def list_player_positions(self) -> list[tuple[str, Cell]]:
        with self._reading() as conn:
            return self._select_positions(conn)

    def ranked_scores(self) -> list[tuple[str, int]]:
        with self._reading() as conn:
            return self._select_scores(conn)

    def _select_positions(self, conn: sqlite3.Connection) -> list[tuple[str, Cell]]:
        rows = conn.execute("SELECT name, cell FROM players ORDER BY rowid").fetchall()
        return [(r[0], parse_cell(r[1])) for r in rows]

    def _select_scores(self, conn: sqlite3.Connection) -> list[tuple[str, int]]:
        rows = conn.execute("SELECT name, score FROM scores ORDER BY score DESC, seq ASC").fetchall()
        return [(r[0], int(r[1])) for r in rows]

    # Coins

    def set_coin(self, cell: Cell, value: int) -> None:
        def _task(conn: sqlite3.Connection) -> None:
            conn.execute(
                "INSERT INTO coins(cell, value) VALUES (?, ?) "
                "ON CONFLICT(cell) DO UPDATE SET value = excluded.value",
                (format_cell(cell), value),
            )

        self._run_write(_task)

    def get_coin(self, cell: Cell) -> int | None:
        with self._reading() as conn:
            row = conn.execute(
                "SELECT value FROM coins WHERE cell = ?", (format_cell(cell),)
            ).fetchone()
        return int(row[0]) if row else None

    def remove_coin(self, cell: Cell) -> int | None:
        def _task(conn: sqlite3.Connection) -> int | None:
            return self._take_coin(conn, cell)

        return self._run_write(_task)

    def _take_coin(self, conn: sqlite3.Connection, cell: Cell) -> int | None:
        key = format_cell(cell)
        row = conn.execute("SELECT value FROM coins WHERE cell = ?", (key,)).fetchone()
        if not row:
            return None
        conn.execute("DELETE FROM coins WHERE cell = ?", (key,))
        return int(row[0])

    def coin_count(self) -> int:
        with self._reading() as conn:
            row = conn.execute("SELECT COUNT(*) FROM coins").fetchone()
        return int(row[0]) if row else 0

    def list_coins(self) -> list[tuple[Cell, int]]:
        with self._reading() as conn:
            return self._select_coins(conn)

    def _select_coins(self, conn: sqlite3.Connection) -> list[tuple[Cell, int]]:
        rows = conn.execute("SELECT cell, value FROM coins ORDER BY rowid").fetchall()
        return [(parse_cell(r[0]), int(r[1])) for r in rows]

    # Compound primitives

    def apply_move(self, name: str, cell: Cell) -> MoveApplied:
        def _task(conn: sqlite3.Connection) -> MoveApplied:
            known = conn.execute("SELECT 1 FROM players WHERE name = ?", (name,)).fetchone()
            if not known:
                raise UnknownPlayer(name)
            self._upsert_position(conn, name, cell)
            value = self._take_coin(conn, cell)
            if value is not None:
                self._add_score(conn, name, value)
            row = conn.execute("SELECT COUNT(*) FROM coins").fetchone()
            return MoveApplied(collected=value, coins_remaining=int(row[0]))

        return self._run_write(_task)

    def snapshot(self) -> Snapshot:
        with self._reading() as conn:
            # one read transaction so all three listings see the same commit
            conn.execute("BEGIN")
            try:
                return Snapshot(
                    positions=self._select_positions(conn),
                    scores=self._select_scores(conn),
                    coins=self._select_coins(conn),
                )
            finally:
                conn.rollback()

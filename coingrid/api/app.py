from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict

from fastapi import FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from coingrid.api.models import (
    MoveRequest,
    MoveResponse,
    PlayerResponse,
    RegisterRequest,
    RegisterResponse,
    StateResponse,
)
from coingrid.common.config import settings
from coingrid.common.errors import StoreUnavailable, UnknownPlayer
from coingrid.common.types import RegistrationOutcome, format_cell
from coingrid.engine.engine import GameEngine
from coingrid.engine.state import MoveResult
from coingrid.persist.base import StateStore
from coingrid.persist.factory import open_store


@asynccontextmanager
async def _lifespan(_app: FastAPI) -> AsyncIterator[None]:
    await _startup()
    try:
        yield
    finally:
        await _shutdown()


app = FastAPI(title="COINGRID", lifespan=_lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

logger = logging.getLogger(__name__)

SEND_TIMEOUT = 1.0

store: StateStore | None = None
engine: GameEngine | None = None
broadcast_task: asyncio.Task | None = None

# Connected game clients
clients: set[WebSocket] = set()
clients_lock = asyncio.Lock()
state_queue: asyncio.Queue[Dict[str, object]] | None = None


def _get_engine() -> GameEngine:
    assert engine is not None
    return engine


def _move_response(result: MoveResult) -> MoveResponse:
    return MoveResponse(
        outcome=result.outcome.value,
        position=format_cell(result.position) if result.position else None,
        collected=result.collected,
        replenished=result.replenished,
    )


@app.exception_handler(StoreUnavailable)
async def _store_unavailable(request: Request, exc: StoreUnavailable) -> JSONResponse:
    logger.error("Store unavailable during %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"detail": "Store unavailable"}
    )


@app.exception_handler(UnknownPlayer)
async def _unknown_player(request: Request, exc: UnknownPlayer) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


async def _startup() -> None:
    global store, engine, broadcast_task, state_queue
    store = open_store(settings)
    engine = GameEngine(store, seed=settings.random_seed)
    engine.start()
    logger.info("Game engine started with %s store", settings.store)
    state_queue = asyncio.Queue(maxsize=1)
    if settings.enable_broadcast_loop:
        broadcast_task = asyncio.create_task(broadcast_loop())
    else:
        logger.warning("Broadcast loop disabled via COINGRID_ENABLE_BROADCAST_LOOP")


async def _shutdown() -> None:
    global broadcast_task
    if broadcast_task is not None:
        broadcast_task.cancel()
        broadcast_task = None
    if store is not None:
        store.close()


async def broadcast_loop() -> None:
    game_engine = _get_engine()
    sender = asyncio.create_task(_broadcast_states())
    try:
        while True:
            try:
                snapshot = await asyncio.to_thread(game_engine.state)
            except StoreUnavailable:
                logger.exception("Snapshot failed; skipping broadcast")
            else:
                assert state_queue is not None
                _queue_latest(state_queue, {"type": "state", **snapshot.to_dict()})
            await asyncio.sleep(settings.broadcast_seconds)
    finally:
        sender.cancel()


def _queue_latest(queue: asyncio.Queue[Dict[str, object]], state: Dict[str, object]) -> None:
    try:
        queue.put_nowait(state)
    except asyncio.QueueFull:
        try:
            queue.get_nowait()
        except asyncio.QueueEmpty:
            pass
        try:
            queue.put_nowait(state)
        except asyncio.QueueFull:
            pass


async def _send_state(ws: WebSocket, state: Dict[str, object]) -> bool:
    try:
        await asyncio.wait_for(ws.send_json(state), timeout=SEND_TIMEOUT)
        return True
    except Exception:
        logger.exception("Failed to send state update")
        return False


async def _broadcast_states() -> None:
    assert state_queue is not None
    while True:
        try:
            state = await state_queue.get()
        except asyncio.CancelledError:
            break
        async with clients_lock:
            targets = list(clients)
        if not targets:
            continue
        results = await asyncio.gather(
            *(_send_state(ws, state) for ws in targets),
            return_exceptions=True,
        )
        stale = [ws for ws, ok in zip(targets, results) if ok is not True]
        if stale:
            async with clients_lock:
                for ws in stale:
                    clients.discard(ws)


@app.post("/players", response_model=RegisterResponse)
def register_player(req: RegisterRequest) -> RegisterResponse:
    outcome = _get_engine().claim_player(req.name)
    if outcome is RegistrationOutcome.INVALID_NAME:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid name")
    if outcome is RegistrationOutcome.NAME_TAKEN:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Name taken")
    return RegisterResponse(registered=True, name=req.name)


@app.post("/players/{name}/move", response_model=MoveResponse)
def move_player(name: str, req: MoveRequest) -> MoveResponse:
    result = _get_engine().move(req.direction, name)
    return _move_response(result)


@app.get("/players/{name}", response_model=PlayerResponse)
def player_info(name: str) -> PlayerResponse:
    snapshot = _get_engine().state()
    pos = snapshot.position_of(name)
    if pos is None:
        raise UnknownPlayer(name)
    return PlayerResponse(name=name, position=format_cell(pos), score=snapshot.score_of(name) or 0)


@app.get("/state", response_model=StateResponse)
def game_state() -> StateResponse:
    return StateResponse(**_get_engine().state().to_dict())


@app.websocket("/ws")
async def game_ws(ws: WebSocket) -> None:
    await ws.accept()
    async with clients_lock:
        clients.add(ws)
    game_engine = _get_engine()
    name: str | None = None
    try:
        while True:
            try:
                msg = await ws.receive_json()
            except WebSocketDisconnect:
                break
            except Exception:
                logger.exception("Game websocket receive failed")
                break
            if not isinstance(msg, dict):
                continue
            kind = msg.get("type")
            if kind == "name":
                if name is not None:
                    await ws.send_json({"type": "registered", "ok": False, "name": name})
                    continue
                requested = msg.get("name")
                try:
                    ok = isinstance(requested, str) and await asyncio.to_thread(
                        game_engine.register_player, requested
                    )
                except StoreUnavailable:
                    logger.exception("Registration failed for %s", requested)
                    await ws.send_json({"type": "error", "detail": "Store unavailable"})
                    continue
                if ok:
                    name = requested
                await ws.send_json({"type": "registered", "ok": ok, "name": requested})
                if ok:
                    snapshot = await asyncio.to_thread(game_engine.state)
                    await ws.send_json({"type": "state", **snapshot.to_dict()})
            elif kind == "move":
                if name is None:
                    await ws.send_json({"type": "error", "detail": "Not registered"})
                    continue
                try:
                    await asyncio.to_thread(game_engine.move, msg.get("direction"), name)
                except StoreUnavailable:
                    logger.exception("Move failed for %s", name)
                    await ws.send_json({"type": "error", "detail": "Store unavailable"})
    finally:
        async with clients_lock:
            clients.discard(ws)


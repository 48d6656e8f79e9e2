"""FastAPI live server: WebSocket state feed, history API and admin controls."""

import asyncio
import json
import logging
import math
import secrets
from contextlib import asynccontextmanager, suppress
from typing import Any, AsyncIterator

from fastapi import FastAPI, HTTPException, Query, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from quipslop.game import GameLoop
from quipslop.snapshot import round_to_dict
from quipslop.storage import RoundStore

logger = logging.getLogger(__name__)


def encode_state(snapshot: dict[str, Any]) -> str:
    return json.dumps({"type": "state", "data": snapshot}, ensure_ascii=False)


class SnapshotHub:
    """Fans published snapshots out to connected WebSocket clients.

    Each client holds at most one pending message; a newer snapshot replaces
    an undelivered one, so a slow client never blocks the game loop.
    """

    def __init__(self) -> None:
        self._queues: set[asyncio.Queue[str]] = set()

    @property
    def client_count(self) -> int:
        return len(self._queues)

    def connect(self) -> asyncio.Queue[str]:
        queue: asyncio.Queue[str] = asyncio.Queue(maxsize=1)
        self._queues.add(queue)
        return queue

    def disconnect(self, queue: asyncio.Queue[str]) -> None:
        self._queues.discard(queue)

    def broadcast(self, snapshot: dict[str, Any]) -> None:
        if not self._queues:
            return
        message = encode_state(snapshot)
        for queue in list(self._queues):
            if queue.full():
                queue.get_nowait()
            queue.put_nowait(message)


def create_app(
    game: GameLoop,
    store: RoundStore,
    *,
    total_rounds: int | None = None,
    admin_secret: str | None = None,
    history_page_size: int = 10,
    run_game: bool = True,
) -> FastAPI:
    """Build the app. With ``run_game`` the game loop runs as a background task."""
    hub = SnapshotHub()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        unsubscribe = game.broadcaster.subscribe(hub.broadcast)
        game_task = asyncio.create_task(game.run(total_rounds)) if run_game else None
        logger.info("Live server started (%s rounds)", "infinite" if total_rounds is None else total_rounds)
        yield
        unsubscribe()
        if game_task is not None:
            game_task.cancel()
            with suppress(asyncio.CancelledError):
                await game_task
        store.close()
        logger.info("Live server stopped")

    app = FastAPI(title="Quipslop", lifespan=lifespan)
    app.state.hub = hub
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    def _require_admin(secret: str | None) -> None:
        if not admin_secret or not secret or not secrets.compare_digest(secret, admin_secret):
            raise HTTPException(status_code=401, detail="Unauthorized")

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {"status": "ok", "generation": game.generation, "clients": hub.client_count}

    @app.get("/api/state")
    async def state() -> dict[str, Any]:
        return game.snapshot()

    # Sync so the archive query runs in the threadpool, off the event loop.
    @app.get("/api/history")
    def history(page: int = Query(1, ge=1)) -> dict[str, Any]:
        rounds, total = store.list_rounds(page, history_page_size)
        return {
            "rounds": [round_to_dict(r) for r in rounds],
            "total": total,
            "page": page,
            "pageSize": history_page_size,
            "totalPages": max(1, math.ceil(total / history_page_size)),
        }

    @app.post("/api/pause", response_class=PlainTextResponse)
    async def pause(secret: str | None = None) -> str:
        _require_admin(secret)
        game.pause()
        return "Paused"

    @app.post("/api/resume", response_class=PlainTextResponse)
    async def resume(secret: str | None = None) -> str:
        _require_admin(secret)
        game.resume()
        return "Resumed"

    @app.post("/api/reset", response_class=PlainTextResponse)
    async def reset(secret: str | None = None) -> str:
        _require_admin(secret)
        game.reset()
        return "Reset"

    @app.websocket("/ws")
    async def websocket_feed(websocket: WebSocket) -> None:
        await websocket.accept()
        queue = hub.connect()

        async def send_updates() -> None:
            await websocket.send_text(encode_state(game.snapshot()))
            while True:
                await websocket.send_text(await queue.get())

        async def wait_for_close() -> None:
            # Spectator-only: incoming messages are ignored.
            while True:
                await websocket.receive_text()

        sender = asyncio.create_task(send_updates())
        receiver = asyncio.create_task(wait_for_close())
        try:
            done, pending = await asyncio.wait({sender, receiver}, return_when=asyncio.FIRST_COMPLETED)
            for task in pending:
                task.cancel()
            for task in done:
                exc = task.exception()
                if exc is not None and not isinstance(exc, WebSocketDisconnect):
                    logger.warning("WebSocket client error: %s", exc)
        finally:
            hub.disconnect(queue)

    return app

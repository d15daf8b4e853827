from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING, Any

import structlog
from starlette.applications import Starlette
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse
from starlette.routing import Route, WebSocketRoute

from arena.messaging.router import MessageRouter
from arena.server.settings import ArenaServerSettings
from arena.server.websocket import websocket_endpoint
from arena.session.manager import SessionManager
from arena.session.models import GameSettings
from arena.session.scheduler import PeriodicTask, PeriodicTaskGroup
from shared.logging import setup_logging

logger = structlog.get_logger()

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from starlette.requests import Request
    from starlette.websockets import WebSocket


async def health(_request: Request) -> JSONResponse:
    return JSONResponse({"status": "ok"})


async def status(request: Request) -> JSONResponse:
    session_manager: SessionManager = request.app.state.session_manager
    snapshot = session_manager.status()
    return JSONResponse({"status": "ok", **snapshot.model_dump()})


def build_session_manager(settings: ArenaServerSettings) -> SessionManager:
    game_settings = GameSettings(
        player_speed=settings.player_speed,
        player_size=settings.player_size,
        map_width=settings.map_width,
        map_height=settings.map_height,
    )
    return SessionManager(
        game_settings,
        room_ids=settings.rooms,
        max_players=settings.max_players,
        chat_max_messages=settings.chat_max_messages,
        chat_window_seconds=settings.chat_window_seconds,
        idle_timeout_seconds=settings.idle_timeout_seconds,
        outbox_size=settings.outbox_size,
    )


def build_periodic_tasks(settings: ArenaServerSettings, session_manager: SessionManager) -> PeriodicTaskGroup:
    return PeriodicTaskGroup(
        [
            PeriodicTask("broadcast", settings.broadcast_interval, session_manager.broadcast_tick),
            PeriodicTask("eviction", settings.eviction_interval_seconds, session_manager.evict_idle_players),
            PeriodicTask("stats", settings.stats_interval_seconds, session_manager.log_stats),
        ],
    )


def _handle_loop_exception(_loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
    exception = context.get("exception")
    logger.error(
        "unhandled exception in event loop",
        message=context.get("message"),
        exc_info=exception,
    )


def create_app(
    settings: ArenaServerSettings | None = None,
    session_manager: SessionManager | None = None,
    message_router: MessageRouter | None = None,
) -> Starlette:
    if settings is None:  # pragma: no cover
        settings = ArenaServerSettings()

    if session_manager is None:
        session_manager = build_session_manager(settings)

    if message_router is None:
        message_router = MessageRouter(session_manager)

    async def ws_endpoint(websocket: WebSocket) -> None:
        await websocket_endpoint(websocket, message_router, settings.default_room)

    routes = [
        Route("/health", health, methods=["GET"]),
        Route("/status", status, methods=["GET"]),
        WebSocketRoute("/ws", ws_endpoint),
        WebSocketRoute("/ws/{room_id}", ws_endpoint),
    ]

    @contextlib.asynccontextmanager
    async def lifespan(_app: Starlette) -> AsyncIterator[None]:
        loop = asyncio.get_running_loop()
        previous_handler = loop.get_exception_handler()
        loop.set_exception_handler(_handle_loop_exception)
        tasks = build_periodic_tasks(settings, session_manager)
        tasks.start_all()
        logger.info("arena server ready", rooms=settings.rooms, tick_rate=settings.tick_rate)
        try:
            yield
        finally:
            logger.info("arena server shutting down", connections=session_manager.connection_count)
            session_manager.announce_shutdown()
            await tasks.stop_all()
            await session_manager.close_all(settings.shutdown_grace_seconds)
            loop.set_exception_handler(previous_handler)

    app = Starlette(routes=routes, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.cors_origins,
        allow_methods=["GET"],
        allow_headers=["Content-Type"],
    )
    app.state.settings = settings
    app.state.session_manager = session_manager

    return app


def get_app() -> Starlette:  # pragma: no cover
    """ASGI application factory for production use (e.g., uvicorn --factory)."""
    _settings = ArenaServerSettings()
    setup_logging(log_dir=_settings.log_dir)
    return create_app(settings=_settings)

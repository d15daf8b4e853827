from __future__ import annotations

import asyncio
import contextlib
import resource
import time
from typing import TYPE_CHECKING, Any

import structlog

from arena.messaging.types import ErrorMessage, GameStateMessage, ServerInfoMessage, ServerShutdownMessage
from arena.session.broadcast import route_outbound
from arena.session.chat_guard import ChatGuard
from arena.session.handlers import INACTIVITY_REASON, Departure, dispatch
from arena.session.models import StatusSnapshot, to_millis
from arena.session.outbound import to_room
from arena.session.outbox import DEFAULT_OUTBOX_SIZE, ConnectionOutbox
from arena.session.registry import PlayerRegistry
from arena.session.state import SessionState

if TYPE_CHECKING:
    import random
    from collections.abc import Callable, Iterable

    from arena.messaging.protocol import ConnectionProtocol
    from arena.messaging.types import SessionErrorCode
    from arena.session.models import GameSettings
    from arena.session.outbound import Outbound

logger = structlog.get_logger()

SHUTDOWN_TEXT = "Server is shutting down"
SHUTDOWN_CLOSE_CODE = 1001
SHUTDOWN_CLOSE_REASON = "server_shutdown"


class SessionManager:
    """Own every room's state, the connection table and the outboxes.

    All mutation of a room goes through its asyncio.Lock: inbound events,
    the broadcast tick and the eviction sweep. Handler output is routed to
    per-connection outboxes with non-blocking puts, so the lock is never
    held across a socket write.
    """

    def __init__(  # noqa: PLR0913
        self,
        game_settings: GameSettings,
        *,
        room_ids: Iterable[str] = ("main",),
        max_players: int = 20,
        chat_max_messages: int = 5,
        chat_window_seconds: float = 60.0,
        idle_timeout_seconds: float = 300.0,
        outbox_size: int = DEFAULT_OUTBOX_SIZE,
        clock: Callable[[], float] = time.time,
        rng: random.Random | None = None,
    ) -> None:
        self._game_settings = game_settings
        self._max_players = max_players
        self._idle_timeout_seconds = idle_timeout_seconds
        self._outbox_size = outbox_size
        self._clock = clock
        self._started_at = time.monotonic()
        self._rooms: dict[str, SessionState] = {}
        self._room_locks: dict[str, asyncio.Lock] = {}
        self._connections: dict[str, ConnectionProtocol] = {}  # connection_id -> connection
        self._outboxes: dict[str, ConnectionOutbox] = {}  # connection_id -> outbox

        for room_id in room_ids:
            registry = PlayerRegistry(room_id, game_settings, max_players, rng=rng)
            self._rooms[room_id] = SessionState.create(
                room_id,
                game_settings,
                max_players,
                chat_guard=ChatGuard(max_messages=chat_max_messages, window_seconds=chat_window_seconds),
                registry=registry,
            )
            self._room_locks[room_id] = asyncio.Lock()
        if not self._rooms:
            raise ValueError("at least one room is required")
        self._default_room_id = next(iter(self._rooms))

    # --- Lookup ---

    def has_room(self, room_id: str) -> bool:
        return room_id in self._rooms

    def get_room(self, room_id: str) -> SessionState | None:
        return self._rooms.get(room_id)

    @property
    def room_ids(self) -> list[str]:
        return list(self._rooms)

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    @property
    def player_count(self) -> int:
        return sum(state.player_count for state in self._rooms.values())

    def get_outbox(self, connection_id: str) -> ConnectionOutbox | None:
        return self._outboxes.get(connection_id)

    # --- Connection lifecycle ---

    def register_connection(self, connection: ConnectionProtocol) -> None:
        """Track a new connection, start its writer and greet it with serverInfo."""
        state = self._rooms[connection.room_id]
        outbox = ConnectionOutbox(connection, maxsize=self._outbox_size)
        self._connections[connection.connection_id] = connection
        self._outboxes[connection.connection_id] = outbox
        outbox.start()

        # Read without the room lock: nothing awaits between the count and the
        # enqueue, so no handler can run in between.
        outbox.put(
            ServerInfoMessage(
                players_online=state.player_count,
                max_players=state.max_players,
                server_time=to_millis(self._clock()),
                settings=self._game_settings.to_view(),
            ).model_dump(),
        )
        logger.info("connection registered", connection_id=connection.connection_id, room_id=connection.room_id)

    async def dispatch(self, connection: ConnectionProtocol, event: Any) -> None:  # noqa: ANN401
        """Apply one inbound event to the connection's room and deliver the results."""
        room_id = connection.room_id
        state = self._rooms[room_id]
        async with self._room_locks[room_id]:
            outbound = dispatch(state, connection.connection_id, event, self._clock())
            self._route(state, outbound)

    async def disconnect(self, connection: ConnectionProtocol, reason: str) -> None:
        """Remove the player (if joined), notify the room and drop the connection."""
        connection_id = connection.connection_id
        if connection.room_id in self._rooms:
            await self.dispatch(connection, Departure(reason))

        self._connections.pop(connection_id, None)
        outbox = self._outboxes.pop(connection_id, None)
        if outbox is not None:
            await outbox.stop()
        logger.info("connection removed", connection_id=connection_id, reason=reason)

    def send_error(self, connection_id: str, code: SessionErrorCode, message: str) -> bool:
        return self._enqueue(connection_id, ErrorMessage(code=code, message=message).model_dump())

    # --- Periodic work ---

    async def broadcast_tick(self) -> None:
        """Send a full state snapshot to every player of every non-empty room."""
        for room_id, state in self._rooms.items():
            async with self._room_locks[room_id]:
                if state.is_empty:
                    continue
                message = GameStateMessage(
                    players=state.player_views(),
                    game_started=state.started,
                    players_count=state.player_count,
                    server_time=to_millis(self._clock()),
                )
                self._route(state, [to_room(message)])

    async def evict_idle_players(self) -> list[str]:
        """Remove players idle longer than the timeout and close their connections."""
        evicted: list[str] = []
        for room_id, state in self._rooms.items():
            async with self._room_locks[room_id]:
                now = self._clock()
                for connection_id in state.registry.idle_since(now - self._idle_timeout_seconds):
                    logger.info("evicting idle player", connection_id=connection_id, room_id=room_id)
                    outbound = dispatch(state, connection_id, Departure(INACTIVITY_REASON), now)
                    self._route(state, outbound)
                    evicted.append(connection_id)

        # Close outside the locks; the transport's own disconnect path then
        # finds no player and only releases the connection.
        for connection_id in evicted:
            connection = self._connections.get(connection_id)
            if connection is not None:
                with contextlib.suppress(RuntimeError, OSError, ConnectionError):
                    await connection.close(reason=INACTIVITY_REASON)
        return evicted

    def status(self) -> StatusSnapshot:
        default_room = self._rooms[self._default_room_id]
        return StatusSnapshot(
            players_online=self.player_count,
            uptime=time.monotonic() - self._started_at,
            game_started=default_room.started,
        )

    async def log_stats(self) -> None:
        max_rss_kb = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
        logger.info(
            "server stats",
            players_online=self.player_count,
            connections=self.connection_count,
            rooms={room_id: state.player_count for room_id, state in self._rooms.items()},
            started_rooms=[room_id for room_id, state in self._rooms.items() if state.started],
            uptime_minutes=round((time.monotonic() - self._started_at) / 60, 1),
            max_rss_mb=round(max_rss_kb / 1024, 1),
        )

    # --- Shutdown ---

    def announce_shutdown(self) -> None:
        message = ServerShutdownMessage(message=SHUTDOWN_TEXT, timestamp=to_millis(self._clock())).model_dump()
        for connection_id in list(self._connections):
            self._enqueue(connection_id, message)

    async def close_all(self, grace_seconds: float) -> None:
        """Give outboxes up to grace_seconds to drain, then close every connection."""
        try:
            await asyncio.wait_for(self.flush(), timeout=grace_seconds)
        except TimeoutError:
            logger.warning("outboxes not drained before shutdown grace period", grace_seconds=grace_seconds)

        for connection in list(self._connections.values()):
            with contextlib.suppress(RuntimeError, OSError, ConnectionError):
                await connection.close(code=SHUTDOWN_CLOSE_CODE, reason=SHUTDOWN_CLOSE_REASON)
        for outbox in list(self._outboxes.values()):
            await outbox.stop()
        logger.info("all connections closed", connections=len(self._connections))

    async def drain(self, connection_id: str, timeout: float) -> None:
        """Wait up to timeout for one connection's queued messages to be written."""
        outbox = self._outboxes.get(connection_id)
        if outbox is None:
            return
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(outbox.join(), timeout=timeout)

    async def flush(self) -> None:
        """Wait until every outbox has written or discarded what it holds."""
        await asyncio.gather(*(outbox.join() for outbox in list(self._outboxes.values())))

    # --- Internals ---

    def _route(self, state: SessionState, outbound: list[Outbound]) -> None:
        if outbound:
            route_outbound(outbound, state.players.keys(), self._enqueue)

    def _enqueue(self, connection_id: str, message: dict[str, Any]) -> bool:
        outbox = self._outboxes.get(connection_id)
        if outbox is None:
            return False
        return outbox.put(message)

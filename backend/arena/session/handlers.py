"""Inbound event handlers.

Each handler is a synchronous transform over one room's SessionState:
(state, connection_id, message, now) -> [Outbound]. Handlers never touch the
transport, so they can be exercised without connections. SessionManager runs
them under the room lock and routes the returned messages.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import structlog

from arena.messaging.types import (
    ChatBroadcastMessage,
    ChatErrorMessage,
    ChatKind,
    ChatMessage,
    ErrorMessage,
    GameResetMessage,
    GameStartedMessage,
    PingMessage,
    PlayerJoinedMessage,
    PlayerJoinMessage,
    PlayerLeftMessage,
    PlayerMovedMessage,
    PlayerMoveMessage,
    PlayersCountUpdateMessage,
    PongMessage,
    ResetGameMessage,
    ScoreUpdateMessage,
    SessionErrorCode,
    StartGameMessage,
    UpdateScoreMessage,
    WelcomeStateMessage,
)
from arena.session.chat_guard import clean_chat_text
from arena.session.models import to_millis
from arena.session.outbound import Outbound, to_connection, to_room
from arena.session.registry import CapacityExceededError
from arena.session.state import SessionState

logger = structlog.get_logger()

SYSTEM_PLAYER_ID = "system"
SYSTEM_PLAYER_NAME = "System"
DEFAULT_INITIATOR_NAME = "Player"

JOIN_COLOR = "#4CAF50"
START_COLOR = "#FF9800"
RESET_COLOR = "#F44336"
LEAVE_COLOR = "#FF5722"

SERVER_FULL_TEXT = "Server is full! Please try again later."
CHAT_LIMIT_TEXT = "Too many messages! Please wait a moment."


@dataclass(frozen=True)
class Departure:
    """Internal event: the player's connection is gone (disconnect or eviction)."""

    reason: str


INACTIVITY_REASON = "inactivity"

Handler = Callable[[SessionState, str, Any, float], list[Outbound]]


def _system_chat(text: str, color: str, now: float) -> ChatBroadcastMessage:
    return ChatBroadcastMessage(
        kind=ChatKind.SYSTEM,
        player_id=SYSTEM_PLAYER_ID,
        player_name=SYSTEM_PLAYER_NAME,
        message=text,
        timestamp=to_millis(now),
        color=color,
    )


def _initiator_name(state: SessionState, connection_id: str) -> str:
    player = state.registry.get(connection_id)
    return player.name if player is not None else DEFAULT_INITIATOR_NAME


def handle_join(state: SessionState, connection_id: str, message: PlayerJoinMessage, now: float) -> list[Outbound]:
    if connection_id in state.registry:
        logger.debug("ignoring repeated join", connection_id=connection_id, room_id=state.room_id)
        return []

    try:
        player = state.registry.join(connection_id, message.name, message.color, now)
    except CapacityExceededError:
        logger.info("join rejected, room full", connection_id=connection_id, room_id=state.room_id)
        return [to_connection(connection_id, ErrorMessage(code=SessionErrorCode.SERVER_FULL, message=SERVER_FULL_TEXT))]

    logger.info(
        "player joined",
        connection_id=connection_id,
        player_name=player.name,
        room_id=state.room_id,
        players=state.player_count,
    )
    snapshot = state.snapshot(now)
    return [
        to_connection(connection_id, WelcomeStateMessage(**snapshot.model_dump(), your_id=connection_id)),
        to_room(PlayerJoinedMessage(**player.to_view().model_dump()), exclude_connection_id=connection_id),
        to_room(PlayersCountUpdateMessage(count=state.player_count)),
        to_room(_system_chat(f"{player.name} joined the game!", JOIN_COLOR, now)),
    ]


def handle_move(state: SessionState, connection_id: str, message: PlayerMoveMessage, now: float) -> list[Outbound]:
    position = state.registry.move(connection_id, message.x, message.y, now)
    if position is None:
        return []
    x, y = position
    return [
        to_room(
            PlayerMovedMessage(id=connection_id, x=x, y=y, timestamp=to_millis(now)),
            exclude_connection_id=connection_id,
        ),
    ]


def handle_chat(state: SessionState, connection_id: str, message: ChatMessage, now: float) -> list[Outbound]:
    player = state.registry.get(connection_id)
    if player is None:
        return []

    text = clean_chat_text(message.message)
    if not text:
        return []

    if not state.chat_guard.allow(player.chat_history, now):
        logger.info("chat rate limited", connection_id=connection_id, player_name=player.name)
        return [to_connection(connection_id, ChatErrorMessage(message=CHAT_LIMIT_TEXT))]

    player.last_activity = now
    return [
        to_room(
            ChatBroadcastMessage(
                kind=ChatKind.PLAYER,
                player_id=connection_id,
                player_name=player.name,
                message=text,
                timestamp=to_millis(now),
                color=player.color,
            ),
        ),
    ]


def handle_score(state: SessionState, connection_id: str, message: UpdateScoreMessage, now: float) -> list[Outbound]:
    player = state.registry.update_score(connection_id, message.score, now)
    if player is None:
        return []
    return [
        to_room(
            ScoreUpdateMessage(
                player_id=connection_id,
                player_name=player.name,
                score=player.score,
                level=player.level,
            ),
        ),
    ]


def handle_start(state: SessionState, connection_id: str, _message: StartGameMessage, now: float) -> list[Outbound]:
    if not state.set_started(True):
        return []
    initiator = _initiator_name(state, connection_id)
    logger.info("game started", room_id=state.room_id, initiated_by=initiator)
    return [
        to_room(GameStartedMessage(start_time=to_millis(now), initiated_by=initiator)),
        to_room(_system_chat(f"Game started by {initiator}!", START_COLOR, now)),
    ]


def handle_reset(state: SessionState, connection_id: str, _message: ResetGameMessage, now: float) -> list[Outbound]:
    state.reset_all()
    initiator = _initiator_name(state, connection_id)
    logger.info("game reset", room_id=state.room_id, reset_by=initiator)
    return [
        to_room(GameResetMessage(game_state=state.snapshot(now), reset_by=initiator, reset_time=to_millis(now))),
        to_room(_system_chat(f"Game reset by {initiator}!", RESET_COLOR, now)),
    ]


def handle_heartbeat(state: SessionState, connection_id: str, _message: PingMessage, now: float) -> list[Outbound]:
    state.registry.touch(connection_id, now)
    return [to_connection(connection_id, PongMessage(server_time=to_millis(now)))]


def handle_departure(state: SessionState, connection_id: str, departure: Departure, now: float) -> list[Outbound]:
    player = state.registry.leave(connection_id)
    if player is None:
        return []

    if state.is_empty and state.set_started(False):
        logger.info("game reset automatically, no players left", room_id=state.room_id)

    logger.info(
        "player left",
        connection_id=connection_id,
        player_name=player.name,
        reason=departure.reason,
        players=state.player_count,
    )
    return [
        to_room(
            PlayerLeftMessage(
                player_id=connection_id,
                player_name=player.name,
                reason=departure.reason,
                timestamp=to_millis(now),
            ),
            exclude_connection_id=connection_id,
        ),
        to_room(PlayersCountUpdateMessage(count=state.player_count)),
        to_room(_system_chat(f"{player.name} left the game", LEAVE_COLOR, now)),
    ]


HANDLERS: dict[type, Handler] = {
    PlayerJoinMessage: handle_join,
    PlayerMoveMessage: handle_move,
    ChatMessage: handle_chat,
    UpdateScoreMessage: handle_score,
    StartGameMessage: handle_start,
    ResetGameMessage: handle_reset,
    PingMessage: handle_heartbeat,
    Departure: handle_departure,
}


def dispatch(state: SessionState, connection_id: str, event: Any, now: float) -> list[Outbound]:  # noqa: ANN401
    """Run the handler registered for the event's type. Unknown events are no-ops."""
    handler = HANDLERS.get(type(event))
    if handler is None:
        logger.debug("no handler for event", event_type=type(event).__name__, connection_id=connection_id)
        return []
    return handler(state, connection_id, event, now)

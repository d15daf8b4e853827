from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter

from arena.session.models import PlayerView, SessionSnapshot, SettingsView


class ClientMessageType(StrEnum):
    PLAYER_JOIN = "playerJoin"
    PLAYER_MOVE = "playerMove"
    CHAT = "chatMessage"
    UPDATE_SCORE = "updateScore"
    START_GAME = "startGame"
    RESET_GAME = "resetGame"
    PING = "ping"
    ADMIN_COMMAND = "adminCommand"


class ServerMessageType(StrEnum):
    SERVER_INFO = "serverInfo"
    GAME_STATE = "gameState"
    PLAYER_JOINED = "playerJoined"
    PLAYERS_COUNT_UPDATE = "playersCountUpdate"
    CHAT = "chatMessage"
    PLAYER_MOVED = "playerMoved"
    CHAT_ERROR = "chatError"
    SCORE_UPDATE = "scoreUpdate"
    GAME_STARTED = "gameStarted"
    GAME_RESET = "gameReset"
    PLAYER_LEFT = "playerLeft"
    SERVER_ERROR = "serverError"
    SERVER_SHUTDOWN = "serverShutdown"
    PONG = "pong"


class SessionErrorCode(StrEnum):
    SERVER_FULL = "server_full"
    INTERNAL_ERROR = "internal_error"
    CONNECTION_ERROR = "connection_error"
    RATE_LIMITED = "rate_limited"


class ChatKind(StrEnum):
    SYSTEM = "system"
    PLAYER = "player"


# Client payload fields are typed Any on purpose: coercion and bounds live in
# the registry so malformed values degrade to defaults or no-ops instead of
# failing validation. Unknown fields are dropped by pydantic and never reach
# the player record.


class PlayerJoinMessage(BaseModel):
    type: Literal[ClientMessageType.PLAYER_JOIN] = ClientMessageType.PLAYER_JOIN
    name: Any = None
    color: Any = None


class PlayerMoveMessage(BaseModel):
    type: Literal[ClientMessageType.PLAYER_MOVE] = ClientMessageType.PLAYER_MOVE
    x: Any = None
    y: Any = None


class ChatMessage(BaseModel):
    type: Literal[ClientMessageType.CHAT] = ClientMessageType.CHAT
    message: Any = None


class UpdateScoreMessage(BaseModel):
    type: Literal[ClientMessageType.UPDATE_SCORE] = ClientMessageType.UPDATE_SCORE
    score: Any = None


class StartGameMessage(BaseModel):
    type: Literal[ClientMessageType.START_GAME] = ClientMessageType.START_GAME


class ResetGameMessage(BaseModel):
    type: Literal[ClientMessageType.RESET_GAME] = ClientMessageType.RESET_GAME


class PingMessage(BaseModel):
    type: Literal[ClientMessageType.PING] = ClientMessageType.PING


class AdminCommandMessage(BaseModel):
    type: Literal[ClientMessageType.ADMIN_COMMAND] = ClientMessageType.ADMIN_COMMAND
    command: Any = None


ClientMessage = Annotated[
    PlayerJoinMessage
    | PlayerMoveMessage
    | ChatMessage
    | UpdateScoreMessage
    | StartGameMessage
    | ResetGameMessage
    | PingMessage
    | AdminCommandMessage,
    Field(discriminator="type"),
]

_client_message_adapter = TypeAdapter(ClientMessage)


def parse_client_message(data: dict[str, Any]) -> ClientMessage:
    """Parse a raw dict into a typed client message."""
    return _client_message_adapter.validate_python(data)


class ServerInfoMessage(BaseModel):
    type: Literal[ServerMessageType.SERVER_INFO] = ServerMessageType.SERVER_INFO
    players_online: int
    max_players: int
    server_time: int
    settings: SettingsView


class GameStateMessage(BaseModel):
    """Per-tick snapshot broadcast to every player in a room."""

    type: Literal[ServerMessageType.GAME_STATE] = ServerMessageType.GAME_STATE
    players: dict[str, PlayerView]
    game_started: bool
    players_count: int
    server_time: int


class WelcomeStateMessage(SessionSnapshot):
    """Join-time snapshot; same type as the tick snapshot plus the joiner's id."""

    type: Literal[ServerMessageType.GAME_STATE] = ServerMessageType.GAME_STATE
    your_id: str


class PlayerJoinedMessage(PlayerView):
    type: Literal[ServerMessageType.PLAYER_JOINED] = ServerMessageType.PLAYER_JOINED


class PlayersCountUpdateMessage(BaseModel):
    type: Literal[ServerMessageType.PLAYERS_COUNT_UPDATE] = ServerMessageType.PLAYERS_COUNT_UPDATE
    count: int


class ChatBroadcastMessage(BaseModel):
    type: Literal[ServerMessageType.CHAT] = ServerMessageType.CHAT
    kind: ChatKind
    player_id: str
    player_name: str
    message: str
    timestamp: int
    color: str


class PlayerMovedMessage(BaseModel):
    type: Literal[ServerMessageType.PLAYER_MOVED] = ServerMessageType.PLAYER_MOVED
    id: str
    x: float
    y: float
    timestamp: int


class ChatErrorMessage(BaseModel):
    type: Literal[ServerMessageType.CHAT_ERROR] = ServerMessageType.CHAT_ERROR
    message: str


class ScoreUpdateMessage(BaseModel):
    type: Literal[ServerMessageType.SCORE_UPDATE] = ServerMessageType.SCORE_UPDATE
    player_id: str
    player_name: str
    score: int
    level: int


class GameStartedMessage(BaseModel):
    type: Literal[ServerMessageType.GAME_STARTED] = ServerMessageType.GAME_STARTED
    start_time: int
    initiated_by: str


class GameResetMessage(BaseModel):
    type: Literal[ServerMessageType.GAME_RESET] = ServerMessageType.GAME_RESET
    game_state: SessionSnapshot
    reset_by: str
    reset_time: int


class PlayerLeftMessage(BaseModel):
    type: Literal[ServerMessageType.PLAYER_LEFT] = ServerMessageType.PLAYER_LEFT
    player_id: str
    player_name: str
    reason: str
    timestamp: int


class ErrorMessage(BaseModel):
    type: Literal[ServerMessageType.SERVER_ERROR] = ServerMessageType.SERVER_ERROR
    code: SessionErrorCode
    message: str


class ServerShutdownMessage(BaseModel):
    type: Literal[ServerMessageType.SERVER_SHUTDOWN] = ServerMessageType.SERVER_SHUTDOWN
    message: str
    timestamp: int


class PongMessage(BaseModel):
    type: Literal[ServerMessageType.PONG] = ServerMessageType.PONG
    server_time: int

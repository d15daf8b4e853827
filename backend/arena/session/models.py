"""Player record, room settings and their wire views."""

from collections import deque
from dataclasses import dataclass, field

from pydantic import BaseModel

# Assigned round-robin by join order when the client does not pick a color.
PLAYER_COLORS = (
    "#2196F3",
    "#FF5722",
    "#4CAF50",
    "#9C27B0",
    "#FF9800",
    "#F44336",
    "#3F51B5",
    "#009688",
    "#795548",
    "#607D8B",
    "#E91E63",
    "#CDDC39",
    "#FFC107",
    "#00BCD4",
    "#8BC34A",
)

DEFAULT_HEALTH = 100
POINTS_PER_LEVEL = 100


def level_for_score(score: int) -> int:
    return score // POINTS_PER_LEVEL + 1


def to_millis(timestamp: float) -> int:
    """Convert an epoch timestamp in seconds to the integer milliseconds used on the wire."""
    return int(timestamp * 1000)


class SettingsView(BaseModel):
    player_speed: float
    player_size: float
    map_width: float
    map_height: float


class PlayerView(BaseModel):
    """Player record as sent to clients."""

    id: str
    name: str
    x: float
    y: float
    score: int
    color: str
    room: str
    join_time: int
    last_activity: int
    is_alive: bool
    health: int
    level: int


class SessionSnapshot(BaseModel):
    """Full room state for join-time and reset broadcasts."""

    room: str
    players: dict[str, PlayerView]
    game_started: bool
    players_count: int
    max_players: int
    settings: SettingsView
    server_time: int


class StatusSnapshot(BaseModel):
    """Read-only operational view for health checks."""

    players_online: int
    uptime: float
    game_started: bool


@dataclass(frozen=True)
class GameSettings:
    """Immutable per-process game parameters shared by every room."""

    player_speed: float = 6
    player_size: float = 22
    map_width: float = 1200
    map_height: float = 800

    @property
    def min_x(self) -> float:
        return self.player_size

    @property
    def max_x(self) -> float:
        return self.map_width - self.player_size

    @property
    def min_y(self) -> float:
        return self.player_size

    @property
    def max_y(self) -> float:
        return self.map_height - self.player_size

    def clamp(self, x: float, y: float) -> tuple[float, float]:
        """Clamp a position so the player stays fully inside the map."""
        return (
            max(self.min_x, min(self.max_x, x)),
            max(self.min_y, min(self.max_y, y)),
        )

    def to_view(self) -> SettingsView:
        return SettingsView(
            player_speed=self.player_speed,
            player_size=self.player_size,
            map_width=self.map_width,
            map_height=self.map_height,
        )


@dataclass
class Player:
    """Represent one connected player in a room.

    Lifecycle:
    - Created by PlayerRegistry.join when the connection sends playerJoin
    - Mutated by move, score, chat, heartbeat and reset events
    - Removed on explicit disconnect or idle eviction
    """

    id: str
    name: str
    x: float
    y: float
    color: str
    room: str
    joined_at: float
    last_activity: float
    score: int = 0
    health: int = DEFAULT_HEALTH
    level: int = 1
    is_alive: bool = True
    # epoch timestamps of recently accepted chat messages, oldest first
    chat_history: deque[float] = field(default_factory=deque, repr=False)

    def to_view(self) -> PlayerView:
        return PlayerView(
            id=self.id,
            name=self.name,
            x=self.x,
            y=self.y,
            score=self.score,
            color=self.color,
            room=self.room,
            join_time=to_millis(self.joined_at),
            last_activity=to_millis(self.last_activity),
            is_alive=self.is_alive,
            health=self.health,
            level=self.level,
        )

"""Authoritative table of the players connected to one room."""

import math
import random
import re
from typing import Any

import structlog

from arena.session.models import DEFAULT_HEALTH, PLAYER_COLORS, GameSettings, Player, level_for_score

logger = structlog.get_logger()

MAX_NAME_LENGTH = 20
DEFAULT_NAME_PREFIX = "Player_"
DEFAULT_NAME_ID_LENGTH = 6
SPAWN_MARGIN = 50
# Largest integer that survives a round trip through a JSON number.
MAX_SCORE = 2**53 - 1

_HEX_COLOR_PATTERN = re.compile(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6}|[0-9a-fA-F]{8})$")
_LEADING_INT_PATTERN = re.compile(r"^\s*([+-]?\d+)")


class CapacityExceededError(Exception):
    """Raised when a join would push the registry past its configured capacity."""

    def __init__(self, max_players: int) -> None:
        super().__init__(f"registry is full ({max_players} players)")
        self.max_players = max_players


def sanitize_name(raw: Any, identity: str) -> str:  # noqa: ANN401
    """Trim and truncate a requested name, falling back to an id-derived default."""
    if isinstance(raw, str):
        name = raw.strip()[:MAX_NAME_LENGTH].strip()
        if name:
            return name
    return f"{DEFAULT_NAME_PREFIX}{identity[:DEFAULT_NAME_ID_LENGTH]}"


def sanitize_color(raw: Any) -> str | None:  # noqa: ANN401
    if isinstance(raw, str) and _HEX_COLOR_PATTERN.match(raw):
        return raw
    return None


def coerce_coordinate(raw: Any) -> float | None:  # noqa: ANN401
    """Parse a client coordinate. Returns None unless the value is a finite number."""
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        value = float(raw)
    elif isinstance(raw, str):
        try:
            value = float(raw.strip())
        except ValueError:
            return None
    else:
        return None
    return value if math.isfinite(value) else None


def coerce_score(raw: Any) -> int:  # noqa: ANN401
    """Coerce a client score into [0, MAX_SCORE]; anything unparseable counts as 0."""
    value = 0
    if isinstance(raw, bool):
        value = 0
    elif isinstance(raw, int):
        value = raw
    elif isinstance(raw, float):
        value = int(raw) if math.isfinite(raw) else 0
    elif isinstance(raw, str):
        match = _LEADING_INT_PATTERN.match(raw)
        value = int(match.group(1)) if match else 0
    return min(max(0, value), MAX_SCORE)


class PlayerRegistry:
    """Map connection identity to Player for a single room.

    All methods are synchronous and must be called while holding the
    room lock; the registry itself does no locking.
    """

    def __init__(
        self,
        room_id: str,
        settings: GameSettings,
        max_players: int,
        rng: random.Random | None = None,
    ) -> None:
        self._room_id = room_id
        self._settings = settings
        self._max_players = max_players
        self._rng = rng or random.Random()  # noqa: S311
        self._players: dict[str, Player] = {}  # connection_id -> Player
        self._join_sequence = 0

    @property
    def players(self) -> dict[str, Player]:
        """Live mapping, not a copy."""
        return self._players

    @property
    def max_players(self) -> int:
        return self._max_players

    def __contains__(self, identity: object) -> bool:
        return identity in self._players

    def __len__(self) -> int:
        return len(self._players)

    def count(self) -> int:
        return len(self._players)

    def get(self, identity: str) -> Player | None:
        return self._players.get(identity)

    def join(self, identity: str, requested_name: Any, requested_color: Any, now: float) -> Player:  # noqa: ANN401
        """Create and insert a player. Raises CapacityExceededError when full."""
        if len(self._players) >= self._max_players:
            raise CapacityExceededError(self._max_players)

        color = sanitize_color(requested_color) or PLAYER_COLORS[self._join_sequence % len(PLAYER_COLORS)]
        self._join_sequence += 1
        x, y = self._spawn_position()
        player = Player(
            id=identity,
            name=sanitize_name(requested_name, identity),
            x=x,
            y=y,
            color=color,
            room=self._room_id,
            joined_at=now,
            last_activity=now,
        )
        self._players[identity] = player
        return player

    def _spawn_position(self) -> tuple[float, float]:
        settings = self._settings
        margin = max(SPAWN_MARGIN, settings.player_size)
        x = self._rng.uniform(margin, settings.map_width - margin)
        y = self._rng.uniform(margin, settings.map_height - margin)
        # on a map narrower than two margins the bounds cross; clamp keeps the spawn legal
        return settings.clamp(x, y)

    def move(self, identity: str, raw_x: Any, raw_y: Any, now: float) -> tuple[float, float] | None:  # noqa: ANN401
        """Clamp and apply a position update. Returns the stored position, or None for a no-op."""
        player = self._players.get(identity)
        if player is None or not player.is_alive:
            return None
        x = coerce_coordinate(raw_x)
        y = coerce_coordinate(raw_y)
        if x is None or y is None:
            logger.debug("ignoring non-finite move", connection_id=identity)
            return None
        player.x, player.y = self._settings.clamp(x, y)
        player.last_activity = now
        return player.x, player.y

    def update_score(self, identity: str, raw_score: Any, now: float) -> Player | None:  # noqa: ANN401
        player = self._players.get(identity)
        if player is None:
            return None
        player.score = coerce_score(raw_score)
        player.level = level_for_score(player.score)
        player.last_activity = now
        return player

    def touch(self, identity: str, now: float) -> bool:
        """Refresh last-activity for a heartbeat. Returns False if the identity is unknown."""
        player = self._players.get(identity)
        if player is None:
            return False
        player.last_activity = now
        return True

    def reset_progress(self) -> None:
        """Zero score and level and restore full health for every player."""
        for player in self._players.values():
            player.score = 0
            player.level = 1
            player.health = DEFAULT_HEALTH

    def leave(self, identity: str) -> Player | None:
        return self._players.pop(identity, None)

    def idle_since(self, cutoff: float) -> list[str]:
        """Return identities whose last activity is strictly older than cutoff."""
        return [identity for identity, player in self._players.items() if player.last_activity < cutoff]

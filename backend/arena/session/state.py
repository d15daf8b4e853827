"""Room-level aggregate: registry plus game-wide flags and settings."""

from __future__ import annotations

from dataclasses import dataclass, field

from arena.session.chat_guard import ChatGuard
from arena.session.models import GameSettings, Player, PlayerView, SessionSnapshot, to_millis
from arena.session.registry import PlayerRegistry


@dataclass
class SessionState:
    """State for one room.

    Owns every Player record of the room through its registry. Handlers,
    the broadcast loop and the eviction sweep all read and mutate this
    object, always under the room lock held by SessionManager.

    Invariant: started is False whenever the registry is empty.
    """

    room_id: str
    registry: PlayerRegistry
    settings: GameSettings = field(default_factory=GameSettings)
    chat_guard: ChatGuard = field(default_factory=ChatGuard)
    started: bool = False

    @classmethod
    def create(
        cls,
        room_id: str,
        settings: GameSettings,
        max_players: int,
        chat_guard: ChatGuard | None = None,
        registry: PlayerRegistry | None = None,
    ) -> SessionState:
        return cls(
            room_id=room_id,
            registry=registry or PlayerRegistry(room_id, settings, max_players),
            settings=settings,
            chat_guard=chat_guard or ChatGuard(),
        )

    @property
    def players(self) -> dict[str, Player]:
        return self.registry.players

    @property
    def max_players(self) -> int:
        return self.registry.max_players

    @property
    def player_count(self) -> int:
        return self.registry.count()

    @property
    def is_empty(self) -> bool:
        return self.player_count == 0

    def set_started(self, started: bool) -> bool:  # noqa: FBT001
        """Set the started flag. Returns True only if the flag actually changed."""
        if self.started == started:
            return False
        self.started = started
        return True

    def reset_all(self) -> None:
        """Zero every player's progress and clear the started flag."""
        self.registry.reset_progress()
        self.started = False

    def player_views(self) -> dict[str, PlayerView]:
        return {identity: player.to_view() for identity, player in self.players.items()}

    def snapshot(self, now: float) -> SessionSnapshot:
        return SessionSnapshot(
            room=self.room_id,
            players=self.player_views(),
            game_started=self.started,
            players_count=self.player_count,
            max_players=self.max_players,
            settings=self.settings.to_view(),
            server_time=to_millis(now),
        )

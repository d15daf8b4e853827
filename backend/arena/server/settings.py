"""Arena server configuration via environment variables."""

from __future__ import annotations

from typing import TYPE_CHECKING, Self

from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import BaseSettings

from shared.validators import StringListEnvSettingsSource, parse_room_ids, parse_string_list

if TYPE_CHECKING:
    from pydantic_settings.sources.base import PydanticBaseSettingsSource


class ArenaServerSettings(BaseSettings):
    model_config = {"env_prefix": "ARENA_", "populate_by_name": True, "frozen": True}

    # HOST/PORT are honoured as well so the server drops into platforms that
    # inject them without a prefix.
    host: str = Field(default="localhost", min_length=1, validation_alias=AliasChoices("ARENA_HOST", "HOST"))
    port: int = Field(default=3000, ge=1, le=65535, validation_alias=AliasChoices("ARENA_PORT", "PORT"))

    rooms: list[str] = ["main"]
    max_players: int = Field(default=20, ge=1)

    map_width: float = Field(default=1200, gt=0)
    map_height: float = Field(default=800, gt=0)
    player_speed: float = Field(default=6, gt=0)
    player_size: float = Field(default=22, gt=0)

    tick_rate: int = Field(default=30, ge=1, le=120)
    idle_timeout_seconds: float = Field(default=300, ge=1)
    eviction_interval_seconds: float = Field(default=300, ge=1)
    stats_interval_seconds: float = Field(default=600, ge=1)

    chat_max_messages: int = Field(default=5, ge=1)
    chat_window_seconds: float = Field(default=60, ge=1)

    outbox_size: int = Field(default=256, ge=1)
    shutdown_grace_seconds: float = Field(default=2.0, ge=0)

    cors_origins: list[str] = ["*"]
    log_dir: str | None = None

    @field_validator("cors_origins", mode="before")
    @classmethod
    def validate_cors_origins(cls, v: str | list[str]) -> list[str]:
        return parse_string_list(v, name="cors_origins")

    @field_validator("rooms", mode="before")
    @classmethod
    def validate_rooms(cls, v: str | list[str]) -> list[str]:
        return parse_room_ids(v)

    @model_validator(mode="after")
    def validate_map_fits_player(self) -> Self:
        if self.map_width <= 2 * self.player_size or self.map_height <= 2 * self.player_size:
            raise ValueError("map_width and map_height must exceed twice the player_size")
        return self

    @property
    def default_room(self) -> str:
        return self.rooms[0]

    @property
    def broadcast_interval(self) -> float:
        return 1.0 / self.tick_rate

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return init_settings, StringListEnvSettingsSource(settings_cls), dotenv_settings, file_secret_settings

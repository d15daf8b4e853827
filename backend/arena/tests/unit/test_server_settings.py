import pytest
from pydantic import ValidationError

from arena.server.settings import ArenaServerSettings


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("HOST", "PORT", "ARENA_HOST", "ARENA_PORT", "ARENA_ROOMS", "ARENA_CORS_ORIGINS"):
        monkeypatch.delenv(name, raising=False)


class TestArenaServerSettings:
    def test_defaults(self):
        settings = ArenaServerSettings()

        assert settings.host == "localhost"
        assert settings.port == 3000
        assert settings.rooms == ["main"]
        assert settings.default_room == "main"
        assert settings.max_players == 20
        assert (settings.map_width, settings.map_height) == (1200, 800)
        assert settings.broadcast_interval == pytest.approx(1 / 30)
        assert settings.idle_timeout_seconds == 300

    def test_prefixed_env(self, monkeypatch):
        monkeypatch.setenv("ARENA_PORT", "4000")
        monkeypatch.setenv("ARENA_MAX_PLAYERS", "8")
        settings = ArenaServerSettings()
        assert settings.port == 4000
        assert settings.max_players == 8

    def test_unprefixed_port_and_host(self, monkeypatch):
        monkeypatch.setenv("PORT", "8080")
        monkeypatch.setenv("HOST", "0.0.0.0")  # noqa: S104
        settings = ArenaServerSettings()
        assert settings.port == 8080
        assert settings.host == "0.0.0.0"  # noqa: S104

    def test_rooms_csv(self, monkeypatch):
        monkeypatch.setenv("ARENA_ROOMS", "main,lobby")
        assert ArenaServerSettings().rooms == ["main", "lobby"]

    def test_rooms_json_array(self, monkeypatch):
        monkeypatch.setenv("ARENA_ROOMS", '["alpha","beta"]')
        assert ArenaServerSettings().rooms == ["alpha", "beta"]

    def test_invalid_room_rejected(self, monkeypatch):
        monkeypatch.setenv("ARENA_ROOMS", "main,bad room")
        with pytest.raises(ValidationError, match="rooms"):
            ArenaServerSettings()

    def test_cors_origins_csv(self, monkeypatch):
        monkeypatch.setenv("ARENA_CORS_ORIGINS", "http://a.com,http://b.com")
        assert ArenaServerSettings().cors_origins == ["http://a.com", "http://b.com"]

    def test_port_out_of_range(self):
        with pytest.raises(ValidationError, match="port"):
            ArenaServerSettings(port=70000)

    def test_tick_rate_bounds(self):
        with pytest.raises(ValidationError, match="tick_rate"):
            ArenaServerSettings(tick_rate=0)

    def test_map_must_fit_player(self):
        with pytest.raises(ValidationError, match="twice the player_size"):
            ArenaServerSettings(map_width=40, player_size=22)

    def test_settings_are_frozen(self):
        settings = ArenaServerSettings()
        with pytest.raises(ValidationError):
            settings.max_players = 5

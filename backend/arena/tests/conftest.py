import random

import pytest

from arena.messaging.router import MessageRouter
from arena.server.app import create_app
from arena.server.settings import ArenaServerSettings
from arena.session.manager import SessionManager
from arena.session.models import GameSettings
from arena.tests.mocks import MockConnection

START_TIME = 1_700_000_000.0


class FakeClock:
    """Manually advanced epoch clock."""

    def __init__(self, now: float = START_TIME) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def game_settings():
    return GameSettings()


@pytest.fixture
def session_manager(game_settings, clock):
    return SessionManager(game_settings, room_ids=("main", "lobby"), clock=clock, rng=random.Random(7))


@pytest.fixture
def message_router(session_manager):
    return MessageRouter(session_manager)


@pytest.fixture
def mock_connection():
    return MockConnection()


@pytest.fixture
def arena_settings():
    # Slow ticks keep periodic broadcasts out of integration assertions.
    return ArenaServerSettings(
        rooms=["main", "lobby"],
        tick_rate=1,
        eviction_interval_seconds=3600,
        stats_interval_seconds=3600,
        shutdown_grace_seconds=0.5,
    )


@pytest.fixture
def app(arena_settings, session_manager, message_router):
    return create_app(
        settings=arena_settings,
        session_manager=session_manager,
        message_router=message_router,
    )

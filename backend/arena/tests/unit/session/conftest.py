import pytest

from arena.messaging.types import PlayerJoinMessage
from arena.tests.mocks import MockConnection


@pytest.fixture
def join(session_manager):
    """Register a connection, join it as a player and clear its history."""

    async def _join(name: str, room_id: str = "main", **kwargs) -> MockConnection:
        connection = MockConnection(room_id=room_id, **kwargs)
        session_manager.register_connection(connection)
        await session_manager.dispatch(connection, PlayerJoinMessage(name=name))
        return connection

    return _join

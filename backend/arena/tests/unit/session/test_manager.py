import asyncio

from arena.messaging.types import (
    ChatMessage,
    PlayerJoinMessage,
    PlayerMoveMessage,
    ServerMessageType,
    SessionErrorCode,
    StartGameMessage,
    UpdateScoreMessage,
)
from arena.session.handlers import INACTIVITY_REASON
from arena.session.manager import SHUTDOWN_CLOSE_CODE, SessionManager
from arena.session.registry import MAX_SCORE
from arena.tests.mocks import MockConnection


async def _settle(session_manager, *connections):
    await session_manager.flush()
    for connection in connections:
        connection.clear()


class TestConnectionLifecycle:
    async def test_register_sends_server_info(self, session_manager, mock_connection):
        session_manager.register_connection(mock_connection)
        await session_manager.flush()

        info = mock_connection.sent_messages[0]
        assert info["type"] == ServerMessageType.SERVER_INFO
        assert info["players_online"] == 0
        assert info["max_players"] == 20
        assert info["settings"] == {"player_speed": 6, "player_size": 22, "map_width": 1200, "map_height": 800}

    async def test_server_info_counts_players_already_in_room(self, session_manager, join):
        await join("Alice")
        late = MockConnection()

        session_manager.register_connection(late)
        await session_manager.flush()

        assert late.sent_messages[0]["players_online"] == 1

    async def test_join_delivers_welcome_and_notifies_others(self, session_manager, join):
        alice = await join("Alice")
        await _settle(session_manager, alice)

        bob = await join("Bob")
        await session_manager.flush()

        bob_types = [m["type"] for m in bob.sent_messages]
        assert bob_types[:2] == [ServerMessageType.SERVER_INFO, ServerMessageType.GAME_STATE]
        assert bob.sent_messages[1]["your_id"] == bob.connection_id
        assert not bob.messages_of_type(ServerMessageType.PLAYER_JOINED)

        alice_types = [m["type"] for m in alice.sent_messages]
        assert alice_types == [
            ServerMessageType.PLAYER_JOINED,
            ServerMessageType.PLAYERS_COUNT_UPDATE,
            ServerMessageType.CHAT,
        ]

    async def test_rooms_are_isolated(self, session_manager, join):
        main = await join("Alice")
        lobby = await join("Bob", room_id="lobby")
        await _settle(session_manager, main, lobby)

        await session_manager.dispatch(main, ChatMessage(message="hi"))
        await session_manager.flush()

        assert len(main.messages_of_type(ServerMessageType.CHAT)) == 1
        assert lobby.sent_messages == []

    async def test_disconnect_notifies_room_and_releases_connection(self, session_manager, join):
        alice = await join("Alice")
        bob = await join("Bob")
        await _settle(session_manager, alice, bob)

        await session_manager.disconnect(alice, "client disconnect")
        await session_manager.flush()

        left = bob.messages_of_type(ServerMessageType.PLAYER_LEFT)
        assert left[0]["player_id"] == alice.connection_id
        assert left[0]["reason"] == "client disconnect"
        assert session_manager.get_outbox(alice.connection_id) is None
        assert session_manager.connection_count == 1
        assert session_manager.player_count == 1

    async def test_disconnect_without_join(self, session_manager, mock_connection):
        session_manager.register_connection(mock_connection)

        await session_manager.disconnect(mock_connection, "client disconnect")

        assert session_manager.connection_count == 0

    async def test_send_error_targets_one_connection(self, session_manager, join):
        alice = await join("Alice")
        bob = await join("Bob")
        await _settle(session_manager, alice, bob)

        assert session_manager.send_error(alice.connection_id, SessionErrorCode.RATE_LIMITED, "slow down")
        await session_manager.flush()

        assert alice.sent_messages == [
            {"type": ServerMessageType.SERVER_ERROR, "code": SessionErrorCode.RATE_LIMITED, "message": "slow down"},
        ]
        assert bob.sent_messages == []


class TestBroadcastTick:
    async def test_no_snapshot_for_empty_room(self, session_manager, mock_connection):
        session_manager.register_connection(mock_connection)
        await _settle(session_manager, mock_connection)

        await session_manager.broadcast_tick()
        await session_manager.flush()

        assert mock_connection.sent_messages == []

    async def test_snapshot_sent_to_every_player(self, session_manager, join):
        alice = await join("Alice")
        bob = await join("Bob")
        other_room = await join("Carol", room_id="lobby")
        await _settle(session_manager, alice, bob, other_room)

        await session_manager.dispatch(alice, StartGameMessage())
        await _settle(session_manager, alice, bob, other_room)
        await session_manager.broadcast_tick()
        await session_manager.flush()

        for connection in (alice, bob):
            snapshot = connection.messages_of_type(ServerMessageType.GAME_STATE)[0]
            assert set(snapshot["players"]) == {alice.connection_id, bob.connection_id}
            assert snapshot["players_count"] == 2
            assert snapshot["game_started"] is True
        lobby_snapshot = other_room.messages_of_type(ServerMessageType.GAME_STATE)[0]
        assert set(lobby_snapshot["players"]) == {other_room.connection_id}
        assert lobby_snapshot["game_started"] is False

    async def test_oversized_score_keeps_room_deliverable(self, session_manager, join):
        alice = await join("Alice")
        bob = await join("Bob")
        await _settle(session_manager, alice, bob)

        await session_manager.dispatch(alice, UpdateScoreMessage(score=1e300))
        await session_manager.broadcast_tick()
        await session_manager.flush()

        assert bob.messages_of_type(ServerMessageType.SCORE_UPDATE)[0]["score"] == MAX_SCORE
        snapshot = bob.messages_of_type(ServerMessageType.GAME_STATE)[0]
        assert snapshot["players"][alice.connection_id]["score"] == MAX_SCORE

        await session_manager.disconnect(alice, "client disconnect")
        await session_manager.flush()
        assert bob.messages_of_type(ServerMessageType.PLAYER_LEFT)

    async def test_slow_connection_does_not_delay_others(self, game_settings, clock):
        manager = SessionManager(game_settings, clock=clock, outbox_size=8)
        stalled = MockConnection(send_gate=asyncio.Event())
        fast = MockConnection()
        for connection, name in ((stalled, "Slow"), (fast, "Fast")):
            manager.register_connection(connection)
            await manager.dispatch(connection, PlayerJoinMessage(name=name))
        fast_outbox = manager.get_outbox(fast.connection_id)
        await fast_outbox.join()
        fast.clear()

        for _ in range(10):
            await asyncio.wait_for(manager.broadcast_tick(), timeout=1)
            await asyncio.wait_for(fast_outbox.join(), timeout=1)

        assert len(fast.messages_of_type(ServerMessageType.GAME_STATE)) == 10
        assert stalled.sent_messages == []
        assert manager.get_outbox(stalled.connection_id).dropped > 0

        await manager.close_all(grace_seconds=0.01)


class TestEviction:
    async def test_idle_player_evicted_with_disconnect_sequence(self, session_manager, join, clock):
        idle = await join("Idle")
        active = await join("Active")
        await _settle(session_manager, idle, active)

        clock.advance(200)
        await session_manager.dispatch(active, PlayerMoveMessage(x=100, y=100))
        clock.advance(101)

        evicted = await session_manager.evict_idle_players()
        await session_manager.flush()

        assert evicted == [idle.connection_id]
        assert idle.is_closed
        assert idle.close_reason == INACTIVITY_REASON
        assert not active.is_closed
        types = [m["type"] for m in active.sent_messages]
        assert types == [
            ServerMessageType.PLAYER_LEFT,
            ServerMessageType.PLAYERS_COUNT_UPDATE,
            ServerMessageType.CHAT,
        ]
        assert active.sent_messages[0]["reason"] == INACTIVITY_REASON

    async def test_eviction_then_transport_disconnect_is_quiet(self, session_manager, join, clock):
        idle = await join("Idle")
        watcher = await join("Watcher")
        clock.advance(301)
        await session_manager.dispatch(watcher, PlayerMoveMessage(x=1, y=1))
        await session_manager.evict_idle_players()
        await _settle(session_manager, watcher)

        await session_manager.disconnect(idle, "client disconnect")
        await session_manager.flush()

        assert watcher.sent_messages == []

    async def test_last_player_eviction_clears_started(self, session_manager, join, clock):
        alone = await join("Alone")
        await session_manager.dispatch(alone, StartGameMessage())
        clock.advance(301)

        await session_manager.evict_idle_players()

        assert not session_manager.get_room("main").started


class TestStatusAndShutdown:
    async def test_status(self, session_manager, join):
        alice = await join("Alice")
        await join("Bob", room_id="lobby")
        await session_manager.dispatch(alice, StartGameMessage())

        status = session_manager.status()

        assert status.players_online == 2
        assert status.game_started is True
        assert status.uptime >= 0

    async def test_log_stats(self, session_manager, join, caplog):
        await join("Alice")

        with caplog.at_level("INFO"):
            await session_manager.log_stats()

        assert "server stats" in caplog.text

    async def test_shutdown_notifies_then_closes(self, session_manager, join, mock_connection):
        alice = await join("Alice")
        session_manager.register_connection(mock_connection)
        await _settle(session_manager, alice, mock_connection)

        session_manager.announce_shutdown()
        await session_manager.close_all(grace_seconds=1)

        for connection in (alice, mock_connection):
            assert connection.sent_messages[-1]["type"] == ServerMessageType.SERVER_SHUTDOWN
            assert connection.is_closed
            assert connection.close_code == SHUTDOWN_CLOSE_CODE

    async def test_shutdown_grace_is_bounded(self, session_manager):
        stalled = MockConnection(send_gate=asyncio.Event())
        session_manager.register_connection(stalled)

        session_manager.announce_shutdown()
        await asyncio.wait_for(session_manager.close_all(grace_seconds=0.05), timeout=1)

        assert stalled.is_closed

from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING
from uuid import uuid4

import structlog
from starlette.websockets import WebSocket, WebSocketDisconnect

from arena.messaging.encoder import DecodeError, decode
from arena.messaging.protocol import ConnectionProtocol
from arena.messaging.types import SessionErrorCode
from arena.server.rate_limit import TokenBucket
from shared.logging import bind_connection, unbind_connection

logger = structlog.get_logger()

if TYPE_CHECKING:
    from arena.messaging.router import MessageRouter

# A moving client sends one frame per animation frame (~60/s) plus chat.
_RATE_LIMIT_RATE = 60.0
_RATE_LIMIT_BURST = 120

# Disconnect after this many consecutive decode errors
_MAX_DECODE_ERRORS = 5

UNKNOWN_ROOM_CLOSE_CODE = 4000
DECODE_ERRORS_CLOSE_CODE = 4004


class WebSocketConnection(ConnectionProtocol):
    def __init__(self, websocket: WebSocket, room_id: str, connection_id: str | None = None) -> None:
        self._websocket = websocket
        self._room_id = room_id
        self._connection_id = connection_id or str(uuid4())

    @property
    def connection_id(self) -> str:
        return self._connection_id

    @property
    def room_id(self) -> str:
        return self._room_id

    async def send_bytes(self, data: bytes) -> None:
        try:
            await self._websocket.send_bytes(data)
        except WebSocketDisconnect:
            raise ConnectionError("WebSocket already disconnected") from None

    async def receive_bytes(self) -> bytes:
        try:
            return await self._websocket.receive_bytes()
        except WebSocketDisconnect:
            raise ConnectionError("WebSocket already disconnected") from None
        except KeyError:
            # text frame; surfaces as a decode error
            return b""

    async def close(self, code: int = 1000, reason: str = "") -> None:
        with contextlib.suppress(WebSocketDisconnect, RuntimeError):
            await self._websocket.close(code=code, reason=reason)


async def websocket_endpoint(websocket: WebSocket, router: MessageRouter, default_room: str) -> None:
    room_id = websocket.path_params.get("room_id", default_room)
    if not router.has_room(room_id):
        await websocket.close(code=UNKNOWN_ROOM_CLOSE_CODE, reason="unknown_room")
        return

    await websocket.accept()

    connection = WebSocketConnection(websocket, room_id=room_id)
    bind_connection(connection.connection_id, room_id)
    logger.info("websocket connected")
    await router.handle_connect(connection)

    bucket = TokenBucket(rate=_RATE_LIMIT_RATE, burst=_RATE_LIMIT_BURST)
    decode_errors = 0
    reason = "client disconnect"

    try:
        while True:
            raw = await connection.receive_bytes()

            # Decode before throttling so malformed floods still hit the strike limit.
            try:
                data = decode(raw)
            except DecodeError as e:
                decode_errors += 1
                logger.warning("decode error", error=str(e), strikes=decode_errors)
                router.send_error(connection, SessionErrorCode.CONNECTION_ERROR, "Malformed message")
                if decode_errors >= _MAX_DECODE_ERRORS:
                    logger.info("too many decode errors, disconnecting")
                    await router.drain(connection)
                    await connection.close(code=DECODE_ERRORS_CLOSE_CODE, reason="too_many_decode_errors")
                    reason = "protocol error"
                    return
                continue

            decode_errors = 0

            if not bucket.consume():
                router.send_error(connection, SessionErrorCode.RATE_LIMITED, "Too many messages")
                continue
            await router.handle_message(connection, data)
    except (WebSocketDisconnect, ConnectionError):  # fmt: skip
        pass
    except (RuntimeError, OSError) as e:
        reason = "transport error"
        logger.warning("websocket transport error", error=str(e))
    finally:
        logger.info("websocket disconnected", reason=reason)
        await router.handle_disconnect(connection, reason)
        unbind_connection()

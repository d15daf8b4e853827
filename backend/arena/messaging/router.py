from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from arena.messaging.types import AdminCommandMessage, SessionErrorCode, parse_client_message

if TYPE_CHECKING:
    from arena.messaging.protocol import ConnectionProtocol
    from arena.session.manager import SessionManager

logger = logging.getLogger(__name__)

DISCONNECT_REASON = "client disconnect"
INTERNAL_ERROR_TEXT = "Internal server error"
DRAIN_TIMEOUT = 1.0


class MessageRouter:
    """
    Routes incoming messages to the session manager.

    This class contains pure business logic and can be tested
    without real WebSocket connections.
    """

    def __init__(self, session_manager: SessionManager) -> None:
        self._session_manager = session_manager

    def has_room(self, room_id: str) -> bool:
        return self._session_manager.has_room(room_id)

    async def handle_message(
        self,
        connection: ConnectionProtocol,
        raw_message: dict[str, Any],
    ) -> None:
        try:
            message = parse_client_message(raw_message)
        except (ValidationError, KeyError, TypeError, ValueError) as e:
            logger.debug("ignoring invalid message from %s: %s", connection.connection_id, e)
            return

        if isinstance(message, AdminCommandMessage):
            logger.info("admin command from %s: %r", connection.connection_id, message.command)
            return

        try:
            await self._session_manager.dispatch(connection, message)
        except Exception:
            logger.exception("error handling %s from %s", message.type, connection.connection_id)
            self._session_manager.send_error(
                connection.connection_id,
                SessionErrorCode.INTERNAL_ERROR,
                INTERNAL_ERROR_TEXT,
            )

    def send_error(self, connection: ConnectionProtocol, code: SessionErrorCode, message: str) -> None:
        self._session_manager.send_error(connection.connection_id, code, message)

    async def drain(self, connection: ConnectionProtocol, timeout: float = DRAIN_TIMEOUT) -> None:
        await self._session_manager.drain(connection.connection_id, timeout)

    async def handle_connect(self, connection: ConnectionProtocol) -> None:
        self._session_manager.register_connection(connection)

    async def handle_disconnect(self, connection: ConnectionProtocol, reason: str = DISCONNECT_REASON) -> None:
        await self._session_manager.disconnect(connection, reason)

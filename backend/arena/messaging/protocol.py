"""Abstract connection protocol for MessagePack binary communication."""

from abc import ABC, abstractmethod
from typing import Any

from arena.messaging.encoder import encode


class ConnectionProtocol(ABC):
    """
    Abstract interface for a client connection.

    This abstraction allows session logic to be tested without real
    WebSocket connections. Uses MessagePack binary protocol.
    """

    @property
    @abstractmethod
    def connection_id(self) -> str:
        """Opaque identity assigned by the transport when the client connected."""
        ...

    @property
    @abstractmethod
    def room_id(self) -> str:
        """Room this connection belongs to (from the WebSocket URL path)."""
        ...

    @abstractmethod
    async def send_bytes(self, data: bytes) -> None:
        """
        Send raw bytes to the client.
        """
        ...

    @abstractmethod
    async def receive_bytes(self) -> bytes:
        """
        Receive raw bytes from the client.
        """
        ...

    @abstractmethod
    async def close(self, code: int = 1000, reason: str = "") -> None:
        """
        Close the connection.
        """
        ...

    async def send_message(self, data: dict[str, Any]) -> None:
        """
        Send a message to the client using MessagePack encoding.
        """
        await self.send_bytes(encode(data))

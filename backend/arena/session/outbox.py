"""Bounded per-connection send queue with its own writer task."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from arena.messaging.protocol import ConnectionProtocol

logger = structlog.get_logger()

DEFAULT_OUTBOX_SIZE = 256


class ConnectionOutbox:
    """Decouple message production from the socket write for one connection.

    Producers call put(), which never blocks: when the queue is full the
    message is dropped and counted. A dedicated writer task drains the
    queue in order, so a slow or dead client can only ever fall behind on
    its own messages.
    """

    def __init__(self, connection: ConnectionProtocol, maxsize: int = DEFAULT_OUTBOX_SIZE) -> None:
        self._connection = connection
        self._queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=maxsize)
        self._writer: asyncio.Task[None] | None = None
        self._closed = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def start(self) -> None:
        """Start the writer task. Idempotent."""
        if self._writer is not None and not self._writer.done():
            return
        self._writer = asyncio.create_task(
            self._write_loop(),
            name=f"outbox:{self._connection.connection_id}",
        )

    def put(self, message: dict[str, Any]) -> bool:
        """Queue a message without blocking. Returns False if it was dropped."""
        if self._closed:
            return False
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(
                "outbox full, dropping message",
                connection_id=self._connection.connection_id,
                message_type=message.get("type"),
                dropped=self.dropped,
            )
            return False
        return True

    async def join(self) -> None:
        """Wait until every queued message has been written or discarded."""
        await self._queue.join()

    async def stop(self) -> None:
        """Stop accepting messages and cancel the writer."""
        self._closed = True
        writer, self._writer = self._writer, None
        if writer is not None:
            writer.cancel()
            await asyncio.wait([writer])
            if not writer.cancelled() and writer.exception() is not None:
                logger.warning(
                    "outbox writer had failed",
                    connection_id=self._connection.connection_id,
                    error=repr(writer.exception()),
                )
        self._discard_pending()

    async def _write_loop(self) -> None:
        while True:
            message = await self._queue.get()
            try:
                await self._connection.send_message(message)
            except (RuntimeError, OSError, ConnectionError) as e:
                logger.info(
                    "send failed, closing outbox",
                    connection_id=self._connection.connection_id,
                    error=str(e),
                )
                self._closed = True
                self._discard_pending()
                return
            except Exception:
                # Unencodable payload; only this message is lost.
                logger.exception(
                    "dropping message that could not be sent",
                    connection_id=self._connection.connection_id,
                    message_type=message.get("type"),
                )
            finally:
                self._queue.task_done()

    def _discard_pending(self) -> None:
        while True:
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            self._queue.task_done()

"""Outbound messages produced by session handlers, with typed routing targets."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pydantic import BaseModel


@dataclass(frozen=True)
class ConnectionTarget:
    """Message should be sent to a single connection."""

    connection_id: str


@dataclass(frozen=True)
class RoomTarget:
    """Message should be sent to every player in the room, optionally skipping one."""

    exclude_connection_id: str | None = None


OutboundTarget = ConnectionTarget | RoomTarget


@dataclass(frozen=True)
class Outbound:
    target: OutboundTarget
    message: dict[str, Any]


def to_connection(connection_id: str, message: BaseModel) -> Outbound:
    return Outbound(target=ConnectionTarget(connection_id), message=message.model_dump())


def to_room(message: BaseModel, exclude_connection_id: str | None = None) -> Outbound:
    return Outbound(target=RoomTarget(exclude_connection_id), message=message.model_dump())

"""Resolve outbound routing targets to concrete connections."""

from collections.abc import Callable, Iterable
from typing import Any

from arena.session.outbound import ConnectionTarget, Outbound, RoomTarget

# (connection_id, message) -> accepted
Enqueue = Callable[[str, dict[str, Any]], bool]


def route_outbound(outbound: Iterable[Outbound], members: Iterable[str], enqueue: Enqueue) -> None:
    """Hand every outbound message to the enqueue callback of each recipient.

    Members are snapshotted once so every message in the batch reaches the
    same recipients. Enqueue must not block; delivery happens in each
    connection's writer.
    """
    room_members = list(members)
    for item in outbound:
        target = item.target
        if isinstance(target, ConnectionTarget):
            enqueue(target.connection_id, item.message)
        elif isinstance(target, RoomTarget):
            for connection_id in room_members:
                if connection_id != target.exclude_connection_id:
                    enqueue(connection_id, item.message)

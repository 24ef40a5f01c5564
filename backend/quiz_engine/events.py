from __future__ import annotations

from collections import defaultdict
from typing import Any, Dict, List

from pydantic import BaseModel

from .utils import now_ts


def room_target(room_code: str) -> str:
    return f"room:{room_code}"


def connection_target(connection_id: str) -> str:
    return f"conn:{connection_id}"


class EventStore:
    """Outbound event log that a transport drains by polling.

    Events are addressed either to one connection or to everyone in a room;
    the transport owns the mapping from room targets to sockets.
    """

    def __init__(self, page_limit: int = 200) -> None:
        self.page_limit = page_limit
        self._events: Dict[str, List[dict[str, Any]]] = defaultdict(list)
        self._seq: Dict[str, int] = defaultdict(int)

    def append(self, target: str, event_type: str, payload: BaseModel | dict[str, Any] | None = None) -> int:
        """Store a new event for a target and return its sequence number."""

        if isinstance(payload, BaseModel):
            payload = payload.model_dump()
        self._seq[target] += 1
        seq = self._seq[target]
        self._events[target].append(
            {
                "seq": seq,
                "timestamp": now_ts(),
                "payload": {"type": event_type, **(payload or {})},
            }
        )
        return seq

    def to_room(self, room_code: str, event_type: str, payload: BaseModel | dict[str, Any] | None = None) -> int:
        return self.append(room_target(room_code), event_type, payload)

    def to_connection(self, connection_id: str, event_type: str, payload: BaseModel | dict[str, Any] | None = None) -> int:
        return self.append(connection_target(connection_id), event_type, payload)

    def list(self, target: str, after: int | None = None, limit: int | None = None) -> List[dict[str, Any]]:
        """Return events for a target that occur after the given sequence, one page at most."""

        events = [e for e in self._events.get(target, []) if after is None or e["seq"] > after]
        return events[: limit or self.page_limit]

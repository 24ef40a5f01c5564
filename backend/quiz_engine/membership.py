"""Room membership keyed by stable participant identity.

A participant's identity, not their connection id, is what belongs to a room.
Dropped connections keep their Player so progress survives a reconnect;
only an explicit leave removes it.
"""

from __future__ import annotations

import logging
from typing import Optional

from pydantic import BaseModel

from .errors import RoomAlreadyStarted
from .models import Player, Room

logger = logging.getLogger(__name__)


class LeaveResult(BaseModel):
    identity: Optional[str] = None
    removed: bool = False


def join(room: Room, connection_id: str, identity: str, display_name: str) -> Player:
    is_rejoin = identity in room.members
    has_been_in_room = identity in room.ever_joined

    if room.is_active and not is_rejoin and not has_been_in_room:
        raise RoomAlreadyStarted()

    room.ever_joined.add(identity)
    room.connection_to_identity[connection_id] = identity

    player = room.members.get(identity)
    if player is not None:
        # Drop the stale mapping when the same identity comes back on a new connection.
        if player.connection_id and player.connection_id != connection_id:
            room.connection_to_identity.pop(player.connection_id, None)
        player.connection_id = connection_id
        player.display_name = display_name
        logger.info("Student %s (%s) rejoined room %s", display_name, identity, room.code)
    else:
        player = Player(identity=identity, connection_id=connection_id, display_name=display_name)
        room.members[identity] = player
        logger.info("Student %s (%s) joined room %s", display_name, identity, room.code)
    return player


def leave(room: Room, connection_id: str) -> LeaveResult:
    identity = room.connection_to_identity.get(connection_id)
    if identity is None or identity not in room.members:
        return LeaveResult(identity=identity, removed=False)

    room.connection_to_identity.pop(connection_id, None)
    del room.members[identity]
    logger.info("Student %s left room %s", identity, room.code)
    return LeaveResult(identity=identity, removed=True)


def disconnect(room: Room, connection_id: str) -> Optional[Player]:
    identity = room.connection_to_identity.pop(connection_id, None)
    if identity is None:
        return None
    player = room.members.get(identity)
    if player is None:
        return None
    player.connection_id = None
    logger.debug("Student %s disconnected from room %s", player.display_name, room.code)
    return player

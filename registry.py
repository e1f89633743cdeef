"""
Room registry: room_id -> {user_id -> Connection}.

This is the only place room membership is mutated. Every method is synchronous
and never awaits, so on the event loop that owns the registry each call runs as
one atomic step; readers get a point-in-time snapshot via ``members_of``.

A room is present iff it has at least one member. Rooms are created by the first
``add_member`` and removed by the ``remove_member`` that takes out the last one.
"""
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from connection import Connection
from logging_config import get_logger

logger = get_logger(__name__)


class Room:
    def __init__(self, room_id: str):
        self.room_id = room_id
        self.created_at = datetime.now()
        # insertion order is join order
        self.members: Dict[str, Connection] = {}

    def __len__(self) -> int:
        return len(self.members)


class RoomRegistry:
    def __init__(self):
        self._rooms: Dict[str, Room] = {}

    def __contains__(self, room_id: str) -> bool:
        return room_id in self._rooms

    def __len__(self) -> int:
        return len(self._rooms)

    def add_member(self, room_id: str, user_id: str, conn: Connection) -> Optional[Connection]:
        """Put ``conn`` in ``room_id`` under ``user_id``.

        Returns the connection previously registered under the same user id, if
        any; it is replaced in place and keeps its position in join order.
        """
        room = self._rooms.get(room_id)
        if room is None:
            room = Room(room_id)
            self._rooms[room_id] = room
            logger.info(f"Room {room_id} created")

        previous = room.members.get(user_id)
        room.members[user_id] = conn
        if previous is conn:
            return None
        if previous is not None:
            logger.info(f"User {user_id} in room {room_id} superseded by connection {conn.connection_id[:8]}")
        logger.debug(f"Room {room_id} now has {len(room)} members")
        return previous

    def remove_member(self, room_id: str, user_id: str, conn: Optional[Connection] = None) -> bool:
        """Remove ``user_id`` from ``room_id``; True if that emptied and deleted the room.

        With ``conn`` given, nothing happens unless ``conn`` is the registered entry,
        so a superseded connection can never remove its replacement.
        """
        room = self._rooms.get(room_id)
        if room is None:
            return False
        current = room.members.get(user_id)
        if current is None or (conn is not None and current is not conn):
            return False

        del room.members[user_id]
        if room.members:
            logger.debug(f"Room {room_id} now has {len(room)} members")
            return False

        del self._rooms[room_id]
        logger.info(f"Room {room_id} deleted (empty)")
        return True

    def members_of(self, room_id: str, exclude: Optional[str] = None) -> List[Tuple[str, Connection]]:
        room = self._rooms.get(room_id)
        if room is None:
            return []
        return [(user_id, conn) for user_id, conn in room.members.items() if user_id != exclude]

    def get_member(self, room_id: str, user_id: str) -> Optional[Connection]:
        room = self._rooms.get(room_id)
        if room is None:
            return None
        return room.members.get(user_id)

    def member_count(self, room_id: str) -> int:
        room = self._rooms.get(room_id)
        return len(room) if room is not None else 0

    def room_ids(self) -> List[str]:
        return list(self._rooms)

    def get_room(self, room_id: str) -> Optional[Room]:
        return self._rooms.get(room_id)


room_registry = RoomRegistry()

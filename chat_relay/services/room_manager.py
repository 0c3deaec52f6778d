# chat_relay/services/room_manager.py

from __future__ import annotations

from collections import deque
from typing import Deque, Dict, List, Optional, Tuple

from chat_relay.core.errors import InvalidInput, UsernameTaken
from chat_relay.core.logging import get_logger
from chat_relay.models.models import SYSTEM_USERNAME, Member, Message, RoomSummary

logger = get_logger(__name__)

DEFAULT_HISTORY_CAP = 100
DEFAULT_HISTORY_LIMIT = 50


class Room:
    """
    One chat room: its members (in join order) and its bounded history.

    Attributes:
        id: case-sensitive room identifier
        members: connection_id -> Member, insertion ordered
        history: most recent messages, oldest first, truncated at the cap
    """

    def __init__(self, room_id: str, history_cap: int) -> None:
        self.id = room_id
        self.members: Dict[str, Member] = {}
        self.history: Deque[Message] = deque(maxlen=history_cap)

    def has_username(self, username: str) -> bool:
        return any(m.username == username for m in self.members.values())


# ============================================================================
# ROOM REGISTRY
# ============================================================================
class RoomManager:
    """
    Owns every live room, its members and its history.

    Rooms are created by the first successful join and removed in the same
    call that takes their last member out, so no caller can ever observe a
    room with zero members. History goes with the room: a later join with the
    same id starts from an empty buffer.

    Data Structures:
        rooms: room_id -> Room
        member_rooms: connection_id -> room_id, for O(1) teardown on disconnect

    Usage:
        room_manager = RoomManager(history_cap=100)
        member = room_manager.join_room("conn-1", "alice", "lobby")
        room_manager.leave("conn-1")   # -> ("lobby", "alice")
    """

    def __init__(self, history_cap: int = DEFAULT_HISTORY_CAP) -> None:
        self.history_cap = history_cap
        self.rooms: Dict[str, Room] = {}
        self.member_rooms: Dict[str, str] = {}

    def join_room(self, connection_id: str, username: str, room_id: str) -> Member:
        """
        Add a member for ``connection_id`` to ``room_id``.

        Raises:
            InvalidInput: blank username or room, the reserved system name,
                or a connection that is already a member somewhere
            UsernameTaken: an active member of that room holds ``username``
        """
        if not username or not username.strip() or not room_id or not room_id.strip():
            raise InvalidInput("Username and room are required")
        if username == SYSTEM_USERNAME:
            raise InvalidInput(f"Username '{SYSTEM_USERNAME}' is reserved")
        if connection_id in self.member_rooms:
            raise InvalidInput(f"Connection already joined room '{self.member_rooms[connection_id]}'")

        room = self.rooms.get(room_id)
        if room is not None and room.has_username(username):
            raise UsernameTaken("Username already taken in this room")

        if room is None:
            room = Room(room_id, self.history_cap)
            self.rooms[room_id] = room
            logger.info("✓ Created room '%s'", room_id)

        member = Member(connection_id=connection_id, username=username)
        room.members[connection_id] = member
        self.member_rooms[connection_id] = room_id
        logger.info("→ %s joined '%s' (%d members)", username, room_id, len(room.members))
        return member

    def leave(self, connection_id: str) -> Optional[Tuple[str, str]]:
        """
        Remove the member owned by ``connection_id``.

        Returns:
            (room_id, username) of the vacated seat, or None when the
            connection had no member (already removed or never joined).
        """
        room_id = self.member_rooms.pop(connection_id, None)
        if room_id is None:
            return None

        room = self.rooms[room_id]
        member = room.members.pop(connection_id)
        logger.info("← %s left '%s' (%d members)", member.username, room_id, len(room.members))

        if not room.members:
            del self.rooms[room_id]
            logger.info("✓ Deleted empty room '%s'", room_id)

        return room_id, member.username

    def append(self, room_id: str, message: Message) -> None:
        """Append to a room's history; the deque drops the oldest past the cap."""
        room = self.rooms.get(room_id)
        if room is None:
            raise InvalidInput(f"Room '{room_id}' does not exist")
        room.history.append(message)

    def set_typing(self, connection_id: str, is_typing: bool) -> bool:
        """Update a member's typing flag. Returns True if the flag changed."""
        room_id = self.member_rooms.get(connection_id)
        if room_id is None:
            return False
        member = self.rooms[room_id].members[connection_id]
        if member.is_typing == is_typing:
            return False
        member.is_typing = is_typing
        return True

    def history(self, room_id: str, limit: int = DEFAULT_HISTORY_LIMIT) -> List[Message]:
        """Last ``limit`` messages of a room, oldest first. Empty if absent."""
        room = self.rooms.get(room_id)
        if room is None or limit <= 0:
            return []
        items = list(room.history)
        return items[-limit:]

    def members(self, room_id: str) -> List[Member]:
        """Copy of a room's members in join order. Empty if absent."""
        room = self.rooms.get(room_id)
        if room is None:
            return []
        return [m.model_copy() for m in room.members.values()]

    def connection_ids(self, room_id: str) -> List[str]:
        room = self.rooms.get(room_id)
        if room is None:
            return []
        return list(room.members.keys())

    def has_room(self, room_id: str) -> bool:
        return room_id in self.rooms

    def member_count(self, room_id: str) -> int:
        room = self.rooms.get(room_id)
        return len(room.members) if room else 0

    def list_rooms(self) -> List[RoomSummary]:
        """
        Get all live rooms with their member counts.

        Used by the /rooms and /health endpoints.
        """
        return [
            RoomSummary(room=room_id, member_count=len(room.members))
            for room_id, room in self.rooms.items()
        ]

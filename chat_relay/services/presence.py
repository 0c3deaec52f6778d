# chat_relay/services/presence.py

from __future__ import annotations

from typing import List

from chat_relay.models.models import PresenceEntry
from chat_relay.services.room_manager import RoomManager


def snapshot(room_manager: RoomManager, room_id: str) -> List[PresenceEntry]:
    """Who is in ``room_id`` and who is typing, in join order."""
    return [
        PresenceEntry(username=m.username, is_typing=m.is_typing)
        for m in room_manager.members(room_id)
    ]

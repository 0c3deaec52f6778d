# chat_relay/api/routes/rooms.py

from typing import List

from fastapi import APIRouter, HTTPException

from chat_relay.core import state
from chat_relay.models.models import RoomSummary, presence_payload
from chat_relay.services import presence

router = APIRouter()

# ============================================================================
# ROOM READ ENDPOINTS
# ============================================================================
# Rooms only exist while someone is in them, so there is nothing to create
# or delete over HTTP.

@router.get("/rooms", response_model=List[RoomSummary])
async def list_rooms():
    """
    List all live rooms with their current member counts.
    """
    return state.room_manager.list_rooms()


@router.get("/rooms/{room_id}")
async def get_room(room_id: str):
    """
    Get the presence snapshot of a specific room.

    Raises:
        HTTPException: 404 if no one is in the room
    """
    if not state.room_manager.has_room(room_id):
        raise HTTPException(status_code=404, detail="Room not found")

    return {
        "room": room_id,
        "member_count": state.room_manager.member_count(room_id),
        "presence": presence_payload(presence.snapshot(state.room_manager, room_id)),
    }

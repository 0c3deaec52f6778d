# chat_relay/api/routes/health.py

from datetime import datetime, timezone

from fastapi import APIRouter

from chat_relay.core import state

router = APIRouter()

@router.get("/health")
async def health():
    """
    Health check endpoint.

    Liveness plus a few counters from the in-memory engine.

    Returns:
        dict: Status, uptime in seconds, open connections, live rooms,
              delivered message count
    """
    uptime_seconds = (datetime.now(timezone.utc) - state.app_start_time).total_seconds()
    return {
        "status": "OK",
        "uptime": round(uptime_seconds, 3),
        "connections": len(state.connection_manager.connections),
        "rooms": len(state.room_manager.rooms),
        "messages_delivered": state.chat_hub.delivered_count,
    }

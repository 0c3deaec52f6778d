# chat_relay/core/state.py
from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Optional

from chat_relay.core.config import settings
from chat_relay.services.chat_hub import ChatHub
from chat_relay.services.connection_manager import ConnectionManager
from chat_relay.services.dedup_window import DedupWindow
from chat_relay.services.message_router import MessageRouter
from chat_relay.services.room_manager import RoomManager
from chat_relay.services.session_table import SessionTable

# Global singletons for app state
room_manager = RoomManager(history_cap=settings.HISTORY_CAP)
session_table = SessionTable()
dedup_window = DedupWindow(window_seconds=settings.DEDUP_WINDOW_SECONDS)
message_router = MessageRouter(
    room_manager=room_manager,
    dedup=dedup_window,
    timestamp_format=settings.TIMESTAMP_FORMAT,
)
connection_manager = ConnectionManager(queue_size=settings.OUTBOUND_QUEUE_SIZE)
chat_hub = ChatHub(
    transport=connection_manager,
    room_manager=room_manager,
    sessions=session_table,
    router=message_router,
    history_limit=settings.HISTORY_LIMIT,
)

# Background tasks
dedup_sweeper: Optional[asyncio.Task] = None

app_start_time: datetime = datetime.now(timezone.utc)

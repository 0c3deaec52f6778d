# chat_relay/services/chat_hub.py

from __future__ import annotations

import asyncio
from typing import Iterable, Optional, Protocol

from chat_relay.core.errors import ChatError, InternalError, InvalidInput
from chat_relay.core.logging import get_logger
from chat_relay.models.models import Ack, Message, presence_payload
from chat_relay.services import presence
from chat_relay.services.message_router import MessageRouter
from chat_relay.services.room_manager import DEFAULT_HISTORY_LIMIT, RoomManager
from chat_relay.services.session_table import SessionTable

logger = get_logger(__name__)


class Transport(Protocol):
    """What the hub needs from the realtime layer: queue a frame for one connection."""

    def send(self, connection_id: str, payload: dict) -> None: ...


# ============================================================================
# CHAT HUB
# ============================================================================

class ChatHub:
    """
    Single coordinator for rooms, sessions, dedup and routing.

    Every inbound event runs inside one asyncio.Lock, and nothing inside the
    critical section awaits: validation happens first, mutations next, and
    outbound frames are handed to the transport, which only enqueues them.
    An event either applies completely or leaves state untouched.

    Outbound frames:
        {"type": "message", "data": Message}                  -> whole room
        {"type": "messageHistory", "data": [Message, ...]}    -> joiner only
        {"type": "presenceUpdate", "data": [{username, isTyping}, ...]} -> whole room

    Args:
        transport: ConnectionManager in production, a recorder in tests
        room_manager / sessions / router: engine state, injectable for tests
        history_limit: how many messages a joiner receives
    """

    def __init__(
        self,
        transport: Transport,
        room_manager: RoomManager,
        sessions: SessionTable,
        router: MessageRouter,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> None:
        self.transport = transport
        self.room_manager = room_manager
        self.sessions = sessions
        self.router = router
        self.history_limit = history_limit
        self.delivered_count = 0
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Inbound events
    # ------------------------------------------------------------------

    async def open(self, connection_id: str) -> None:
        async with self._lock:
            self.sessions.open(connection_id)

    async def authenticate(self, connection_id: str, username: str, room: str) -> Ack:
        """
        Join ``room`` as ``username``.

        The joiner gets the history as it was before joining, then everybody
        (joiner included) gets the "has joined" notice and fresh presence.
        """
        async with self._lock:
            try:
                self.sessions.ensure_can_authenticate(connection_id)
                history = self.room_manager.history(room, self.history_limit) if room else []
                self.room_manager.join_room(connection_id, username, room)
                try:
                    self.sessions.authenticate(connection_id, username, room)
                    notice = self.router.system_message(room, f"{username} has joined the chat")
                except Exception:
                    self.room_manager.leave(connection_id)
                    self.sessions.terminate(connection_id)
                    self.sessions.open(connection_id)
                    raise
            except ChatError as e:
                logger.info("authenticate rejected for %s: %s", connection_id, e.message)
                return self._error_ack("authenticate", e)
            except Exception:
                logger.exception("authenticate failed for %s", connection_id)
                return self._error_ack("authenticate", InternalError("Internal error"))

            self.transport.send(connection_id, {
                "type": "messageHistory",
                "data": [m.model_dump() for m in history],
            })
            self._broadcast_message(room, notice)
            self._broadcast_presence(room)
            return Ack(action="authenticate", status="success")

    async def message(
        self,
        connection_id: str,
        room: str,
        text: str,
        username: str,
        idempotency_key: Optional[str] = None,
    ) -> Ack:
        """Route a chat message from an authenticated connection to its room."""
        async with self._lock:
            try:
                if not room or not text or not username:
                    raise InvalidInput("Room, text, and username are required")
                session = self.sessions.require_authenticated(connection_id)
                if room != session.room or username != session.username:
                    raise InvalidInput("Messages can only be sent to your own room under your own name")
                message = self.router.submit(session.room, session.username, text, idempotency_key)
            except ChatError as e:
                return self._error_ack("message", e)
            except Exception:
                logger.exception("message failed for %s", connection_id)
                return self._error_ack("message", InternalError("Internal error"))

            self.delivered_count += 1
            self._broadcast_message(message.room, message)
            return Ack(action="message", status="delivered", data={"id": message.id})

    async def typing(self, connection_id: str, room: str, is_typing: bool) -> None:
        """Update the typing flag. No ack; invalid events are dropped."""
        async with self._lock:
            session = self.sessions.get(connection_id)
            if session is None or session.room is None or session.room != room:
                logger.debug("Ignoring typing from %s for '%s'", connection_id, room)
                return
            if self.room_manager.set_typing(connection_id, bool(is_typing)):
                self._broadcast_presence(room)

    async def disconnect(self, connection_id: str) -> None:
        """
        Tear down a connection's session and membership.

        Idempotent: a connection that never joined, or was already removed,
        is a no-op. Never raises: membership is gone before the leave notice
        is built, so a failing notice only costs the notice.
        """
        async with self._lock:
            self.sessions.terminate(connection_id)
            vacated = self.room_manager.leave(connection_id)
            if vacated is None:
                return
            room, username = vacated
            if not self.room_manager.has_room(room):
                # Last member gone: room and history were dropped together
                return
            try:
                notice = self.router.system_message(room, f"{username} has left the chat")
                self._broadcast_message(room, notice)
                self._broadcast_presence(room)
            except Exception:
                logger.exception("leave notice failed for %s in '%s'", username, room)

    # ------------------------------------------------------------------
    # Fan-out helpers
    # ------------------------------------------------------------------

    def _broadcast(self, connection_ids: Iterable[str], payload: dict) -> None:
        for connection_id in connection_ids:
            self.transport.send(connection_id, payload)

    def _broadcast_message(self, room: str, message: Message) -> None:
        self._broadcast(
            self.room_manager.connection_ids(room),
            {"type": "message", "data": message.model_dump()},
        )

    def _broadcast_presence(self, room: str) -> None:
        entries = presence.snapshot(self.room_manager, room)
        self._broadcast(
            self.room_manager.connection_ids(room),
            {"type": "presenceUpdate", "data": presence_payload(entries)},
        )

    @staticmethod
    def _error_ack(action: str, error: ChatError) -> Ack:
        return Ack(action=action, status=error.status, message=error.message, code=error.code)

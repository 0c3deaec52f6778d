# chat_relay/services/message_router.py

from __future__ import annotations

import hashlib
import itertools
from datetime import datetime
from typing import Callable, Optional

from chat_relay.core.errors import Duplicate, InvalidInput
from chat_relay.core.logging import get_logger
from chat_relay.models.models import SYSTEM_USERNAME, Message
from chat_relay.services.dedup_window import DedupWindow
from chat_relay.services.room_manager import RoomManager

logger = get_logger(__name__)

DEFAULT_TIMESTAMP_FORMAT = "%H:%M:%S"


def sha256_hex(data: str) -> str:
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def derive_message_id(username: str, timestamp_ms: int, text: str, sequence: int) -> str:
    """
    Id of a server-accepted send.

    ``sequence`` is the router's arrival counter: two identical sends in the
    same millisecond still get different ids. Only a redelivery that carries
    an already assigned id is a duplicate.
    """
    return sha256_hex(f"{username}\x1f{timestamp_ms}\x1f{text}\x1f{sequence}")


def derive_idempotent_id(room_id: str, username: str, idempotency_key: str) -> str:
    """
    Id of a send the client tagged with its own retry token.

    Scoped to (room, author): the same name may be held in another room.
    Keys must be unique per send; a retry after reconnecting under the same
    name in the same room is the case the key exists to catch.
    """
    return sha256_hex(f"{room_id}\x1f{username}\x1fkey\x1f{idempotency_key}")


# ============================================================================
# MESSAGE ROUTER
# ============================================================================

class MessageRouter:
    """
    Validates, deduplicates and stores messages for the room registry.

    The router does not broadcast: it returns the accepted Message and the
    caller (ChatHub) fans it out to the room, sender included.

    Args:
        room_manager: where messages are appended
        dedup: window of accepted ids
        now: wall clock used for display timestamps and id derivation
        timestamp_format: strftime format of Message.timestamp
    """

    def __init__(
        self,
        room_manager: RoomManager,
        dedup: DedupWindow,
        now: Callable[[], datetime] = datetime.now,
        timestamp_format: str = DEFAULT_TIMESTAMP_FORMAT,
    ) -> None:
        self.room_manager = room_manager
        self.dedup = dedup
        self.now = now
        self.timestamp_format = timestamp_format
        self._sequence = itertools.count(1)

    def next_sequence(self) -> int:
        return next(self._sequence)

    def submit(
        self,
        room_id: str,
        username: str,
        text: str,
        idempotency_key: Optional[str] = None,
    ) -> Message:
        """
        Accept a user message into a room's history.

        Raises:
            InvalidInput: blank room, username or text, or no such room
            Duplicate: the derived id was already accepted inside the window
        """
        if not room_id or not username or not text or not text.strip():
            raise InvalidInput("Room, text, and username are required")
        if not self.room_manager.has_room(room_id):
            raise InvalidInput(f"Room '{room_id}' does not exist")

        moment = self.now()
        if idempotency_key:
            message_id = derive_idempotent_id(room_id, username, idempotency_key)
        else:
            timestamp_ms = int(moment.timestamp() * 1000)
            message_id = derive_message_id(username, timestamp_ms, text, self.next_sequence())

        if not self.dedup.accept(message_id):
            logger.info("Duplicate message %s from %s in '%s'", message_id[:12], username, room_id)
            raise Duplicate("Message already delivered")

        message = Message(
            id=message_id,
            username=username,
            text=text,
            timestamp=moment.strftime(self.timestamp_format),
            room=room_id,
        )
        self.room_manager.append(room_id, message)
        return message

    def system_message(self, room_id: str, text: str) -> Message:
        """Build and store a join/leave notice. Not subject to dedup."""
        moment = self.now()
        timestamp_ms = int(moment.timestamp() * 1000)
        message = Message(
            id=derive_message_id(SYSTEM_USERNAME, timestamp_ms, text, self.next_sequence()),
            username=SYSTEM_USERNAME,
            text=text,
            timestamp=moment.strftime(self.timestamp_format),
            room=room_id,
        )
        self.room_manager.append(room_id, message)
        return message

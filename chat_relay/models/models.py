# chat_relay/models/models.py
from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

SYSTEM_USERNAME = "System"


class Message(BaseModel):
    """A chat line as stored in room history and broadcast to members."""

    model_config = ConfigDict(frozen=True)

    id: str
    username: str
    text: str
    timestamp: str
    room: str


class Member(BaseModel):
    connection_id: str
    username: str
    is_typing: bool = False


class PresenceEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    username: str
    is_typing: bool = Field(default=False, alias="isTyping")


class RoomSummary(BaseModel):
    room: str
    member_count: int = 0


# ============================================================================
# INBOUND PAYLOADS
# ============================================================================
# Missing fields default to "" so the hub reports them as InvalidInput
# instead of leaking pydantic's error format to clients.

class AuthenticateRequest(BaseModel):
    username: str = ""
    room: str = ""


class SendMessageRequest(BaseModel):
    room: str = ""
    text: str = ""
    username: str = ""
    idempotency_key: Optional[str] = None


class TypingRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    room: str = ""
    is_typing: bool = Field(default=False, alias="isTyping")


class Ack(BaseModel):
    """Acknowledgment returned to the connection that sent an event."""

    type: str = "ack"
    action: str
    status: str
    message: Optional[str] = None
    code: Optional[str] = None
    request_id: Optional[str] = None
    data: Optional[dict] = None


def presence_payload(entries: List[PresenceEntry]) -> List[dict]:
    return [e.model_dump(by_alias=True) for e in entries]

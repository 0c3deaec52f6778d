# chat_relay/api/websocket.py

from __future__ import annotations

import json

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from chat_relay.core import state
from chat_relay.core.errors import InvalidInput
from chat_relay.core.logging import get_logger
from chat_relay.models.models import Ack, AuthenticateRequest, SendMessageRequest, TypingRequest

logger = get_logger(__name__)

router = APIRouter()

# ============================================================================
# WEBSOCKET ENDPOINT
# ============================================================================

@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    WebSocket endpoint for the chat relay.

    Protocol:
    =========

    Client -> Server Actions:
    -------------------------
    Authenticate (join a room):
        {"action": "authenticate", "data": {"username": "alice", "room": "lobby"}}
        Response: {"type": "ack", "action": "authenticate", "status": "success"}

    Send Message:
        {"action": "message", "data": {"room": "lobby", "text": "hi", "username": "alice",
                                        "idempotency_key": "<optional retry token>"}}
        Response: {"type": "ack", "action": "message", "status": "delivered" | "duplicate" | "error"}

    Typing:
        {"action": "typing", "data": {"room": "lobby", "isTyping": true}}
        No response.

    Any action may carry "request_id"; it is echoed back in the ack.

    Server -> Client Messages:
    -------------------------
    Chat / system message:
        {"type": "message", "data": {"id": "...", "username": "alice", "text": "hi",
                                     "timestamp": "14:03:07", "room": "lobby"}}

    History (joiner only):
        {"type": "messageHistory", "data": [...]}

    Presence:
        {"type": "presenceUpdate", "data": [{"username": "alice", "isTyping": false}]}

    Error:
        {"type": "error", "message": "..."}

    Lifecycle:
    ==========
    1. Client connects, server assigns a connection id
    2. Client sends "authenticate" once; a new connection is needed to switch rooms
    3. Client sends messages / typing updates for its room
    4. On disconnect the member is removed and the room notified
    """
    connection_id = await state.connection_manager.connect(websocket)
    await state.chat_hub.open(connection_id)

    try:
        while True:
            raw = await websocket.receive_text()

            try:
                frame = json.loads(raw)
            except json.JSONDecodeError:
                state.connection_manager.send(connection_id, {"type": "error", "message": "Invalid JSON"})
                continue

            if not isinstance(frame, dict):
                state.connection_manager.send(connection_id, {"type": "error", "message": "Invalid frame"})
                continue

            action = frame.get("action")
            data = frame.get("data") or {}
            request_id = frame.get("request_id")
            logger.debug("Websocket input from %s: action=%s", connection_id, action)

            ack = await dispatch(connection_id, action, data)
            if ack is not None:
                if request_id is not None:
                    ack.request_id = str(request_id)
                state.connection_manager.send(connection_id, ack.model_dump(exclude_none=True))

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error("WebSocket error on %s: %s", connection_id, e)
    finally:
        try:
            await state.chat_hub.disconnect(connection_id)
        finally:
            await state.connection_manager.disconnect(connection_id)


async def dispatch(connection_id: str, action, data) -> Ack | None:
    """Parse one inbound action and hand it to the hub."""
    if not isinstance(data, dict):
        return _invalid(action, "data must be an object")

    if action == "authenticate":
        try:
            request = AuthenticateRequest.model_validate(data)
        except ValidationError:
            return _invalid(action, "Username and room are required")
        return await state.chat_hub.authenticate(connection_id, request.username, request.room)

    if action == "message":
        try:
            request = SendMessageRequest.model_validate(data)
        except ValidationError:
            return _invalid(action, "Room, text, and username are required")
        return await state.chat_hub.message(
            connection_id,
            request.room,
            request.text,
            request.username,
            request.idempotency_key,
        )

    if action == "typing":
        try:
            request = TypingRequest.model_validate(data)
        except ValidationError:
            logger.debug("Dropping malformed typing event from %s", connection_id)
            return None
        await state.chat_hub.typing(connection_id, request.room, request.is_typing)
        return None

    state.connection_manager.send(
        connection_id,
        {
            "type": "error",
            "message": f"Unknown action: {action}",
        },
    )
    return None


def _invalid(action, message: str) -> Ack:
    error = InvalidInput(message)
    return Ack(action=str(action), status=error.status, message=error.message, code=error.code)

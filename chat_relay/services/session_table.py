# chat_relay/services/session_table.py

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from chat_relay.core.errors import InvalidInput, NotAuthenticated


class SessionState(str, Enum):
    """Lifecycle of one connection. There is no way back to UNAUTHENTICATED."""

    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    TERMINATED = "terminated"


@dataclass
class Session:
    connection_id: str
    state: SessionState = SessionState.UNAUTHENTICATED
    username: Optional[str] = None
    room: Optional[str] = None


class SessionTable:
    """
    connection_id -> Session.

    Only an opened, not yet authenticated connection may join. Terminated
    sessions are dropped from the table, so an unknown id and a disconnected
    one are treated alike: both are closed, and neither can authenticate.
    Coming back takes a new connection, i.e. a fresh ``open``.
    """

    def __init__(self) -> None:
        self.sessions: Dict[str, Session] = {}

    def open(self, connection_id: str) -> Session:
        session = self.sessions.get(connection_id)
        if session is None:
            session = Session(connection_id=connection_id)
            self.sessions[connection_id] = session
        return session

    def get(self, connection_id: str) -> Optional[Session]:
        return self.sessions.get(connection_id)

    def ensure_can_authenticate(self, connection_id: str) -> Session:
        session = self.sessions.get(connection_id)
        if session is None or session.state is SessionState.TERMINATED:
            raise NotAuthenticated("Connection is closed; open a new connection to join")
        if session.state is SessionState.AUTHENTICATED:
            raise InvalidInput(f"Already joined room '{session.room}'; open a new connection to switch")
        return session

    def authenticate(self, connection_id: str, username: str, room: str) -> Session:
        """Bind an opened connection to the member it just created."""
        session = self.ensure_can_authenticate(connection_id)
        session.state = SessionState.AUTHENTICATED
        session.username = username
        session.room = room
        return session

    def require_authenticated(self, connection_id: str) -> Session:
        session = self.sessions.get(connection_id)
        if session is None or session.state is not SessionState.AUTHENTICATED:
            raise NotAuthenticated("Join a room before sending messages")
        return session

    def terminate(self, connection_id: str) -> Optional[Session]:
        """Remove the session. Returns it, or None if it was already gone."""
        session = self.sessions.pop(connection_id, None)
        if session is not None:
            session.state = SessionState.TERMINATED
        return session

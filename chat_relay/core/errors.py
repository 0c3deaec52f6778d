# chat_relay/core/errors.py

from __future__ import annotations


class ChatError(Exception):
    """
    Base class for errors reported back to the originating connection.

    Every subclass carries a stable ``code`` that ends up in the ack frame,
    so clients can branch on it without parsing the human readable message.
    None of these terminate the process or touch other sessions.
    """

    code: str = "error"
    status: str = "error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


class InvalidInput(ChatError):
    """A required field is missing, blank or malformed."""

    code = "invalid_input"


class UsernameTaken(ChatError):
    """Another active member of the same room already holds the username."""

    code = "username_taken"


class NotAuthenticated(ChatError):
    """The connection has not joined a room yet, or already disconnected."""

    code = "not_authenticated"


class Duplicate(ChatError):
    """The message id was already accepted inside the dedup window."""

    code = "duplicate"
    status = "duplicate"


class InternalError(ChatError):
    """Unexpected failure; state is left as it was before the event."""

    code = "internal_error"

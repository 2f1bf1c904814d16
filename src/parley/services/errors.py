"""Domain errors raised by the chat services.

Each error carries a client-safe ``message`` and the HTTP status the API
maps it to. The realtime gateway forwards ``message`` on the ``error``
channel instead.
"""

from __future__ import annotations


class ChatError(Exception):
    """Base class for all service-level failures."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthorized(ChatError):
    """Missing or invalid credentials."""

    status_code = 401
    default_message = "Not authenticated"


class Forbidden(ChatError):
    """Authenticated but not allowed to perform the action."""

    status_code = 403
    default_message = "Not allowed"


class NotFound(ChatError):
    """Referenced entity does not exist or the actor cannot see it."""

    status_code = 404
    default_message = "Not found"


class Conflict(ChatError):
    """The action would break a chat invariant."""

    status_code = 409
    default_message = "Conflict"


class InvalidRequest(ChatError):
    """Input was well-formed but semantically unusable."""

    status_code = 400
    default_message = "Invalid request"


class Internal(ChatError):
    """Store failure or unexpected exception."""

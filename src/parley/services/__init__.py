"""Domain services for Parley.

Services take a SQLAlchemy ``Session`` and raise ``ChatError`` subclasses;
transports decide how errors reach the client.
"""

from .errors import (
    ChatError,
    Conflict,
    Forbidden,
    Internal,
    InvalidRequest,
    NotFound,
    Unauthorized,
)

__all__ = [
    "ChatError",
    "Conflict",
    "Forbidden",
    "Internal",
    "InvalidRequest",
    "NotFound",
    "Unauthorized",
]

"""Version 1 of the Parley HTTP API."""

from .endpoints import (
    auth_router,
    chats_router,
    logs_router,
    messages_router,
    polls_router,
    tags_router,
    users_router,
)

__all__ = [
    "auth_router",
    "chats_router",
    "logs_router",
    "messages_router",
    "polls_router",
    "tags_router",
    "users_router",
]

"""API endpoint modules for version 1."""

from .auth import router as auth_router
from .chats import router as chats_router
from .logs import router as logs_router
from .messages import router as messages_router
from .polls import router as polls_router
from .tags import router as tags_router
from .users import router as users_router

__all__ = [
    "auth_router",
    "chats_router",
    "logs_router",
    "messages_router",
    "polls_router",
    "tags_router",
    "users_router",
]

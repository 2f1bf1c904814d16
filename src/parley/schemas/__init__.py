"""
Pydantic schemas for API request/response models and realtime payloads.

These schemas define the structure of API data for serialization and validation.
"""

from .chat import (
    AdminChange,
    ChatCreate,
    ChatSettings,
    ChatUpdate,
    MemberRemove,
    MembersAdd,
    TagCreate,
    TagResponse,
)
from .message import (
    HistoryRequest,
    MessageDeleteRequest,
    MessageDraft,
    MessageSearchParams,
    PinRequest,
    ReactionRequest,
    ScheduleRequest,
    parse_message_draft,
)
from .poll import PollCreate, PollVoteRequest, SocketPollVote
from .user import (
    LoginRequest,
    LoginResponse,
    RegisterRequest,
    RegisterResponse,
    SocketLogin,
    UserResponse,
    UserUpdate,
)

__all__ = [
    "AdminChange", "ChatCreate", "ChatSettings", "ChatUpdate",
    "MemberRemove", "MembersAdd", "TagCreate", "TagResponse",
    "HistoryRequest", "MessageDeleteRequest", "MessageDraft", "MessageSearchParams",
    "PinRequest", "ReactionRequest", "ScheduleRequest", "parse_message_draft",
    "PollCreate", "PollVoteRequest", "SocketPollVote",
    "LoginRequest", "LoginResponse", "RegisterRequest", "RegisterResponse",
    "SocketLogin", "UserResponse", "UserUpdate",
]

"""SQLAlchemy models for the Parley application."""

from .action_log import ActionLog
from .chat import ArchivedChat, Chat, ChatParticipant
from .message import Message, MessageReaction, PinnedMessage
from .poll import Poll, PollOption, PollVote
from .scheduled import ScheduledMessage
from .tag import ChatTag, Tag
from .user import User

__all__ = [
    "ActionLog",
    "ArchivedChat", "Chat", "ChatParticipant",
    "Message", "MessageReaction", "PinnedMessage",
    "Poll", "PollOption", "PollVote",
    "ScheduledMessage",
    "ChatTag", "Tag",
    "User",
]

"""Realtime transport: connection registry, rooms, presence and the event gateway."""

from .connections import ConnectionRegistry
from .gateway import RealtimeGateway
from .presence import PresenceTracker
from .rooms import RoomManager, chat_room, user_room

__all__ = [
    "ConnectionRegistry",
    "PresenceTracker",
    "RealtimeGateway",
    "RoomManager",
    "chat_room",
    "user_room",
]

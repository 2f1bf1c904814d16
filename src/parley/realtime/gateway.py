"""Socket event handlers wiring the transport to the chat services."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import ValidationError
from sqlalchemy.orm import sessionmaker

from parley.core.security import decode_access_token
from parley.core.settings import settings
from parley.realtime.connections import ConnectionRegistry
from parley.realtime.presence import PresenceTracker
from parley.realtime.rooms import RoomManager
from parley.schemas import (
    AdminChange,
    ChatCreate,
    ChatUpdate,
    MemberRemove,
    HistoryRequest,
    MembersAdd,
    MessageDeleteRequest,
    PinRequest,
    ReactionRequest,
    ScheduleRequest,
    SocketLogin,
    SocketPollVote,
    UserUpdate,
    parse_message_draft,
)
from parley.services import groups, messages, polls, reactions
from parley.services.access import require_participant
from parley.services.errors import ChatError, Forbidden, InvalidRequest, Unauthorized
from parley.services.groups import (
    AdminStatusChange,
    ChatCreation,
    MembersAdded,
    MembershipChange,
)
from parley.services.replay import RequestReplayCache
from parley.services.scheduler import ScheduledMessageDispatcher

logger = logging.getLogger(__name__)

Handler = Callable[[str, Any], Awaitable[None]]

# Client-facing text for unexpected failures, per event.
FAILURE_MESSAGES = {
    "user:login": "Failed to login",
    "chat:join": "Failed to join chat",
    "chat:leave": "Failed to leave chat",
    "message:history": "Failed to get message history",
    "message:send": "Failed to send message",
    "message:delete": "Failed to delete message",
    "message:reaction": "Failed to add reaction",
    "message:pin": "Failed to pin message",
    "message:schedule": "Failed to schedule message",
    "chat:create": "Failed to create chat",
    "chat:update": "Failed to update chat",
    "chat:delete": "Failed to delete chat",
    "chat:removeMember": "Failed to remove member",
    "chat:addMembers": "Failed to add members",
    "chat:promote": "Failed to promote member",
    "chat:demote": "Failed to demote admin",
    "user:update": "Failed to update user profile",
    "poll:vote": "Failed to register vote",
}


def _chat_id_from(data: Any) -> int:
    """Accept a bare id, a numeric string or ``{"chatId": ...}``."""
    if isinstance(data, dict):
        data = data.get("chatId", data.get("id"))
    try:
        return int(data)
    except (TypeError, ValueError) as err:
        raise InvalidRequest("Invalid chat id") from err


class RealtimeGateway:
    """One per process: owns the registry, rooms, presence and scheduler.

    Store work runs in a worker thread with a fresh session per event.
    """

    def __init__(self, server: Any, session_factory: sessionmaker) -> None:
        self.server = server
        self.session_factory = session_factory
        self.registry = ConnectionRegistry(self._disconnect_sid)
        self.rooms = RoomManager(server)
        self.presence = PresenceTracker(self.registry, self.rooms, session_factory)
        self.dispatcher = ScheduledMessageDispatcher(session_factory, self.publish_message)
        self.reaction_requests = RequestReplayCache()

        server.on("connect", self.on_connect)
        server.on("disconnect", self.on_disconnect)
        for event, handler in self._handlers().items():
            server.on(event, self._guard(event, handler))

    def _handlers(self) -> dict[str, Handler]:
        return {
            "user:login": self.on_login,
            "chat:join": self.on_chat_join,
            "chat:leave": self.on_chat_leave,
            "message:history": self.on_history,
            "message:send": self.on_send,
            "message:delete": self.on_delete,
            "message:reaction": self.on_reaction,
            "message:pin": self.on_pin,
            "message:schedule": self.on_schedule,
            "chat:create": self.on_chat_create,
            "chat:update": self.on_chat_update,
            "chat:delete": self.on_chat_delete,
            "chat:removeMember": self.on_remove_member,
            "chat:addMembers": self.on_add_members,
            "chat:promote": self.on_promote,
            "chat:demote": self.on_demote,
            "user:update": self.on_user_update,
            "poll:vote": self.on_poll_vote,
        }

    def _guard(self, event: str, handler: Handler) -> Handler:
        """Turn every failure into an ``error`` event for the calling socket."""

        async def guarded(sid: str, data: Any = None) -> None:
            try:
                await handler(sid, data)
            except ChatError as exc:
                logger.warning("%s from %s rejected: %s", event, sid, exc.message)
                await self.rooms.send_to(sid, "error", {"message": exc.message})
            except ValidationError as exc:
                logger.warning("%s from %s has an invalid payload: %s", event, sid, exc)
                await self.rooms.send_to(sid, "error", {"message": "Invalid payload"})
            except Exception:
                logger.exception("error handling %s from %s", event, sid)
                message = FAILURE_MESSAGES.get(event, "Internal server error")
                await self.rooms.send_to(sid, "error", {"message": message})

        guarded.__name__ = handler.__name__
        return guarded

    async def _call(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        return await asyncio.to_thread(self._run, func, *args, **kwargs)

    def _run(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        with self.session_factory() as db:
            return func(db, *args, **kwargs)

    async def _disconnect_sid(self, sid: str) -> None:
        await self.server.disconnect(sid)

    def _require_user(self, sid: str) -> int:
        user_id = self.registry.user_for(sid)
        if user_id is None:
            raise Unauthorized("Login required")
        return user_id

    async def _join_if_online(self, user_id: int, chat_id: int) -> None:
        sid = self.registry.lookup(user_id)
        if sid is not None:
            await self.rooms.join(sid, chat_id)

    # Connection lifecycle

    async def on_connect(self, sid: str, environ: dict, auth: Any = None) -> None:
        logger.debug("connection opened: %s", sid)

    async def on_disconnect(self, sid: str, *args: Any) -> None:
        try:
            await self.presence.disconnect(sid)
        except Exception:
            logger.exception("error handling disconnect of %s", sid)

    async def on_login(self, sid: str, data: Any) -> None:
        if not isinstance(data, dict) or data.get("id") is None:
            raise InvalidRequest("Invalid user data")
        login = SocketLogin.model_validate(data)
        if settings.socket_require_token or login.token:
            try:
                token_user = decode_access_token(login.token or "")
            except ValueError as err:
                raise Unauthorized("Could not validate credentials") from err
            if token_user != login.id:
                raise Unauthorized("Token does not match user")

        await self.presence.login(sid, login.id)
        chats = await self._call(groups.list_chats, login.id)
        for chat in chats:
            await self.rooms.join(sid, chat["id"])
        await self.rooms.send_to(sid, "chat:list", chats)

    # Rooms and history

    async def on_chat_join(self, sid: str, data: Any) -> None:
        user_id = self._require_user(sid)
        chat_id = _chat_id_from(data)
        await self._call(require_participant, chat_id, user_id)
        await self.rooms.join(sid, chat_id)

    async def on_history(self, sid: str, data: Any) -> None:
        user_id = self._require_user(sid)
        if isinstance(data, dict) and "chatId" in data:
            request = HistoryRequest.model_validate(data)
        else:
            request = HistoryRequest(chat_id=_chat_id_from(data))
        history = await self._call(
            messages.get_history,
            request.chat_id,
            user_id,
            limit=request.limit,
            before=request.before,
        )
        await self.rooms.send_to(sid, "message:history", history)

    # Messages

    async def on_send(self, sid: str, data: Any) -> None:
        user_id = self._require_user(sid)
        if not isinstance(data, dict):
            raise InvalidRequest("Invalid message")
        draft = parse_message_draft(data)
        message = await self._call(messages.send, draft, user_id)
        await self.publish_message(message["chatId"], message)

    async def on_delete(self, sid: str, data: Any) -> None:
        user_id = self._require_user(sid)
        request = MessageDeleteRequest.model_validate(data)
        result = await self._call(messages.delete, request.message_id, request.chat_id, user_id)
        await self.rooms.broadcast(request.chat_id, "message:deleted", result)

    async def on_reaction(self, sid: str, data: Any) -> None:
        user_id = self._require_user(sid)
        request = ReactionRequest.model_validate(data)
        if request.user_id is not None and request.user_id != user_id:
            raise Forbidden("Cannot react on behalf of another user")

        if request.request_id:
            result = await self._toggle_once(user_id, request)
        else:
            result = await self._call(reactions.toggle, request.message_id, user_id, request.emoji)
        await self.rooms.broadcast(result["chatId"], "message:reaction", result)

    async def _toggle_once(self, user_id: int, request: ReactionRequest) -> dict[str, Any]:
        """Apply a request id at most once.

        The pending future is cached before the toggle runs, so a repeat that
        arrives mid-flight waits for the first result instead of toggling back.
        """
        pending = self.reaction_requests.get(user_id, request.request_id)
        if pending is not None:
            return await asyncio.shield(pending)

        pending = asyncio.get_running_loop().create_future()
        self.reaction_requests.put(user_id, request.request_id, pending)
        try:
            result = await self._call(reactions.toggle, request.message_id, user_id, request.emoji)
        except asyncio.CancelledError:
            self.reaction_requests.discard(user_id, request.request_id)
            pending.cancel()
            raise
        except Exception as err:
            self.reaction_requests.discard(user_id, request.request_id)
            pending.set_exception(err)
            # Mark retrieved; waiters, if any, re-raise it themselves.
            pending.exception()
            raise
        pending.set_result(result)
        return result

    async def on_pin(self, sid: str, data: Any) -> None:
        user_id = self._require_user(sid)
        request = PinRequest.model_validate(data)
        if request.message_id is None:
            raise InvalidRequest("Missing message id")
        result = await self._call(messages.pin, request.message_id, request.pin, user_id)
        await self.publish_pin(result)

    async def on_schedule(self, sid: str, data: Any) -> None:
        user_id = self._require_user(sid)
        request = ScheduleRequest.model_validate(data)
        if request.sender_id != user_id:
            raise Forbidden("Cannot schedule messages on behalf of another user")
        scheduled = await self.dispatcher.schedule(
            request.chat_id, request.sender_id, request.content, request.scheduled_for
        )
        await self.rooms.send_to(sid, "message:scheduled", scheduled)

    # Chats and membership

    async def on_chat_create(self, sid: str, data: Any) -> None:
        user_id = self._require_user(sid)
        request = ChatCreate.model_validate(data)
        created_by = request.created_by if request.created_by is not None else user_id
        if created_by != user_id:
            raise Forbidden("Cannot create chats on behalf of another user")
        creation = await self._call(
            groups.create_chat,
            request.is_group,
            request.participants,
            created_by,
            request.name,
            request.avatar,
            request.settings,
        )
        await self.publish_chat_created(creation, sid)

    async def on_chat_update(self, sid: str, data: Any) -> None:
        user_id = self._require_user(sid)
        request = ChatUpdate.model_validate(data)
        if request.id is None:
            raise InvalidRequest("Missing chat id")
        chat = await self._call(
            groups.update_chat,
            request.id,
            user_id,
            request.name,
            request.avatar,
            request.settings,
            request.tags,
        )
        await self.rooms.broadcast(chat["id"], "chat:updated", chat)

    async def on_chat_delete(self, sid: str, data: Any) -> None:
        user_id = self._require_user(sid)
        chat_id = _chat_id_from(data)
        participant_ids = await self._call(groups.delete_chat, chat_id, user_id)
        await self.publish_chat_deleted(chat_id, participant_ids)

    async def on_chat_leave(self, sid: str, data: Any) -> None:
        user_id = self._require_user(sid)
        chat_id = _chat_id_from(data)
        change = await self._call(groups.remove_member, chat_id, user_id, user_id)
        await self.publish_membership_change(change)

    async def on_remove_member(self, sid: str, data: Any) -> None:
        user_id = self._require_user(sid)
        request = MemberRemove.model_validate(data)
        target = request.user_id if request.user_id is not None else user_id
        change = await self._call(groups.remove_member, request.chat_id, target, user_id)
        await self.publish_membership_change(change)

    async def on_add_members(self, sid: str, data: Any) -> None:
        user_id = self._require_user(sid)
        request = MembersAdd.model_validate(data)
        if request.chat_id is None:
            raise InvalidRequest("Missing chat id")
        result = await self._call(groups.add_members, request.chat_id, request.user_ids, user_id)
        await self.publish_members_added(result)

    async def on_promote(self, sid: str, data: Any) -> None:
        user_id = self._require_user(sid)
        request = AdminChange.model_validate(data)
        change = await self._call(groups.promote, request.chat_id, request.user_id, user_id)
        await self.publish_admin_change(change)

    async def on_demote(self, sid: str, data: Any) -> None:
        user_id = self._require_user(sid)
        request = AdminChange.model_validate(data)
        change = await self._call(groups.demote, request.chat_id, request.user_id, user_id)
        await self.publish_admin_change(change)

    async def on_user_update(self, sid: str, data: Any) -> None:
        user_id = self._require_user(sid)
        request = UserUpdate.model_validate(data)
        profile = await self._call(
            groups.update_user,
            request.id if request.id is not None else user_id,
            user_id,
            request.name,
            request.email,
            request.avatar,
        )
        await self.rooms.broadcast_all("user:updated", profile)

    async def on_poll_vote(self, sid: str, data: Any) -> None:
        user_id = self._require_user(sid)
        request = SocketPollVote.model_validate(data)
        if request.user_id is not None and request.user_id != user_id:
            raise Forbidden("Cannot vote on behalf of another user")
        tally = await self._call(polls.vote, request.poll_id, request.option_id, user_id)
        await self.publish_poll_vote(tally)

    # Publishing, shared with the HTTP endpoints

    async def publish_message(self, chat_id: int, message: dict[str, Any]) -> None:
        await self.rooms.broadcast(chat_id, "message:new", message)

    async def publish_pin(self, result: dict[str, Any]) -> None:
        payload = {**result, "isPinned": result["pinned"]}
        await self.rooms.broadcast(result["chatId"], "message:pinned", payload)

    async def publish_poll_vote(self, tally: dict[str, Any]) -> None:
        payload = {
            "pollId": tally["pollId"],
            "messageId": tally["messageId"],
            "chatId": tally["chatId"],
            "userId": tally.get("userId"),
            "optionId": tally.get("votedOption"),
            "results": tally,
        }
        await self.rooms.broadcast(tally["chatId"], "poll:vote", payload)

    async def publish_chat_created(self, creation: ChatCreation, sid: str | None = None) -> None:
        chat = creation.chat
        if not creation.created:
            if sid is not None:
                await self.rooms.join(sid, chat["id"])
                await self.rooms.send_to(sid, "chat:new", chat)
            return
        for user_id in creation.participant_ids:
            await self._join_if_online(user_id, chat["id"])
            await self.rooms.notify_user(user_id, "chat:new", chat)

    async def publish_chat_deleted(self, chat_id: int, participant_ids: list[int]) -> None:
        for user_id in participant_ids:
            await self.rooms.notify_user(user_id, "chat:deleted", {"chatId": chat_id})
            sid = self.registry.lookup(user_id)
            if sid is not None:
                await self.rooms.leave(sid, chat_id)

    async def publish_membership_change(self, change: MembershipChange) -> None:
        payload = {
            "chatId": change.chat_id,
            "userId": change.user_id,
            "removedBy": change.removed_by,
            "selfRemoval": change.self_removal,
            "chatDeleted": change.chat_deleted,
            "promotedUserId": change.promoted_user_id,
        }
        sid = self.registry.lookup(change.user_id)
        if sid is not None:
            await self.rooms.leave(sid, change.chat_id)
        event = "chat:left" if change.self_removal else "chat:memberRemoved"
        await self.rooms.notify_user(change.user_id, event, payload)

        if change.chat_deleted:
            return
        await self.rooms.broadcast(change.chat_id, "chat:memberRemoved", payload)
        for message in change.system_messages:
            await self.publish_message(change.chat_id, message)
        await self.rooms.broadcast(change.chat_id, "chat:updated", change.chat)

    async def publish_members_added(self, result: MembersAdded) -> None:
        chat = result.chat
        for user_id in result.added_user_ids:
            await self._join_if_online(user_id, chat["id"])
            await self.rooms.notify_user(user_id, "chat:new", chat)
        await self.rooms.broadcast(
            chat["id"],
            "chat:membersAdded",
            {"chatId": chat["id"], "userIds": result.added_user_ids, "chat": chat},
        )
        for message in result.system_messages:
            await self.publish_message(chat["id"], message)

    async def publish_admin_change(self, change: AdminStatusChange) -> None:
        for message in change.system_messages:
            await self.publish_message(change.chat["id"], message)
        await self.rooms.broadcast(change.chat["id"], "chat:updated", change.chat)

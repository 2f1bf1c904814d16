"""Message-related Pydantic schemas.

Drafts are a closed tagged union over the message ``type``. Each variant
carries its own typed metadata and knows how to render the stored
``content`` column and the ``extra`` JSON merged into hydrated messages.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class SenderRef(_CamelModel):
    """Reference to the sending user as clients submit it."""

    id: int


class ReplyRef(_CamelModel):
    """Reference to the message being replied to."""

    id: int


class _DraftBase(_CamelModel):
    chat_id: int = Field(..., alias="chatId")
    sender: SenderRef
    reply_to: ReplyRef | None = Field(None, alias="replyTo")

    def stored_content(self) -> str:
        """Return the value persisted in the ``content`` column."""
        raise NotImplementedError

    def metadata(self) -> dict[str, Any] | None:
        """Return type-specific metadata stored alongside the message."""
        return None


class TextDraft(_DraftBase):
    type: Literal["text"] = "text"
    content: str = Field(..., min_length=1)

    def stored_content(self) -> str:
        return self.content


class ImageDraft(_DraftBase):
    type: Literal["image"]
    content: str = Field(..., min_length=1, description="URL of the uploaded image")
    file_name: str | None = Field(None, alias="fileName")

    def stored_content(self) -> str:
        return self.content

    def metadata(self) -> dict[str, Any] | None:
        return {"fileName": self.file_name} if self.file_name else None


class AudioDraft(_DraftBase):
    type: Literal["audio"]
    content: str = Field(..., min_length=1, description="URL of the uploaded recording")
    file_name: str | None = Field(None, alias="fileName")

    def stored_content(self) -> str:
        return self.content

    def metadata(self) -> dict[str, Any] | None:
        return {"fileName": self.file_name or "Audio Recording"}


class FileDraft(_DraftBase):
    type: Literal["file"]
    content: str = Field(..., min_length=1, description="URL of the uploaded file")
    file_name: str | None = Field(None, alias="fileName")

    def stored_content(self) -> str:
        return self.content

    def metadata(self) -> dict[str, Any] | None:
        return {"fileName": self.file_name or "File"}


class Location(_CamelModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    address: str | dict[str, Any] | None = None


class LocationDraft(_DraftBase):
    type: Literal["location"]
    location: Location

    def stored_content(self) -> str:
        return json.dumps(self.location.model_dump(exclude_none=True))

    def metadata(self) -> dict[str, Any] | None:
        return {"location": self.location.model_dump(exclude_none=True)}


class LinkDraft(_DraftBase):
    type: Literal["link"]
    url: str = Field(..., min_length=1)
    title: str | None = None
    additional_urls: list[str] = Field(default_factory=list, alias="additionalUrls")

    def stored_content(self) -> str:
        payload: dict[str, Any] = {"url": self.url, "title": self.title or self.url}
        if self.additional_urls:
            payload["additionalUrls"] = self.additional_urls
        return json.dumps(payload)

    def metadata(self) -> dict[str, Any] | None:
        return {
            "isLink": True,
            "url": self.url,
            "title": self.title or self.url,
            "linkUrls": [self.url, *self.additional_urls],
        }


class PollDraft(_DraftBase):
    type: Literal["poll"]
    poll_id: int = Field(..., alias="pollId")
    content: str = ""

    def stored_content(self) -> str:
        return self.content or json.dumps({"pollId": self.poll_id})

    def metadata(self) -> dict[str, Any] | None:
        return {"pollId": self.poll_id}


MessageDraft = Annotated[
    TextDraft | ImageDraft | AudioDraft | FileDraft | LocationDraft | LinkDraft | PollDraft,
    Field(discriminator="type"),
]

message_draft_adapter: TypeAdapter[MessageDraft] = TypeAdapter(MessageDraft)


def parse_message_draft(payload: dict[str, Any]) -> MessageDraft:
    """Validate a raw client payload into a draft; a missing type means text."""
    data = dict(payload)
    data.setdefault("type", "text")
    return message_draft_adapter.validate_python(data)


class HistoryRequest(_CamelModel):
    """Page request for ``message:history``; ``before`` is the oldest message id held."""

    chat_id: int = Field(..., alias="chatId")
    before: int | None = None
    limit: int | None = Field(None, ge=1)


class MessageDeleteRequest(_CamelModel):
    message_id: int = Field(..., alias="messageId")
    chat_id: int = Field(..., alias="chatId")


class ReactionRequest(_CamelModel):
    message_id: int = Field(..., alias="messageId")
    chat_id: int | None = Field(None, alias="chatId")
    user_id: int | None = Field(None, alias="userId")
    emoji: str = Field(..., min_length=1, max_length=32)
    request_id: str | None = Field(None, alias="requestId", max_length=128)


class PinRequest(_CamelModel):
    message_id: int | None = Field(None, alias="messageId")
    chat_id: int | None = Field(None, alias="chatId")
    pin: bool = True


class ScheduleRequest(_CamelModel):
    chat_id: int = Field(..., alias="chatId")
    sender_id: int = Field(..., alias="senderId")
    content: str = Field(..., min_length=1)
    scheduled_for: datetime = Field(..., alias="scheduledFor")


class MessageSearchParams(_CamelModel):
    chat_id: int = Field(..., alias="chatId")
    query: str | None = None
    start_date: datetime | None = Field(None, alias="startDate")
    end_date: datetime | None = Field(None, alias="endDate")
    sender_id: int | None = Field(None, alias="senderId")
    type: str | None = None

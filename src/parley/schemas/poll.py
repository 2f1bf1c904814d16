"""Poll-related Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class PollCreate(BaseModel):
    """Schema for creating a poll in a chat."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    chat_id: int = Field(..., alias="chatId")
    question: str = Field(..., min_length=1)
    options: list[str]
    expires_at: datetime | None = Field(None, alias="expiresAt")


class PollVoteRequest(BaseModel):
    """Vote submitted over HTTP."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    option_id: int = Field(..., alias="optionId")


class SocketPollVote(BaseModel):
    """Vote submitted over the realtime channel."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    poll_id: int = Field(..., alias="pollId")
    option_id: int = Field(..., alias="optionId")
    message_id: int | None = Field(None, alias="messageId")
    user_id: int | None = Field(None, alias="userId")
    chat_id: int | None = Field(None, alias="chatId")

"""Chat-related Pydantic schemas."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class ChatSettings(BaseModel):
    """Per-chat switches stored in the ``chats.settings`` blob."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    only_admins_can_add_members: bool = Field(False, alias="onlyAdminsCanAddMembers")
    only_admins_can_change_info: bool = Field(False, alias="onlyAdminsCanChangeInfo")
    only_admins_can_send_messages: bool = Field(False, alias="onlyAdminsCanSendMessages")
    muted: bool = False

    def to_blob(self) -> dict[str, bool]:
        """Serialize with the camelCase keys clients use."""
        return self.model_dump(by_alias=True)


class ChatCreate(BaseModel):
    """Schema for creating a DM or a group."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    is_group: bool = Field(False, alias="isGroup")
    participants: list[int] = Field(default_factory=list)
    created_by: int | None = Field(None, alias="createdBy")
    name: str | None = Field(None, max_length=255)
    avatar: str | None = None
    settings: ChatSettings | None = None


class ChatUpdate(BaseModel):
    """Schema for updating chat info; omitted fields are left untouched."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: int | None = None
    name: str | None = Field(None, max_length=255)
    avatar: str | None = None
    settings: ChatSettings | None = None
    tags: list[int] | None = None


class MembersAdd(BaseModel):
    """Schema for adding users to a group."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    chat_id: int | None = Field(None, alias="chatId")
    user_ids: list[int] = Field(..., alias="userIds", min_length=1)


class MemberRemove(BaseModel):
    """Payload of ``chat:removeMember`` / ``chat:leave``."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    chat_id: int = Field(..., alias="chatId")
    user_id: int | None = Field(None, alias="userId")


class AdminChange(BaseModel):
    """Payload of ``chat:promote`` / ``chat:demote``."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    chat_id: int = Field(..., alias="chatId")
    user_id: int = Field(..., alias="userId")


class TagCreate(BaseModel):
    """Schema for creating a tag."""

    name: str = Field(..., min_length=1, max_length=64)
    description: str | None = None
    color: str | None = Field(None, max_length=16)


class TagResponse(BaseModel):
    """Tag as returned by the API."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: str | None
    color: str | None

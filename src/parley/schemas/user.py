"""User-related Pydantic schemas."""

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class RegisterRequest(BaseModel):
    """Schema for account registration."""

    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=72)


class RegisterResponse(BaseModel):
    """Identifier assigned to a newly registered user."""

    user_id: int = Field(..., serialization_alias="userId")
    message: str


class LoginRequest(BaseModel):
    """Credentials exchanged for an access token."""

    email: EmailStr
    password: str


class UserResponse(BaseModel):
    """Public profile of a user."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    avatar: str | None
    is_online: bool


class LoginResponse(BaseModel):
    """Token and profile returned after a successful login."""

    access_token: str
    token_type: str = "bearer"
    user: UserResponse


class UserUpdate(BaseModel):
    """Profile fields a user may change on themselves."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: int | None = None
    name: str | None = Field(None, min_length=1, max_length=255)
    email: EmailStr | None = None
    avatar: str | None = None


class SocketLogin(BaseModel):
    """Identity announced by a client on ``user:login``."""

    model_config = ConfigDict(extra="ignore")

    id: int
    token: str | None = None

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

ROLE_PATTERN = "^(user|admin|super_admin)$"
STATUS_PATTERN = "^(active|inactive)$"


class GoogleAuthRequest(BaseModel):
    email: str | None = None
    name: str | None = None
    picture: str | None = None
    googleId: str | None = None


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: int
    email: str
    name: str | None = None
    role: str
    profile_picture: str | None = None


class ProfileResponse(UserResponse):
    status: str
    last_login: datetime | None = None
    created_at: datetime | None = None


class UpdateUserRequest(BaseModel):
    role: str | None = Field(None, pattern=ROLE_PATTERN)
    status: str | None = Field(None, pattern=STATUS_PATTERN)

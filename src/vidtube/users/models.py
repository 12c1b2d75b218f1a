import re
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from vidtube.db.models import User

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")


class UserLogin(BaseModel):
    username: Optional[str] = Field(default=None, max_length=50)
    email: Optional[str] = Field(default=None, max_length=255)
    password: str = Field(..., min_length=1)

    @field_validator("username", "email")
    @classmethod
    def normalize_identifier(cls, v):
        if v is None:
            return None
        v = v.strip().lower()
        return v or None


class RefreshTokenRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    refresh_token: Optional[str] = Field(default=None, alias="refreshToken")


class ChangePasswordRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    old_password: str = Field(..., alias="oldPassword")
    new_password: str = Field(..., alias="newPassword")

    @field_validator("new_password")
    @classmethod
    def validate_new_password(cls, v):
        if not v or not v.strip():
            raise ValueError("New password cannot be empty")
        return v


class AccountUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    full_name: Optional[str] = Field(default=None, alias="fullName", max_length=100)
    email: Optional[str] = Field(default=None, max_length=255)

    @field_validator("full_name")
    @classmethod
    def validate_full_name(cls, v):
        if v is None:
            return None
        if not v.strip():
            raise ValueError("Full name cannot be empty")
        return v.strip()

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        if v is None:
            return None
        v = v.strip().lower()
        if not EMAIL_PATTERN.match(v):
            raise ValueError("Invalid email format")
        return v


class WatchHistoryAdd(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    video_id: int = Field(..., alias="videoId")


def user_summary(user: User) -> dict:
    """Display fields shown next to videos, comments and subscriptions."""
    return {
        "id": user.id,
        "username": user.username,
        "fullName": user.full_name,
        "avatar": user.avatar,
    }


def user_public(user: User) -> dict:
    """Everything about a user except the password hash and refresh token."""
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "fullName": user.full_name,
        "avatar": user.avatar,
        "coverImage": user.cover_image or "",
        "createdAt": user.created_at.isoformat(),
        "updatedAt": user.updated_at.isoformat(),
    }

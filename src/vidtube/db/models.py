from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class User(SQLModel, table=True):
    """A registered account; doubles as a channel when it owns videos."""
    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(index=True, unique=True, max_length=50)
    email: str = Field(index=True, unique=True, max_length=255)
    full_name: str = Field(index=True, max_length=100)
    hashed_password: str
    avatar: str
    cover_image: Optional[str] = Field(default="")
    refresh_token: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class Video(SQLModel, table=True):
    """A published (or draft) video owned by a user."""
    id: Optional[int] = Field(default=None, primary_key=True)
    video_file: str
    thumbnail: str
    title: str = Field(index=True, max_length=255)
    description: str = Field(default="", max_length=5000)
    duration: float = Field(ge=0)  # seconds, probed from the uploaded file
    views: int = Field(default=0)
    is_published: bool = Field(default=True, index=True)
    owner_id: int = Field(foreign_key="user.id", index=True)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class Comment(SQLModel, table=True):
    """A comment left on a video."""
    id: Optional[int] = Field(default=None, primary_key=True)
    content: str = Field(max_length=1000)
    video_id: int = Field(foreign_key="video.id", index=True)
    owner_id: int = Field(foreign_key="user.id", index=True)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class Subscription(SQLModel, table=True):
    """A subscriber following a channel."""
    id: Optional[int] = Field(default=None, primary_key=True)
    subscriber_id: int = Field(foreign_key="user.id", index=True)
    channel_id: int = Field(foreign_key="user.id", index=True)
    created_at: datetime = Field(default_factory=utc_now)

    __table_args__ = (
        UniqueConstraint("subscriber_id", "channel_id", name="uq_subscription_pair"),
    )


class WatchHistory(SQLModel, table=True):
    """Videos a user has watched. One row per (user, video)."""
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    video_id: int = Field(foreign_key="video.id", index=True)
    added_at: datetime = Field(default_factory=utc_now)

    __table_args__ = (
        UniqueConstraint("user_id", "video_id", name="uq_watch_history_entry"),
    )

"""Broadcast ODM schema."""

from datetime import datetime
from typing import Any

from beanie import Indexed
from pydantic import BaseModel, Field, field_validator

from .enums import MemberRole
from .schema_utils import parse_mongo_datetime
from .versioned import VersionedDocument


class BroadcastMember(BaseModel):
    """Member entry embedded in a broadcast, unique by user_id."""

    user_id: str
    role: MemberRole = MemberRole.MEMBER
    joined_at: datetime

    @field_validator("joined_at", mode="before")
    @classmethod
    def _parse_datetime(cls, v: Any) -> Any:
        return parse_mongo_datetime(v)


class Broadcast(VersionedDocument):
    """Broadcast document model.

    Members are embedded so that removal and promotion during succession are
    one single-document write.
    """

    broadcast_id: Indexed(str, unique=True)  # type: ignore[valid-type]
    owner_id: Indexed(str)  # type: ignore[valid-type]
    name: Indexed(str, unique=True)  # type: ignore[valid-type]
    description: str | None = None
    image_url: str | None = None

    members: list[BroadcastMember] = Field(default_factory=list)

    # Video id of the single active live stream, None when not streaming
    live_video_id: str | None = None

    # Timestamps
    created_at: datetime
    updated_at: datetime

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def _parse_datetime(cls, v: Any) -> Any:
        """Parse MongoDB Extended JSON datetime format."""
        return parse_mongo_datetime(v)

    def find_member(self, user_id: str) -> BroadcastMember | None:
        for member in self.members:
            if member.user_id == user_id:
                return member
        return None

    class Settings:
        name = "broadcast"
        indexes = [
            [("members.user_id", 1)],
        ]

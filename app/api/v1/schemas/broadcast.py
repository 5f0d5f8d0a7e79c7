from datetime import datetime

from pydantic import BaseModel, Field, field_serializer

from app.schemas import MemberRole

from .base import serialize_utc_datetime


class MemberOut(BaseModel):
    user_id: str
    role: MemberRole
    joined_at: datetime

    @field_serializer("joined_at")
    @classmethod
    def serialize_datetime(cls, v: datetime) -> str:
        return serialize_utc_datetime(v)


class BroadcastOut(BaseModel):
    broadcast_id: str
    owner_id: str
    name: str
    description: str | None = None
    image_url: str | None = None
    members: list[MemberOut] = Field(default_factory=list)
    live_video_id: str | None = None
    created_at: datetime
    updated_at: datetime

    @field_serializer("created_at", "updated_at")
    @classmethod
    def serialize_datetime(cls, v: datetime) -> str:
        return serialize_utc_datetime(v)


class BroadcastAccountOut(BaseModel):
    broadcast: BroadcastOut
    role: MemberRole


class VerifyAccountOut(BaseModel):
    accounts: list[BroadcastAccountOut]


class MembersOut(BaseModel):
    name: str
    members: list[MemberOut]


class SearchBroadcastsOut(BaseModel):
    broadcasts: list[BroadcastOut]


class JoinBroadcastIn(BaseModel):
    name: str = Field(description="Name of the broadcast to join")


class JoinBroadcastOut(BaseModel):
    broadcast_id: str
    role: MemberRole
    token: str = Field(description="Broadcast token, send as X-Broadcast-Token")


class MemberIn(BaseModel):
    user_id: str = Field(description="Target member's user id")


class UpdateRoleIn(BaseModel):
    user_id: str = Field(description="Target member's user id")
    role: MemberRole = Field(description="CO_BROADCASTER to promote, MEMBER to demote")


class RoleChangeOut(BaseModel):
    broadcast_id: str
    user_id: str
    previous_role: MemberRole
    role: MemberRole
    message: str


class LeaveBroadcastOut(BaseModel):
    broadcast_id: str
    deleted: bool = False
    successor_id: str | None = None
    message: str

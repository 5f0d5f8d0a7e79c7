"""Broadcast domain models."""

from datetime import datetime

from pydantic import BaseModel, Field

from app.schemas import MemberRole


class MemberResponse(BaseModel):
    user_id: str
    role: MemberRole
    joined_at: datetime


class BroadcastResponse(BaseModel):
    """Broadcast response model."""

    broadcast_id: str
    owner_id: str
    name: str
    description: str | None = None
    image_url: str | None = None
    members: list[MemberResponse] = Field(default_factory=list)
    live_video_id: str | None = None
    created_at: datetime
    updated_at: datetime


class BroadcastAccountResponse(BaseModel):
    """The broadcast a user belongs to, with the user's role in it."""

    broadcast: BroadcastResponse
    role: MemberRole


class BroadcastSearchResponse(BaseModel):
    broadcasts: list[BroadcastResponse]


class JoinBroadcastResponse(BaseModel):
    broadcast_id: str
    role: MemberRole
    token: str


class RoleChangeResponse(BaseModel):
    broadcast_id: str
    user_id: str
    previous_role: MemberRole
    role: MemberRole


class LeaveBroadcastResponse(BaseModel):
    broadcast_id: str
    deleted: bool = False
    successor_id: str | None = None


class ImageUpload(BaseModel):
    """Raw image bytes received from the client, uploaded to object storage."""

    content: bytes
    content_type: str = "image/jpeg"
    filename: str | None = None


class BroadcastCreateParams(BaseModel):
    """Parameters for creating a broadcast."""

    user_id: str
    name: str
    description: str | None = None
    image: ImageUpload | None = None


class BroadcastUpdateParams(BaseModel):
    """Parameters for updating a broadcast; unset fields are left unchanged."""

    name: str | None = None
    description: str | None = None
    image: ImageUpload | None = None


class BroadcastClaims(BaseModel):
    """Verified contents of a broadcast-scoped membership token.

    `role` is the role at issue time; authorization always re-reads the
    current role from the store.
    """

    user_id: str
    broadcast_id: str
    role: MemberRole


class MembershipCheck(BaseModel):
    """Typed result of checking a broadcast token against current membership."""

    ok: bool
    reason: str | None = None
    broadcast_id: str | None = None
    user_id: str | None = None
    role: MemberRole | None = None

    @classmethod
    def denied(cls, reason: str) -> "MembershipCheck":
        return cls(ok=False, reason=reason)

"""Video domain models."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from app.schemas import CollaborationStatus, VideoState
from app.shared.utils.time import utc_now

from ..broadcast.broadcast_models import ImageUpload


class VideoCollaborationResponse(BaseModel):
    broadcast_id: str
    status: CollaborationStatus


class VideoResponse(BaseModel):
    """Video response model."""

    video_id: str
    broadcast_id: str
    uploader_id: str
    state: VideoState
    storage_key: str | None = None
    title: str | None = None
    description: str | None = None
    poster_url: str | None = None
    duration: float | None = None
    available_formats: list[str] = Field(default_factory=list)
    view_count: int = 0
    draft: bool = True
    is_live: bool = False
    collaboration: VideoCollaborationResponse | None = None
    error: str | None = None
    created_at: datetime
    updated_at: datetime


class VideoListResponse(BaseModel):
    videos: list[VideoResponse]


class UploadUrlResponse(BaseModel):
    video_id: str
    upload_url: str
    storage_key: str
    expires_in: int


class TranscodeAccepted(BaseModel):
    """Returned when a transcode is dispatched; completion arrives on the status bus."""

    video_id: str
    state: VideoState = VideoState.TRANSCODING


class VideoDetailsParams(BaseModel):
    """Parameters for store_video_details; unset fields are left unchanged."""

    title: str | None = None
    description: str | None = None
    duration: float | None = None
    poster: ImageUpload | None = None


class StreamStartResponse(BaseModel):
    video_id: str
    broadcast_id: str
    stream_key: str


class LiveStreamStatus(BaseModel):
    broadcast_id: str
    is_live: bool
    video: VideoResponse | None = None


class PlaybackResponse(BaseModel):
    """Signed URLs for one encoding of a playable video.

    A live video carries `stream_key` instead of file URLs.
    """

    video_id: str
    is_live: bool = False
    resolution: str | None = None
    available_formats: list[str] = Field(default_factory=list)
    manifest_url: str | None = None
    segment_urls: dict[str, str] = Field(default_factory=dict)
    stream_key: str | None = None
    expires_in: int | None = None


class StatusEvent(BaseModel):
    """Ephemeral transcode outcome, delivered to live subscribers only."""

    video_id: str
    user_id: str
    status: Literal["TRANSCODED", "FAILED"]
    error: str | None = None
    timestamp: datetime = Field(default_factory=utc_now)


class CollaborationEvent(BaseModel):
    """Ephemeral collaboration request/response notification."""

    video_id: str
    requester_broadcast_id: str
    target_broadcast_id: str
    status: CollaborationStatus
    timestamp: datetime = Field(default_factory=utc_now)

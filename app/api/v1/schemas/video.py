from datetime import datetime

from pydantic import BaseModel, Field, field_serializer

from app.schemas import CollaborationStatus, VideoState

from .base import serialize_utc_datetime


class CollaborationOut(BaseModel):
    broadcast_id: str
    status: CollaborationStatus


class VideoOut(BaseModel):
    video_id: str
    broadcast_id: str
    uploader_id: str
    state: VideoState
    title: str | None = None
    description: str | None = None
    poster_url: str | None = None
    duration: float | None = None
    available_formats: list[str] = Field(default_factory=list)
    view_count: int = 0
    draft: bool = True
    is_live: bool = False
    collaboration: CollaborationOut | None = None
    error: str | None = None
    created_at: datetime
    updated_at: datetime

    @field_serializer("created_at", "updated_at")
    @classmethod
    def serialize_datetime(cls, v: datetime) -> str:
        return serialize_utc_datetime(v)


class VideoListOut(BaseModel):
    videos: list[VideoOut]


class VideoIdIn(BaseModel):
    video_id: str = Field(description="Video identifier")


class UploadUrlOut(BaseModel):
    video_id: str
    upload_url: str = Field(description="Presigned PUT URL, upload with Content-Type video/mp4")
    expires_in: int


class TranscodeAcceptedOut(BaseModel):
    video_id: str
    state: VideoState
    message: str


class PlaybackOut(BaseModel):
    video_id: str
    is_live: bool = False
    resolution: str | None = None
    available_formats: list[str] = Field(default_factory=list)
    manifest_url: str | None = None
    segment_urls: dict[str, str] = Field(default_factory=dict)
    stream_key: str | None = None
    expires_in: int | None = None


class ViewCountOut(BaseModel):
    video_id: str
    view_count: int


class RequestCollaborationIn(BaseModel):
    video_id: str
    target_broadcast_id: str = Field(description="Broadcast invited to co-own the video")


class RespondCollaborationIn(BaseModel):
    video_id: str
    accept: bool


class StartStreamIn(BaseModel):
    title: str | None = Field(default=None, max_length=200)


class StreamStartOut(BaseModel):
    video_id: str
    broadcast_id: str
    stream_key: str


class LiveStreamStatusOut(BaseModel):
    broadcast_id: str
    is_live: bool
    video: VideoOut | None = None

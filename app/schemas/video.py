"""Video ODM schema."""

from datetime import datetime
from typing import Any

from beanie import Indexed
from pydantic import BaseModel, Field, field_validator
from pymongo import IndexModel

from .enums import CollaborationStatus, VideoState
from .schema_utils import parse_mongo_datetime
from .versioned import VersionedDocument


class VideoCollaboration(BaseModel):
    """Reference to another broadcast invited to co-own a video."""

    broadcast_id: str
    status: CollaborationStatus = CollaborationStatus.PENDING


class Video(VersionedDocument):
    """Video document model."""

    video_id: Indexed(str, unique=True)  # type: ignore[valid-type]
    broadcast_id: str
    uploader_id: str

    state: VideoState = VideoState.DRAFT
    storage_key: str | None = None

    # Metadata
    title: str | None = None
    description: str | None = None
    poster_url: str | None = None
    duration: float | None = None
    available_formats: list[str] = Field(default_factory=list)
    view_count: int = 0
    draft: bool = True

    # Live streaming
    is_live: bool = False
    stream_key: str | None = None

    collaboration: VideoCollaboration | None = None

    # Last transcode error, cleared on resubmission
    error: str | None = None

    # Timestamps
    created_at: datetime
    updated_at: datetime

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def _parse_datetime(cls, v: Any) -> Any:
        """Parse MongoDB Extended JSON datetime format."""
        return parse_mongo_datetime(v)

    def is_playable(self) -> bool:
        if self.state == VideoState.LIVE:
            return True
        return self.state == VideoState.PUBLISHED and bool(self.available_formats)

    class Settings:
        name = "video"
        indexes = [
            IndexModel([("broadcast_id", 1), ("created_at", -1)], name="broadcast_created_at"),
            IndexModel([("stream_key", 1)], name="stream_key", sparse=True),
            IndexModel([("uploader_id", 1)], name="uploader_id"),
        ]

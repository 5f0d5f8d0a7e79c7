from datetime import datetime

from pydantic import BaseModel, Field, field_serializer

from app.schemas import QualityPreference

from .base import serialize_utc_datetime
from .video import VideoOut


class ViewerSettingsIn(BaseModel):
    default_quality: QualityPreference = Field(description="Resolution used when playback does not ask for one")
    default_volume: int = Field(ge=0, le=100)
    default_playback_speed: float = Field(ge=0.5, le=2.0)
    auto_play: bool
    enable_hotkeys: bool


class ViewerSettingsOut(BaseModel):
    default_quality: QualityPreference
    default_volume: int
    default_playback_speed: float
    auto_play: bool
    enable_hotkeys: bool


class WatchLaterItemOut(BaseModel):
    video: VideoOut
    added_at: datetime

    @field_serializer("added_at")
    @classmethod
    def serialize_datetime(cls, v: datetime) -> str:
        return serialize_utc_datetime(v)


class WatchHistoryItemOut(BaseModel):
    video: VideoOut
    watched_at: datetime
    watch_duration: float = 0

    @field_serializer("watched_at")
    @classmethod
    def serialize_datetime(cls, v: datetime) -> str:
        return serialize_utc_datetime(v)


class CollectionStatsOut(BaseModel):
    watch_time_hours: int
    watch_later_count: int


class CollectionOut(BaseModel):
    watch_later: list[WatchLaterItemOut]
    watch_history: list[WatchHistoryItemOut]
    stats: CollectionStatsOut


class WatchLaterChangeOut(BaseModel):
    video_id: str
    changed: bool
    message: str

"""Viewer domain models."""

from datetime import datetime

from pydantic import BaseModel, Field

from app.schemas import QualityPreference

from ..video.video_models import VideoResponse


class ViewerSettingsParams(BaseModel):
    default_quality: QualityPreference = QualityPreference.MEDIUM
    default_volume: int = Field(default=100, ge=0, le=100)
    default_playback_speed: float = Field(default=1.0, ge=0.5, le=2.0)
    auto_play: bool = True
    enable_hotkeys: bool = True


class ViewerSettingsResponse(ViewerSettingsParams):
    """Stored settings, or the defaults for a user who never saved any."""

    user_id: str


class WatchLaterItem(BaseModel):
    video: VideoResponse
    added_at: datetime


class WatchHistoryItem(BaseModel):
    video: VideoResponse
    watched_at: datetime
    watch_duration: float = 0


class CollectionStats(BaseModel):
    watch_time_hours: int = 0
    watch_later_count: int = 0


class CollectionResponse(BaseModel):
    watch_later: list[WatchLaterItem] = Field(default_factory=list)
    watch_history: list[WatchHistoryItem] = Field(default_factory=list)
    stats: CollectionStats = Field(default_factory=CollectionStats)


class WatchLaterChange(BaseModel):
    video_id: str
    changed: bool

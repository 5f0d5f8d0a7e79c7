"""Per-user playback settings and saved-video collections."""

from datetime import datetime
from typing import Any

from beanie import Document, Indexed
from pydantic import BaseModel, Field, field_validator

from .enums import QualityPreference
from .schema_utils import parse_mongo_datetime


class ViewerSettings(Document):
    """Playback preferences of one user."""

    user_id: Indexed(str, unique=True)  # type: ignore[valid-type]
    default_quality: QualityPreference = QualityPreference.MEDIUM
    default_volume: int = Field(default=100, ge=0, le=100)
    default_playback_speed: float = Field(default=1.0, ge=0.5, le=2.0)
    auto_play: bool = True
    enable_hotkeys: bool = True
    updated_at: datetime

    @field_validator("updated_at", mode="before")
    @classmethod
    def _parse_datetime(cls, v: Any) -> Any:
        return parse_mongo_datetime(v)

    class Settings:
        name = "viewer_settings"


class WatchLaterEntry(BaseModel):
    video_id: str
    broadcast_id: str
    added_at: datetime


class WatchHistoryEntry(BaseModel):
    video_id: str
    watched_at: datetime
    watch_duration: float = 0


class ViewerCollection(Document):
    """Watch-later list and watch history of one user, newest first."""

    user_id: Indexed(str, unique=True)  # type: ignore[valid-type]
    watch_later: list[WatchLaterEntry] = Field(default_factory=list)
    watch_history: list[WatchHistoryEntry] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def _parse_datetime(cls, v: Any) -> Any:
        return parse_mongo_datetime(v)

    class Settings:
        name = "viewer_collection"

"""Beanie ODM schemas for MongoDB collections."""

from .broadcast import Broadcast, BroadcastMember
from .enums import CollaborationStatus, MemberRole, QualityPreference, VideoState
from .video import Video, VideoCollaboration
from .viewer import ViewerCollection, ViewerSettings, WatchHistoryEntry, WatchLaterEntry

__all__ = [
    "Broadcast",
    "BroadcastMember",
    "CollaborationStatus",
    "MemberRole",
    "QualityPreference",
    "Video",
    "VideoCollaboration",
    "VideoState",
    "ViewerCollection",
    "ViewerSettings",
    "WatchHistoryEntry",
    "WatchLaterEntry",
]

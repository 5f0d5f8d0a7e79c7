"""Viewer domain service - playback settings, watch later and watch history."""

from redis.asyncio import Redis

from app.shared.generation_cache import GenerationCache

from ..outcome import OperationResult, run_operation
from ..video.video_cache import VideoCache
from ._collections import CollectionOperations
from ._settings import SettingsOperations
from .viewer_models import (
    CollectionResponse,
    ViewerSettingsParams,
    ViewerSettingsResponse,
    WatchLaterChange,
)


class ViewerService:
    """What a signed-in user keeps for themselves, independent of any broadcast."""

    def __init__(self, redis_client: Redis, video_cache: VideoCache, collection_ttl: int = 300):
        deps = (GenerationCache(redis_client), video_cache, collection_ttl)
        self._settings = SettingsOperations(*deps)
        self._collections = CollectionOperations(*deps)

    async def get_settings(self, user_id: str) -> OperationResult[ViewerSettingsResponse]:
        return await run_operation(self._settings.get_settings(user_id=user_id))

    async def update_settings(
        self,
        user_id: str,
        params: ViewerSettingsParams,
    ) -> OperationResult[ViewerSettingsResponse]:
        return await run_operation(
            self._settings.update_settings(user_id=user_id, params=params),
            "Settings updated successfully",
        )

    async def add_to_watch_later(self, user_id: str, video_id: str) -> OperationResult[WatchLaterChange]:
        return await run_operation(
            self._collections.add_to_watch_later(user_id=user_id, video_id=video_id),
            lambda change: "Added to watch later" if change.changed else "Already in watch later",
        )

    async def remove_from_watch_later(self, user_id: str, video_id: str) -> OperationResult[WatchLaterChange]:
        return await run_operation(
            self._collections.remove_from_watch_later(user_id=user_id, video_id=video_id),
            lambda change: "Removed from watch later" if change.changed else "Not in watch later",
        )

    async def record_watch(self, user_id: str, video_id: str) -> OperationResult[None]:
        """Put a played video at the front of the user's watch history."""
        return await run_operation(self._collections.record_watch(user_id=user_id, video_id=video_id))

    async def get_collection(self, user_id: str) -> OperationResult[CollectionResponse]:
        return await run_operation(self._collections.get_collection(user_id=user_id))

"""Base service for viewer operations."""

from loguru import logger

from app.shared.generation_cache import REDIS_ERRORS, GenerationCache
from app.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

from ..video.video_cache import VideoCache

# Most recent entries kept in a watch history
HISTORY_LIMIT = 100


class BaseService:
    """Base service with shared viewer operation methods."""

    def __init__(self, cache: GenerationCache, video_cache: VideoCache, collection_ttl: int = 300):
        self.cache = cache
        self.video_cache = video_cache
        self.collection_ttl = collection_ttl

    @staticmethod
    def collection_key(user_id: str) -> str:
        return f"collection:{user_id}"

    async def _invalidate_collection(self, user_id: str, strict: bool = True) -> None:
        key = self.collection_key(user_id)
        try:
            await self.cache.invalidate([key])
        except REDIS_ERRORS as e:
            if not strict:
                logger.error(f"Cache invalidation failed for {key}, entry expires with its TTL: {e}")
                return
            logger.error(f"Cache invalidation failed for {key}: {e}")
            raise AppError(
                errcode=AppErrorCode.E_UPSTREAM_FAILURE,
                errmesg="Change saved but cache invalidation failed; please retry",
                status_code=HttpStatusCode.SERVICE_UNAVAILABLE,
            ) from e

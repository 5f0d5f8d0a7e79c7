"""Short-lived redis cache for single-video reads."""

from loguru import logger
from redis.asyncio import Redis

from app.schemas import Video
from app.shared.generation_cache import REDIS_ERRORS, GenerationCache
from app.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

from .video_models import VideoResponse


def to_video_response(video: Video) -> VideoResponse:
    return VideoResponse(**video.model_dump(exclude={"id", "version", "revision_id", "stream_key"}))


class VideoCache:
    """Read-through cache for `video:{video_id}`.

    Reads fall back to MongoDB on redis errors. A miss never writes back over
    an invalidation that happened during its store read.
    """

    def __init__(self, redis_client: Redis, ttl: int = 60):
        self._cache = GenerationCache(redis_client)
        self._ttl = ttl

    @staticmethod
    def video_key(video_id: str) -> str:
        return f"video:{video_id}"

    async def get_video(self, video_id: str) -> VideoResponse | None:
        key = self.video_key(video_id)
        cached = await self._cache.get(key)
        if cached is not None:
            logger.debug(f"Cache hit: {key}")
            return VideoResponse.model_validate_json(cached)

        generation = await self._cache.generation(key)
        video = await Video.find_one(Video.video_id == video_id)
        if video is None:
            return None

        response = to_video_response(video)
        await self._cache.set_if_current(key, response.model_dump_json().encode(), self._ttl, generation)
        return response

    async def invalidate(self, video_id: str, strict: bool = True) -> None:
        """Delete the cached video.

        Raises:
            AppError: If redis rejects the delete and `strict` is set (E_UPSTREAM_FAILURE).
        """
        key = self.video_key(video_id)
        try:
            await self._cache.invalidate([key])
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

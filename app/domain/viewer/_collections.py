"""Watch-later list and watch history."""

from beanie.operators import In
from loguru import logger

from app.schemas import Video, ViewerCollection
from app.shared.utils.time import utc_now
from app.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

from ..video.video_cache import to_video_response
from ..video.video_models import VideoResponse
from ._base import HISTORY_LIMIT, BaseService
from .viewer_models import (
    CollectionResponse,
    CollectionStats,
    WatchHistoryItem,
    WatchLaterChange,
    WatchLaterItem,
)


class CollectionOperations(BaseService):
    """Per-user video collections.

    Every change is a single atomic update on the user's document, which is
    created on first write. Reads go through `collection:{user_id}`.
    """

    async def _ensure_collection(self, user_id: str) -> None:
        now = utc_now()
        await ViewerCollection.get_motor_collection().update_one(
            {"user_id": user_id},
            {
                "$setOnInsert": {
                    "user_id": user_id,
                    "watch_later": [],
                    "watch_history": [],
                    "created_at": now,
                    "updated_at": now,
                }
            },
            upsert=True,
        )

    async def _get_visible_video(self, video_id: str) -> VideoResponse:
        video = await self.video_cache.get_video(video_id)
        if video is None or video.draft:
            raise AppError(
                errcode=AppErrorCode.E_VIDEO_NOT_FOUND,
                errmesg=f"Video not found: {video_id}",
                status_code=HttpStatusCode.NOT_FOUND,
            )
        return video

    async def add_to_watch_later(self, user_id: str, video_id: str) -> WatchLaterChange:
        """Save a video for later. Saving it twice keeps the first entry."""
        video = await self._get_visible_video(video_id)
        await self._ensure_collection(user_id)

        now = utc_now()
        entry = {"video_id": video_id, "broadcast_id": video.broadcast_id, "added_at": now}
        result = await ViewerCollection.get_motor_collection().update_one(
            {"user_id": user_id, "watch_later.video_id": {"$ne": video_id}},
            {
                "$push": {"watch_later": {"$each": [entry], "$position": 0}},
                "$set": {"updated_at": now},
            },
        )
        changed = result.modified_count > 0
        if changed:
            await self._invalidate_collection(user_id)
            logger.info(f"{user_id} saved video {video_id} for later")
        return WatchLaterChange(video_id=video_id, changed=changed)

    async def remove_from_watch_later(self, user_id: str, video_id: str) -> WatchLaterChange:
        result = await ViewerCollection.get_motor_collection().update_one(
            {"user_id": user_id, "watch_later.video_id": video_id},
            {
                "$pull": {"watch_later": {"video_id": video_id}},
                "$set": {"updated_at": utc_now()},
            },
        )
        changed = result.modified_count > 0
        if changed:
            await self._invalidate_collection(user_id)
            logger.info(f"{user_id} removed video {video_id} from watch later")
        return WatchLaterChange(video_id=video_id, changed=changed)

    async def record_watch(self, user_id: str, video_id: str) -> None:
        """Move `video_id` to the front of the watch history, keeping the newest HISTORY_LIMIT."""
        await self._ensure_collection(user_id)

        collection = ViewerCollection.get_motor_collection()
        now = utc_now()
        await collection.update_one({"user_id": user_id}, {"$pull": {"watch_history": {"video_id": video_id}}})
        await collection.update_one(
            {"user_id": user_id},
            {
                "$push": {
                    "watch_history": {
                        "$each": [{"video_id": video_id, "watched_at": now, "watch_duration": 0}],
                        "$position": 0,
                        "$slice": HISTORY_LIMIT,
                    }
                },
                "$set": {"updated_at": now},
            },
        )
        # History is best effort; a stale read expires with the TTL
        await self._invalidate_collection(user_id, strict=False)

    async def get_collection(self, user_id: str) -> CollectionResponse:
        """Watch-later list and history with their videos. Deleted videos are left out."""
        key = self.collection_key(user_id)
        cached = await self.cache.get(key)
        if cached is not None:
            logger.debug(f"Cache hit: {key}")
            return CollectionResponse.model_validate_json(cached)

        generation = await self.cache.generation(key)
        collection = await ViewerCollection.find_one(ViewerCollection.user_id == user_id)
        if collection is None:
            return CollectionResponse()

        response = await self._build_collection(collection)
        await self.cache.set_if_current(key, response.model_dump_json().encode(), self.collection_ttl, generation)
        return response

    async def _build_collection(self, collection: ViewerCollection) -> CollectionResponse:
        video_ids = {e.video_id for e in collection.watch_later} | {e.video_id for e in collection.watch_history}
        videos = {
            v.video_id: to_video_response(v)
            for v in await Video.find(In(Video.video_id, list(video_ids))).to_list()
        }

        watch_later = [
            WatchLaterItem(video=videos[e.video_id], added_at=e.added_at)
            for e in collection.watch_later
            if e.video_id in videos
        ]
        watch_history = [
            WatchHistoryItem(video=videos[e.video_id], watched_at=e.watched_at, watch_duration=e.watch_duration)
            for e in collection.watch_history
            if e.video_id in videos
        ]
        watch_seconds = sum(e.watch_duration for e in collection.watch_history)
        return CollectionResponse(
            watch_later=watch_later,
            watch_history=watch_history,
            stats=CollectionStats(
                watch_time_hours=round(watch_seconds / 3600),
                watch_later_count=len(watch_later),
            ),
        )

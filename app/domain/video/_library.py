"""Video reads, playback, deletion and collaboration."""

from beanie.operators import In, Inc
from loguru import logger

from app.app_config import get_app_environ_config
from app.schemas import (
    Broadcast,
    CollaborationStatus,
    MemberRole,
    QualityPreference,
    Video,
    VideoCollaboration,
    VideoState,
)
from app.shared.utils.time import utc_now
from app.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

from ..broadcast.broadcast_models import BroadcastClaims
from ._base import BaseService, VideoWrite, transcoded_prefix
from .resolution import select_resolution
from .status_bus import COLLABORATION_STATUS_TOPIC
from .video_cache import to_video_response
from .video_models import (
    CollaborationEvent,
    PlaybackResponse,
    VideoListResponse,
    VideoResponse,
)

MANIFEST_NAME = "index.m3u8"
SEGMENT_SUFFIX = ".ts"

PLAYABLE_STATES = [VideoState.PUBLISHED, VideoState.LIVE]


def _no_playable_format(video_id: str) -> AppError:
    return AppError(
        errcode=AppErrorCode.E_NO_PLAYABLE_FORMAT,
        errmesg=f"Video has no playable format: {video_id}",
        status_code=HttpStatusCode.UNPROCESSABLE_ENTITY,
    )


class LibraryOperations(BaseService):
    """Video library operations."""

    async def get_video(self, video_id: str) -> VideoResponse:
        """Get a single video through the cache. Raises AppError if not found."""
        video = await self.video_cache.get_video(video_id)
        if video is None:
            raise AppError(
                errcode=AppErrorCode.E_VIDEO_NOT_FOUND,
                errmesg=f"Video not found: {video_id}",
                status_code=HttpStatusCode.NOT_FOUND,
            )
        return video

    async def _list_videos(self, broadcast_id: str, include_drafts: bool, limit: int) -> list[Video]:
        # Own videos plus accepted collaborations from other broadcasts
        query: dict = {
            "$or": [
                {"broadcast_id": broadcast_id},
                {
                    "collaboration.broadcast_id": broadcast_id,
                    "collaboration.status": CollaborationStatus.ACCEPTED.value,
                },
            ]
        }
        if not include_drafts:
            query["draft"] = False

        return await Video.find(query).sort("-created_at").limit(limit).to_list()

    async def list_broadcast_videos(
        self,
        broadcast_name: str,
        include_drafts: bool = False,
        limit: int = 50,
    ) -> VideoListResponse:
        """List a broadcast's videos by broadcast name, newest first."""
        broadcast = await Broadcast.find_one(Broadcast.name == broadcast_name)
        if broadcast is None:
            raise AppError(
                errcode=AppErrorCode.E_BROADCAST_NOT_FOUND,
                errmesg=f"Broadcast not found: {broadcast_name}",
                status_code=HttpStatusCode.NOT_FOUND,
            )

        videos = await self._list_videos(broadcast.broadcast_id, include_drafts, limit)
        return VideoListResponse(videos=[to_video_response(v) for v in videos])

    async def list_my_broadcast_videos(self, claims: BroadcastClaims, limit: int = 50) -> VideoListResponse:
        """Member view of the caller's broadcast, drafts included."""
        await self._authorize(claims)
        videos = await self._list_videos(claims.broadcast_id, include_drafts=True, limit=limit)
        return VideoListResponse(videos=[to_video_response(v) for v in videos])

    async def delete_video(self, claims: BroadcastClaims, video_id: str) -> VideoResponse:
        """
        Delete a video and every storage object behind it.

        Storage goes first: if it fails the record stays and the delete can be
        retried. A LIVE video also frees the broadcast's live slot.

        Raises AppError:
        - E_VIDEO_NOT_FOUND if the video does not exist (no storage call is made)
        - E_NOT_AUTHORIZED unless the caller manages the video's broadcast
        """
        video = await self._get_video_or_raise(video_id)
        await self._authorize(claims, video, MemberRole.managers())

        deleted_objects = await self._delete_video_objects(video)
        await Video.find(Video.video_id == video_id).delete()

        # The slot must be freed even if a cache invalidation fails
        try:
            if video.state == VideoState.LIVE or video.is_live:
                await self._release_live_slot(video.broadcast_id, video.video_id)
        finally:
            await self.video_cache.invalidate(video_id)

        logger.info(f"Video {video_id} deleted by {claims.user_id} ({deleted_objects} objects removed)")
        return to_video_response(video)

    async def get_playback(
        self,
        video_id: str,
        quality: QualityPreference | str | None = None,
    ) -> PlaybackResponse:
        """
        Signed URLs for the manifest and segments of one encoding.

        The encoding is chosen from `available_formats` by `quality`. LIVE
        videos return their stream key instead.
        """
        video = await self._get_video_or_raise(video_id)
        if not video.is_playable():
            raise _no_playable_format(video_id)

        if video.state == VideoState.LIVE:
            return PlaybackResponse(video_id=video_id, is_live=True, stream_key=video.stream_key)

        resolution = select_resolution(video.available_formats, quality)
        if resolution is None or not video.storage_key:
            raise _no_playable_format(video_id)

        prefix = f"{transcoded_prefix(video.storage_key)}{resolution}/"
        manifest_key = f"{prefix}{MANIFEST_NAME}"
        segment_keys = [k for k in await self.storage.list_objects(prefix) if k.endswith(SEGMENT_SUFFIX)]

        expires_in = get_app_environ_config().S3_SIGNED_URL_EXPIRES
        urls = await self.storage.presign_many([manifest_key, *segment_keys], expires_in=expires_in)

        return PlaybackResponse(
            video_id=video_id,
            resolution=resolution,
            available_formats=video.available_formats,
            manifest_url=urls[manifest_key],
            segment_urls={key.rsplit("/", 1)[-1]: urls[key] for key in segment_keys},
            expires_in=expires_in,
        )

    async def increment_view_count(self, video_id: str) -> int:
        """Atomically count one view of a playable video. Returns the new count."""
        result = await Video.find(
            Video.video_id == video_id,
            In(Video.state, PLAYABLE_STATES),
        ).update(Inc({Video.view_count: 1}))

        video = await self._get_video_or_raise(video_id)
        if not result or result.modified_count == 0:
            raise _no_playable_format(video_id)

        await self.video_cache.invalidate(video_id, strict=False)
        return video.view_count

    # ==================== COLLABORATION ====================

    async def request_collaboration(
        self,
        claims: BroadcastClaims,
        video_id: str,
        target_broadcast_id: str,
    ) -> VideoResponse:
        """
        Invite another broadcast to co-own a video.

        Only the BROADCASTER of the video's broadcast may ask. The invitation
        is stored as PENDING, then announced to the target broadcast.
        """
        if target_broadcast_id == claims.broadcast_id:
            raise AppError(
                errcode=AppErrorCode.E_INVALID_REQUEST,
                errmesg="Cannot collaborate with your own broadcast",
                status_code=HttpStatusCode.BAD_REQUEST,
            )

        video = await self._get_video_or_raise(video_id)
        await self._authorize(claims, video, [MemberRole.BROADCASTER])

        if await Broadcast.find_one(Broadcast.broadcast_id == target_broadcast_id) is None:
            raise AppError(
                errcode=AppErrorCode.E_BROADCAST_NOT_FOUND,
                errmesg=f"Broadcast not found: {target_broadcast_id}",
                status_code=HttpStatusCode.NOT_FOUND,
            )

        def mutate(v: Video) -> VideoWrite[None]:
            if v.collaboration and v.collaboration.status != CollaborationStatus.REJECTED:
                raise AppError(
                    errcode=AppErrorCode.E_COLLABORATION_EXISTS,
                    errmesg="Video already has a collaboration",
                    status_code=HttpStatusCode.CONFLICT,
                )
            collaboration = VideoCollaboration(
                broadcast_id=target_broadcast_id,
                status=CollaborationStatus.PENDING,
            )
            return VideoWrite(
                result=None,
                updates={Video.collaboration: collaboration, Video.updated_at: utc_now()},
            )

        updated, _ = await self._write_video(video_id, mutate)

        self.bus.publish(
            COLLABORATION_STATUS_TOPIC,
            target_broadcast_id,
            CollaborationEvent(
                video_id=video_id,
                requester_broadcast_id=claims.broadcast_id,
                target_broadcast_id=target_broadcast_id,
                status=CollaborationStatus.PENDING,
            ),
        )
        logger.info(f"Collaboration on {video_id} requested: {claims.broadcast_id} -> {target_broadcast_id}")
        return to_video_response(updated)

    async def respond_to_collaboration(
        self,
        claims: BroadcastClaims,
        video_id: str,
        accept: bool,
    ) -> VideoResponse:
        """
        Accept or reject a PENDING invitation. Only the BROADCASTER of the
        invited broadcast may answer; the requesting broadcast is notified.
        """
        await self._authorize(claims, roles=[MemberRole.BROADCASTER])
        status = CollaborationStatus.ACCEPTED if accept else CollaborationStatus.REJECTED

        def mutate(v: Video) -> VideoWrite[None]:
            if v.collaboration is None or v.collaboration.broadcast_id != claims.broadcast_id:
                raise AppError(
                    errcode=AppErrorCode.E_NOT_AUTHORIZED,
                    errmesg="No collaboration request for your broadcast",
                    status_code=HttpStatusCode.FORBIDDEN,
                )
            if v.collaboration.status != CollaborationStatus.PENDING:
                raise AppError(
                    errcode=AppErrorCode.E_INVALID_REQUEST,
                    errmesg=f"Collaboration already {v.collaboration.status}",
                    status_code=HttpStatusCode.BAD_REQUEST,
                )
            collaboration = v.collaboration.model_copy(update={"status": status})
            return VideoWrite(
                result=None,
                updates={Video.collaboration: collaboration, Video.updated_at: utc_now()},
            )

        updated, _ = await self._write_video(video_id, mutate)

        self.bus.publish(
            COLLABORATION_STATUS_TOPIC,
            updated.broadcast_id,
            CollaborationEvent(
                video_id=video_id,
                requester_broadcast_id=updated.broadcast_id,
                target_broadcast_id=claims.broadcast_id,
                status=status,
            ),
        )
        logger.info(f"Collaboration on {video_id} {status} by {claims.broadcast_id}")
        return to_video_response(updated)

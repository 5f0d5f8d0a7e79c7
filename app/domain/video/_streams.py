"""Live stream operations."""

from loguru import logger

from app.schemas import Broadcast, MemberRole, Video, VideoState
from app.shared.utils.time import utc_now
from app.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

from ..broadcast.broadcast_models import BroadcastClaims
from ..utils.idgen import new_stream_key, new_video_id
from ._base import BaseService, VideoWrite
from .video_cache import to_video_response
from .video_models import LiveStreamStatus, StreamStartResponse, VideoResponse


class StreamOperations(BaseService):
    """Live stream operations.

    At most one LIVE video per broadcast. The slot is `Broadcast.live_video_id`,
    claimed with a conditional update so concurrent starts cannot both win.
    """

    async def start_stream(self, claims: BroadcastClaims, title: str | None = None) -> StreamStartResponse:
        """
        Start a live stream for the caller's broadcast.

        The LIVE video is inserted first and then claims the broadcast slot. If
        the claim loses, or anything after the insert fails, the video is
        removed again and the slot is left to whoever holds it.

        Raises AppError:
        - E_NOT_AUTHORIZED unless the caller is BROADCASTER or CO_BROADCASTER now
        - E_STREAM_ALREADY_ACTIVE if another stream holds the slot
        """
        await self._authorize(claims, roles=MemberRole.managers())

        now = utc_now()
        video = Video(
            video_id=new_video_id(),
            broadcast_id=claims.broadcast_id,
            uploader_id=claims.user_id,
            state=VideoState.LIVE,
            title=title,
            draft=False,
            is_live=True,
            stream_key=new_stream_key(),
            created_at=now,
            updated_at=now,
        )
        await video.insert()

        try:
            claimed = await self._claim_live_slot(claims.broadcast_id, video.video_id)
        except Exception:
            await self._abandon_stream(video)
            raise

        if not claimed:
            await self._abandon_stream(video)
            exists = await Broadcast.find_one(Broadcast.broadcast_id == claims.broadcast_id)
            if exists is None:
                raise AppError(
                    errcode=AppErrorCode.E_BROADCAST_NOT_FOUND,
                    errmesg=f"Broadcast not found: {claims.broadcast_id}",
                    status_code=HttpStatusCode.NOT_FOUND,
                )
            raise AppError(
                errcode=AppErrorCode.E_STREAM_ALREADY_ACTIVE,
                errmesg="A live stream is already active for this broadcast",
                status_code=HttpStatusCode.CONFLICT,
            )

        logger.info(f"Live stream {video.video_id} started on broadcast {claims.broadcast_id} by {claims.user_id}")
        return StreamStartResponse(
            video_id=video.video_id,
            broadcast_id=claims.broadcast_id,
            stream_key=video.stream_key,
        )

    async def _abandon_stream(self, video: Video) -> None:
        """Undo a start that did not go through: free the slot, drop the video."""
        try:
            await self._release_live_slot(video.broadcast_id, video.video_id, strict=False)
        except Exception:
            logger.exception(
                f"E_RECONCILE broadcast {video.broadcast_id} live slot may still point at {video.video_id}"
            )
        try:
            await Video.find(Video.video_id == video.video_id).delete()
        except Exception:
            logger.exception(f"E_RECONCILE abandoned live video left in store: {video.video_id}")

    async def end_stream(self, claims: BroadcastClaims, video_id: str) -> VideoResponse:
        """End a live stream; the recording stays as a PUBLISHED video."""
        video = await self._get_video_or_raise(video_id)
        await self._authorize(claims, video, MemberRole.managers())
        return await self._finish_stream(video)

    async def handle_stream_ended(self, stream_key: str) -> VideoResponse | None:
        """Ingest callback: the stream behind `stream_key` stopped.

        Unknown keys are logged and ignored. Ending an already-ended stream only
        makes sure the broadcast slot is free.
        """
        video = await Video.find_one(Video.stream_key == stream_key)
        if video is None:
            logger.warning(f"Stream ended for unknown stream key {stream_key[:8]}...")
            return None

        if video.state != VideoState.LIVE:
            await self._release_live_slot(video.broadcast_id, video.video_id)
            logger.info(f"Stream end for video {video.video_id} already handled (state={video.state})")
            return to_video_response(video)

        return await self._finish_stream(video)

    async def _finish_stream(self, video: Video) -> VideoResponse:
        def mutate(v: Video) -> VideoWrite[None]:
            updates = self._transition(v, VideoState.PUBLISHED)
            updates[Video.is_live] = False
            return VideoWrite(result=None, updates=updates)

        updated, _ = await self._write_video(video.video_id, mutate)
        await self._release_live_slot(updated.broadcast_id, updated.video_id)

        logger.info(f"Live stream {updated.video_id} ended on broadcast {updated.broadcast_id}")
        return to_video_response(updated)

    async def get_live_stream_status(self, broadcast_id: str) -> LiveStreamStatus:
        broadcast = await self.broadcast_cache.get_broadcast(broadcast_id)
        if broadcast is None:
            raise AppError(
                errcode=AppErrorCode.E_BROADCAST_NOT_FOUND,
                errmesg=f"Broadcast not found: {broadcast_id}",
                status_code=HttpStatusCode.NOT_FOUND,
            )

        if not broadcast.live_video_id:
            return LiveStreamStatus(broadcast_id=broadcast_id, is_live=False)

        video = await self.video_cache.get_video(broadcast.live_video_id)
        return LiveStreamStatus(
            broadcast_id=broadcast_id,
            is_live=video is not None and video.is_live,
            video=video,
        )

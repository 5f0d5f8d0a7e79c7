"""Transcode dispatch and completion handling."""

import asyncio

from loguru import logger
from pymongo.errors import PyMongoError

from app.schemas import Video, VideoState
from app.services.transcoder.transcoder_schemas import TranscodeResult
from app.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

from ..broadcast.broadcast_models import BroadcastClaims
from ._base import BaseService, VideoWrite, transcoded_prefix
from .status_bus import VIDEO_STATUS_TOPIC
from .video_models import StatusEvent, TranscodeAccepted

# Attempts to persist a transcode outcome before giving up
OUTCOME_WRITE_ATTEMPTS = 3
OUTCOME_RETRY_DELAY_SECONDS = 0.5


class TranscodeOperations(BaseService):
    """Transcode-related operations.

    start_transcode only dispatches; the outcome is written to the video
    record first and then published on the status bus, keyed by uploader.
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        # Strong references keep detached tasks alive until they finish
        self._tasks: set[asyncio.Task] = set()

    async def start_transcode(self, claims: BroadcastClaims, video_id: str) -> TranscodeAccepted:
        """
        Move the video to TRANSCODING and dispatch the worker call.

        Returns as soon as the task is scheduled. Resubmitting a FAILED video
        is allowed; PUBLISHED, LIVE and TRANSCODING videos are rejected.

        Raises AppError if the caller is not the uploader or no longer a member.
        """
        video = await self._get_video_or_raise(video_id)
        await self._authorize(claims, video)
        if video.uploader_id != claims.user_id:
            raise AppError(
                errcode=AppErrorCode.E_NOT_AUTHORIZED,
                errmesg="Only the uploader can start transcoding",
                status_code=HttpStatusCode.FORBIDDEN,
            )

        def mutate(v: Video) -> VideoWrite[None]:
            updates = self._transition(v, VideoState.TRANSCODING)
            updates[Video.error] = None
            return VideoWrite(result=None, updates=updates)

        video, _ = await self._write_video(video_id, mutate)
        self._dispatch(video)

        return TranscodeAccepted(video_id=video_id)

    def _dispatch(self, video: Video) -> asyncio.Task:
        task = asyncio.create_task(
            self._run_transcode(video.video_id, video.uploader_id, video.storage_key),
            name=f"transcode-{video.video_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.info(f"Transcode dispatched for video {video.video_id} ({video.storage_key})")
        return task

    def pending_transcodes(self) -> int:
        return len(self._tasks)

    async def wait_for_transcodes(self, timeout: float | None = None) -> None:
        """Wait for in-flight transcodes, up to `timeout` seconds."""
        if not self._tasks:
            return
        _, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        if pending:
            logger.warning(f"{len(pending)} transcodes still running at shutdown")

    async def _run_transcode(self, video_id: str, user_id: str, storage_key: str) -> None:
        try:
            try:
                result = await self.transcoder.transcode(storage_key)
            except Exception as e:
                logger.exception(f"Transcode call raised for video {video_id}")
                result = TranscodeResult.failed(str(e) or type(e).__name__)

            if result.success and not result.transcoded_files:
                result = TranscodeResult.failed("Transcoder produced no playable formats")

            event = await self._record_outcome(video_id, user_id, storage_key, result)
            if event is not None:
                self.bus.publish(VIDEO_STATUS_TOPIC, user_id, event)
                logger.info(f"Video {video_id} status {event.status} published to {user_id}")
        except Exception:
            logger.exception(f"E_RECONCILE transcode completion crashed for video {video_id}")

    async def _record_outcome(
        self,
        video_id: str,
        user_id: str,
        storage_key: str,
        result: TranscodeResult,
    ) -> StatusEvent | None:
        """Persist the outcome; returns the event to publish, None if nothing was written."""
        target = VideoState.PUBLISHED if result.success else VideoState.FAILED
        error = None if result.success else (result.error or "Transcoding failed")

        def mutate(v: Video) -> VideoWrite[None]:
            updates = self._transition(v, target)
            if result.success:
                updates[Video.available_formats] = result.transcoded_files
                if result.duration is not None:
                    updates[Video.duration] = result.duration
            else:
                updates[Video.error] = error
            return VideoWrite(result=None, updates=updates)

        for attempt in range(1, OUTCOME_WRITE_ATTEMPTS + 1):
            try:
                await self._write_video(video_id, mutate, strict_invalidation=False)
                break
            except AppError as e:
                if e.errcode == AppErrorCode.E_VIDEO_NOT_FOUND.value:
                    await self._discard_outputs(video_id, storage_key)
                    return None
                if e.errcode == AppErrorCode.E_INVALID_VIDEO_TRANSITION.value:
                    logger.warning(f"Video {video_id} left TRANSCODING before completion, outcome ignored")
                    return None
                logger.warning(f"Writing transcode outcome for {video_id} failed: {e.errmesg}")
            except PyMongoError as e:
                logger.warning(f"Writing transcode outcome for {video_id} failed: {e}")

            if attempt < OUTCOME_WRITE_ATTEMPTS:
                await asyncio.sleep(OUTCOME_RETRY_DELAY_SECONDS * attempt)
        else:
            logger.error(
                f"E_RECONCILE video {video_id} stuck in TRANSCODING, outcome not saved: "
                f"success={result.success} formats={result.transcoded_files} error={result.error}"
            )
            return None

        if result.success:
            return StatusEvent(video_id=video_id, user_id=user_id, status="TRANSCODED")
        return StatusEvent(video_id=video_id, user_id=user_id, status="FAILED", error=error)

    async def _discard_outputs(self, video_id: str, storage_key: str) -> None:
        """Delete outputs produced for a video that was deleted mid-transcode."""
        try:
            keys = await self.storage.list_objects(transcoded_prefix(storage_key))
            deleted = await self.storage.delete_objects(keys)
            logger.info(f"Video {video_id} deleted during transcode, removed {deleted} outputs")
        except AppError:
            logger.error(f"E_RECONCILE transcoded outputs left in storage: {transcoded_prefix(storage_key)}")

"""Base service for video operations."""

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from beanie.odm.operators.update.general import Set
from loguru import logger

from app.schemas import Broadcast, MemberRole, Video, VideoState
from app.services.integrations.s3_storage import S3Service
from app.services.transcoder.transcoder_client import TranscodeClient
from app.shared.utils.time import utc_now
from app.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

from ..broadcast.broadcast_domain import BroadcastService
from ..broadcast.broadcast_models import BroadcastClaims, MembershipCheck
from ..broadcast.membership_cache import MembershipCache
from .status_bus import StatusBus
from .video_cache import VideoCache
from .video_state_machine import VideoStateMachine

R = TypeVar("R")

MAX_WRITE_ATTEMPTS = 3

POSTER_FOLDER = "video-posters"


def transcoded_prefix(storage_key: str) -> str:
    return f"transcoded/{storage_key}/"


@dataclass
class VideoWrite(Generic[R]):
    """What a mutation wants to write to the freshly read video."""

    result: R
    updates: dict[Any, Any] = field(default_factory=dict)


class BaseService:
    """Base service with shared video operation methods."""

    def __init__(
        self,
        storage: S3Service,
        transcoder: TranscodeClient,
        bus: StatusBus,
        broadcasts: BroadcastService,
        broadcast_cache: MembershipCache,
        video_cache: VideoCache,
    ):
        self.storage = storage
        self.transcoder = transcoder
        self.bus = bus
        self.broadcasts = broadcasts
        self.broadcast_cache = broadcast_cache
        self.video_cache = video_cache

    async def _get_video_by_id(self, video_id: str) -> Video | None:
        return await Video.find_one(Video.video_id == video_id)

    async def _get_video_or_raise(self, video_id: str) -> Video:
        video = await self._get_video_by_id(video_id)
        if video is None:
            raise AppError(
                errcode=AppErrorCode.E_VIDEO_NOT_FOUND,
                errmesg=f"Video not found: {video_id}",
                status_code=HttpStatusCode.NOT_FOUND,
            )
        return video

    async def _authorize(
        self,
        claims: BroadcastClaims,
        video: Video | None = None,
        roles: list[MemberRole] | None = None,
    ) -> MembershipCheck:
        """Require current membership (and `roles`) in the claimed broadcast.

        When `video` is given it must belong to that broadcast.
        """
        check = await self.broadcasts.require_membership(claims, roles)
        if video is not None and video.broadcast_id != claims.broadcast_id:
            raise AppError(
                errcode=AppErrorCode.E_NOT_AUTHORIZED,
                errmesg="Video does not belong to your broadcast",
                status_code=HttpStatusCode.FORBIDDEN,
            )
        return check

    @staticmethod
    def _transition(video: Video, target: VideoState) -> dict[Any, Any]:
        """Validated state change as an update mapping.

        Raises:
            AppError: E_INVALID_VIDEO_TRANSITION if the state machine forbids it.
        """
        if not VideoStateMachine.can_transition(video.state, target):
            raise AppError(
                errcode=AppErrorCode.E_INVALID_VIDEO_TRANSITION,
                errmesg=f"Invalid video state transition: {video.state} -> {target}",
                status_code=HttpStatusCode.CONFLICT,
            )
        return {Video.state: target, Video.updated_at: utc_now()}

    async def _write_video(
        self,
        video_id: str,
        mutate: Callable[[Video], VideoWrite[R]],
        strict_invalidation: bool = True,
    ) -> tuple[Video, VideoWrite[R]]:
        """Read-validate-write loop with a versioned conditional write.

        Raises:
            AppError: E_VIDEO_NOT_FOUND, whatever `mutate` raises, or
                E_VERSION_CONFLICT after MAX_WRITE_ATTEMPTS lost races.
        """
        for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
            video = await self._get_video_or_raise(video_id)
            write = mutate(video)
            if not write.updates:
                return video, write

            if await video.update_with_version_check(write.updates):
                await self.video_cache.invalidate(video_id, strict=strict_invalidation)
                return video, write

            logger.debug(
                f"Video {video_id} changed concurrently, retrying "
                f"(attempt {attempt}/{MAX_WRITE_ATTEMPTS})"
            )

        raise AppError(
            errcode=AppErrorCode.E_VERSION_CONFLICT,
            errmesg="Video was modified concurrently, please retry",
            status_code=HttpStatusCode.CONFLICT,
        )

    async def _claim_live_slot(self, broadcast_id: str, video_id: str) -> bool:
        """Atomically mark `video_id` as the broadcast's only live stream.

        The LIVE video is inserted before its claim, so a slot whose holder has
        no LIVE video left is dangling and gets taken over.
        """
        result = await Broadcast.find(
            Broadcast.broadcast_id == broadcast_id,
            Broadcast.live_video_id == None,  # noqa: E711
        ).update(Set({Broadcast.live_video_id: video_id, Broadcast.updated_at: utc_now()}))
        claimed = bool(result and result.modified_count > 0)

        if not claimed:
            claimed = await self._reclaim_dangling_slot(broadcast_id, video_id)

        if claimed:
            await self.broadcast_cache.invalidate(broadcast_id)
        return claimed

    async def _reclaim_dangling_slot(self, broadcast_id: str, video_id: str) -> bool:
        broadcast = await Broadcast.find_one(Broadcast.broadcast_id == broadcast_id)
        if broadcast is None or not broadcast.live_video_id:
            return False

        holder = broadcast.live_video_id
        live = await Video.find_one(Video.video_id == holder, Video.state == VideoState.LIVE)
        if live is not None:
            return False

        result = await Broadcast.find(
            Broadcast.broadcast_id == broadcast_id,
            Broadcast.live_video_id == holder,
        ).update(Set({Broadcast.live_video_id: video_id, Broadcast.updated_at: utc_now()}))
        reclaimed = bool(result and result.modified_count > 0)
        if reclaimed:
            logger.warning(f"Broadcast {broadcast_id} live slot held by missing stream {holder}, taken by {video_id}")
        return reclaimed

    async def _release_live_slot(self, broadcast_id: str, video_id: str, strict: bool = True) -> bool:
        """Clear the live slot, only if `video_id` still holds it."""
        result = await Broadcast.find(
            Broadcast.broadcast_id == broadcast_id,
            Broadcast.live_video_id == video_id,
        ).update(Set({Broadcast.live_video_id: None, Broadcast.updated_at: utc_now()}))
        released = bool(result and result.modified_count > 0)
        if released:
            logger.info(f"Broadcast {broadcast_id} live slot released by {video_id}")
            await self.broadcast_cache.invalidate(broadcast_id, strict=strict)
        return released

    async def _delete_video_objects(self, video: Video) -> int:
        """Delete the uploaded source and every transcoded output of `video`."""
        if not video.storage_key:
            return 0
        keys = [video.storage_key]
        keys.extend(await self.storage.list_objects(transcoded_prefix(video.storage_key)))
        return await self.storage.delete_objects(keys)

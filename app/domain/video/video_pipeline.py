"""Video domain service - upload, transcode, publish, streams and playback."""

from loguru import logger

from app.schemas import QualityPreference
from app.services.integrations.s3_storage import S3Service
from app.services.transcoder.transcoder_client import TranscodeClient

from ..broadcast.broadcast_domain import BroadcastService
from ..broadcast.broadcast_models import BroadcastClaims
from ..broadcast.membership_cache import MembershipCache
from ..outcome import OperationResult, run_operation
from ._library import LibraryOperations
from ._streams import StreamOperations
from ._transcode import TranscodeOperations
from ._uploads import UploadOperations
from .status_bus import StatusBus
from .video_cache import VideoCache
from .video_models import (
    LiveStreamStatus,
    PlaybackResponse,
    StreamStartResponse,
    TranscodeAccepted,
    UploadUrlResponse,
    VideoDetailsParams,
    VideoListResponse,
    VideoResponse,
)

DEFAULT_SHUTDOWN_TIMEOUT_SECONDS = 30.0


class VideoPipeline:
    """Video pipeline service.

    Every method returns an OperationResult. Transcode outcomes are never
    returned to the caller of start_transcode; they reach subscribers of the
    status bus after the video record has been updated.
    """

    def __init__(
        self,
        storage: S3Service,
        transcoder: TranscodeClient,
        bus: StatusBus,
        broadcasts: BroadcastService,
        broadcast_cache: MembershipCache,
        video_cache: VideoCache,
    ):
        deps = (storage, transcoder, bus, broadcasts, broadcast_cache, video_cache)
        self.bus = bus
        self._uploads = UploadOperations(*deps)
        self._transcode = TranscodeOperations(*deps)
        self._streams = StreamOperations(*deps)
        self._library = LibraryOperations(*deps)

    # ==================== UPLOAD & TRANSCODE ====================

    async def request_upload_url(self, claims: BroadcastClaims) -> OperationResult[UploadUrlResponse]:
        """Create a draft video and return a presigned upload URL for it."""
        return await run_operation(
            self._uploads.request_upload_url(claims=claims),
            "Upload URL issued",
        )

    async def start_transcode(
        self,
        claims: BroadcastClaims,
        video_id: str,
    ) -> OperationResult[TranscodeAccepted]:
        """Dispatch transcoding. Success means accepted, not completed."""
        return await run_operation(
            self._transcode.start_transcode(claims=claims, video_id=video_id),
            "Video uploaded successfully, transcoding started",
        )

    async def store_video_details(
        self,
        claims: BroadcastClaims,
        video_id: str,
        params: VideoDetailsParams,
    ) -> OperationResult[VideoResponse]:
        return await run_operation(
            self._uploads.store_video_details(claims=claims, video_id=video_id, params=params),
            "Video details stored",
        )

    def pending_transcodes(self) -> int:
        return self._transcode.pending_transcodes()

    async def wait_for_transcodes(self, timeout: float | None = None) -> None:
        await self._transcode.wait_for_transcodes(timeout=timeout)

    # ==================== STREAMS ====================

    async def start_stream(
        self,
        claims: BroadcastClaims,
        title: str | None = None,
    ) -> OperationResult[StreamStartResponse]:
        return await run_operation(
            self._streams.start_stream(claims=claims, title=title),
            "Live stream started",
        )

    async def end_stream(self, claims: BroadcastClaims, video_id: str) -> OperationResult[VideoResponse]:
        return await run_operation(
            self._streams.end_stream(claims=claims, video_id=video_id),
            "Live stream ended",
        )

    async def handle_stream_ended(self, stream_key: str) -> OperationResult[VideoResponse]:
        """Ingest webhook entry point; an unknown key is a successful no-op."""
        return await run_operation(
            self._streams.handle_stream_ended(stream_key=stream_key),
            lambda video: "Live stream ended" if video else "Unknown stream key ignored",
        )

    async def get_live_stream_status(self, broadcast_id: str) -> OperationResult[LiveStreamStatus]:
        return await run_operation(self._streams.get_live_stream_status(broadcast_id=broadcast_id))

    # ==================== LIBRARY ====================

    async def get_video(self, video_id: str) -> OperationResult[VideoResponse]:
        return await run_operation(self._library.get_video(video_id=video_id))

    async def list_broadcast_videos(
        self,
        broadcast_name: str,
        include_drafts: bool = False,
        limit: int = 50,
    ) -> OperationResult[VideoListResponse]:
        return await run_operation(
            self._library.list_broadcast_videos(
                broadcast_name=broadcast_name,
                include_drafts=include_drafts,
                limit=limit,
            )
        )

    async def list_my_broadcast_videos(
        self,
        claims: BroadcastClaims,
        limit: int = 50,
    ) -> OperationResult[VideoListResponse]:
        return await run_operation(self._library.list_my_broadcast_videos(claims=claims, limit=limit))

    async def delete_video(self, claims: BroadcastClaims, video_id: str) -> OperationResult[VideoResponse]:
        return await run_operation(
            self._library.delete_video(claims=claims, video_id=video_id),
            "Video deleted",
        )

    async def get_playback(
        self,
        video_id: str,
        quality: QualityPreference | str | None = None,
    ) -> OperationResult[PlaybackResponse]:
        return await run_operation(self._library.get_playback(video_id=video_id, quality=quality))

    async def increment_view_count(self, video_id: str) -> OperationResult[int]:
        return await run_operation(self._library.increment_view_count(video_id=video_id))

    async def request_collaboration(
        self,
        claims: BroadcastClaims,
        video_id: str,
        target_broadcast_id: str,
    ) -> OperationResult[VideoResponse]:
        return await run_operation(
            self._library.request_collaboration(
                claims=claims,
                video_id=video_id,
                target_broadcast_id=target_broadcast_id,
            ),
            "Collaboration requested",
        )

    async def respond_to_collaboration(
        self,
        claims: BroadcastClaims,
        video_id: str,
        accept: bool,
    ) -> OperationResult[VideoResponse]:
        return await run_operation(
            self._library.respond_to_collaboration(claims=claims, video_id=video_id, accept=accept),
            "Collaboration accepted" if accept else "Collaboration rejected",
        )

    # ==================== LIFECYCLE ====================

    async def shutdown(self, timeout: float = DEFAULT_SHUTDOWN_TIMEOUT_SECONDS) -> None:
        """Wait (bounded) for in-flight transcodes and close the worker channel."""
        pending = self.pending_transcodes()
        if pending:
            logger.info(f"Waiting up to {timeout}s for {pending} transcodes")
        await self.wait_for_transcodes(timeout=timeout)
        await self._transcode.transcoder.close()

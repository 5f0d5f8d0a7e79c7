"""Upload credential issuance and video details."""

from loguru import logger

from app.app_config import get_app_environ_config
from app.schemas import MemberRole, Video, VideoState
from app.shared.utils.time import utc_now
from app.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

from ..broadcast.broadcast_models import BroadcastClaims
from ..utils.idgen import new_storage_key, new_video_id
from ._base import POSTER_FOLDER, BaseService, VideoWrite
from .video_cache import to_video_response
from .video_models import UploadUrlResponse, VideoDetailsParams, VideoResponse

UPLOAD_CONTENT_TYPE = "video/mp4"
MAX_TITLE_LENGTH = 200

# States that publish on store_video_details without going through TRANSCODING
DIRECT_PUBLISH_STATES = {VideoState.DRAFT, VideoState.UPLOADING}


class UploadOperations(BaseService):
    """Upload-related operations."""

    async def request_upload_url(self, claims: BroadcastClaims) -> UploadUrlResponse:
        """
        Create a DRAFT video and issue a presigned PUT URL for its storage key.

        The record exists before the credential is handed out; if presigning
        fails the record is removed again. On success the video is UPLOADING.
        """
        await self._authorize(claims)
        app_config = get_app_environ_config()

        now = utc_now()
        video = Video(
            video_id=new_video_id(),
            broadcast_id=claims.broadcast_id,
            uploader_id=claims.user_id,
            state=VideoState.DRAFT,
            storage_key=new_storage_key(),
            created_at=now,
            updated_at=now,
        )
        await video.insert()
        logger.info(f"Video {video.video_id} created for upload by {claims.user_id}")

        try:
            upload_url = await self.storage.presign_put(
                video.storage_key,
                UPLOAD_CONTENT_TYPE,
                expires_in=app_config.S3_UPLOAD_URL_EXPIRES,
            )
        except AppError:
            await video.delete()
            logger.warning(f"Video {video.video_id} removed, upload URL could not be issued")
            raise

        def mutate(v: Video) -> VideoWrite[None]:
            return VideoWrite(result=None, updates=self._transition(v, VideoState.UPLOADING))

        await self._write_video(video.video_id, mutate)

        return UploadUrlResponse(
            video_id=video.video_id,
            upload_url=upload_url,
            storage_key=video.storage_key,
            expires_in=app_config.S3_UPLOAD_URL_EXPIRES,
        )

    async def store_video_details(
        self,
        claims: BroadcastClaims,
        video_id: str,
        params: VideoDetailsParams,
    ) -> VideoResponse:
        """
        Attach title, description, duration and poster, and clear the draft flag.

        DRAFT and UPLOADING videos move straight to PUBLISHED; videos in other
        states keep their state. The uploader or a broadcast manager may call this.
        """
        if params.title is not None:
            params.title = params.title.strip()
            if not params.title or len(params.title) > MAX_TITLE_LENGTH:
                raise AppError(
                    errcode=AppErrorCode.E_INVALID_REQUEST,
                    errmesg=f"Title must be 1-{MAX_TITLE_LENGTH} characters",
                    status_code=HttpStatusCode.BAD_REQUEST,
                )
        if params.duration is not None and params.duration < 0:
            raise AppError(
                errcode=AppErrorCode.E_INVALID_REQUEST,
                errmesg="Duration must not be negative",
                status_code=HttpStatusCode.BAD_REQUEST,
            )

        video = await self._get_video_or_raise(video_id)
        check = await self._authorize(claims, video)
        if video.uploader_id != claims.user_id and check.role not in MemberRole.managers():
            raise AppError(
                errcode=AppErrorCode.E_NOT_AUTHORIZED,
                errmesg="Only the uploader or a broadcast manager can edit this video",
                status_code=HttpStatusCode.FORBIDDEN,
            )

        poster_key, poster_url = None, None
        if params.poster is not None:
            poster_key, poster_url = await self.storage.upload_image(
                POSTER_FOLDER, params.poster.content, params.poster.content_type
            )

        def mutate(v: Video) -> VideoWrite[None]:
            updates = {Video.draft: False, Video.updated_at: utc_now()}
            if v.state in DIRECT_PUBLISH_STATES:
                updates.update(self._transition(v, VideoState.PUBLISHED))
            if params.title is not None:
                updates[Video.title] = params.title
            if params.description is not None:
                updates[Video.description] = params.description
            if params.duration is not None:
                updates[Video.duration] = params.duration
            if poster_url is not None:
                updates[Video.poster_url] = poster_url
            return VideoWrite(result=None, updates=updates)

        try:
            updated, _ = await self._write_video(video_id, mutate)
        except Exception:
            if poster_key is not None:
                try:
                    await self.storage.delete_object(poster_key)
                    logger.info(f"Discarded unreferenced poster {poster_key}")
                except AppError:
                    logger.error(f"E_RECONCILE unreferenced poster left in storage: {poster_key}")
            raise

        logger.info(f"Video {video_id} details stored (state={updated.state})")
        return to_video_response(updated)

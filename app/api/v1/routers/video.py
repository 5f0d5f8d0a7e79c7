from fastapi import APIRouter, Depends, File, Form, Query, UploadFile

from app.api.v1.dependency import CurrentClaims, OptionalUser, get_video_pipeline, get_viewer_service
from app.api.v1.errors import failure_response
from app.api.v1.schemas.base import ApiOut
from app.api.v1.schemas.video import (
    PlaybackOut,
    RequestCollaborationIn,
    RespondCollaborationIn,
    TranscodeAcceptedOut,
    UploadUrlOut,
    VideoIdIn,
    VideoListOut,
    VideoOut,
    ViewCountOut,
)
from app.api.v1.uploads import read_image_upload
from app.domain.video.video_models import VideoDetailsParams
from app.domain.video.video_pipeline import VideoPipeline
from app.domain.viewer.viewer_domain import ViewerService
from app.schemas import QualityPreference

router = APIRouter(prefix="/video", tags=["Video"])


@router.post("/request_upload_url")
async def request_upload_url(
    claims: CurrentClaims,
    pipeline: VideoPipeline = Depends(get_video_pipeline),
) -> ApiOut[UploadUrlOut]:
    """Create a draft video and return a presigned PUT URL for the upload."""
    result = await pipeline.request_upload_url(claims)
    if not result.success:
        return failure_response(result)

    return ApiOut[UploadUrlOut](results=UploadUrlOut.model_validate(result.data.model_dump()))


@router.post("/start_transcode")
async def start_transcode(
    body: VideoIdIn,
    claims: CurrentClaims,
    pipeline: VideoPipeline = Depends(get_video_pipeline),
) -> ApiOut[TranscodeAcceptedOut]:
    """Start transcoding an uploaded video.

    Returns once the job is accepted; the outcome arrives on /ws/video_status.
    """
    result = await pipeline.start_transcode(claims, body.video_id)
    if not result.success:
        return failure_response(result)

    return ApiOut[TranscodeAcceptedOut](
        results=TranscodeAcceptedOut(**result.data.model_dump(), message=result.message)
    )


@router.post("/store_details")
async def store_details(
    claims: CurrentClaims,
    video_id: str = Form(...),
    title: str | None = Form(None),
    description: str | None = Form(None),
    duration: float | None = Form(None),
    poster: UploadFile | None = File(None),
    pipeline: VideoPipeline = Depends(get_video_pipeline),
) -> ApiOut[VideoOut]:
    params = VideoDetailsParams(
        title=title,
        description=description,
        duration=duration,
        poster=await read_image_upload(poster),
    )

    result = await pipeline.store_video_details(claims, video_id, params)
    if not result.success:
        return failure_response(result)

    return ApiOut[VideoOut](results=VideoOut.model_validate(result.data.model_dump()))


@router.post("/delete")
async def delete(
    body: VideoIdIn,
    claims: CurrentClaims,
    pipeline: VideoPipeline = Depends(get_video_pipeline),
) -> ApiOut[VideoOut]:
    result = await pipeline.delete_video(claims, body.video_id)
    if not result.success:
        return failure_response(result)

    return ApiOut[VideoOut](results=VideoOut.model_validate(result.data.model_dump()))


@router.get("/get")
async def get(
    video_id: str = Query(..., description="Video identifier"),
    pipeline: VideoPipeline = Depends(get_video_pipeline),
) -> ApiOut[VideoOut]:
    result = await pipeline.get_video(video_id)
    if not result.success:
        return failure_response(result)

    return ApiOut[VideoOut](results=VideoOut.model_validate(result.data.model_dump()))


@router.get("/list_by_broadcast")
async def list_by_broadcast(
    name: str = Query(..., description="Broadcast name"),
    limit: int = Query(50, ge=1, le=200),
    pipeline: VideoPipeline = Depends(get_video_pipeline),
) -> ApiOut[VideoListOut]:
    """Published videos of a broadcast, newest first."""
    result = await pipeline.list_broadcast_videos(name, include_drafts=False, limit=limit)
    if not result.success:
        return failure_response(result)

    return ApiOut[VideoListOut](results=VideoListOut.model_validate(result.data.model_dump()))


@router.get("/list_mine")
async def list_mine(
    claims: CurrentClaims,
    limit: int = Query(50, ge=1, le=200),
    pipeline: VideoPipeline = Depends(get_video_pipeline),
) -> ApiOut[VideoListOut]:
    """All videos of the caller's broadcast, drafts included."""
    result = await pipeline.list_my_broadcast_videos(claims, limit=limit)
    if not result.success:
        return failure_response(result)

    return ApiOut[VideoListOut](results=VideoListOut.model_validate(result.data.model_dump()))


@router.get("/playback")
async def playback(
    user: OptionalUser,
    video_id: str = Query(...),
    quality: QualityPreference | None = Query(None, description="Defaults to the caller's saved setting, else medium"),
    pipeline: VideoPipeline = Depends(get_video_pipeline),
    viewer: ViewerService = Depends(get_viewer_service),
) -> ApiOut[PlaybackOut]:
    """Signed playback URLs; counts one view and records it in the caller's history."""
    if quality is None and user is not None:
        settings = await viewer.get_settings(user.user_id)
        if settings.success:
            quality = settings.data.default_quality

    result = await pipeline.get_playback(video_id, quality or QualityPreference.MEDIUM)
    if not result.success:
        return failure_response(result)

    await pipeline.increment_view_count(video_id)
    if user is not None:
        await viewer.record_watch(user.user_id, video_id)
    return ApiOut[PlaybackOut](results=PlaybackOut.model_validate(result.data.model_dump()))


@router.post("/view")
async def view(
    body: VideoIdIn,
    pipeline: VideoPipeline = Depends(get_video_pipeline),
) -> ApiOut[ViewCountOut]:
    result = await pipeline.increment_view_count(body.video_id)
    if not result.success:
        return failure_response(result)

    return ApiOut[ViewCountOut](results=ViewCountOut(video_id=body.video_id, view_count=result.data))


@router.post("/request_collaboration")
async def request_collaboration(
    body: RequestCollaborationIn,
    claims: CurrentClaims,
    pipeline: VideoPipeline = Depends(get_video_pipeline),
) -> ApiOut[VideoOut]:
    result = await pipeline.request_collaboration(claims, body.video_id, body.target_broadcast_id)
    if not result.success:
        return failure_response(result)

    return ApiOut[VideoOut](results=VideoOut.model_validate(result.data.model_dump()))


@router.post("/respond_collaboration")
async def respond_collaboration(
    body: RespondCollaborationIn,
    claims: CurrentClaims,
    pipeline: VideoPipeline = Depends(get_video_pipeline),
) -> ApiOut[VideoOut]:
    result = await pipeline.respond_to_collaboration(claims, body.video_id, body.accept)
    if not result.success:
        return failure_response(result)

    return ApiOut[VideoOut](results=VideoOut.model_validate(result.data.model_dump()))

from fastapi import APIRouter, Depends, Query

from app.api.v1.dependency import CurrentClaims, get_video_pipeline
from app.api.v1.errors import failure_response
from app.api.v1.schemas.base import ApiOut
from app.api.v1.schemas.video import (
    LiveStreamStatusOut,
    StartStreamIn,
    StreamStartOut,
    VideoIdIn,
    VideoOut,
)
from app.domain.video.video_pipeline import VideoPipeline

router = APIRouter(prefix="/stream", tags=["Stream"])


@router.post("/start")
async def start(
    body: StartStreamIn,
    claims: CurrentClaims,
    pipeline: VideoPipeline = Depends(get_video_pipeline),
) -> ApiOut[StreamStartOut]:
    """Go live. At most one live stream per broadcast."""
    result = await pipeline.start_stream(claims, title=body.title)
    if not result.success:
        return failure_response(result)

    return ApiOut[StreamStartOut](results=StreamStartOut.model_validate(result.data.model_dump()))


@router.post("/end")
async def end(
    body: VideoIdIn,
    claims: CurrentClaims,
    pipeline: VideoPipeline = Depends(get_video_pipeline),
) -> ApiOut[VideoOut]:
    result = await pipeline.end_stream(claims, body.video_id)
    if not result.success:
        return failure_response(result)

    return ApiOut[VideoOut](results=VideoOut.model_validate(result.data.model_dump()))


@router.get("/status")
async def status(
    broadcast_id: str = Query(..., description="Broadcast identifier"),
    pipeline: VideoPipeline = Depends(get_video_pipeline),
) -> ApiOut[LiveStreamStatusOut]:
    result = await pipeline.get_live_stream_status(broadcast_id)
    if not result.success:
        return failure_response(result)

    return ApiOut[LiveStreamStatusOut](
        results=LiveStreamStatusOut.model_validate(result.data.model_dump())
    )

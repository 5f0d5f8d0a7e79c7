from fastapi import APIRouter, Depends

from app.api.v1.dependency import CurrentUser, get_viewer_service
from app.api.v1.errors import failure_response
from app.api.v1.schemas.base import ApiOut
from app.api.v1.schemas.video import VideoIdIn
from app.api.v1.schemas.viewer import (
    CollectionOut,
    ViewerSettingsIn,
    ViewerSettingsOut,
    WatchLaterChangeOut,
)
from app.domain.viewer.viewer_domain import ViewerService
from app.domain.viewer.viewer_models import ViewerSettingsParams

router = APIRouter(prefix="/viewer", tags=["Viewer"])


@router.get("/settings")
async def get_settings(
    user: CurrentUser,
    viewer: ViewerService = Depends(get_viewer_service),
) -> ApiOut[ViewerSettingsOut]:
    result = await viewer.get_settings(user.user_id)
    if not result.success:
        return failure_response(result)

    return ApiOut[ViewerSettingsOut](results=ViewerSettingsOut.model_validate(result.data.model_dump()))


@router.post("/update_settings")
async def update_settings(
    body: ViewerSettingsIn,
    user: CurrentUser,
    viewer: ViewerService = Depends(get_viewer_service),
) -> ApiOut[ViewerSettingsOut]:
    result = await viewer.update_settings(user.user_id, ViewerSettingsParams(**body.model_dump()))
    if not result.success:
        return failure_response(result)

    return ApiOut[ViewerSettingsOut](results=ViewerSettingsOut.model_validate(result.data.model_dump()))


@router.get("/collection")
async def get_collection(
    user: CurrentUser,
    viewer: ViewerService = Depends(get_viewer_service),
) -> ApiOut[CollectionOut]:
    """Watch later and watch history, newest first."""
    result = await viewer.get_collection(user.user_id)
    if not result.success:
        return failure_response(result)

    return ApiOut[CollectionOut](results=CollectionOut.model_validate(result.data.model_dump()))


@router.post("/add_watch_later")
async def add_watch_later(
    body: VideoIdIn,
    user: CurrentUser,
    viewer: ViewerService = Depends(get_viewer_service),
) -> ApiOut[WatchLaterChangeOut]:
    result = await viewer.add_to_watch_later(user.user_id, body.video_id)
    if not result.success:
        return failure_response(result)

    return ApiOut[WatchLaterChangeOut](
        results=WatchLaterChangeOut(message=result.message, **result.data.model_dump())
    )


@router.post("/remove_watch_later")
async def remove_watch_later(
    body: VideoIdIn,
    user: CurrentUser,
    viewer: ViewerService = Depends(get_viewer_service),
) -> ApiOut[WatchLaterChangeOut]:
    result = await viewer.remove_from_watch_later(user.user_id, body.video_id)
    if not result.success:
        return failure_response(result)

    return ApiOut[WatchLaterChangeOut](
        results=WatchLaterChangeOut(message=result.message, **result.data.model_dump())
    )

"""Playback settings operations."""

from loguru import logger

from app.schemas import ViewerSettings
from app.shared.utils.time import utc_now

from ._base import BaseService
from .viewer_models import ViewerSettingsParams, ViewerSettingsResponse


class SettingsOperations(BaseService):
    async def get_settings(self, user_id: str) -> ViewerSettingsResponse:
        """Stored settings of `user_id`. Users without any get the defaults; nothing is written."""
        settings = await ViewerSettings.find_one(ViewerSettings.user_id == user_id)
        if settings is None:
            return ViewerSettingsResponse(user_id=user_id)
        return ViewerSettingsResponse(**settings.model_dump(exclude={"id", "revision_id", "updated_at"}))

    async def update_settings(self, user_id: str, params: ViewerSettingsParams) -> ViewerSettingsResponse:
        """Replace the settings of `user_id`, creating them on first save."""
        values = params.model_dump(mode="json")
        await ViewerSettings.get_motor_collection().update_one(
            {"user_id": user_id},
            {"$set": {**values, "updated_at": utc_now()}},
            upsert=True,
        )
        logger.info(f"Viewer settings saved for {user_id} (quality={params.default_quality})")
        return ViewerSettingsResponse(user_id=user_id, **params.model_dump())

"""Unit tests for viewer router endpoints."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.api.v1.dependency import User, get_current_user, get_viewer_service
from app.api.v1.errors import app_error_handler
from app.api.v1.routers.viewer import router
from app.domain.outcome import OperationResult
from app.domain.video.video_models import VideoResponse
from app.domain.viewer.viewer_domain import ViewerService
from app.domain.viewer.viewer_models import (
    CollectionResponse,
    CollectionStats,
    ViewerSettingsParams,
    ViewerSettingsResponse,
    WatchLaterChange,
    WatchLaterItem,
)
from app.schemas import QualityPreference, VideoState
from app.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

NOW = datetime(2025, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def mock_viewer() -> AsyncMock:
    return AsyncMock(spec=ViewerService)


@pytest.fixture
def test_app(mock_viewer: AsyncMock) -> FastAPI:
    app = FastAPI()
    app.dependency_overrides[get_current_user] = lambda: User(user_id="viewer_1")
    app.dependency_overrides[get_viewer_service] = lambda: mock_viewer
    app.add_exception_handler(AppError, app_error_handler)  # type: ignore[arg-type]
    app.include_router(router)
    return app


@pytest.fixture
def client(test_app: FastAPI) -> TestClient:
    return TestClient(test_app)


class TestSettings:
    def test_get_settings(self, client: TestClient, mock_viewer: AsyncMock):
        mock_viewer.get_settings.return_value = OperationResult.ok(ViewerSettingsResponse(user_id="viewer_1"))

        response = client.get("/viewer/settings")

        assert response.status_code == 200
        assert response.json()["results"]["default_quality"] == "medium"
        mock_viewer.get_settings.assert_awaited_once_with("viewer_1")

    def test_update_settings(self, client: TestClient, mock_viewer: AsyncMock):
        # Arrange
        body = {
            "default_quality": "high",
            "default_volume": 30,
            "default_playback_speed": 1.25,
            "auto_play": False,
            "enable_hotkeys": True,
        }
        mock_viewer.update_settings.return_value = OperationResult.ok(
            ViewerSettingsResponse(user_id="viewer_1", **body)
        )

        # Act
        response = client.post("/viewer/update_settings", json=body)

        # Assert
        assert response.status_code == 200
        assert response.json()["results"]["default_volume"] == 30
        user_id, params = mock_viewer.update_settings.await_args.args
        assert user_id == "viewer_1"
        assert params == ViewerSettingsParams(**body)
        assert params.default_quality == QualityPreference.HIGH

    @pytest.mark.parametrize(
        "field, value",
        [("default_volume", 150), ("default_playback_speed", 3), ("default_quality", "auto")],
    )
    def test_invalid_settings_are_rejected(self, client: TestClient, mock_viewer: AsyncMock, field, value):
        body = {
            "default_quality": "low",
            "default_volume": 50,
            "default_playback_speed": 1,
            "auto_play": True,
            "enable_hotkeys": True,
            field: value,
        }

        response = client.post("/viewer/update_settings", json=body)

        assert response.status_code == 422
        mock_viewer.update_settings.assert_not_awaited()


class TestCollection:
    def test_get_collection(self, client: TestClient, mock_viewer: AsyncMock):
        video = VideoResponse(
            video_id="vd_1",
            broadcast_id="bc_1",
            uploader_id="owner",
            state=VideoState.PUBLISHED,
            storage_key="video-storage/vd_1",
            draft=False,
            created_at=NOW,
            updated_at=NOW,
        )
        mock_viewer.get_collection.return_value = OperationResult.ok(
            CollectionResponse(
                watch_later=[WatchLaterItem(video=video, added_at=NOW)],
                stats=CollectionStats(watch_later_count=1),
            )
        )

        response = client.get("/viewer/collection")

        results = response.json()["results"]
        assert results["watch_later"][0]["video"]["video_id"] == "vd_1"
        assert "storage_key" not in results["watch_later"][0]["video"]
        assert results["watch_later"][0]["added_at"] == "2025-01-01T00:00:00+00:00"
        assert results["stats"] == {"watch_time_hours": 0, "watch_later_count": 1}

    def test_add_watch_later(self, client: TestClient, mock_viewer: AsyncMock):
        mock_viewer.add_to_watch_later.return_value = OperationResult.ok(
            WatchLaterChange(video_id="vd_1", changed=True), message="Added to watch later"
        )

        response = client.post("/viewer/add_watch_later", json={"video_id": "vd_1"})

        assert response.json()["results"] == {"video_id": "vd_1", "changed": True, "message": "Added to watch later"}
        mock_viewer.add_to_watch_later.assert_awaited_once_with("viewer_1", "vd_1")

    def test_add_missing_video(self, client: TestClient, mock_viewer: AsyncMock):
        mock_viewer.add_to_watch_later.return_value = OperationResult.fail(
            AppError(AppErrorCode.E_VIDEO_NOT_FOUND, "Video not found: vd_9", HttpStatusCode.NOT_FOUND)
        )

        response = client.post("/viewer/add_watch_later", json={"video_id": "vd_9"})

        assert response.status_code == 404
        assert response.json()["errcode"] == AppErrorCode.E_VIDEO_NOT_FOUND.value

    def test_remove_watch_later(self, client: TestClient, mock_viewer: AsyncMock):
        mock_viewer.remove_from_watch_later.return_value = OperationResult.ok(
            WatchLaterChange(video_id="vd_1", changed=False), message="Not in watch later"
        )

        response = client.post("/viewer/remove_watch_later", json={"video_id": "vd_1"})

        assert response.json()["results"]["changed"] is False

"""Unit tests for video router endpoints."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.api.v1.dependency import (
    User,
    get_broadcast_claims,
    get_optional_user,
    get_video_pipeline,
    get_viewer_service,
)
from app.api.v1.errors import app_error_handler
from app.api.v1.routers.video import router
from app.domain.broadcast.broadcast_models import BroadcastClaims
from app.domain.outcome import OperationResult
from app.domain.video.video_models import (
    PlaybackResponse,
    TranscodeAccepted,
    UploadUrlResponse,
    VideoListResponse,
    VideoResponse,
)
from app.domain.video.video_pipeline import VideoPipeline
from app.domain.viewer.viewer_domain import ViewerService
from app.domain.viewer.viewer_models import ViewerSettingsResponse
from app.schemas import MemberRole, QualityPreference, VideoState
from app.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

NOW = datetime(2025, 1, 1, tzinfo=timezone.utc)


def video_response(**overrides) -> VideoResponse:
    fields = {
        "video_id": "vd_1",
        "broadcast_id": "bc_1",
        "uploader_id": "test_user_123",
        "state": VideoState.PUBLISHED,
        "storage_key": "video-storage/vd_1",
        "available_formats": ["240p", "720p"],
        "draft": False,
        "created_at": NOW,
        "updated_at": NOW,
    }
    fields.update(overrides)
    return VideoResponse(**fields)


@pytest.fixture
def mock_claims() -> BroadcastClaims:
    return BroadcastClaims(user_id="test_user_123", broadcast_id="bc_1", role=MemberRole.BROADCASTER)


@pytest.fixture
def mock_pipeline() -> AsyncMock:
    """Create a mock VideoPipeline."""
    return AsyncMock(spec=VideoPipeline)


@pytest.fixture
def mock_viewer() -> AsyncMock:
    return AsyncMock(spec=ViewerService)


@pytest.fixture
def test_app(mock_claims: BroadcastClaims, mock_pipeline: AsyncMock, mock_viewer: AsyncMock) -> FastAPI:
    app = FastAPI()
    app.dependency_overrides[get_broadcast_claims] = lambda: mock_claims
    app.dependency_overrides[get_video_pipeline] = lambda: mock_pipeline
    app.dependency_overrides[get_viewer_service] = lambda: mock_viewer
    app.add_exception_handler(AppError, app_error_handler)  # type: ignore[arg-type]
    app.include_router(router)
    return app


@pytest.fixture
def client(test_app: FastAPI) -> TestClient:
    return TestClient(test_app)


class TestUploadFlow:
    def test_request_upload_url(self, client: TestClient, mock_pipeline: AsyncMock):
        mock_pipeline.request_upload_url.return_value = OperationResult.ok(
            UploadUrlResponse(
                video_id="vd_1",
                upload_url="https://bucket/video-storage/vd_1?sig",
                storage_key="video-storage/vd_1",
                expires_in=3600,
            )
        )

        response = client.post("/video/request_upload_url")

        assert response.status_code == 200
        results = response.json()["results"]
        assert results["video_id"] == "vd_1"
        assert results["expires_in"] == 3600
        assert "storage_key" not in results

    def test_start_transcode_is_accepted(
        self,
        client: TestClient,
        mock_pipeline: AsyncMock,
        mock_claims: BroadcastClaims,
    ):
        mock_pipeline.start_transcode.return_value = OperationResult.ok(
            TranscodeAccepted(video_id="vd_1"),
            "Video uploaded successfully, transcoding started",
        )

        response = client.post("/video/start_transcode", json={"video_id": "vd_1"})

        assert response.status_code == 200
        assert response.json()["results"] == {
            "video_id": "vd_1",
            "state": "TRANSCODING",
            "message": "Video uploaded successfully, transcoding started",
        }
        mock_pipeline.start_transcode.assert_awaited_once_with(mock_claims, "vd_1")

    def test_start_transcode_invalid_state(self, client: TestClient, mock_pipeline: AsyncMock):
        mock_pipeline.start_transcode.return_value = OperationResult.fail(
            AppError(
                AppErrorCode.E_INVALID_VIDEO_TRANSITION,
                "Invalid video state transition: PUBLISHED -> TRANSCODING",
                HttpStatusCode.CONFLICT,
            )
        )

        response = client.post("/video/start_transcode", json={"video_id": "vd_1"})

        assert response.status_code == 409
        assert response.json()["errcode"] == AppErrorCode.E_INVALID_VIDEO_TRANSITION.value

    def test_store_details_multipart(self, client: TestClient, mock_pipeline: AsyncMock):
        # Arrange
        mock_pipeline.store_video_details.return_value = OperationResult.ok(video_response(title="Launch"))

        # Act
        response = client.post(
            "/video/store_details",
            data={"video_id": "vd_1", "title": "Launch", "duration": "61.5"},
            files={"poster": ("poster.jpg", b"jpeg", "image/jpeg")},
        )

        # Assert
        assert response.status_code == 200
        assert response.json()["results"]["title"] == "Launch"
        _, video_id, params = mock_pipeline.store_video_details.await_args.args
        assert video_id == "vd_1"
        assert params.duration == 61.5
        assert params.poster.content == b"jpeg"


class TestLibrary:
    def test_get_video_hides_storage_key(self, client: TestClient, mock_pipeline: AsyncMock):
        mock_pipeline.get_video.return_value = OperationResult.ok(video_response())

        response = client.get("/video/get", params={"video_id": "vd_1"})

        assert response.status_code == 200
        results = response.json()["results"]
        assert results["state"] == "PUBLISHED"
        assert "storage_key" not in results

    def test_list_by_broadcast_excludes_drafts(self, client: TestClient, mock_pipeline: AsyncMock):
        mock_pipeline.list_broadcast_videos.return_value = OperationResult.ok(
            VideoListResponse(videos=[video_response()])
        )

        response = client.get("/video/list_by_broadcast", params={"name": "studio", "limit": 10})

        assert response.status_code == 200
        assert len(response.json()["results"]["videos"]) == 1
        mock_pipeline.list_broadcast_videos.assert_awaited_once_with("studio", include_drafts=False, limit=10)

    def test_list_by_broadcast_limit_bounds(self, client: TestClient, mock_pipeline: AsyncMock):
        response = client.get("/video/list_by_broadcast", params={"name": "studio", "limit": 500})

        assert response.status_code == 422

    def test_delete_not_found(self, client: TestClient, mock_pipeline: AsyncMock):
        mock_pipeline.delete_video.return_value = OperationResult.fail(
            AppError(AppErrorCode.E_VIDEO_NOT_FOUND, "Video not found: vd_x", HttpStatusCode.NOT_FOUND)
        )

        response = client.post("/video/delete", json={"video_id": "vd_x"})

        assert response.status_code == 404
        assert response.json()["errcode"] == AppErrorCode.E_VIDEO_NOT_FOUND.value


class TestPlayback:
    def test_playback_counts_a_view(self, client: TestClient, mock_pipeline: AsyncMock, mock_viewer: AsyncMock):
        # Arrange
        mock_pipeline.get_playback.return_value = OperationResult.ok(
            PlaybackResponse(
                video_id="vd_1",
                resolution="720p",
                available_formats=["240p", "720p"],
                manifest_url="https://bucket/transcoded/video-storage/vd_1/720p/index.m3u8?sig",
                segment_urls={"seg0.ts": "https://bucket/seg0.ts?sig"},
                expires_in=21540,
            )
        )
        mock_pipeline.increment_view_count.return_value = OperationResult.ok(1)

        # Act
        response = client.get("/video/playback", params={"video_id": "vd_1", "quality": "high"})

        # Assert
        assert response.status_code == 200
        results = response.json()["results"]
        assert results["resolution"] == "720p"
        assert results["segment_urls"] == {"seg0.ts": "https://bucket/seg0.ts?sig"}
        mock_pipeline.get_playback.assert_awaited_once_with("vd_1", QualityPreference.HIGH)
        mock_pipeline.increment_view_count.assert_awaited_once_with("vd_1")
        mock_viewer.record_watch.assert_not_awaited()

    def test_anonymous_playback_defaults_to_medium(
        self,
        client: TestClient,
        mock_pipeline: AsyncMock,
        mock_viewer: AsyncMock,
    ):
        mock_pipeline.get_playback.return_value = OperationResult.ok(PlaybackResponse(video_id="vd_1"))
        mock_pipeline.increment_view_count.return_value = OperationResult.ok(1)

        client.get("/video/playback", params={"video_id": "vd_1"})

        mock_pipeline.get_playback.assert_awaited_once_with("vd_1", QualityPreference.MEDIUM)
        mock_viewer.get_settings.assert_not_awaited()

    def test_signed_in_playback_uses_saved_quality_and_records_history(
        self,
        test_app: FastAPI,
        client: TestClient,
        mock_pipeline: AsyncMock,
        mock_viewer: AsyncMock,
    ):
        # Arrange
        test_app.dependency_overrides[get_optional_user] = lambda: User(user_id="viewer_1")
        mock_viewer.get_settings.return_value = OperationResult.ok(
            ViewerSettingsResponse(user_id="viewer_1", default_quality=QualityPreference.LOW)
        )
        mock_viewer.record_watch.return_value = OperationResult.ok(None)
        mock_pipeline.get_playback.return_value = OperationResult.ok(PlaybackResponse(video_id="vd_1"))
        mock_pipeline.increment_view_count.return_value = OperationResult.ok(1)

        # Act
        response = client.get("/video/playback", params={"video_id": "vd_1"})

        # Assert
        assert response.status_code == 200
        mock_pipeline.get_playback.assert_awaited_once_with("vd_1", QualityPreference.LOW)
        mock_viewer.record_watch.assert_awaited_once_with("viewer_1", "vd_1")

    def test_explicit_quality_beats_saved_setting(
        self,
        test_app: FastAPI,
        client: TestClient,
        mock_pipeline: AsyncMock,
        mock_viewer: AsyncMock,
    ):
        test_app.dependency_overrides[get_optional_user] = lambda: User(user_id="viewer_1")
        mock_viewer.record_watch.return_value = OperationResult.ok(None)
        mock_pipeline.get_playback.return_value = OperationResult.ok(PlaybackResponse(video_id="vd_1"))
        mock_pipeline.increment_view_count.return_value = OperationResult.ok(1)

        client.get("/video/playback", params={"video_id": "vd_1", "quality": "high"})

        mock_pipeline.get_playback.assert_awaited_once_with("vd_1", QualityPreference.HIGH)
        mock_viewer.get_settings.assert_not_awaited()

    def test_unplayable_video_is_not_counted(
        self,
        test_app: FastAPI,
        client: TestClient,
        mock_pipeline: AsyncMock,
        mock_viewer: AsyncMock,
    ):
        test_app.dependency_overrides[get_optional_user] = lambda: User(user_id="viewer_1")
        mock_viewer.get_settings.return_value = OperationResult.ok(ViewerSettingsResponse(user_id="viewer_1"))
        mock_pipeline.get_playback.return_value = OperationResult.fail(
            AppError(
                AppErrorCode.E_NO_PLAYABLE_FORMAT,
                "Video has no playable format: vd_1",
                HttpStatusCode.UNPROCESSABLE_ENTITY,
            )
        )

        response = client.get("/video/playback", params={"video_id": "vd_1"})

        assert response.status_code == 422
        assert response.json()["errcode"] == AppErrorCode.E_NO_PLAYABLE_FORMAT.value
        mock_pipeline.increment_view_count.assert_not_awaited()
        mock_viewer.record_watch.assert_not_awaited()

    def test_view(self, client: TestClient, mock_pipeline: AsyncMock):
        mock_pipeline.increment_view_count.return_value = OperationResult.ok(7)

        response = client.post("/video/view", json={"video_id": "vd_1"})

        assert response.json()["results"] == {"video_id": "vd_1", "view_count": 7}


class TestCollaboration:
    def test_request(self, client: TestClient, mock_pipeline: AsyncMock, mock_claims: BroadcastClaims):
        mock_pipeline.request_collaboration.return_value = OperationResult.ok(
            video_response(collaboration={"broadcast_id": "bc_2", "status": "PENDING"})
        )

        response = client.post(
            "/video/request_collaboration",
            json={"video_id": "vd_1", "target_broadcast_id": "bc_2"},
        )

        assert response.status_code == 200
        assert response.json()["results"]["collaboration"] == {"broadcast_id": "bc_2", "status": "PENDING"}
        mock_pipeline.request_collaboration.assert_awaited_once_with(mock_claims, "vd_1", "bc_2")

    def test_respond_conflict(self, client: TestClient, mock_pipeline: AsyncMock):
        mock_pipeline.respond_to_collaboration.return_value = OperationResult.fail(
            AppError(AppErrorCode.E_INVALID_REQUEST, "Collaboration already ACCEPTED", HttpStatusCode.BAD_REQUEST)
        )

        response = client.post("/video/respond_collaboration", json={"video_id": "vd_1", "accept": True})

        assert response.status_code == 400
        assert response.json()["errmesg"] == "Collaboration already ACCEPTED"

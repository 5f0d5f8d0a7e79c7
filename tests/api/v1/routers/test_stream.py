"""Unit tests for stream router endpoints."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.api.v1.dependency import get_broadcast_claims, get_video_pipeline
from app.api.v1.errors import app_error_handler
from app.api.v1.routers.stream import router
from app.domain.broadcast.broadcast_models import BroadcastClaims
from app.domain.outcome import OperationResult
from app.domain.video.video_models import LiveStreamStatus, StreamStartResponse, VideoResponse
from app.domain.video.video_pipeline import VideoPipeline
from app.schemas import MemberRole, VideoState
from app.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

NOW = datetime(2025, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def mock_claims() -> BroadcastClaims:
    return BroadcastClaims(user_id="test_user_123", broadcast_id="bc_1", role=MemberRole.CO_BROADCASTER)


@pytest.fixture
def mock_pipeline() -> AsyncMock:
    return AsyncMock(spec=VideoPipeline)


@pytest.fixture
def client(mock_claims: BroadcastClaims, mock_pipeline: AsyncMock) -> TestClient:
    app = FastAPI()
    app.dependency_overrides[get_broadcast_claims] = lambda: mock_claims
    app.dependency_overrides[get_video_pipeline] = lambda: mock_pipeline
    app.add_exception_handler(AppError, app_error_handler)  # type: ignore[arg-type]
    app.include_router(router)
    return TestClient(app)


class TestStreamRouter:
    def test_start(self, client: TestClient, mock_pipeline: AsyncMock, mock_claims: BroadcastClaims):
        mock_pipeline.start_stream.return_value = OperationResult.ok(
            StreamStartResponse(video_id="vd_1", broadcast_id="bc_1", stream_key="sk_abc"),
            "Live stream started",
        )

        response = client.post("/stream/start", json={"title": "Morning show"})

        assert response.status_code == 200
        assert response.json()["results"]["stream_key"] == "sk_abc"
        mock_pipeline.start_stream.assert_awaited_once_with(mock_claims, title="Morning show")

    def test_start_while_live(self, client: TestClient, mock_pipeline: AsyncMock):
        mock_pipeline.start_stream.return_value = OperationResult.fail(
            AppError(
                AppErrorCode.E_STREAM_ALREADY_ACTIVE,
                "Broadcast already has a live stream",
                HttpStatusCode.CONFLICT,
            )
        )

        response = client.post("/stream/start", json={})

        assert response.status_code == 409
        assert response.json()["errcode"] == AppErrorCode.E_STREAM_ALREADY_ACTIVE.value

    def test_end(self, client: TestClient, mock_pipeline: AsyncMock):
        mock_pipeline.end_stream.return_value = OperationResult.ok(
            VideoResponse(
                video_id="vd_1",
                broadcast_id="bc_1",
                uploader_id="test_user_123",
                state=VideoState.PUBLISHED,
                draft=False,
                created_at=NOW,
                updated_at=NOW,
            ),
            "Live stream ended",
        )

        response = client.post("/stream/end", json={"video_id": "vd_1"})

        assert response.status_code == 200
        results = response.json()["results"]
        assert results["state"] == "PUBLISHED"
        assert results["is_live"] is False

    def test_status_idle(self, client: TestClient, mock_pipeline: AsyncMock):
        mock_pipeline.get_live_stream_status.return_value = OperationResult.ok(
            LiveStreamStatus(broadcast_id="bc_1", is_live=False)
        )

        response = client.get("/stream/status", params={"broadcast_id": "bc_1"})

        assert response.json()["results"] == {"broadcast_id": "bc_1", "is_live": False, "video": None}

"""Tests for video reads, playback, deletion and collaboration."""

from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest

from app.domain.broadcast.broadcast_domain import BroadcastService
from app.domain.broadcast.broadcast_models import BroadcastClaims, BroadcastCreateParams
from app.domain.video.status_bus import COLLABORATION_STATUS_TOPIC, StatusBus
from app.domain.video.video_pipeline import VideoPipeline
from app.schemas import CollaborationStatus, MemberRole, QualityPreference, Video, VideoState
from app.services.integrations.s3_storage import S3Service
from app.shared.utils.time import utc_now
from app.utils.app_errors import AppErrorCode
from tests.fixtures.service_fixtures import join_as, make_claims


async def insert_video(
    broadcast_id: str,
    video_id: str = "vd_published",
    state: VideoState = VideoState.PUBLISHED,
    formats: list[str] | None = None,
    draft: bool = False,
    uploader_id: str = "owner",
    age_seconds: int = 0,
) -> Video:
    now = utc_now() - timedelta(seconds=age_seconds)
    video = Video(
        video_id=video_id,
        broadcast_id=broadcast_id,
        uploader_id=uploader_id,
        state=state,
        storage_key=f"video-storage/{video_id}",
        available_formats=formats if formats is not None else ["240p", "720p", "1080p"],
        draft=draft,
        created_at=now,
        updated_at=now,
    )
    await video.insert()
    return video


@pytest.fixture
async def other_broadcast(beanie_db, broadcast_service: BroadcastService) -> BroadcastClaims:
    result = await broadcast_service.create_broadcast(BroadcastCreateParams(user_id="bob", name="bob show"))
    return make_claims(result.data.broadcast_id, "bob", MemberRole.BROADCASTER)


@pytest.mark.usefixtures("clear_collections")
class TestGetAndList:
    async def test_get_video(self, beanie_db, video_pipeline: VideoPipeline, owned_broadcast, redis_client):
        await insert_video(owned_broadcast.broadcast_id)

        result = await video_pipeline.get_video("vd_published")

        assert result.success is True
        assert result.data.state == VideoState.PUBLISHED
        assert await redis_client.get("video:vd_published") is not None

    async def test_get_missing(self, beanie_db, video_pipeline: VideoPipeline):
        result = await video_pipeline.get_video("vd_missing")

        assert result.errcode == AppErrorCode.E_VIDEO_NOT_FOUND.value
        assert result.status_code == 404

    async def test_public_list_hides_drafts(
        self,
        beanie_db,
        video_pipeline: VideoPipeline,
        owned_broadcast: BroadcastClaims,
    ):
        await insert_video(owned_broadcast.broadcast_id, "vd_public")
        await insert_video(owned_broadcast.broadcast_id, "vd_draft", state=VideoState.UPLOADING, draft=True)

        public = await video_pipeline.list_broadcast_videos("studio")
        mine = await video_pipeline.list_my_broadcast_videos(owned_broadcast)

        assert [v.video_id for v in public.data.videos] == ["vd_public"]
        assert {v.video_id for v in mine.data.videos} == {"vd_public", "vd_draft"}

    async def test_list_newest_first(self, beanie_db, video_pipeline: VideoPipeline, owned_broadcast):
        await insert_video(owned_broadcast.broadcast_id, "vd_old", age_seconds=60)
        await insert_video(owned_broadcast.broadcast_id, "vd_new")

        result = await video_pipeline.list_broadcast_videos("studio")

        assert [v.video_id for v in result.data.videos] == ["vd_new", "vd_old"]

    async def test_list_unknown_broadcast(self, beanie_db, video_pipeline: VideoPipeline):
        result = await video_pipeline.list_broadcast_videos("nowhere")

        assert result.errcode == AppErrorCode.E_BROADCAST_NOT_FOUND.value

    async def test_list_mine_requires_membership(self, beanie_db, video_pipeline: VideoPipeline, owned_broadcast):
        result = await video_pipeline.list_my_broadcast_videos(
            make_claims(owned_broadcast.broadcast_id, "stranger")
        )

        assert result.errcode == AppErrorCode.E_NOT_AUTHORIZED.value


@pytest.mark.usefixtures("clear_collections")
class TestPlayback:
    @pytest.mark.parametrize(
        ("quality", "resolution"),
        [(QualityPreference.LOW, "240p"), (QualityPreference.MEDIUM, "720p"), (QualityPreference.HIGH, "1080p")],
    )
    async def test_signed_urls_for_selected_encoding(
        self,
        beanie_db,
        video_pipeline: VideoPipeline,
        storage: S3Service,
        owned_broadcast: BroadcastClaims,
        quality: QualityPreference,
        resolution: str,
    ):
        # Arrange
        await insert_video(owned_broadcast.broadcast_id)
        prefix = f"transcoded/video-storage/vd_published/{resolution}/"
        listing = [f"{prefix}index.m3u8", f"{prefix}seg0.ts", f"{prefix}seg1.ts"]

        # Act
        with patch.object(storage, "list_objects", AsyncMock(return_value=listing)) as list_objects:
            result = await video_pipeline.get_playback("vd_published", quality)

        # Assert
        assert result.success is True
        assert result.data.resolution == resolution
        assert result.data.manifest_url.startswith("https://")
        assert f"{prefix}index.m3u8" in result.data.manifest_url
        assert set(result.data.segment_urls) == {"seg0.ts", "seg1.ts"}
        assert result.data.expires_in > 0
        list_objects.assert_awaited_once_with(prefix)

    async def test_live_video_returns_stream_key(
        self,
        beanie_db,
        video_pipeline: VideoPipeline,
        owned_broadcast: BroadcastClaims,
    ):
        started = await video_pipeline.start_stream(owned_broadcast)

        result = await video_pipeline.get_playback(started.data.video_id)

        assert result.data.is_live is True
        assert result.data.stream_key == started.data.stream_key

    @pytest.mark.parametrize(
        ("state", "formats"),
        [(VideoState.PUBLISHED, []), (VideoState.TRANSCODING, []), (VideoState.FAILED, [])],
    )
    async def test_no_playable_format(
        self,
        beanie_db,
        video_pipeline: VideoPipeline,
        owned_broadcast: BroadcastClaims,
        state: VideoState,
        formats: list[str],
    ):
        await insert_video(owned_broadcast.broadcast_id, state=state, formats=formats)

        result = await video_pipeline.get_playback("vd_published", "high")

        assert result.errcode == AppErrorCode.E_NO_PLAYABLE_FORMAT.value

    async def test_view_count(self, beanie_db, video_pipeline: VideoPipeline, owned_broadcast):
        await insert_video(owned_broadcast.broadcast_id)

        first = await video_pipeline.increment_view_count("vd_published")
        second = await video_pipeline.increment_view_count("vd_published")

        assert (first.data, second.data) == (1, 2)

    async def test_view_count_rejects_unplayable(self, beanie_db, video_pipeline: VideoPipeline, owned_broadcast):
        await insert_video(owned_broadcast.broadcast_id, state=VideoState.TRANSCODING, formats=[])

        result = await video_pipeline.increment_view_count("vd_published")

        assert result.errcode == AppErrorCode.E_NO_PLAYABLE_FORMAT.value
        assert (await Video.find_one(Video.video_id == "vd_published")).view_count == 0


@pytest.mark.usefixtures("clear_collections")
class TestDeleteVideo:
    async def test_missing_video_makes_no_storage_calls(
        self,
        beanie_db,
        video_pipeline: VideoPipeline,
        storage: S3Service,
        owned_broadcast: BroadcastClaims,
    ):
        list_objects = AsyncMock()
        delete_objects = AsyncMock()

        with (
            patch.object(storage, "list_objects", list_objects),
            patch.object(storage, "delete_objects", delete_objects),
        ):
            result = await video_pipeline.delete_video(owned_broadcast, "vd_missing")

        assert result.success is False
        assert result.errcode == AppErrorCode.E_VIDEO_NOT_FOUND.value
        list_objects.assert_not_awaited()
        delete_objects.assert_not_awaited()

    async def test_deletes_source_and_outputs(
        self,
        beanie_db,
        video_pipeline: VideoPipeline,
        storage: S3Service,
        owned_broadcast: BroadcastClaims,
    ):
        # Arrange
        await insert_video(owned_broadcast.broadcast_id)
        outputs = ["transcoded/video-storage/vd_published/240p/index.m3u8"]
        delete_objects = AsyncMock(return_value=2)

        # Act
        with (
            patch.object(storage, "list_objects", AsyncMock(return_value=outputs)),
            patch.object(storage, "delete_objects", delete_objects),
        ):
            result = await video_pipeline.delete_video(owned_broadcast, "vd_published")

        # Assert
        assert result.success is True
        delete_objects.assert_awaited_once_with(["video-storage/vd_published", *outputs])
        assert await Video.find_one(Video.video_id == "vd_published") is None
        assert (await video_pipeline.get_video("vd_published")).success is False

    async def test_deleting_live_video_frees_slot(
        self,
        beanie_db,
        video_pipeline: VideoPipeline,
        owned_broadcast: BroadcastClaims,
    ):
        started = await video_pipeline.start_stream(owned_broadcast)

        result = await video_pipeline.delete_video(owned_broadcast, started.data.video_id)

        assert result.success is True
        assert (await video_pipeline.start_stream(owned_broadcast)).success is True

    async def test_member_cannot_delete(
        self,
        beanie_db,
        video_pipeline: VideoPipeline,
        broadcast_service: BroadcastService,
        owned_broadcast: BroadcastClaims,
    ):
        await insert_video(owned_broadcast.broadcast_id)
        member = await join_as(broadcast_service, owned_broadcast, "dave")

        result = await video_pipeline.delete_video(member, "vd_published")

        assert result.errcode == AppErrorCode.E_NOT_AUTHORIZED.value
        assert await Video.find_one(Video.video_id == "vd_published") is not None


@pytest.mark.usefixtures("clear_collections")
class TestCollaboration:
    async def test_request_accept_and_list(
        self,
        beanie_db,
        video_pipeline: VideoPipeline,
        status_bus: StatusBus,
        owned_broadcast: BroadcastClaims,
        other_broadcast: BroadcastClaims,
    ):
        # Arrange
        await insert_video(owned_broadcast.broadcast_id)

        async with (
            status_bus.subscribe(COLLABORATION_STATUS_TOPIC, other_broadcast.broadcast_id) as target_sub,
            status_bus.subscribe(COLLABORATION_STATUS_TOPIC, owned_broadcast.broadcast_id) as requester_sub,
        ):
            # Act
            requested = await video_pipeline.request_collaboration(
                owned_broadcast, "vd_published", other_broadcast.broadcast_id
            )
            accepted = await video_pipeline.respond_to_collaboration(other_broadcast, "vd_published", True)

            # Assert
            assert requested.success is True
            assert requested.data.collaboration.status == CollaborationStatus.PENDING
            assert accepted.message == "Collaboration accepted"
            assert (await target_sub.get()).status == CollaborationStatus.PENDING
            answer = await requester_sub.get()
            assert answer.status == CollaborationStatus.ACCEPTED
            assert answer.target_broadcast_id == other_broadcast.broadcast_id

        listed = await video_pipeline.list_broadcast_videos("bob show")
        assert [v.video_id for v in listed.data.videos] == ["vd_published"]

    async def test_duplicate_request(
        self,
        beanie_db,
        video_pipeline: VideoPipeline,
        owned_broadcast: BroadcastClaims,
        other_broadcast: BroadcastClaims,
    ):
        await insert_video(owned_broadcast.broadcast_id)
        await video_pipeline.request_collaboration(owned_broadcast, "vd_published", other_broadcast.broadcast_id)

        again = await video_pipeline.request_collaboration(
            owned_broadcast, "vd_published", other_broadcast.broadcast_id
        )

        assert again.errcode == AppErrorCode.E_COLLABORATION_EXISTS.value

    async def test_rejected_request_can_be_repeated(
        self,
        beanie_db,
        video_pipeline: VideoPipeline,
        owned_broadcast: BroadcastClaims,
        other_broadcast: BroadcastClaims,
    ):
        await insert_video(owned_broadcast.broadcast_id)
        await video_pipeline.request_collaboration(owned_broadcast, "vd_published", other_broadcast.broadcast_id)
        rejected = await video_pipeline.respond_to_collaboration(other_broadcast, "vd_published", False)

        again = await video_pipeline.request_collaboration(
            owned_broadcast, "vd_published", other_broadcast.broadcast_id
        )

        assert rejected.data.collaboration.status == CollaborationStatus.REJECTED
        assert again.success is True

    async def test_own_broadcast_rejected(self, beanie_db, video_pipeline: VideoPipeline, owned_broadcast):
        await insert_video(owned_broadcast.broadcast_id)

        result = await video_pipeline.request_collaboration(
            owned_broadcast, "vd_published", owned_broadcast.broadcast_id
        )

        assert result.errcode == AppErrorCode.E_INVALID_REQUEST.value

    async def test_only_target_may_respond(
        self,
        beanie_db,
        video_pipeline: VideoPipeline,
        owned_broadcast: BroadcastClaims,
        other_broadcast: BroadcastClaims,
    ):
        await insert_video(owned_broadcast.broadcast_id)
        await video_pipeline.request_collaboration(owned_broadcast, "vd_published", other_broadcast.broadcast_id)

        result = await video_pipeline.respond_to_collaboration(owned_broadcast, "vd_published", True)

        assert result.errcode == AppErrorCode.E_NOT_AUTHORIZED.value

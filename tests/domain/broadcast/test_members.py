"""Tests for membership operations."""

import asyncio

import pytest

from app.domain.broadcast.broadcast_domain import BroadcastService
from app.domain.broadcast.broadcast_models import BroadcastClaims
from app.domain.broadcast.broadcast_token import decode_broadcast_token
from app.schemas import Broadcast, MemberRole
from app.utils.app_errors import AppError, AppErrorCode
from tests.fixtures.service_fixtures import join_as, make_claims


async def stored_roles(broadcast_id: str) -> dict[str, MemberRole]:
    broadcast = await Broadcast.find_one(Broadcast.broadcast_id == broadcast_id)
    assert broadcast is not None
    return {m.user_id: m.role for m in broadcast.members}


@pytest.mark.usefixtures("clear_collections")
class TestJoinBroadcast:
    async def test_join_issues_member_token(
        self,
        beanie_db,
        broadcast_service: BroadcastService,
        owned_broadcast: BroadcastClaims,
    ):
        # Act
        result = await broadcast_service.join_broadcast("dave", "studio")

        # Assert
        assert result.success is True
        assert result.data.role == MemberRole.MEMBER
        claims = decode_broadcast_token(result.data.token)
        assert claims.user_id == "dave"
        assert claims.broadcast_id == owned_broadcast.broadcast_id
        assert (await stored_roles(owned_broadcast.broadcast_id))["dave"] == MemberRole.MEMBER

    async def test_rejoin_keeps_role(
        self,
        beanie_db,
        broadcast_service: BroadcastService,
        owned_broadcast: BroadcastClaims,
    ):
        await join_as(broadcast_service, owned_broadcast, "carol", MemberRole.CO_BROADCASTER)

        result = await broadcast_service.join_broadcast("carol", "studio")

        assert result.data.role == MemberRole.CO_BROADCASTER
        assert len(await stored_roles(owned_broadcast.broadcast_id)) == 2

    async def test_unknown_name(self, beanie_db, broadcast_service: BroadcastService):
        result = await broadcast_service.join_broadcast("dave", "nowhere")

        assert result.success is False
        assert result.errcode == AppErrorCode.E_BROADCAST_NOT_FOUND.value


@pytest.mark.usefixtures("clear_collections")
class TestAuthenticateBroadcastToken:
    async def test_returns_current_role(
        self,
        beanie_db,
        broadcast_service: BroadcastService,
        owned_broadcast: BroadcastClaims,
    ):
        """A token issued as MEMBER reports the role stored now."""
        member = await join_as(broadcast_service, owned_broadcast, "erin")
        await broadcast_service.update_role(owned_broadcast, "erin", MemberRole.CO_BROADCASTER)

        check = await broadcast_service.authenticate_broadcast_token(member)

        assert check.ok is True
        assert check.role == MemberRole.CO_BROADCASTER

    async def test_removed_member_is_denied(
        self,
        beanie_db,
        broadcast_service: BroadcastService,
        owned_broadcast: BroadcastClaims,
    ):
        member = await join_as(broadcast_service, owned_broadcast, "erin")
        await broadcast_service.remove_member(owned_broadcast, "erin")

        check = await broadcast_service.authenticate_broadcast_token(member)

        assert check.ok is False
        assert check.reason

    async def test_unknown_broadcast_is_denied(self, beanie_db, broadcast_service: BroadcastService):
        check = await broadcast_service.authenticate_broadcast_token(make_claims("bc_gone", "erin"))

        assert check.ok is False

    async def test_require_membership_raises(self, beanie_db, broadcast_service: BroadcastService):
        with pytest.raises(AppError) as exc_info:
            await broadcast_service.require_membership(make_claims("bc_gone", "erin"))

        assert exc_info.value.errcode == AppErrorCode.E_NOT_AUTHORIZED.value


@pytest.mark.usefixtures("clear_collections")
class TestAddMember:
    async def test_co_broadcaster_can_add(
        self,
        beanie_db,
        broadcast_service: BroadcastService,
        owned_broadcast: BroadcastClaims,
    ):
        co = await join_as(broadcast_service, owned_broadcast, "carol", MemberRole.CO_BROADCASTER)

        result = await broadcast_service.add_member(co, "frank")

        assert result.success is True
        assert (await stored_roles(owned_broadcast.broadcast_id))["frank"] == MemberRole.MEMBER

    async def test_member_cannot_add(
        self,
        beanie_db,
        broadcast_service: BroadcastService,
        owned_broadcast: BroadcastClaims,
    ):
        member = await join_as(broadcast_service, owned_broadcast, "dave")

        result = await broadcast_service.add_member(member, "frank")

        assert result.success is False
        assert result.errcode == AppErrorCode.E_NOT_AUTHORIZED.value

    async def test_already_member(
        self,
        beanie_db,
        broadcast_service: BroadcastService,
        owned_broadcast: BroadcastClaims,
    ):
        await join_as(broadcast_service, owned_broadcast, "dave")

        result = await broadcast_service.add_member(owned_broadcast, "dave")

        assert result.errcode == AppErrorCode.E_ALREADY_MEMBER.value
        assert result.status_code == 409


@pytest.mark.usefixtures("clear_collections")
class TestUpdateRole:
    async def test_promote_and_demote(
        self,
        beanie_db,
        broadcast_service: BroadcastService,
        owned_broadcast: BroadcastClaims,
    ):
        await join_as(broadcast_service, owned_broadcast, "dave")

        promoted = await broadcast_service.update_role(owned_broadcast, "dave", MemberRole.CO_BROADCASTER)
        assert promoted.success is True
        assert promoted.message == "Successfully promoted member"
        assert promoted.data.previous_role == MemberRole.MEMBER

        demoted = await broadcast_service.update_role(owned_broadcast, "dave", MemberRole.MEMBER)
        assert demoted.success is True
        assert demoted.message == "Successfully demoted member"
        assert (await stored_roles(owned_broadcast.broadcast_id))["dave"] == MemberRole.MEMBER

    async def test_new_role_visible_through_cache(
        self,
        beanie_db,
        broadcast_service: BroadcastService,
        owned_broadcast: BroadcastClaims,
    ):
        """The member cache is invalidated before update_role returns."""
        # Arrange
        await join_as(broadcast_service, owned_broadcast, "dave")
        before = await broadcast_service.get_broadcast_members("studio")
        assert {m.user_id: m.role for m in before.data}["dave"] == MemberRole.MEMBER

        # Act
        await broadcast_service.update_role(owned_broadcast, "dave", MemberRole.CO_BROADCASTER)

        # Assert
        after = await broadcast_service.get_broadcast_members("studio")
        assert {m.user_id: m.role for m in after.data}["dave"] == MemberRole.CO_BROADCASTER

    @pytest.mark.parametrize("role", [MemberRole.BROADCASTER, MemberRole.MEMBER])
    async def test_invalid_transition(
        self,
        beanie_db,
        broadcast_service: BroadcastService,
        owned_broadcast: BroadcastClaims,
        role: MemberRole,
    ):
        await join_as(broadcast_service, owned_broadcast, "dave")

        result = await broadcast_service.update_role(owned_broadcast, "dave", role)

        assert result.success is False
        assert result.errcode == AppErrorCode.E_INVALID_ROLE_TRANSITION.value

    async def test_co_broadcaster_cannot_change_roles(
        self,
        beanie_db,
        broadcast_service: BroadcastService,
        owned_broadcast: BroadcastClaims,
    ):
        co = await join_as(broadcast_service, owned_broadcast, "carol", MemberRole.CO_BROADCASTER)
        await join_as(broadcast_service, owned_broadcast, "dave")

        result = await broadcast_service.update_role(co, "dave", MemberRole.CO_BROADCASTER)

        assert result.errcode == AppErrorCode.E_NOT_AUTHORIZED.value

    async def test_target_not_member(
        self,
        beanie_db,
        broadcast_service: BroadcastService,
        owned_broadcast: BroadcastClaims,
    ):
        result = await broadcast_service.update_role(owned_broadcast, "nobody", MemberRole.CO_BROADCASTER)

        assert result.errcode == AppErrorCode.E_MEMBER_NOT_FOUND.value

    async def test_concurrent_role_changes_both_apply(
        self,
        beanie_db,
        broadcast_service: BroadcastService,
        owned_broadcast: BroadcastClaims,
    ):
        """Version conflicts are retried, so neither promotion is lost."""
        await join_as(broadcast_service, owned_broadcast, "dave")
        await join_as(broadcast_service, owned_broadcast, "erin")

        results = await asyncio.gather(
            broadcast_service.update_role(owned_broadcast, "dave", MemberRole.CO_BROADCASTER),
            broadcast_service.update_role(owned_broadcast, "erin", MemberRole.CO_BROADCASTER),
        )

        assert all(r.success for r in results)
        roles = await stored_roles(owned_broadcast.broadcast_id)
        assert roles["dave"] == MemberRole.CO_BROADCASTER
        assert roles["erin"] == MemberRole.CO_BROADCASTER


@pytest.mark.usefixtures("clear_collections")
class TestRemoveMember:
    async def test_remove(
        self,
        beanie_db,
        broadcast_service: BroadcastService,
        owned_broadcast: BroadcastClaims,
    ):
        await join_as(broadcast_service, owned_broadcast, "dave")

        result = await broadcast_service.remove_member(owned_broadcast, "dave")

        assert result.success is True
        assert "dave" not in await stored_roles(owned_broadcast.broadcast_id)

    async def test_cannot_remove_broadcaster(
        self,
        beanie_db,
        broadcast_service: BroadcastService,
        owned_broadcast: BroadcastClaims,
    ):
        co = await join_as(broadcast_service, owned_broadcast, "carol", MemberRole.CO_BROADCASTER)

        result = await broadcast_service.remove_member(co, "owner")

        assert result.errcode == AppErrorCode.E_CANNOT_REMOVE_OWNER.value
        assert result.status_code == 403

    async def test_cannot_remove_self(
        self,
        beanie_db,
        broadcast_service: BroadcastService,
        owned_broadcast: BroadcastClaims,
    ):
        result = await broadcast_service.remove_member(owned_broadcast, "owner")

        assert result.errcode == AppErrorCode.E_INVALID_REQUEST.value

    async def test_missing_target(
        self,
        beanie_db,
        broadcast_service: BroadcastService,
        owned_broadcast: BroadcastClaims,
    ):
        result = await broadcast_service.remove_member(owned_broadcast, "nobody")

        assert result.errcode == AppErrorCode.E_MEMBER_NOT_FOUND.value


@pytest.mark.usefixtures("clear_collections")
class TestLeaveBroadcast:
    async def test_member_leaves(
        self,
        beanie_db,
        broadcast_service: BroadcastService,
        owned_broadcast: BroadcastClaims,
    ):
        member = await join_as(broadcast_service, owned_broadcast, "dave")

        result = await broadcast_service.leave_broadcast(member)

        assert result.success is True
        assert result.data.deleted is False
        assert result.data.successor_id is None
        assert "dave" not in await stored_roles(owned_broadcast.broadcast_id)

    async def test_broadcaster_leaves_co_broadcaster_succeeds(
        self,
        beanie_db,
        broadcast_service: BroadcastService,
        owned_broadcast: BroadcastClaims,
    ):
        # Arrange: a member joins before the co-broadcaster
        await join_as(broadcast_service, owned_broadcast, "early")
        await join_as(broadcast_service, owned_broadcast, "carol", MemberRole.CO_BROADCASTER)

        # Act
        result = await broadcast_service.leave_broadcast(owned_broadcast)

        # Assert
        assert result.success is True
        assert result.data.successor_id == "carol"
        broadcast = await Broadcast.find_one(Broadcast.broadcast_id == owned_broadcast.broadcast_id)
        assert broadcast.owner_id == "carol"
        assert {m.user_id: m.role for m in broadcast.members} == {
            "early": MemberRole.MEMBER,
            "carol": MemberRole.BROADCASTER,
        }

    async def test_broadcaster_leaves_earliest_member_succeeds(
        self,
        beanie_db,
        broadcast_service: BroadcastService,
        owned_broadcast: BroadcastClaims,
    ):
        await join_as(broadcast_service, owned_broadcast, "first")
        await join_as(broadcast_service, owned_broadcast, "second")

        result = await broadcast_service.leave_broadcast(owned_broadcast)

        assert result.data.successor_id == "first"
        roles = await stored_roles(owned_broadcast.broadcast_id)
        assert roles == {"first": MemberRole.BROADCASTER, "second": MemberRole.MEMBER}

    async def test_last_member_deletes_broadcast(
        self,
        beanie_db,
        broadcast_service: BroadcastService,
        owned_broadcast: BroadcastClaims,
    ):
        result = await broadcast_service.leave_broadcast(owned_broadcast)

        assert result.success is True
        assert result.data.deleted is True
        assert await Broadcast.find_one(Broadcast.broadcast_id == owned_broadcast.broadcast_id) is None
        assert (await broadcast_service.get_broadcast(owned_broadcast.broadcast_id)).success is False

    async def test_non_member_cannot_leave(
        self,
        beanie_db,
        broadcast_service: BroadcastService,
        owned_broadcast: BroadcastClaims,
    ):
        result = await broadcast_service.leave_broadcast(
            make_claims(owned_broadcast.broadcast_id, "stranger")
        )

        assert result.errcode == AppErrorCode.E_MEMBER_NOT_FOUND.value

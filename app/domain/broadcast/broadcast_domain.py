"""Broadcast domain service - membership and broadcast records with Beanie ODM."""

from app.schemas import MemberRole
from app.services.integrations.s3_storage import S3Service

from ..outcome import OperationResult, run_operation
from ._broadcasts import BroadcastOperations
from ._members import MemberOperations
from .broadcast_models import (
    BroadcastAccountResponse,
    BroadcastClaims,
    BroadcastCreateParams,
    BroadcastResponse,
    BroadcastSearchResponse,
    BroadcastUpdateParams,
    JoinBroadcastResponse,
    LeaveBroadcastResponse,
    MemberResponse,
    MembershipCheck,
    RoleChangeResponse,
)
from .membership_cache import MembershipCache
from .role_state_machine import RoleStateMachine


def _role_change_message(change: RoleChangeResponse) -> str:
    if RoleStateMachine.is_promotion(change.previous_role, change.role):
        return "Successfully promoted member"
    return "Successfully demoted member"


def _leave_message(result: LeaveBroadcastResponse) -> str:
    if result.deleted:
        return "Left broadcast; broadcast deleted"
    if result.successor_id:
        return f"Left broadcast; {result.successor_id} is now broadcaster"
    return "Left broadcast"


class BroadcastService:
    """Broadcast service.

    Every method returns an OperationResult; errors never propagate to callers.
    """

    def __init__(self, cache: MembershipCache, storage: S3Service):
        self._broadcasts = BroadcastOperations(cache, storage)
        self._members = MemberOperations(cache, storage)

    # ==================== BROADCASTS ====================

    async def create_broadcast(
        self,
        params: BroadcastCreateParams,
    ) -> OperationResult[BroadcastResponse]:
        """Create a broadcast; the requesting user becomes its BROADCASTER."""
        return await run_operation(
            self._broadcasts.create_broadcast(params=params),
            "Broadcast created",
        )

    async def update_broadcast(
        self,
        claims: BroadcastClaims,
        params: BroadcastUpdateParams,
    ) -> OperationResult[BroadcastResponse]:
        return await run_operation(
            self._broadcasts.update_broadcast(claims=claims, params=params),
            "Broadcast updated",
        )

    async def get_broadcast(self, broadcast_id: str) -> OperationResult[BroadcastResponse]:
        return await run_operation(self._broadcasts.get_broadcast(broadcast_id=broadcast_id))

    async def get_broadcast_members(self, name: str) -> OperationResult[list[MemberResponse]]:
        return await run_operation(self._broadcasts.get_broadcast_members(name=name))

    async def verify_broadcast_account(
        self,
        user_id: str,
    ) -> OperationResult[list[BroadcastAccountResponse]]:
        return await run_operation(
            self._broadcasts.verify_broadcast_account(user_id=user_id),
            lambda accounts: "Broadcast account found" if accounts else "No broadcast account",
        )

    async def search_broadcasts(
        self,
        claims: BroadcastClaims,
        prefix: str,
        limit: int = 20,
    ) -> OperationResult[BroadcastSearchResponse]:
        return await run_operation(
            self._broadcasts.search_broadcasts(claims=claims, prefix=prefix, limit=limit)
        )

    # ==================== MEMBERS ====================

    async def authenticate_broadcast_token(self, claims: BroadcastClaims) -> MembershipCheck:
        """Check token claims against current membership. Never raises."""
        return await self._members.authenticate_broadcast_token(claims=claims)

    async def require_membership(
        self,
        claims: BroadcastClaims,
        roles: list[MemberRole] | None = None,
    ) -> MembershipCheck:
        """Raising variant used by other domains.

        Raises AppError if the caller is not a member or lacks one of `roles`.
        """
        return await self._members.require_membership(claims=claims, roles=roles)

    async def join_broadcast(
        self,
        user_id: str,
        name: str,
    ) -> OperationResult[JoinBroadcastResponse]:
        return await run_operation(
            self._members.join_broadcast(user_id=user_id, name=name),
            "Joined broadcast",
        )

    async def add_member(
        self,
        claims: BroadcastClaims,
        user_id: str,
    ) -> OperationResult[RoleChangeResponse]:
        return await run_operation(
            self._members.add_member(claims=claims, user_id=user_id),
            "Member added",
        )

    async def update_role(
        self,
        claims: BroadcastClaims,
        user_id: str,
        role: MemberRole,
    ) -> OperationResult[RoleChangeResponse]:
        """Promote or demote a member. Only the BROADCASTER may call this."""
        return await run_operation(
            self._members.update_role(claims=claims, user_id=user_id, role=role),
            _role_change_message,
        )

    async def remove_member(
        self,
        claims: BroadcastClaims,
        user_id: str,
    ) -> OperationResult[RoleChangeResponse]:
        return await run_operation(
            self._members.remove_member(claims=claims, user_id=user_id),
            "Member removed",
        )

    async def leave_broadcast(self, claims: BroadcastClaims) -> OperationResult[LeaveBroadcastResponse]:
        """Leave a broadcast, running succession when the BROADCASTER leaves."""
        return await run_operation(
            self._members.leave_broadcast(claims=claims),
            _leave_message,
        )

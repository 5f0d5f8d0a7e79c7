"""Membership operations: join, add, role changes, removal and leaving."""

from loguru import logger

from app.schemas import Broadcast, BroadcastMember, MemberRole
from app.shared.utils.time import utc_now
from app.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

from ._base import BaseService, BroadcastWrite
from .broadcast_models import (
    BroadcastClaims,
    JoinBroadcastResponse,
    LeaveBroadcastResponse,
    MembershipCheck,
    RoleChangeResponse,
)
from .broadcast_token import issue_broadcast_token
from .role_state_machine import RoleStateMachine


def _member_not_found(user_id: str) -> AppError:
    return AppError(
        errcode=AppErrorCode.E_MEMBER_NOT_FOUND,
        errmesg=f"Member not found: {user_id}",
        status_code=HttpStatusCode.NOT_FOUND,
    )


class MemberOperations(BaseService):
    """Member-related operations."""

    async def authenticate_broadcast_token(self, claims: BroadcastClaims) -> MembershipCheck:
        """Check verified token claims against the current member list.

        Never raises for a failed check; the returned MembershipCheck carries
        the reason. On success `role` is the role stored now, which may differ
        from the role the token was issued with.
        """
        broadcast = await self._get_broadcast_by_id(claims.broadcast_id)
        if broadcast is None:
            return MembershipCheck.denied("Broadcast not found")

        member = broadcast.find_member(claims.user_id)
        if member is None:
            return MembershipCheck.denied("Not a member of this broadcast")

        return MembershipCheck(
            ok=True,
            broadcast_id=broadcast.broadcast_id,
            user_id=member.user_id,
            role=member.role,
        )

    async def require_membership(
        self,
        claims: BroadcastClaims,
        roles: list[MemberRole] | None = None,
    ) -> MembershipCheck:
        """Like authenticate_broadcast_token, but raises E_NOT_AUTHORIZED on failure."""
        check = await self.authenticate_broadcast_token(claims)
        if not check.ok:
            raise AppError(
                errcode=AppErrorCode.E_NOT_AUTHORIZED,
                errmesg=check.reason or "Not authorized",
                status_code=HttpStatusCode.FORBIDDEN,
            )
        if roles is not None and check.role not in roles:
            raise AppError(
                errcode=AppErrorCode.E_NOT_AUTHORIZED,
                errmesg=f"Role {check.role} is not allowed to perform this action",
                status_code=HttpStatusCode.FORBIDDEN,
            )
        return check

    async def join_broadcast(self, user_id: str, name: str) -> JoinBroadcastResponse:
        """
        Join a broadcast by name as MEMBER and issue a broadcast token.

        Joining again keeps the current role and issues a fresh token.
        """
        broadcast = await Broadcast.find_one(Broadcast.name == name)
        if broadcast is None:
            raise AppError(
                errcode=AppErrorCode.E_BROADCAST_NOT_FOUND,
                errmesg=f"Broadcast not found: {name}",
                status_code=HttpStatusCode.NOT_FOUND,
            )

        def mutate(b: Broadcast) -> BroadcastWrite[MemberRole]:
            existing = b.find_member(user_id)
            if existing is not None:
                return BroadcastWrite(result=existing.role)

            member = BroadcastMember(user_id=user_id, role=MemberRole.MEMBER, joined_at=utc_now())
            return BroadcastWrite(
                result=MemberRole.MEMBER,
                updates={
                    Broadcast.members: [*b.members, member],
                    Broadcast.updated_at: utc_now(),
                },
            )

        joined, write = await self._write_broadcast(broadcast.broadcast_id, mutate)
        logger.info(f"User {user_id} joined broadcast {joined.broadcast_id} as {write.result}")

        return JoinBroadcastResponse(
            broadcast_id=joined.broadcast_id,
            role=write.result,
            token=issue_broadcast_token(user_id, joined.broadcast_id, write.result),
        )

    async def add_member(self, claims: BroadcastClaims, user_id: str) -> RoleChangeResponse:
        """
        Add `user_id` as MEMBER. The caller must be BROADCASTER or CO_BROADCASTER.

        Raises AppError E_ALREADY_MEMBER if the user is already a member.
        """

        def mutate(b: Broadcast) -> BroadcastWrite[None]:
            self._require_member(b, claims.user_id, MemberRole.managers())
            if b.find_member(user_id) is not None:
                raise AppError(
                    errcode=AppErrorCode.E_ALREADY_MEMBER,
                    errmesg=f"User is already a member: {user_id}",
                    status_code=HttpStatusCode.CONFLICT,
                )

            member = BroadcastMember(user_id=user_id, role=MemberRole.MEMBER, joined_at=utc_now())
            return BroadcastWrite(
                result=None,
                updates={
                    Broadcast.members: [*b.members, member],
                    Broadcast.updated_at: utc_now(),
                },
            )

        await self._write_broadcast(claims.broadcast_id, mutate)
        logger.info(f"User {user_id} added to broadcast {claims.broadcast_id} by {claims.user_id}")

        return RoleChangeResponse(
            broadcast_id=claims.broadcast_id,
            user_id=user_id,
            previous_role=MemberRole.MEMBER,
            role=MemberRole.MEMBER,
        )

    async def update_role(
        self,
        claims: BroadcastClaims,
        user_id: str,
        role: MemberRole,
    ) -> RoleChangeResponse:
        """
        Promote MEMBER to CO_BROADCASTER or demote CO_BROADCASTER to MEMBER.

        Raises AppError:
        - E_NOT_AUTHORIZED if the caller is not the BROADCASTER now
        - E_MEMBER_NOT_FOUND if the target is not a member
        - E_INVALID_ROLE_TRANSITION for any other role change
        """

        def mutate(b: Broadcast) -> BroadcastWrite[MemberRole]:
            caller = self._require_member(b, claims.user_id)
            if not RoleStateMachine.can_request_transition(caller.role):
                raise AppError(
                    errcode=AppErrorCode.E_NOT_AUTHORIZED,
                    errmesg="Only the broadcaster can change roles",
                    status_code=HttpStatusCode.FORBIDDEN,
                )

            target = b.find_member(user_id)
            if target is None:
                raise _member_not_found(user_id)

            if not RoleStateMachine.can_transition(target.role, role):
                raise AppError(
                    errcode=AppErrorCode.E_INVALID_ROLE_TRANSITION,
                    errmesg=f"Invalid role transition: {target.role} -> {role}",
                    status_code=HttpStatusCode.BAD_REQUEST,
                )

            members = [
                m.model_copy(update={"role": role}) if m.user_id == user_id else m
                for m in b.members
            ]
            return BroadcastWrite(
                result=target.role,
                updates={Broadcast.members: members, Broadcast.updated_at: utc_now()},
            )

        _, write = await self._write_broadcast(claims.broadcast_id, mutate)
        logger.info(
            f"Broadcast {claims.broadcast_id}: {user_id} {write.result} -> {role} by {claims.user_id}"
        )

        return RoleChangeResponse(
            broadcast_id=claims.broadcast_id,
            user_id=user_id,
            previous_role=write.result,
            role=role,
        )

    async def remove_member(self, claims: BroadcastClaims, user_id: str) -> RoleChangeResponse:
        """
        Remove another member. The caller must be BROADCASTER or CO_BROADCASTER.

        The BROADCASTER cannot be removed (E_CANNOT_REMOVE_OWNER); removing
        yourself goes through leave_broadcast.
        """
        if user_id == claims.user_id:
            raise AppError(
                errcode=AppErrorCode.E_INVALID_REQUEST,
                errmesg="Use leave to remove yourself",
                status_code=HttpStatusCode.BAD_REQUEST,
            )

        def mutate(b: Broadcast) -> BroadcastWrite[MemberRole]:
            self._require_member(b, claims.user_id, MemberRole.managers())

            target = b.find_member(user_id)
            if target is None:
                raise _member_not_found(user_id)
            if target.role == MemberRole.BROADCASTER:
                raise AppError(
                    errcode=AppErrorCode.E_CANNOT_REMOVE_OWNER,
                    errmesg="The broadcaster cannot be removed",
                    status_code=HttpStatusCode.FORBIDDEN,
                )

            return BroadcastWrite(
                result=target.role,
                updates={
                    Broadcast.members: [m for m in b.members if m.user_id != user_id],
                    Broadcast.updated_at: utc_now(),
                },
            )

        _, write = await self._write_broadcast(claims.broadcast_id, mutate)
        logger.info(f"User {user_id} removed from broadcast {claims.broadcast_id} by {claims.user_id}")

        return RoleChangeResponse(
            broadcast_id=claims.broadcast_id,
            user_id=user_id,
            previous_role=write.result,
            role=write.result,
        )

    async def leave_broadcast(self, claims: BroadcastClaims) -> LeaveBroadcastResponse:
        """
        Leave a broadcast. When the BROADCASTER leaves, succession runs:
        the earliest CO_BROADCASTER, else the earliest member, is promoted and
        becomes owner; with nobody left the broadcast is deleted.

        Removal and promotion are one conditional write.
        """

        def mutate(b: Broadcast) -> BroadcastWrite[LeaveBroadcastResponse]:
            member = b.find_member(claims.user_id)
            if member is None:
                raise _member_not_found(claims.user_id)

            if member.role != MemberRole.BROADCASTER:
                return BroadcastWrite(
                    result=LeaveBroadcastResponse(broadcast_id=b.broadcast_id),
                    updates={
                        Broadcast.members: [m for m in b.members if m.user_id != claims.user_id],
                        Broadcast.updated_at: utc_now(),
                    },
                )

            plan = RoleStateMachine.plan_succession(b.members, claims.user_id)
            if plan.deletes_broadcast:
                return BroadcastWrite(
                    result=LeaveBroadcastResponse(broadcast_id=b.broadcast_id, deleted=True),
                    delete=True,
                )

            return BroadcastWrite(
                result=LeaveBroadcastResponse(
                    broadcast_id=b.broadcast_id,
                    successor_id=plan.successor.user_id,
                ),
                updates={
                    Broadcast.members: plan.members,
                    Broadcast.owner_id: plan.successor.user_id,
                    Broadcast.updated_at: utc_now(),
                },
            )

        _, write = await self._write_broadcast(claims.broadcast_id, mutate)
        result = write.result
        if result.deleted:
            logger.info(f"Broadcast {claims.broadcast_id} deleted after last member {claims.user_id} left")
        elif result.successor_id:
            logger.info(
                f"Broadcast {claims.broadcast_id}: {claims.user_id} left, "
                f"{result.successor_id} is now broadcaster"
            )
        else:
            logger.info(f"User {claims.user_id} left broadcast {claims.broadcast_id}")

        return result

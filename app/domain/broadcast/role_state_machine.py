"""Role state machine for broadcast membership."""

from dataclasses import dataclass

from app.schemas import BroadcastMember, MemberRole


@dataclass(frozen=True)
class SuccessionPlan:
    """Outcome of the broadcaster leaving.

    `members` is the member list after removal and promotion; it is empty when
    the broadcast must be deleted. `successor` is the newly promoted member.
    """

    members: list[BroadcastMember]
    successor: BroadcastMember | None

    @property
    def deletes_broadcast(self) -> bool:
        return not self.members


class RoleStateMachine:
    """State machine for managing member role transitions.

    Manual transitions (update_role), only requested by the BROADCASTER:
    - MEMBER -> CO_BROADCASTER (promote)
    - CO_BROADCASTER -> MEMBER (demote)

    BROADCASTER is never assigned or removed manually. It moves only through
    succession when the current broadcaster leaves:
    1. earliest-joined CO_BROADCASTER is promoted
    2. otherwise the earliest-joined remaining member is promoted
    3. otherwise the broadcast is deleted
    Ties on join time keep member-list order.
    """

    TRANSITIONS: dict[MemberRole, set[MemberRole]] = {
        MemberRole.MEMBER: {MemberRole.CO_BROADCASTER},
        MemberRole.CO_BROADCASTER: {MemberRole.MEMBER},
        MemberRole.BROADCASTER: set(),
    }

    # Roles that may request a manual transition
    TRANSITION_REQUESTERS: set[MemberRole] = {MemberRole.BROADCASTER}

    @classmethod
    def can_transition(cls, current: MemberRole, new: MemberRole) -> bool:
        """Check if a manual role transition is valid."""
        return new in cls.TRANSITIONS.get(current, set())

    @classmethod
    def can_request_transition(cls, requester: MemberRole | None) -> bool:
        return requester in cls.TRANSITION_REQUESTERS

    @classmethod
    def get_valid_transitions(cls, role: MemberRole) -> set[MemberRole]:
        return cls.TRANSITIONS.get(role, set())

    @classmethod
    def get_valid_sources(cls, target: MemberRole) -> set[MemberRole]:
        return {role for role, targets in cls.TRANSITIONS.items() if target in targets}

    @classmethod
    def is_promotion(cls, current: MemberRole, new: MemberRole) -> bool:
        return current == MemberRole.MEMBER and new == MemberRole.CO_BROADCASTER

    @classmethod
    def select_successor(cls, remaining: list[BroadcastMember]) -> BroadcastMember | None:
        """Pick the member who becomes BROADCASTER, or None when nobody is left."""
        if not remaining:
            return None

        co_broadcasters = [m for m in remaining if m.role == MemberRole.CO_BROADCASTER]
        candidates = co_broadcasters or remaining

        # sorted() is stable, so equal join times keep member-list order
        return sorted(candidates, key=lambda m: m.joined_at)[0]

    @classmethod
    def plan_succession(cls, members: list[BroadcastMember], departing_user_id: str) -> SuccessionPlan:
        """Compute the member list after the broadcaster `departing_user_id` leaves."""
        remaining = [m for m in members if m.user_id != departing_user_id]
        successor = cls.select_successor(remaining)
        if successor is None:
            return SuccessionPlan(members=[], successor=None)

        promoted = successor.model_copy(update={"role": MemberRole.BROADCASTER})
        new_members = [promoted if m is successor else m for m in remaining]
        return SuccessionPlan(members=new_members, successor=promoted)

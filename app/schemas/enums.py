"""Common enums used across schemas."""

from enum import Enum


class MemberRole(str, Enum):
    """Roles a user can hold inside a broadcast.

    Exactly one member is BROADCASTER while the broadcast exists. Manual role
    changes only move between MEMBER and CO_BROADCASTER; BROADCASTER is only
    assigned at creation or through succession when the broadcaster leaves.
    """

    BROADCASTER = "BROADCASTER"
    CO_BROADCASTER = "CO_BROADCASTER"
    MEMBER = "MEMBER"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def managers(cls) -> list["MemberRole"]:
        """Roles allowed to manage members and videos."""
        return [MemberRole.BROADCASTER, MemberRole.CO_BROADCASTER]


class VideoState(str, Enum):
    """Video lifecycle states.

    DRAFT → UPLOADING → TRANSCODING → PUBLISHED | FAILED
    DRAFT/UPLOADING → PUBLISHED (details stored without transcoding)
    DRAFT → LIVE → PUBLISHED (stream ended)
    FAILED → TRANSCODING (resubmitted)
    """

    DRAFT = "DRAFT"
    UPLOADING = "UPLOADING"
    TRANSCODING = "TRANSCODING"
    PUBLISHED = "PUBLISHED"
    FAILED = "FAILED"
    LIVE = "LIVE"

    def __str__(self) -> str:
        return self.value


class CollaborationStatus(str, Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"

    def __str__(self) -> str:
        return self.value


class QualityPreference(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    def __str__(self) -> str:
        return self.value


__all__ = ["CollaborationStatus", "MemberRole", "QualityPreference", "VideoState"]

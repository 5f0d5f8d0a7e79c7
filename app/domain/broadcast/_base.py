"""Base service for broadcast operations."""

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from loguru import logger

from app.schemas import Broadcast, BroadcastMember, MemberRole
from app.services.integrations.s3_storage import S3Service
from app.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

from .broadcast_models import ImageUpload
from .membership_cache import MembershipCache

R = TypeVar("R")

# Re-read/re-validate attempts before a concurrent writer wins
MAX_WRITE_ATTEMPTS = 3

IMAGE_FOLDER = "broadcast-images"


@dataclass
class BroadcastWrite(Generic[R]):
    """What a mutation wants to do to the freshly read broadcast.

    `updates` is applied with one versioned conditional write, `delete`
    removes the broadcast with one versioned conditional delete. Neither set
    means there is nothing to write.
    """

    result: R
    updates: dict[Any, Any] = field(default_factory=dict)
    delete: bool = False


class BaseService:
    """Base service with shared broadcast operation methods."""

    def __init__(self, cache: MembershipCache, storage: S3Service):
        self.cache = cache
        self.storage = storage

    async def _get_broadcast_by_id(self, broadcast_id: str) -> Broadcast | None:
        return await Broadcast.find_one(Broadcast.broadcast_id == broadcast_id)

    async def _get_broadcast_or_raise(self, broadcast_id: str) -> Broadcast:
        broadcast = await self._get_broadcast_by_id(broadcast_id)
        if broadcast is None:
            raise AppError(
                errcode=AppErrorCode.E_BROADCAST_NOT_FOUND,
                errmesg=f"Broadcast not found: {broadcast_id}",
                status_code=HttpStatusCode.NOT_FOUND,
            )
        return broadcast

    @staticmethod
    def _require_member(
        broadcast: Broadcast,
        user_id: str,
        roles: list[MemberRole] | None = None,
    ) -> BroadcastMember:
        """Return the caller's member entry, enforcing `roles` if given.

        Raises:
            AppError: E_NOT_AUTHORIZED if the caller is absent or lacks the role.
        """
        member = broadcast.find_member(user_id)
        if member is None:
            raise AppError(
                errcode=AppErrorCode.E_NOT_AUTHORIZED,
                errmesg="You are not a member of this broadcast",
                status_code=HttpStatusCode.FORBIDDEN,
            )
        if roles is not None and member.role not in roles:
            raise AppError(
                errcode=AppErrorCode.E_NOT_AUTHORIZED,
                errmesg=f"Role {member.role} is not allowed to perform this action",
                status_code=HttpStatusCode.FORBIDDEN,
            )
        return member

    async def _write_broadcast(
        self,
        broadcast_id: str,
        mutate: Callable[[Broadcast], BroadcastWrite[R]],
    ) -> tuple[Broadcast, BroadcastWrite[R]]:
        """Read-validate-write loop with a versioned conditional write.

        `mutate` runs against a fresh read on every attempt and may raise
        AppError to reject the change. The cache is invalidated after a
        successful write, before returning.

        Raises:
            AppError: E_BROADCAST_NOT_FOUND, whatever `mutate` raises, or
                E_VERSION_CONFLICT after MAX_WRITE_ATTEMPTS lost races.
        """
        for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
            broadcast = await self._get_broadcast_or_raise(broadcast_id)
            write = mutate(broadcast)

            if write.delete:
                if await broadcast.delete_with_version_check():
                    logger.info(f"Broadcast {broadcast_id} deleted")
                    await self.cache.invalidate(broadcast_id, broadcast.name)
                    return broadcast, write
            elif not write.updates:
                return broadcast, write
            else:
                previous_name = broadcast.name
                if await broadcast.update_with_version_check(write.updates):
                    await self.cache.invalidate(broadcast_id, previous_name, broadcast.name)
                    return broadcast, write

            logger.debug(
                f"Broadcast {broadcast_id} changed concurrently, retrying "
                f"(attempt {attempt}/{MAX_WRITE_ATTEMPTS})"
            )

        raise AppError(
            errcode=AppErrorCode.E_VERSION_CONFLICT,
            errmesg="Broadcast was modified concurrently, please retry",
            status_code=HttpStatusCode.CONFLICT,
        )

    async def _upload_image(self, image: ImageUpload | None) -> tuple[str | None, str | None]:
        if image is None:
            return None, None
        return await self.storage.upload_image(IMAGE_FOLDER, image.content, image.content_type)

    async def _discard_image(self, key: str | None) -> None:
        """Delete an uploaded image whose database write did not happen."""
        if key is None:
            return
        try:
            await self.storage.delete_object(key)
            logger.info(f"Discarded unreferenced image {key}")
        except AppError:
            logger.error(f"E_RECONCILE unreferenced image left in storage: {key}")

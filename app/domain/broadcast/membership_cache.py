"""Read-through redis cache for broadcast records and member lists."""

from loguru import logger
from pydantic import TypeAdapter
from redis.asyncio import Redis

from app.schemas import Broadcast
from app.shared.generation_cache import REDIS_ERRORS, GenerationCache
from app.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

from .broadcast_models import BroadcastResponse, MemberResponse

_members_adapter = TypeAdapter(list[MemberResponse])


def to_broadcast_response(broadcast: Broadcast) -> BroadcastResponse:
    return BroadcastResponse(**broadcast.model_dump(exclude={"id", "version", "revision_id"}))


class MembershipCache:
    """Cache fronting broadcast reads.

    Keys:
    - broadcast_members:{name} -> member list (short TTL, bounds role staleness)
    - broadcast:{broadcast_id} -> broadcast record

    Reads fall back to MongoDB when redis errors. A miss only writes back if
    the key was not invalidated while the store was being read. Invalidation
    raises on redis errors, so a mutation never reports success while a stale
    entry may survive.
    """

    def __init__(
        self,
        redis_client: Redis,
        members_ttl: int = 60,
        broadcast_ttl: int = 3600,
    ):
        self._cache = GenerationCache(redis_client)
        self._members_ttl = members_ttl
        self._broadcast_ttl = broadcast_ttl

    @staticmethod
    def members_key(name: str) -> str:
        return f"broadcast_members:{name}"

    @staticmethod
    def broadcast_key(broadcast_id: str) -> str:
        return f"broadcast:{broadcast_id}"

    async def get_members(self, name: str) -> list[MemberResponse] | None:
        """Member list of the broadcast named `name`, None if it does not exist."""
        key = self.members_key(name)
        cached = await self._cache.get(key)
        if cached is not None:
            logger.debug(f"Cache hit: {key}")
            return _members_adapter.validate_json(cached)

        generation = await self._cache.generation(key)
        broadcast = await Broadcast.find_one(Broadcast.name == name)
        if broadcast is None:
            return None

        members = [MemberResponse(**m.model_dump()) for m in broadcast.members]
        await self._cache.set_if_current(key, _members_adapter.dump_json(members), self._members_ttl, generation)
        return members

    async def get_broadcast(self, broadcast_id: str) -> BroadcastResponse | None:
        """Broadcast record by id, None if it does not exist."""
        key = self.broadcast_key(broadcast_id)
        cached = await self._cache.get(key)
        if cached is not None:
            logger.debug(f"Cache hit: {key}")
            return BroadcastResponse.model_validate_json(cached)

        generation = await self._cache.generation(key)
        broadcast = await Broadcast.find_one(Broadcast.broadcast_id == broadcast_id)
        if broadcast is None:
            return None

        response = to_broadcast_response(broadcast)
        await self._cache.set_if_current(
            key, response.model_dump_json().encode(), self._broadcast_ttl, generation
        )
        return response

    async def invalidate(self, broadcast_id: str, *names: str | None, strict: bool = True) -> None:
        """Delete the cached record and member lists of a broadcast.

        Raises:
            AppError: If redis rejects the delete and `strict` is set (E_UPSTREAM_FAILURE).
        """
        keys = [self.broadcast_key(broadcast_id)]
        keys.extend(self.members_key(name) for name in dict.fromkeys(names) if name)

        try:
            await self._cache.invalidate(keys)
        except REDIS_ERRORS as e:
            if not strict:
                logger.error(f"Cache invalidation failed for {keys}, entries expire with their TTL: {e}")
                return
            logger.error(f"Cache invalidation failed for {keys}: {e}")
            raise AppError(
                errcode=AppErrorCode.E_UPSTREAM_FAILURE,
                errmesg="Change saved but cache invalidation failed; please retry",
                status_code=HttpStatusCode.SERVICE_UNAVAILABLE,
            ) from e

        logger.debug(f"Cache invalidated: {keys}")

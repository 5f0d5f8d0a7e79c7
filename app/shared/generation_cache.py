from loguru import logger
from redis.asyncio import Redis
from redis.exceptions import RedisError

REDIS_ERRORS = (RedisError, ConnectionError, OSError)

# Populate only if nobody invalidated the key since the reader took its generation
_SET_IF_GENERATION_LUA = """
local current = redis.call('GET', KEYS[2]) or '0'
if current == ARGV[1] then
    redis.call('SET', KEYS[1], ARGV[2], 'EX', ARGV[3])
    return 1
else
    return 0
end
"""

# KEYS come in (cache key, generation key) pairs
_INVALIDATE_LUA = """
for i = 1, #KEYS, 2 do
    redis.call('INCR', KEYS[i + 1])
    redis.call('EXPIRE', KEYS[i + 1], ARGV[1])
    redis.call('DEL', KEYS[i])
end
return #KEYS / 2
"""


class GenerationCache:
    """Read-through helper that keeps a miss from repopulating stale data.

    Every cache key has a generation counter under `gen:{key}`. A reader takes
    the generation before it reads the store, and its write-back only lands if
    the generation is unchanged. Invalidation bumps the generation and drops
    the key in one script, so a reader that loaded the store before a mutation
    can never overwrite the invalidation.
    """

    def __init__(self, redis_client: Redis, generation_ttl: int = 86400):
        self._redis = redis_client
        self._generation_ttl = int(generation_ttl)

    @staticmethod
    def generation_key(key: str) -> str:
        return f"gen:{key}"

    @staticmethod
    def _as_str(value: bytes | str | None) -> str:
        if value is None:
            return "0"
        return value.decode() if isinstance(value, bytes) else str(value)

    async def get(self, key: str) -> bytes | str | None:
        try:
            return await self._redis.get(key)
        except REDIS_ERRORS as e:
            logger.warning(f"Cache read failed for {key}, reading from store: {e}")
            return None

    async def generation(self, key: str) -> str | None:
        """Current generation of `key`; None when redis is unavailable."""
        try:
            return self._as_str(await self._redis.get(self.generation_key(key)))
        except REDIS_ERRORS as e:
            logger.warning(f"Cache generation read failed for {key}: {e}")
            return None

    async def set_if_current(self, key: str, value: bytes, ttl: int, generation: str | None) -> bool:
        """Store `value` unless `key` was invalidated after `generation` was read."""
        if generation is None:
            return False
        try:
            res = await self._redis.eval(
                _SET_IF_GENERATION_LUA,
                2,
                key,
                self.generation_key(key),
                generation,
                value,
                int(ttl),
            )
        except REDIS_ERRORS as e:
            logger.warning(f"Cache write failed for {key}: {e}")
            return False

        if res != 1:
            logger.debug(f"Cache write skipped, {key} was invalidated during the read")
            return False
        return True

    async def invalidate(self, keys: list[str]) -> None:
        """Bump the generation and delete every key. Redis errors propagate."""
        args: list[str] = []
        for key in keys:
            args.extend((key, self.generation_key(key)))
        await self._redis.eval(_INVALIDATE_LUA, len(args), *args, self._generation_ttl)

"""Redis fixtures for testing.

Tests run against REDIS_URL_TEST when it is set, otherwise against fakeredis.
"""

import os
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from fakeredis import FakeAsyncRedis, FakeServer
from redis.asyncio import Redis


@pytest.fixture(scope="session")
def redis_url() -> str | None:
    return os.environ.get("REDIS_URL_TEST") or None


@pytest_asyncio.fixture(scope="function")
async def redis_client(redis_url: str | None) -> AsyncGenerator[Redis]:
    """
    Create a Redis client for testing.

    Without a URL every test gets its own FakeServer, so no keys leak between
    tests. A real server is flushed after each test.
    """
    client: Redis = Redis.from_url(redis_url) if redis_url else FakeAsyncRedis(server=FakeServer())
    yield client
    if redis_url:
        await client.flushdb()
    await client.aclose()

"""
Redis client manager that creates and tracks asyncio clients per label.
"""

import threading
from typing import Dict

from loguru import logger
from redis.asyncio import Redis

from ..config import config
from .mongo import hide_password


class RedisManager:
    """
    Redis client manager.

    Connection strings come from REDIS_URL_<LABEL> keys; the default label
    falls back to REDIS_URL_DEFAULT, then REDIS_URL, then localhost.
    A `mode=cluster` query parameter selects the cluster client.
    """

    _instance = None
    _lock = threading.Lock()

    def __new__(cls):
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if hasattr(self, '_initialized'):
            return

        self._cache_clients: Dict[str, Redis] = {}
        self._connection_strings: Dict[str, str] = {}
        self._lock = threading.Lock()

        self._load_connection_strings()

        self._initialized = True

    def _load_connection_strings(self):
        for key, value in config.items():
            if not key.startswith('REDIS_URL_') or not value:
                continue
            label = key[len('REDIS_URL_'):].lower()
            self._connection_strings[label] = value
            logger.info("Loaded Redis connection string for label '{}': {}", label, hide_password(value))

        if 'default' not in self._connection_strings:
            self._connection_strings['default'] = config.get_redis_url('default')

        logger.info("Loaded {} Redis connection strings: {}", len(self._connection_strings),
                    list(self._connection_strings.keys()))

    @staticmethod
    def _split_mode(connection_string: str) -> tuple[str, str]:
        """Strip the `mode=` query parameter, returning (clean_url, mode)."""
        mode = 'cluster' if 'cluster' in connection_string else 'standalone'
        if '?' not in connection_string:
            return connection_string, mode

        base_url, query = connection_string.split('?', 1)
        params = []
        for param in query.split('&'):
            if param.startswith('mode='):
                value = param.split('=', 1)[1]
                if value in ('cluster', 'standalone'):
                    mode = value
                continue
            params.append(param)

        clean_url = f"{base_url}?{'&'.join(params)}" if params else base_url
        return clean_url, mode

    def get_cache_client(self, label: str = None) -> Redis:
        """
        Get Redis cache client by label, creating it on first use.

        Raises:
            ValueError: If no connection string is configured for the label
        """
        if label is None:
            label = 'default'

        with self._lock:
            if label not in self._cache_clients:
                if label not in self._connection_strings:
                    raise ValueError(f"No Redis connection string found for label '{label}'")

                clean_url, mode = self._split_mode(self._connection_strings[label])
                logger.info("Open Redis cache client for label '{}' (mode: {})", label, mode)

                if mode == 'cluster':
                    from redis.asyncio.cluster import RedisCluster
                    self._cache_clients[label] = RedisCluster.from_url(clean_url)
                else:
                    self._cache_clients[label] = Redis.from_url(clean_url)

            return self._cache_clients[label]

    async def close_cache_client(self, label: str):
        with self._lock:
            client = self._cache_clients.pop(label, None)

        if client is not None:
            try:
                await client.aclose()
                logger.info("Closed Redis cache client for label '{}'", label)
            except Exception as e:
                logger.error("Error closing Redis cache client for label '{}': {}", label, e)

    async def close_all(self):
        with self._lock:
            labels = list(self._cache_clients.keys())

        for label in labels:
            await self.close_cache_client(label)


def get_redis_manager() -> RedisManager:
    """Get global RedisManager instance."""
    return RedisManager()

"""
Centralized configuration management.

Sources, later ones override earlier ones:
1) `env.example` (committed, safe placeholders)
2) `env.local` (optional, MUST NOT be committed)
3) System environment variables (highest priority)
"""

import os
from pathlib import Path

from dotenv import dotenv_values
from loguru import logger


class EnvironConfig:
    """
    Singleton configuration class that loads environment variables from env files
    and system environment, providing dictionary-like access with default values.
    """

    _instance = None
    _initialized = False

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(EnvironConfig, cls).__new__(cls)
        return cls._instance

    def __init__(self):
        if not self._initialized:
            self._config = {}
            self._load_config()
            EnvironConfig._initialized = True

    def _load_config(self):
        root = Path(__file__).parent.parent.parent

        example_path = root / "env.example"
        if example_path.exists():
            self._config.update(dotenv_values(example_path))
            logger.info("Loaded environment variables from {}", example_path)

        local_path = root / "env.local"
        if local_path.exists():
            self._config.update(dotenv_values(local_path))
            logger.info("Loaded and overrode environment variables from {}", local_path)

        self._config.update(os.environ)

    def __getitem__(self, key):
        if key not in self._config:
            raise KeyError(f"Configuration key '{key}' not found")

        return self._config[key]

    def get(self, key, default=None):
        return self._config.get(key, default)

    def reload(self):
        """Reload configuration from files and environment."""
        self._config.clear()
        self._load_config()
        logger.info("Configuration reloaded")

    def __contains__(self, key):
        return key in self._config

    def __iter__(self):
        return iter(self._config)

    def keys(self):
        return self._config.keys()

    def items(self):
        return self._config.items()

    def _get_labeled_url(self, kind: str, label: str, fallback: str) -> str:
        if label != "default":
            return self.get(f"{kind}_URL_{label.upper()}") or ""

        for key in (f"{kind}_URL_DEFAULT", f"{kind}_URL"):
            url = self.get(key)
            if url:
                return url

        return fallback

    def get_redis_url(self, label: str = "default") -> str:
        """
        Get Redis connection URL for a specific label.

        REDIS_URL_DEFAULT wins over REDIS_URL for the default label; other labels
        read REDIS_URL_<LABEL>.
        """
        return self._get_labeled_url("REDIS", label, "redis://localhost:6379")

    def get_mongo_url(self, label: str = "default") -> str:
        """
        Get MongoDB connection URL for a specific label.

        MONGO_URL_DEFAULT wins over MONGO_URL for the default label; other labels
        read MONGO_URL_<LABEL>.
        """
        return self._get_labeled_url("MONGO", label, "mongodb://localhost:27017")

    def _get_positive_int(self, key: str, default: int, upper: int | None = None) -> int:
        raw = self.get(key, str(default))
        try:
            value = int(raw)
        except (ValueError, TypeError):
            logger.warning("Invalid {} value '{}', defaulting to {}", key, raw, default)
            return default

        if value <= 0 or (upper is not None and value > upper):
            logger.warning("{} value {} is out of range, defaulting to {}", key, value, default)
            return default

        return value

    def get_mongo_max_pool_size(self) -> int:
        return self._get_positive_int("MONGO_MAX_POOL_SIZE", 5, upper=100)

    def get_mongo_server_selection_timeout(self) -> int:
        return self._get_positive_int("MONGO_SERVER_SELECTION_TIMEOUT", 30000)

    def get_mongo_connect_timeout(self) -> int:
        return self._get_positive_int("MONGO_CONNECT_TIMEOUT", 30000)

    def get_mongo_socket_timeout(self) -> int:
        return self._get_positive_int("MONGO_SOCKET_TIMEOUT", 300000)

    def get_mongo_label(self) -> str:
        return self.get("MONGO_LABEL", "default")

    def get_redis_major_label(self) -> str:
        return self.get("REDIS_MAJOR_LABEL", "default")


# Global configuration instance
config = EnvironConfig()

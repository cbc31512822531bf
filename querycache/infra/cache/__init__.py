"""Cache storage backends."""

from __future__ import annotations

from typing import Optional

from redis.asyncio import Redis

from querycache.core.config import CacheSettings
from querycache.core.errors import ConfigurationError

from .base import CacheStorage, JSON_TRANSFORMER, Transformer
from .memory_cache import MemoryStorage
from .redis_cache import RedisStorage


def build_storage(
    settings: CacheSettings,
    client: Optional[Redis] = None,
    transformer: Optional[Transformer] = None,
) -> CacheStorage:
    """Pick the backend named by ``settings.backend``."""
    if settings.backend == "memory":
        return MemoryStorage(size=settings.memory_size)
    if settings.backend == "redis":
        return RedisStorage(
            client,
            url=settings.redis_url,
            references_ttl=settings.references_ttl,
            transformer=transformer or JSON_TRANSFORMER,
        )
    raise ConfigurationError(f"Unknown cache storage '{settings.backend}'")


__all__ = [
    "CacheStorage",
    "JSON_TRANSFORMER",
    "MemoryStorage",
    "RedisStorage",
    "Transformer",
    "build_storage",
]

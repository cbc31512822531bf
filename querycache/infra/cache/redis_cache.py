from __future__ import annotations

import asyncio
from typing import Any, Iterable, Optional

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError

from querycache.core.errors import BackendError
from querycache.services.redis_client import close_redis, init_redis

from .base import CacheStorage, JSON_TRANSFORMER, Transformer

logger = structlog.get_logger(__name__)

REFERENCE_PREFIX = "r:"
DELETE_BATCH = 500

_STORE_ERRORS = (RedisError, OSError, asyncio.TimeoutError)


def _ref_key(reference: str) -> str:
    return f"{REFERENCE_PREFIX}{reference}"


class RedisStorage(CacheStorage):
    """Redis-backed cache storage.

    Values live under their cache key with ``EX ttl``. Each reference tag is
    a set ``r:<reference>`` holding the keys it tags, so bulk invalidation
    scans reference sets instead of every key in the database.
    """

    supports_raw_patterns = True

    def __init__(
        self,
        client: Optional[Redis] = None,
        *,
        url: Optional[str] = None,
        references_ttl: int = 60,
        transformer: Transformer = JSON_TRANSFORMER,
    ) -> None:
        self._r = client
        self._url = url
        self._owns_client = client is None
        self.references_ttl = references_ttl
        self.transformer = transformer

    async def _ensure(self) -> Redis:
        if self._r is None:
            try:
                self._r = await init_redis(self._url)
            except _STORE_ERRORS as e:
                raise BackendError(f"Redis unavailable: {e}", operation="connect") from e
        return self._r

    async def get(self, key: str) -> Optional[Any]:
        r = await self._ensure()
        try:
            raw = await r.get(key)
        except _STORE_ERRORS as e:
            raise BackendError(f"Redis GET failed: {e}", operation="get", key=key) from e
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        try:
            return self.transformer.deserialize(raw)
        except (ValueError, TypeError) as e:
            raise BackendError(f"Malformed cache payload: {e}", operation="get", key=key) from e

    async def set(self, key: str, value: Any, ttl: int, references: Iterable[str] = ()) -> None:
        try:
            payload = self.transformer.serialize(value)
        except (ValueError, TypeError) as e:
            raise BackendError(f"Cannot serialize cache value: {e}", operation="set", key=key) from e

        r = await self._ensure()
        ref_ttl = max(ttl, self.references_ttl)
        try:
            async with r.pipeline(transaction=False) as pipe:
                pipe.set(key, payload, ex=ttl)
                for ref in references:
                    pipe.sadd(_ref_key(ref), key)
                    pipe.expire(_ref_key(ref), ref_ttl)
                await pipe.execute()
        except _STORE_ERRORS as e:
            raise BackendError(f"Redis SET failed: {e}", operation="set", key=key) from e

    async def _scan(self, r: Redis, pattern: str) -> list:
        return [k async for k in r.scan_iter(match=pattern, count=DELETE_BATCH)]

    async def _delete(self, r: Redis, keys: list) -> int:
        deleted = 0
        for i in range(0, len(keys), DELETE_BATCH):
            deleted += int(await r.delete(*keys[i : i + DELETE_BATCH]))
        return deleted

    async def invalidate_by_reference(self, pattern: str) -> int:
        r = await self._ensure()
        try:
            ref_keys = await self._scan(r, _ref_key(pattern))
            if not ref_keys:
                return 0
            async with r.pipeline(transaction=False) as pipe:
                for ref in ref_keys:
                    pipe.smembers(ref)
                members = await pipe.execute()
            keys = {k for group in members for k in group}
            deleted = await self._delete(r, list(keys)) if keys else 0
            await self._delete(r, ref_keys)
        except _STORE_ERRORS as e:
            raise BackendError(
                f"Redis reference invalidation failed: {e}", operation="invalidate", key=pattern
            ) from e
        logger.debug("redis references invalidated", pattern=pattern, count=deleted)
        return deleted

    async def delete_by_pattern(self, pattern: str) -> int:
        r = await self._ensure()
        try:
            keys = await self._scan(r, pattern)
            return await self._delete(r, keys) if keys else 0
        except _STORE_ERRORS as e:
            raise BackendError(
                f"Redis pattern delete failed: {e}", operation="delete_pattern", key=pattern
            ) from e

    async def clear(self) -> None:
        r = await self._ensure()
        try:
            await r.flushdb()
        except _STORE_ERRORS as e:
            raise BackendError(f"Redis FLUSHDB failed: {e}", operation="clear") from e

    async def close(self) -> None:
        if self._r is not None and self._owns_client:
            await close_redis()
        self._r = None

"""
Process-wide Redis client for the cache backend.

One ``redis.asyncio`` connection pool is shared by every ``RedisStorage`` that
was not handed its own client. Socket timeouts are short: a slow store
surfaces as a ``BackendError`` and the query goes to the database instead.
"""
from __future__ import annotations

import os
from typing import Optional

from redis.asyncio import Redis
from redis.asyncio.connection import ConnectionPool

DEFAULT_REDIS_URL = "redis://localhost:6379/0"
MAX_CONNECTIONS = int(os.getenv("QUERY_CACHE_REDIS_MAX_CONNECTIONS", "20"))

_pool: Optional[ConnectionPool] = None
_client: Optional[Redis] = None


def _resolve_url(url: Optional[str]) -> str:
    return url or os.getenv("QUERY_CACHE_REDIS_URL") or DEFAULT_REDIS_URL


async def init_redis(url: Optional[str] = None) -> Redis:
    """
    Create the shared client on first use; later calls return it unchanged.

    ``url`` only matters for the first call. Use reset_redis() to point the
    pool somewhere else.
    """
    global _pool, _client

    if _client is not None:
        return _client

    _pool = ConnectionPool.from_url(
        _resolve_url(url),
        encoding="utf-8",
        decode_responses=True,
        max_connections=MAX_CONNECTIONS,
        socket_connect_timeout=2,
        socket_timeout=2,
        health_check_interval=30,
        retry_on_timeout=True,
    )
    _client = Redis(connection_pool=_pool)
    return _client


def get_redis() -> Redis:
    """Shared client; RuntimeError if init_redis() was never awaited."""
    if _client is None:
        raise RuntimeError("Redis client not initialized. Call init_redis() first.")
    return _client


async def reset_redis(url: Optional[str] = None) -> Redis:
    """Drop the pool and reconnect, e.g. after the transport was closed."""
    await close_redis()
    return await init_redis(url)


async def close_redis() -> None:
    global _pool, _client
    try:
        if _client is not None:
            await _client.aclose()
    finally:
        _client = None

    try:
        if _pool is not None:
            await _pool.disconnect(inuse_connections=True)
    finally:
        _pool = None

from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import structlog
from redis.asyncio import Redis

from querycache.infra.cache import CacheStorage, Transformer, build_storage
from querycache.infra.cache.base import json_default

from .config import CacheSettings, load_settings
from .errors import BackendError, ConfigurationError
from .hooks import CacheHooks
from .invalidation import InvalidationEngine, InvalidationReport
from .keys import SEPARATOR, DerivedKey, derive_key
from .metrics import record_event
from .operations import Operation
from .policy import Policy, PolicyResolver

logger = structlog.get_logger(__name__)

Executor = Callable[[Operation], Awaitable[Any]]


@dataclass
class CacheResult:
    hit: bool
    value: Any = None
    error: Optional[BackendError] = None


def _as_backend_error(e: Exception, operation: str, key: str) -> BackendError:
    if isinstance(e, BackendError):
        return e
    return BackendError(f"{type(e).__name__}: {e}", operation=operation, key=key)


class QueryCache:
    """Read-through cache with single-flight dedupe and write invalidation.

    Usage::

        cache = QueryCache(default_cache_time=60)
        rows = await cache.execute(Operation("Post", "find_many", {"where": {"id": 1}}), db.run)

    Reads are served from the storage backend when possible; concurrent
    identical reads share one executor call. Writes run the executor and then
    purge every entry the write may have made stale. Cache failures degrade
    to calling the executor and are reported through ``hooks``; executor
    failures always propagate.
    """

    def __init__(
        self,
        settings: Optional[CacheSettings] = None,
        *,
        storage: Optional[CacheStorage] = None,
        redis_client: Optional[Redis] = None,
        transformer: Optional[Transformer] = None,
        hooks: Optional[CacheHooks] = None,
        **overrides: Any,
    ) -> None:
        if settings is not None and overrides:
            raise ConfigurationError("Pass either a CacheSettings instance or keyword settings, not both")
        self.settings = settings if settings is not None else load_settings(**overrides)
        self.resolver = PolicyResolver(self.settings)
        self.storage = storage if storage is not None else build_storage(self.settings, redis_client, transformer)
        self.hooks = hooks or CacheHooks()
        self.invalidator = InvalidationEngine(self.storage, self.resolver, self.hooks)
        self._inflight: dict[str, asyncio.Future] = {}
        # Bumped per key prefix on every invalidation; a read that started
        # under an older epoch must not store its result.
        self._epochs: dict[str, int] = {}
        self._stats = {"hits": 0, "misses": 0, "dedupes": 0, "errors": 0, "bypasses": 0}

    # ------------------------------------------------------------------ entry

    async def execute(self, operation: Operation, executor: Executor) -> Any:
        if operation.kind.is_write:
            return await self.write(operation, executor)
        return await self.read_through(operation, executor)

    def wrap(self, executor: Executor) -> Callable[[Operation], Awaitable[Any]]:
        """Bind an executor so callers only pass operations."""

        async def run(operation: Operation) -> Any:
            return await self.execute(operation, executor)

        return run

    # ------------------------------------------------------------------- read

    def _bypass(self, operation: Operation, policy: Policy) -> bool:
        if not policy.caches(operation.kind):
            return True
        return operation.in_transaction and not self.settings.cache_in_transaction

    def _key_arguments(self, operation: Operation) -> Any:
        if not self.settings.key_by_kind:
            return operation.arguments
        return {"kind": operation.kind.value, "args": operation.arguments}

    async def read_through(self, operation: Operation, executor: Executor) -> Any:
        policy = self.resolver.resolve(operation.entity, operation.kind)
        if self._bypass(operation, policy):
            self._count("bypasses", operation.entity, "bypass")
            return await executor(operation)

        try:
            derived = derive_key(policy.key_prefix, self._key_arguments(operation), self.settings.hash_keys)
        except (TypeError, ValueError) as e:
            # Arguments we cannot serialize are simply not cacheable
            logger.debug("uncacheable arguments", entity=operation.entity, error=str(e))
            self._count("bypasses", operation.entity, "bypass")
            return await executor(operation)

        key = derived.cache_key
        if policy.ttl > 0:
            res = await self._lookup(key)
            if res.hit:
                self._count("hits", operation.entity, "hit")
                self.hooks.fire("on_hit", key)
                return res.value
            if res.error is not None:
                self._report(res.error, operation.entity)
                return await executor(operation)

        return await self._single_flight(operation, executor, policy, derived)

    async def _single_flight(
        self,
        operation: Operation,
        executor: Executor,
        policy: Policy,
        derived: DerivedKey,
    ) -> Any:
        key = derived.cache_key
        pending = self._inflight.get(key)
        if pending is not None:
            self._count("dedupes", operation.entity, "dedupe")
            self.hooks.fire("on_dedupe", key)
            return await asyncio.shield(pending)

        # Claim before the first await so a concurrent caller sees it
        fut = asyncio.get_running_loop().create_future()
        self._inflight[key] = fut
        epoch = self._epochs.get(policy.key_prefix, 0)
        try:
            if policy.ttl > 0:
                # Re-check after claiming: a fetch may have stored and
                # released the key while our lookup was in flight.
                res = await self._lookup(key)
                if res.hit:
                    self._count("hits", operation.entity, "hit")
                    self.hooks.fire("on_hit", key)
                    fut.set_result(res.value)
                    return res.value
                if res.error is not None:
                    self._report(res.error, operation.entity)
            self._count("misses", operation.entity, "miss")
            self.hooks.fire("on_miss", key)
            try:
                data = await executor(operation)
            except Exception as e:
                fut.set_exception(e)
                fut.exception()  # mark retrieved; joiners re-raise it themselves
                raise
            if policy.ttl > 0 and self._epochs.get(policy.key_prefix, 0) == epoch:
                await self._store(key, data, policy, derived)
            fut.set_result(data)
            return data
        finally:
            if not fut.done():
                fut.cancel()
            if self._inflight.get(key) is fut:
                del self._inflight[key]

    async def _lookup(self, key: str) -> CacheResult:
        try:
            val = await self.storage.get(key)
        except Exception as e:
            return CacheResult(hit=False, error=_as_backend_error(e, "get", key))
        if val is None:
            return CacheResult(hit=False)
        if not isinstance(val, dict) or "data" not in val:
            return CacheResult(
                hit=False,
                error=BackendError("Malformed cache entry", operation="get", key=key),
            )
        return CacheResult(hit=True, value=val["data"])

    def _fits(self, value: Any) -> bool:
        limit = self.settings.max_value_bytes
        if not limit:
            return True
        try:
            return len(json.dumps(value, default=json_default)) <= limit
        except (TypeError, ValueError):
            return False

    async def _store(self, key: str, data: Any, policy: Policy, derived: DerivedKey) -> None:
        if not self._fits(data):
            logger.debug("result too large to cache", entity=policy.entity, key=key)
            return
        envelope = {"data": data, "__cached_at": int(time.time())}
        try:
            await self.storage.set(key, envelope, policy.ttl, derived.references)
        except Exception as e:
            self._report(_as_backend_error(e, "set", key), policy.entity)

    # ------------------------------------------------------------------ write

    async def write(self, operation: Operation, executor: Executor) -> Any:
        result = await executor(operation)
        policy = self.resolver.resolve(operation.entity, operation.kind)
        if policy.invalidates(operation.kind):
            await self.invalidate(operation.entity, policy)
        return result

    async def invalidate(self, entity: str, policy: Optional[Policy] = None) -> InvalidationReport:
        """Purge everything a write on ``entity`` may have made stale."""
        policy = policy or self.resolver.resolve(entity)
        for prefix in self.invalidator.affected_prefixes(entity, policy):
            self._epochs[prefix] = self._epochs.get(prefix, 0) + 1
            self._detach_inflight(prefix)
        report = await self.invalidator.invalidate(entity, policy)
        self._stats["errors"] += len(report.errors)
        return report

    def _detach_inflight(self, prefix: str) -> None:
        """New readers must not join a fetch that started before a write."""
        marker = f"{prefix}{SEPARATOR}"
        for key in [k for k in self._inflight if k.startswith(marker)]:
            del self._inflight[key]

    # ------------------------------------------------------------------ misc

    def _count(self, stat: str, entity: Optional[str], event: str) -> None:
        self._stats[stat] += 1
        record_event(entity, event)

    def _report(self, error: BackendError, entity: Optional[str]) -> None:
        logger.warning(
            "cache backend error, falling back to executor",
            entity=entity,
            operation=error.operation,
            key=error.key,
            error=str(error),
        )
        self._count("errors", entity, "error")
        self.hooks.fire("on_error", error)

    def stats(self) -> dict[str, int]:
        return dict(self._stats)

    def reload(self, settings: CacheSettings) -> None:
        """Swap configuration; memoized policies are dropped."""
        self.settings = settings
        self.resolver.reload(settings)

    async def clear(self) -> None:
        await self.storage.clear()

    async def close(self) -> None:
        await self.storage.close()

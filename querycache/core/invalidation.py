"""
Write-triggered invalidation.

After a successful write the engine builds the full list of purge patterns for
the entity (its own references, optional contains-matches, related entities,
custom patterns) and issues every purge concurrently against the reference
index and, where the backend supports it, the raw keyspace. A failed purge is
reported and never stops the others.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, List

import structlog

from querycache.infra.cache.base import CacheStorage

from .errors import BackendError
from .hooks import CacheHooks
from .keys import contains_patterns, reference_patterns
from .metrics import record_invalidation
from .policy import Policy, PolicyResolver

logger = structlog.get_logger(__name__)


@dataclass
class InvalidationReport:
    entity: str
    patterns: List[str] = field(default_factory=list)
    deleted: int = 0
    errors: List[BaseException] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def _names(entity: str, policy: Policy) -> list[str]:
    names = [entity]
    if policy.key_prefix and policy.key_prefix != entity:
        names.append(policy.key_prefix)
    return names


class InvalidationEngine:
    def __init__(self, storage: CacheStorage, resolver: PolicyResolver, hooks: CacheHooks):
        self.storage = storage
        self.resolver = resolver
        self.hooks = hooks

    def affected_prefixes(self, entity: str, policy: Policy) -> list[str]:
        """Key prefixes whose entries a write on ``entity`` makes stale."""
        prefixes = [policy.key_prefix or entity]
        for related in policy.related_entities:
            prefixes.append(self.resolver.resolve(related).key_prefix or related)
        return list(dict.fromkeys(prefixes))

    def plan(self, entity: str, policy: Policy) -> list[str]:
        """Ordered, de-duplicated purge patterns for a write on ``entity``."""
        patterns: list[str] = []

        for name in _names(entity, policy):
            patterns.extend(reference_patterns(name))
        if policy.use_contains_invalidation:
            patterns.extend(contains_patterns(entity))

        for related in policy.related_entities:
            related_policy = self.resolver.resolve(related)
            for name in _names(related, related_policy):
                patterns.extend(reference_patterns(name))
            contains = related_policy.contains_override
            if contains is None:
                contains = policy.use_contains_invalidation
            if contains:
                patterns.extend(contains_patterns(related))

        patterns.extend(policy.custom_patterns)
        return list(dict.fromkeys(patterns))

    async def invalidate(self, entity: str, policy: Policy) -> InvalidationReport:
        report = InvalidationReport(entity=entity, patterns=self.plan(entity, policy))

        purges: list[Awaitable[int]] = []
        for pattern in report.patterns:
            purges.append(self.storage.invalidate_by_reference(pattern))
            if self.storage.supports_raw_patterns:
                purges.append(self.storage.delete_by_pattern(pattern))

        results = await asyncio.gather(*purges, return_exceptions=True)
        for res in results:
            if isinstance(res, BaseException):
                if isinstance(res, asyncio.CancelledError):
                    raise res
                report.errors.append(res)
            else:
                report.deleted += int(res or 0)

        for err in report.errors:
            logger.warning(
                "cache purge failed",
                entity=entity,
                pattern=getattr(err, "key", None),
                error=str(err),
                backend=isinstance(err, BackendError),
            )
            self.hooks.fire("on_error", err)
        if report.errors:
            record_invalidation(entity, "error", len(report.errors))
        record_invalidation(entity, "ok", len(results) - len(report.errors))

        logger.debug(
            "cache invalidated",
            entity=entity,
            patterns=len(report.patterns),
            deleted=report.deleted,
        )
        return report

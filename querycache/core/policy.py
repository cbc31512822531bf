"""
Policy resolution: which operations are cached, for how long, and what a
write on an entity must purge.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Optional

from .config import CacheSettings
from .operations import OperationKind, READ_KINDS, WRITE_KINDS


@dataclass(frozen=True)
class Policy:
    entity: Optional[str]
    ttl: int = 0
    key_prefix: str = ""
    excluded_kinds: frozenset = frozenset()
    entity_excluded: bool = False
    related_entities: tuple[str, ...] = ()
    custom_patterns: tuple[str, ...] = ()
    use_contains_invalidation: bool = False
    # Explicit per-entity flag, used when this entity is purged as a relation
    contains_override: Optional[bool] = None
    cache_enabled: bool = True

    def caches(self, kind: OperationKind) -> bool:
        """True if a read of ``kind`` on this entity may use the cache."""
        if not self.entity or not self.cache_enabled or self.entity_excluded:
            return False
        if kind not in READ_KINDS or kind is OperationKind.QUERY_RAW:
            return False
        return kind not in self.excluded_kinds

    def invalidates(self, kind: OperationKind) -> bool:
        # Excluded entities are still purged: their related entities may be cached
        return bool(self.entity) and kind in WRITE_KINDS


DISABLED = Policy(entity=None, cache_enabled=False)


class PolicyResolver:
    """Merges global defaults with per-entity overrides.

    Resolved policies are memoized per entity name; ``reload`` drops the memo
    when configuration changes.
    """

    def __init__(self, settings: CacheSettings):
        self._settings = settings
        self._memo: dict[str, Policy] = {}
        self._lock = threading.Lock()

    @property
    def settings(self) -> CacheSettings:
        return self._settings

    def resolve(self, entity: Optional[str], kind: OperationKind | None = None) -> Policy:
        # ``kind`` is accepted so callers can resolve per (entity, kind); the
        # merged policy itself does not depend on it, see Policy.caches().
        if not entity:
            return DISABLED

        policy = self._memo.get(entity)
        if policy is not None:
            return policy

        policy = self._build(entity)
        with self._lock:
            return self._memo.setdefault(entity, policy)

    def reload(self, settings: CacheSettings | None = None) -> None:
        with self._lock:
            if settings is not None:
                self._settings = settings
            self._memo.clear()

    def _build(self, entity: str) -> Policy:
        s = self._settings
        excluded = set(s.default_exclude_cache_methods)
        ttl = s.default_cache_time
        prefix = entity
        related: tuple[str, ...] = ()
        custom: tuple[str, ...] = ()
        contains = s.use_contains_invalidation
        contains_override = None

        override = s.override_for(entity)
        if override is not None:
            excluded.update(override.exclude_cache_methods)
            if override.cache_time is not None:
                ttl = override.cache_time
            if override.cache_key:
                prefix = override.cache_key
            related = tuple(dict.fromkeys(override.invalidate_related))
            custom = tuple(dict.fromkeys(override.custom_invalidate))
            if override.use_contains_invalidation is not None:
                contains = override.use_contains_invalidation
                contains_override = override.use_contains_invalidation

        return Policy(
            entity=entity,
            ttl=ttl,
            key_prefix=prefix,
            excluded_kinds=frozenset(excluded),
            entity_excluded=entity in s.default_exclude_cache_models,
            related_entities=related,
            custom_patterns=custom,
            use_contains_invalidation=contains,
            contains_override=contains_override,
            cache_enabled=s.enabled,
        )

"""
Query-result caching layer.

Sits between the data-access layer and the database: caches reads under a
derived key, collapses concurrent identical reads into one upstream call and
purges affected entries when a write succeeds. Storage is Redis or a bounded
in-process LRU.
"""

from .core.config import CacheSettings, ModelCacheConfig, load_settings
from .core.decorators import cached_query, invalidates
from .core.errors import BackendError, ConfigurationError, QueryCacheError
from .core.hooks import CacheHooks
from .core.invalidation import InvalidationReport
from .core.keys import derive_key
from .core.operations import Operation, OperationKind
from .core.policy import Policy, PolicyResolver
from .core.service import CacheResult, QueryCache
from .infra.cache import CacheStorage, MemoryStorage, RedisStorage, Transformer, build_storage

__all__ = [
    "BackendError",
    "CacheHooks",
    "CacheResult",
    "CacheSettings",
    "CacheStorage",
    "ConfigurationError",
    "InvalidationReport",
    "MemoryStorage",
    "ModelCacheConfig",
    "Operation",
    "OperationKind",
    "Policy",
    "PolicyResolver",
    "QueryCache",
    "QueryCacheError",
    "RedisStorage",
    "Transformer",
    "build_storage",
    "cached_query",
    "derive_key",
    "invalidates",
    "load_settings",
]

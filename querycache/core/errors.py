"""
Error types raised by the query cache.

Upstream (executor) errors are never wrapped here: whatever the database layer
raises reaches the caller unchanged.
"""

from __future__ import annotations


class QueryCacheError(Exception):
    """Base class for errors originating in the cache layer itself."""


class BackendError(QueryCacheError):
    """The cache store is unreachable or returned a payload we cannot decode."""

    def __init__(self, message: str, *, operation: str = "", key: str | None = None):
        super().__init__(message)
        self.operation = operation
        self.key = key


class ConfigurationError(QueryCacheError):
    """Cache configuration is malformed or contradictory."""

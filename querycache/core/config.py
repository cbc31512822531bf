"""
Configuration for the query cache.

Settings are read once when a ``QueryCache`` is built, either from keyword
arguments or from ``QUERY_CACHE_*`` environment variables. Nothing here is
re-read per call.
"""

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError
from .operations import OperationKind, WRITE_KINDS

DEFAULT_CACHE_TIME = 0


class ModelCacheConfig(BaseModel):
    """Per-entity overrides merged over the global defaults."""

    model: str
    cache_key: Optional[str] = None  # key prefix, defaults to the model name
    cache_time: Optional[int] = None  # seconds
    exclude_cache_methods: List[OperationKind] = Field(default_factory=list)
    invalidate_related: List[str] = Field(default_factory=list)
    custom_invalidate: List[str] = Field(default_factory=list)
    use_contains_invalidation: Optional[bool] = None

    @field_validator("model")
    @classmethod
    def _model_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("model name must not be empty")
        return v

    @field_validator("cache_time")
    @classmethod
    def _ttl_not_negative(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 0:
            raise ValueError("cache_time must be >= 0")
        return v

    @field_validator("exclude_cache_methods")
    @classmethod
    def _only_read_kinds(cls, v: List[OperationKind]) -> List[OperationKind]:
        writes = [k.value for k in v if k in WRITE_KINDS]
        if writes:
            raise ValueError(f"write operations cannot be excluded from caching: {writes}")
        return v

    @field_validator("custom_invalidate")
    @classmethod
    def _patterns_not_blank(cls, v: List[str]) -> List[str]:
        if any(not p for p in v):
            raise ValueError("custom invalidation patterns must not be empty")
        return v


class CacheSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="QUERY_CACHE_",
        case_sensitive=False,
        extra="ignore",
    )

    enabled: bool = True
    default_cache_time: int = DEFAULT_CACHE_TIME
    default_exclude_cache_models: List[str] = Field(default_factory=list)
    default_exclude_cache_methods: List[OperationKind] = Field(default_factory=list)
    use_contains_invalidation: bool = False

    # Keys are "<prefix>~<sha256>" unless disabled, in which case the canonical
    # JSON of the arguments is embedded (contains-invalidation needs this).
    hash_keys: bool = True
    # Off by default: find_many and count with equal arguments share an entry.
    key_by_kind: bool = False
    cache_in_transaction: bool = False
    max_value_bytes: int = 262144  # 0 disables the size check

    backend: Literal["memory", "redis"] = "memory"
    redis_url: Optional[str] = None
    memory_size: int = 1024
    references_ttl: int = 60

    models: List[ModelCacheConfig] = Field(default_factory=list)

    @field_validator("default_cache_time", "references_ttl", "max_value_bytes")
    @classmethod
    def _not_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("must be >= 0")
        return v

    @field_validator("memory_size")
    @classmethod
    def _positive_size(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("memory_size must be > 0")
        return v

    @field_validator("default_exclude_cache_methods")
    @classmethod
    def _default_only_read_kinds(cls, v: List[OperationKind]) -> List[OperationKind]:
        writes = [k.value for k in v if k in WRITE_KINDS]
        if writes:
            raise ValueError(f"write operations cannot be excluded from caching: {writes}")
        return v

    @model_validator(mode="after")
    def _unique_models(self) -> "CacheSettings":
        seen: set[str] = set()
        for m in self.models:
            if m.model in seen:
                raise ValueError(f"duplicate cache configuration for model '{m.model}'")
            seen.add(m.model)
        return self

    def override_for(self, entity: str) -> Optional[ModelCacheConfig]:
        for m in self.models:
            if m.model == entity:
                return m
        return None


def load_settings(**values) -> CacheSettings:
    """Build ``CacheSettings``, turning validation failures into ``ConfigurationError``."""
    try:
        return CacheSettings(**values)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid query cache configuration: {e}") from e

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Any, Callable, Iterable, Optional


def json_default(obj: Any) -> Any:
    """Encode the non-JSON types database rows commonly carry."""
    if isinstance(obj, (datetime, date, time)):
        return obj.isoformat()
    if isinstance(obj, (set, frozenset, tuple)):
        return list(obj)
    if hasattr(obj, "model_dump"):
        return obj.model_dump(mode="json")
    return str(obj)


@dataclass(frozen=True)
class Transformer:
    """Converts cached values to and from the string form a remote store holds."""

    serialize: Callable[[Any], str]
    deserialize: Callable[[str], Any]


JSON_TRANSFORMER = Transformer(
    serialize=lambda v: json.dumps(v, separators=(",", ":"), default=json_default),
    deserialize=json.loads,
)


class CacheStorage(ABC):
    """Uniform contract over the cache backends.

    Every method raises ``BackendError`` when the store fails.
    """

    #: True if ``delete_by_pattern`` reaches the raw store
    supports_raw_patterns: bool = False

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]: ...

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: int, references: Iterable[str] = ()) -> None: ...

    @abstractmethod
    async def invalidate_by_reference(self, pattern: str) -> int:
        """Delete every entry tagged with a reference matching ``pattern``."""

    async def delete_by_pattern(self, pattern: str) -> int:
        """Delete raw keys matching ``pattern``. No-op unless supported."""
        return 0

    @abstractmethod
    async def clear(self) -> None: ...

    async def close(self) -> None:
        return None

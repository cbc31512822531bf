from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

# Single place for cache key and purge pattern construction
SEPARATOR = "~"


@dataclass(frozen=True)
class DerivedKey:
    cache_key: str
    references: tuple[str, ...]


def _canonical_default(obj: Any) -> Any:
    if isinstance(obj, (set, frozenset)):
        return sorted(obj, key=canonical_json)
    if isinstance(obj, tuple):
        return list(obj)
    if isinstance(obj, (datetime, date, time)):
        return obj.isoformat()
    if isinstance(obj, (Decimal, UUID)):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, bytes):
        return obj.hex()
    if hasattr(obj, "model_dump"):
        return obj.model_dump(mode="json")
    raise TypeError(f"Cannot derive a cache key from {type(obj).__name__}")


def canonical_json(arguments: Any) -> str:
    """Serialize arguments so deeply-equal payloads give the same string.

    Mapping keys are sorted at every level; sets are ordered; tuples become
    lists.
    """
    return json.dumps(
        arguments,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=_canonical_default,
    )


def args_key(arguments: Any, hash_keys: bool = True) -> str:
    canonical = canonical_json(arguments)
    if not hash_keys:
        return canonical
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def derive_key(prefix: str, arguments: Any, hash_keys: bool = True) -> DerivedKey:
    """Build ``<prefix>~<argsKey>`` and the reference tag for it.

    Relations are not expanded here; related entities are purged on write.
    """
    a = args_key(arguments, hash_keys)
    key = f"{prefix}{SEPARATOR}{a}"
    return DerivedKey(cache_key=key, references=(key,))


def reference_patterns(name: str) -> list[str]:
    return [f"*{name}{SEPARATOR}*", f"{name}{SEPARATOR}*"]


def contains_patterns(name: str) -> list[str]:
    """Patterns matching ``"<name>":`` embedded in a serialized key."""
    patterns = [f'*"{name}":*']
    lower = name.lower()
    if lower != name:
        patterns.append(f'*"{lower}":*')
    return patterns

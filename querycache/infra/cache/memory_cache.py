"""
Bounded in-process cache backend.

LRU eviction over an OrderedDict with per-entry expiry and a reference index
for bulk invalidation. All bookkeeping happens under a ``threading.Lock`` that
is never held across an ``await``, so the backend is safe to share between
threads and event loops.
"""

from __future__ import annotations

import fnmatch
import time
from collections import OrderedDict
from dataclasses import dataclass
from threading import Lock
from typing import Any, Callable, Iterable, Optional

import structlog

from .base import CacheStorage

logger = structlog.get_logger(__name__)


@dataclass
class MemoryEntry:
    value: Any
    expires_at: float
    references: tuple[str, ...]


class MemoryStorage(CacheStorage):
    supports_raw_patterns = False

    def __init__(self, size: int = 1024, clock: Callable[[], float] = time.monotonic):
        self.max_size = size
        self._clock = clock
        self._entries: OrderedDict[str, MemoryEntry] = OrderedDict()
        self._refs: dict[str, set[str]] = {}
        self._lock = Lock()
        self._evictions = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def evictions(self) -> int:
        return self._evictions

    def _drop(self, key: str) -> None:
        """Remove an entry and unlink its references. Caller holds the lock."""
        entry = self._entries.pop(key, None)
        if entry is None:
            return
        for ref in entry.references:
            keys = self._refs.get(ref)
            if keys is None:
                continue
            keys.discard(key)
            if not keys:
                del self._refs[ref]

    async def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._clock() >= entry.expires_at:
                self._drop(key)
                return None
            self._entries.move_to_end(key)
            return entry.value

    async def set(self, key: str, value: Any, ttl: int, references: Iterable[str] = ()) -> None:
        refs = tuple(references)
        with self._lock:
            self._drop(key)
            self._entries[key] = MemoryEntry(value, self._clock() + ttl, refs)
            for ref in refs:
                self._refs.setdefault(ref, set()).add(key)
            while len(self._entries) > self.max_size:
                oldest = next(iter(self._entries))
                self._drop(oldest)
                self._evictions += 1

    async def invalidate_by_reference(self, pattern: str) -> int:
        with self._lock:
            matched = [r for r in self._refs if fnmatch.fnmatchcase(r, pattern)]
            keys = set()
            for ref in matched:
                keys.update(self._refs.get(ref, ()))
            for key in keys:
                self._drop(key)
        if keys:
            logger.debug("memory cache invalidated", pattern=pattern, count=len(keys))
        return len(keys)

    async def delete_by_pattern(self, pattern: str) -> int:
        with self._lock:
            keys = [k for k in self._entries if fnmatch.fnmatchcase(k, pattern)]
            for key in keys:
                self._drop(key)
        return len(keys)

    async def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._refs.clear()

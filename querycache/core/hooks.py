from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import structlog

logger = structlog.get_logger(__name__)

Hook = Callable[..., Any]


@dataclass
class CacheHooks:
    """Observability callbacks. Return values are ignored.

    ``on_hit``, ``on_miss`` and ``on_dedupe`` receive the cache key;
    ``on_error`` receives the exception. Hooks may be plain functions or
    coroutine functions; coroutines are scheduled and not awaited.
    """

    on_hit: Optional[Hook] = None
    on_miss: Optional[Hook] = None
    on_dedupe: Optional[Hook] = None
    on_error: Optional[Hook] = None
    _pending: set = field(default_factory=set, init=False, repr=False)

    def fire(self, name: str, *args: Any) -> None:
        hook = getattr(self, name, None)
        if hook is None:
            return
        try:
            out = hook(*args)
        except Exception as e:
            logger.warning("cache hook raised", hook=name, error=str(e))
            return
        if inspect.isawaitable(out):
            task = asyncio.ensure_future(out)
            self._pending.add(task)
            task.add_done_callback(self._settle)

    def _settle(self, task: asyncio.Future) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning("cache hook raised", error=str(task.exception()))

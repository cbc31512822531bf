from __future__ import annotations

from prometheus_client import Counter

CACHE_EVENTS = Counter(
    "query_cache_events_total",
    "Query cache read-path events",
    ["entity", "event"],  # hit | miss | dedupe | error | bypass
)
INVALIDATIONS = Counter(
    "query_cache_invalidations_total",
    "Pattern purges issued after writes",
    ["entity", "outcome"],  # ok | error
)


def record_event(entity: str | None, event: str) -> None:
    CACHE_EVENTS.labels(entity=entity or "-", event=event).inc()


def record_invalidation(entity: str, outcome: str, count: int = 1) -> None:
    INVALIDATIONS.labels(entity=entity, outcome=outcome).inc(count)

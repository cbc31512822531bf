"""
Unit tests for the bounded in-process backend.

Tests:
- Basic get/set
- TTL expiration
- LRU eviction
- Reference index bookkeeping
"""

import pytest

from querycache import MemoryStorage


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def mem(clock):
    return MemoryStorage(size=3, clock=clock)


@pytest.mark.asyncio
async def test_set_get_roundtrip(mem):
    await mem.set("Post~a", {"data": 1}, 60, ["Post~a"])
    assert await mem.get("Post~a") == {"data": 1}
    assert await mem.get("Post~missing") is None


@pytest.mark.asyncio
async def test_entries_expire(mem, clock):
    await mem.set("Post~a", "v", 1, ["Post~a"])

    clock.now += 0.5
    assert await mem.get("Post~a") == "v"

    clock.now += 0.6
    assert await mem.get("Post~a") is None
    assert len(mem) == 0
    # Expired entries leave no reference behind
    assert await mem.invalidate_by_reference("Post~*") == 0


@pytest.mark.asyncio
async def test_lru_eviction(mem):
    for k in ("a", "b", "c"):
        await mem.set(k, k, 60, [f"ref~{k}"])

    # Touch "a" so "b" is least recently used
    await mem.get("a")
    await mem.set("d", "d", 60, ["ref~d"])

    assert len(mem) == 3
    assert mem.evictions == 1
    assert await mem.get("b") is None
    assert await mem.get("a") == "a"
    assert await mem.invalidate_by_reference("ref~b") == 0


@pytest.mark.asyncio
async def test_overwrite_replaces_references(mem):
    await mem.set("k", 1, 60, ["Old~k"])
    await mem.set("k", 2, 60, ["New~k"])

    assert await mem.invalidate_by_reference("Old~*") == 0
    assert await mem.get("k") == 2
    assert await mem.invalidate_by_reference("New~*") == 1
    assert await mem.get("k") is None


@pytest.mark.asyncio
async def test_invalidate_by_reference_glob(mem):
    await mem.set("Post~1", 1, 60, ["Post~1"])
    await mem.set("Post~2", 2, 60, ["Post~2"])
    await mem.set("Comment~1", 3, 60, ["Comment~1"])

    assert await mem.invalidate_by_reference("*Post~*") == 2
    assert await mem.get("Comment~1") == 3


@pytest.mark.asyncio
async def test_entry_with_several_references(mem):
    await mem.set("feed~1", "x", 60, ["Post~1", "Comment~1"])

    assert await mem.invalidate_by_reference("Comment~*") == 1
    assert await mem.get("feed~1") is None
    assert await mem.invalidate_by_reference("Post~*") == 0


@pytest.mark.asyncio
async def test_delete_by_pattern_matches_keys(mem):
    await mem.set("Post~1", 1, 60, ["tag~1"])
    await mem.set("Comment~1", 2, 60, ["tag~2"])

    assert await mem.delete_by_pattern("Post~*") == 1
    assert len(mem) == 1


@pytest.mark.asyncio
async def test_clear(mem):
    await mem.set("Post~1", 1, 60, ["Post~1"])
    await mem.clear()
    assert len(mem) == 0
    assert await mem.invalidate_by_reference("*") == 0

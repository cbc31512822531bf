"""Shared fixtures for query cache tests.

Provides:
- make_cache: builds a QueryCache over a fresh in-memory backend
- Executor: an async executor that counts calls and can block or fail
"""

import asyncio
from typing import Any, Optional

import pytest

from querycache import MemoryStorage, QueryCache


class Executor:
    """Stands in for the database client."""

    def __init__(self, result: Any = None, error: Optional[Exception] = None, delay: float = 0):
        self.calls = 0
        self.operations = []
        self.result = result
        self.error = error
        self.delay = delay
        self.gate: Optional[asyncio.Event] = None

    async def __call__(self, operation):
        self.calls += 1
        self.operations.append(operation)
        if self.gate is not None:
            await self.gate.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if callable(self.result):
            return self.result(operation)
        return self.result


class CountingStorage(MemoryStorage):
    """MemoryStorage that records every backend call."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.gets = 0
        self.sets = 0

    async def get(self, key):
        self.gets += 1
        return await super().get(key)

    async def set(self, key, value, ttl, references=()):
        self.sets += 1
        return await super().set(key, value, ttl, references)


@pytest.fixture
def executor():
    return Executor(result={"id": 1, "title": "hello"})


@pytest.fixture
def storage():
    return CountingStorage(size=128)


@pytest.fixture
def make_cache(storage):
    def _make(**settings):
        settings.setdefault("default_cache_time", 60)
        return QueryCache(storage=storage, **settings)

    return _make


@pytest.fixture
def make_executor():
    return Executor

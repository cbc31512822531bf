import pytest

from querycache.services import redis_client


@pytest.fixture(autouse=True)
def reset_singleton(monkeypatch):
    monkeypatch.setattr(redis_client, "_client", None)
    monkeypatch.setattr(redis_client, "_pool", None)
    yield


def test_get_redis_requires_init():
    with pytest.raises(RuntimeError, match="not initialized"):
        redis_client.get_redis()


@pytest.mark.asyncio
async def test_init_is_idempotent(monkeypatch):
    monkeypatch.delenv("QUERY_CACHE_REDIS_URL", raising=False)
    first = await redis_client.init_redis("redis://cache.internal:6380/2")
    second = await redis_client.init_redis("redis://elsewhere:6379/0")

    assert first is second
    assert redis_client.get_redis() is first
    kwargs = first.connection_pool.connection_kwargs
    assert kwargs["host"] == "cache.internal"
    assert kwargs["port"] == 6380
    assert kwargs["db"] == 2

    await redis_client.close_redis()
    with pytest.raises(RuntimeError):
        redis_client.get_redis()


@pytest.mark.asyncio
async def test_url_from_environment(monkeypatch):
    monkeypatch.setenv("QUERY_CACHE_REDIS_URL", "redis://from-env:6379/3")
    client = await redis_client.init_redis()

    assert client.connection_pool.connection_kwargs["host"] == "from-env"
    await redis_client.close_redis()

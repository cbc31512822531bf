import pytest

from querycache import CacheSettings, ConfigurationError, MemoryStorage, OperationKind, QueryCache, load_settings


def test_defaults():
    s = load_settings()
    assert s.enabled is True
    assert s.default_cache_time == 0
    assert s.backend == "memory"
    assert s.hash_keys is True
    assert s.use_contains_invalidation is False


def test_environment_variables(monkeypatch):
    monkeypatch.setenv("QUERY_CACHE_DEFAULT_CACHE_TIME", "45")
    monkeypatch.setenv("QUERY_CACHE_DEFAULT_EXCLUDE_CACHE_METHODS", '["count", "aggregate"]')
    monkeypatch.setenv("QUERY_CACHE_MODELS", '[{"model": "Post", "invalidate_related": ["Comment"]}]')

    s = load_settings()

    assert s.default_cache_time == 45
    assert s.default_exclude_cache_methods == [OperationKind.COUNT, OperationKind.AGGREGATE]
    assert s.override_for("Post").invalidate_related == ["Comment"]
    assert s.override_for("Comment") is None


@pytest.mark.parametrize(
    "values",
    [
        {"models": [{"model": "Post"}, {"model": "Post", "cache_time": 5}]},
        {"models": [{"model": "Post", "cache_time": -1}]},
        {"models": [{"model": ""}]},
        {"models": [{"model": "Post", "exclude_cache_methods": ["delete"]}]},
        {"models": [{"model": "Post", "custom_invalidate": [""]}]},
        {"default_exclude_cache_methods": ["update"]},
        {"default_exclude_cache_methods": ["not_a_method"]},
        {"default_cache_time": -5},
        {"backend": "memcached"},
        {"memory_size": 0},
    ],
)
def test_invalid_configuration_raises_at_construction(values):
    with pytest.raises(ConfigurationError):
        load_settings(**values)
    with pytest.raises(ConfigurationError):
        QueryCache(storage=MemoryStorage(), **values)


def test_settings_and_keywords_are_exclusive():
    with pytest.raises(ConfigurationError):
        QueryCache(CacheSettings(), default_cache_time=5)


def test_storage_selection():
    assert isinstance(QueryCache().storage, MemoryStorage)
    assert QueryCache(memory_size=7).storage.max_size == 7

"""Tests for perch.cache — adapters, key patterns, and adapter selection."""

import fnmatch
import json
from datetime import timedelta

import pytest
import redis

from perch.cache import memory as memory_module
from perch.cache.adapter import matches_pattern, validate_pattern
from perch.cache.errors import CacheKeyError, CacheValueError, UnsupportedOperationError
from perch.cache.factory import create_cache_adapter
from perch.cache.local import LocalCacheAdapter
from perch.cache.memory import MemoryCacheAdapter
from perch.cache.redis_cache import RedisCacheAdapter, glob_escape
from perch.config import AppConfig
from perch.errors import ConfigurationError


class FakeRedis:
    """Just enough of ``redis.Redis`` (with ``decode_responses=True``)."""

    def __init__(self, *, down: bool = False) -> None:
        self.data: dict[str, str] = {}
        self.expiry_ms: dict[str, int] = {}
        self.down = down

    def ping(self) -> bool:
        if self.down:
            msg = "Connection refused"
            raise redis.ConnectionError(msg)
        return True

    def get(self, key: str) -> str | None:
        return self.data.get(key)

    def set(self, key: str, value: str, px: int | None = None) -> bool:
        self.data[key] = value
        if px is not None:
            self.expiry_ms[key] = px
        return True

    def delete(self, *keys: str) -> int:
        return sum(1 for key in keys if self.data.pop(key, None) is not None)

    def exists(self, key: str) -> int:
        return int(key in self.data)

    def mget(self, keys: list[str]) -> list[str | None]:
        return [self.data.get(key) for key in keys]

    def scan_iter(self, match: str, count: int = 10):
        return iter([key for key in list(self.data) if fnmatch.fnmatchcase(key, match)])

    def flushdb(self) -> bool:
        self.data.clear()
        return True


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def _seed(cache) -> None:
    for key in ("abc", "abcdef", "xabc", "xabcx", "other"):
        cache.set(key, key)


@pytest.fixture(params=["memory", "local", "redis"])
def cache(request):
    if request.param == "memory":
        return MemoryCacheAdapter("test:")
    if request.param == "local":
        return LocalCacheAdapter("test:")
    return RedisCacheAdapter(FakeRedis(), "test:")


class TestPatterns:
    def test_valid(self) -> None:
        for pattern in ("abc*", "*abc", "*abc*", "*", "abc"):
            assert validate_pattern(pattern) == pattern

    @pytest.mark.parametrize("pattern", ["a*b", "*a*b", "a*b*c", "user name*", ""])
    def test_invalid(self, pattern: str) -> None:
        with pytest.raises(CacheKeyError):
            validate_pattern(pattern)

    def test_matching(self) -> None:
        assert matches_pattern("abc*", "abcdef")
        assert not matches_pattern("abc*", "xabc")
        assert matches_pattern("*abc", "xabc")
        assert not matches_pattern("*abc", "abcdef")
        assert matches_pattern("*abc*", "xabcx")
        assert matches_pattern("*", "anything")
        assert matches_pattern("abc", "abc")
        assert not matches_pattern("abc", "abcd")


class TestAdapterContract:
    def test_round_trip_keeps_scalar_types(self, cache) -> None:
        cache.set("s", "text")
        cache.set("i", 3)
        cache.set("f", 2.5)
        cache.set("b", True)
        assert cache.get("s") == "text"
        assert cache.get("i") == 3
        assert cache.get("f") == 2.5
        assert cache.get("b") is True

    def test_miss_returns_default(self, cache) -> None:
        assert cache.get("missing") is None
        assert cache.get("missing", "fallback") == "fallback"

    def test_has_and_delete(self, cache) -> None:
        cache.set("k", "v")
        assert cache.has("k")
        assert cache.delete("k") is True
        assert not cache.has("k")
        assert cache.delete("k") is True

    def test_batch_operations(self, cache) -> None:
        cache.set_multiple({"a": 1, "b": 2})
        assert cache.get_multiple(["a", "b", "c"], 0) == {"a": 1, "b": 2, "c": 0}
        cache.delete_multiple(["a", "b"])
        assert cache.get_multiple(["a", "b"]) == {"a": None, "b": None}

    def test_clear(self, cache) -> None:
        cache.set("a", 1)
        cache.set("b", 2)
        assert cache.clear() is True
        assert not cache.has("a")
        assert not cache.has("b")

    @pytest.mark.parametrize("key", [1, None, ""])
    def test_invalid_key(self, cache, key) -> None:
        with pytest.raises(CacheKeyError):
            cache.set(key, "v")
        with pytest.raises(CacheKeyError):
            cache.get(key)

    @pytest.mark.parametrize("value", [None, [1], {"a": 1}, object()])
    def test_non_scalar_value(self, cache, value) -> None:
        with pytest.raises(CacheValueError):
            cache.set("k", value)

    def test_set_multiple_validates_before_writing(self, cache) -> None:
        with pytest.raises(CacheValueError):
            cache.set_multiple({"ok": 1, "bad": [1]})
        assert not cache.has("ok")

    def test_keys_must_be_iterable(self, cache) -> None:
        with pytest.raises(CacheKeyError):
            cache.get_multiple("abc")

    def test_invalid_ttl(self, cache) -> None:
        with pytest.raises(CacheValueError):
            cache.set("k", "v", ttl="soon")


class TestPatternDeletion:
    @pytest.mark.parametrize(
        ("pattern", "remaining"),
        [
            ("abc*", {"xabc", "xabcx", "other"}),
            ("*abc", {"abcdef", "xabcx", "other"}),
            ("*abc*", {"other"}),
            ("*", set()),
        ],
    )
    def test_memory(self, pattern: str, remaining: set[str]) -> None:
        cache = MemoryCacheAdapter("test:")
        _seed(cache)
        cache.delete_by_key_pattern(pattern)
        left = {k for k in ("abc", "abcdef", "xabc", "xabcx", "other") if cache.has(k)}
        assert left == remaining

    def test_memory_returns_count(self) -> None:
        cache = MemoryCacheAdapter("test:")
        _seed(cache)
        assert cache.delete_by_key_pattern("abc*") == 2

    def test_memory_scoped_to_prefix(self) -> None:
        mine = MemoryCacheAdapter("mine:")
        theirs = MemoryCacheAdapter("theirs:")
        mine.set("abc", 1)
        theirs.set("abc", 1)
        mine.delete_by_key_pattern("*")
        assert not mine.has("abc")
        assert theirs.has("abc")

    def test_redis(self) -> None:
        cache = RedisCacheAdapter(FakeRedis(), "test:")
        _seed(cache)
        assert cache.delete_by_key_pattern("*abc") == 2
        assert cache.has("abcdef")
        assert not cache.has("xabc")

    def test_invalid_pattern(self) -> None:
        with pytest.raises(CacheKeyError, match="not valid"):
            MemoryCacheAdapter("test:").delete_by_key_pattern("a*b")

    def test_local_does_not_support_patterns(self) -> None:
        cache = LocalCacheAdapter("test:")
        cache.set("abc", 1)
        assert cache.supports_patterns is False
        with pytest.raises(UnsupportedOperationError, match='Use the "clear" method'):
            cache.delete_by_key_pattern("abc*")
        assert cache.has("abc")


class TestMemoryCache:
    def test_shared_between_instances(self) -> None:
        MemoryCacheAdapter("shared:").set("k", "v")
        assert MemoryCacheAdapter("shared:").get("k") == "v"

    def test_ttl(self, monkeypatch: pytest.MonkeyPatch) -> None:
        clock = FakeClock()
        monkeypatch.setattr(memory_module, "monotonic", clock)
        cache = MemoryCacheAdapter("test:")
        cache.set("short", "v", ttl=10)
        cache.set("delta", "v", ttl=timedelta(minutes=1))
        cache.set("forever", "v")

        clock.now += 11
        assert not cache.has("short")
        assert cache.get("delta") == "v"

        clock.now += 60
        assert cache.get("delta") is None
        assert cache.get("forever") == "v"

    def test_clear_only_own_namespace(self) -> None:
        a = MemoryCacheAdapter("a:")
        b = MemoryCacheAdapter("b:")
        a.set("k", 1)
        b.set("k", 2)
        a.clear()
        assert b.get("k") == 2


class TestLocalCache:
    def test_instances_are_isolated(self) -> None:
        LocalCacheAdapter("test:").set("k", "v")
        assert LocalCacheAdapter("test:").get("k") is None

    def test_lru_eviction(self) -> None:
        cache = LocalCacheAdapter(maxsize=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.get("a")
        cache.set("c", 3)
        assert cache.has("a")
        assert not cache.has("b")
        assert len(cache) == 2


class TestRedisCache:
    def test_values_are_json_encoded(self) -> None:
        client = FakeRedis()
        cache = RedisCacheAdapter(client, "app:")
        cache.set("n", 5)
        assert client.data["app:n"] == json.dumps(5)

    def test_ttl_in_milliseconds(self) -> None:
        client = FakeRedis()
        cache = RedisCacheAdapter(client, "app:")
        cache.set("k", "v", ttl=1.5)
        cache.set("d", "v", ttl=timedelta(seconds=2))
        assert client.expiry_ms == {"app:k": 1500, "app:d": 2000}

    def test_clear_scoped_to_prefix(self) -> None:
        client = FakeRedis()
        client.data["other:k"] = '"x"'
        cache = RedisCacheAdapter(client, "app:")
        cache.set("k", "v")
        cache.clear()
        assert client.data == {"other:k": '"x"'}

    def test_prefix_glob_characters_are_literal(self) -> None:
        client = FakeRedis()
        client.data["shopX:k"] = '"x"'
        client.data["shop?:k"] = '"x"'
        cache = RedisCacheAdapter(client, "shop*:")
        cache.set("k", "v")
        assert cache.delete_by_key_pattern("*") == 1
        cache.set("k", "v")
        cache.clear()
        assert client.data == {"shopX:k": '"x"', "shop?:k": '"x"'}

    @pytest.mark.parametrize(
        ("prefix", "escaped"),
        [("app:", "app:"), ("a*b:", "a[*]b:"), ("a?[b:", "a[?][[]b:"), ("a\\b:", "a[\\\\]b:")],
    )
    def test_glob_escape(self, prefix: str, escaped: str) -> None:
        assert glob_escape(prefix) == escaped
        assert fnmatch.fnmatchcase(f"{prefix}key", f"{escaped}*")

    def test_ping(self) -> None:
        assert RedisCacheAdapter(FakeRedis()).ping() is True


class TestFactory:
    def test_memory_without_redis_url(self) -> None:
        cache = create_cache_adapter(AppConfig(server_prefix="shop", app_env="test"))
        assert isinstance(cache, MemoryCacheAdapter)
        assert cache.prefix == "shop:test:"

    def test_explicit_backends(self) -> None:
        assert isinstance(create_cache_adapter(AppConfig(cache_backend="memory")), MemoryCacheAdapter)
        local = create_cache_adapter(AppConfig(cache_backend="local", local_cache_size=5))
        assert isinstance(local, LocalCacheAdapter)
        assert local.maxsize == 5

    def test_unknown_backend(self) -> None:
        with pytest.raises(ConfigurationError, match="Unknown cache_backend"):
            create_cache_adapter(AppConfig(cache_backend="disk"))

    def test_redis_backend_requires_url(self) -> None:
        with pytest.raises(ConfigurationError, match="redis_url"):
            create_cache_adapter(AppConfig(cache_backend="redis"))

    def test_auto_uses_reachable_redis(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(
            RedisCacheAdapter, "from_url", lambda url, prefix="": RedisCacheAdapter(FakeRedis(), prefix)
        )
        cache = create_cache_adapter(AppConfig(redis_url="redis://cache:6379/0"))
        assert isinstance(cache, RedisCacheAdapter)
        assert cache.prefix == "perch:prod:"

    def test_auto_falls_back_to_local(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(
            RedisCacheAdapter,
            "from_url",
            lambda url, prefix="": RedisCacheAdapter(FakeRedis(down=True), prefix),
        )
        cache = create_cache_adapter(AppConfig(redis_url="redis://cache:6379/0"))
        assert isinstance(cache, LocalCacheAdapter)

    def test_explicit_redis_propagates_connection_errors(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(
            RedisCacheAdapter,
            "from_url",
            lambda url, prefix="": RedisCacheAdapter(FakeRedis(down=True), prefix),
        )
        with pytest.raises(redis.ConnectionError):
            create_cache_adapter(AppConfig(cache_backend="redis", redis_url="redis://cache:6379/0"))

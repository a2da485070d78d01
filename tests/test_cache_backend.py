"""Tests for the fail-open Redis backend adapter."""

import asyncio

import pytest

from core.cache import RedisBackend
from core.exceptions import DestructiveOperationError


async def test_get_set_and_delete_round_through_client(backend, fake_redis):
    assert await backend.set_with_ttl("transcript:abc", "payload", 60) is True
    assert fake_redis.ttls["transcript:abc"] == 60
    assert await backend.get("transcript:abc") == "payload"

    assert await backend.delete("transcript:abc", "missing") == 1
    assert await backend.get("transcript:abc") is None


async def test_delete_without_keys_is_noop(backend, fake_redis):
    assert await backend.delete() == 0
    assert backend.is_connected is False


async def test_connect_is_idempotent(settings, fake_redis):
    created = []

    def factory():
        created.append(fake_redis)
        return fake_redis

    backend = RedisBackend(settings, client_factory=factory)
    first = await backend.connect()
    second = await backend.connect()

    assert first is second is fake_redis
    assert len(created) == 1


async def test_disabled_backend_never_creates_client(make_settings):
    settings = make_settings(redis_enabled=False)

    def factory():
        raise AssertionError("client must not be created")

    backend = RedisBackend(settings, client_factory=factory)

    assert await backend.connect() is None
    assert await backend.get("transcript:abc") is None
    assert await backend.set_with_ttl("transcript:abc", "x", 10) is False
    health = await backend.ping()
    assert health.connected is False
    assert health.error == "Redis caching is disabled"


async def test_failed_connect_returns_none_and_closes_client(backend, fake_redis):
    fake_redis.fail_on.add("ping")

    assert await backend.connect() is None
    assert fake_redis.closed is True
    assert backend.last_error == "ping failed"


async def test_failed_connect_waits_for_retry_interval(make_settings, fake_redis):
    settings = make_settings(redis_retry_interval=60)
    now = {"t": 1000.0}
    attempts = []

    def factory():
        attempts.append(now["t"])
        return fake_redis

    backend = RedisBackend(settings, client_factory=factory, clock=lambda: now["t"])
    fake_redis.fail_on.add("ping")

    assert await backend.connect() is None
    now["t"] += 30
    assert await backend.connect() is None
    assert len(attempts) == 1

    fake_redis.fail_on.clear()
    now["t"] += 31
    assert await backend.connect() is fake_redis
    assert len(attempts) == 2


async def test_command_failure_returns_sentinel_and_notifies(backend, fake_redis):
    seen = []
    backend.add_error_listener(lambda operation, error: seen.append(operation))
    await backend.connect()
    fake_redis.fail_on.update({"get", "setex", "delete", "scan"})

    assert await backend.get("k") is None
    assert await backend.set_with_ttl("k", "v", 10) is False
    assert await backend.delete("k") == 0
    assert await backend.keys_by_pattern("search-results:*") == []
    assert seen == ["get", "set", "delete", "scan"]


async def test_raising_listener_does_not_escape(backend, fake_redis):
    seen = []

    def broken(operation, error):
        raise RuntimeError("listener bug")

    backend.add_error_listener(broken)
    backend.add_error_listener(lambda operation, error: seen.append(operation))
    await backend.connect()
    fake_redis.fail_on.add("get")

    assert await backend.get("k") is None
    assert seen == ["get"]


async def test_cancelled_connect_closes_client(make_settings, fake_redis):
    fake_redis.ping_delay = 5.0
    backend = RedisBackend(make_settings(redis_connect_timeout=10), client_factory=lambda: fake_redis)

    attempt = asyncio.ensure_future(backend.connect())
    await asyncio.sleep(0.01)
    attempt.cancel()

    with pytest.raises(asyncio.CancelledError):
        await attempt
    assert fake_redis.closed is True
    assert backend.is_connected is False


async def test_keys_by_pattern_matches_namespace(backend, fake_redis):
    fake_redis.store.update({
        "search-results:1": "[]",
        "search-results:2": "[]",
        "transcript:abc": "{}",
    })

    keys = await backend.keys_by_pattern("search-results:*")

    assert sorted(keys) == ["search-results:1", "search-results:2"]


async def test_flush_all_refused_in_production(make_settings, fake_redis):
    backend = RedisBackend(make_settings(environment="production"), client_factory=lambda: fake_redis)

    with pytest.raises(DestructiveOperationError):
        await backend.flush_all()

    assert fake_redis.flush_calls == 0
    assert backend.is_connected is False


async def test_flush_all_runs_once_in_development(make_settings, fake_redis):
    backend = RedisBackend(make_settings(environment="development"), client_factory=lambda: fake_redis)
    fake_redis.store["transcript:abc"] = "{}"

    assert await backend.flush_all() is True
    assert fake_redis.flush_calls == 1
    assert fake_redis.store == {}


async def test_info_reports_key_count_and_memory(backend, fake_redis):
    fake_redis.store.update({"a": "1", "b": "2"})

    info = await backend.info()

    assert info.key_count == 2
    assert info.memory_usage_human == "1.02M"


async def test_info_tolerates_missing_memory_section(backend, fake_redis):
    seen = []
    backend.add_error_listener(lambda operation, error: seen.append(operation))
    fake_redis.fail_on.add("info")

    info = await backend.info()

    assert info.key_count == 0
    assert info.memory_usage_human is None
    assert seen == []


async def test_info_unavailable_returns_none(backend, fake_redis):
    fake_redis.fail_on.add("ping")
    assert await backend.info() is None


async def test_ping_reports_latency_when_connected(backend):
    health = await backend.ping()

    assert health.connected is True
    assert health.latency is not None
    assert health.to_dict().keys() == {"connected", "latency"}


async def test_ping_reports_last_error_when_unreachable(backend, fake_redis):
    fake_redis.fail_on.add("ping")

    health = await backend.ping()

    assert health.connected is False
    assert health.error == "ping failed"


async def test_close_is_safe_when_never_connected(backend, fake_redis):
    await backend.close()
    assert fake_redis.closed is False

    await backend.connect()
    await backend.close()
    assert fake_redis.closed is True
    assert backend.is_connected is False

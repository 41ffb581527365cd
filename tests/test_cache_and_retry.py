"""
Tests for the TTL cache and the retry helper.
"""
import pytest

from app.core.cache import InMemoryTTLCache
from app.utils.retry import retry_call


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_cache_expires_entries():
    clock = FakeClock()
    cache = InMemoryTTLCache(clock=clock)
    cache.set("a", 1, ttl_seconds=10)

    assert cache.get("a") == 1
    clock.now = 10
    assert cache.get("a") is None
    assert len(cache) == 0


def test_cache_delete_and_clear():
    cache = InMemoryTTLCache()
    cache.set("a", 1, 60)
    cache.set("b", 2, 60)
    cache.delete("a")
    cache.delete("missing")
    assert cache.get("a") is None
    assert len(cache) == 1
    cache.clear()
    assert cache.get("b") is None


def test_cache_zero_ttl_is_not_stored():
    cache = InMemoryTTLCache()
    cache.set("a", 1, 0)
    assert cache.get("a") is None


def test_retry_call_succeeds_after_failures():
    attempts = []
    sleeps = []

    def flaky():
        attempts.append(1)
        if len(attempts) < 3:
            raise ConnectionError("boom")
        return "ok"

    result = retry_call(flaky, retries=2, base_delay=0.1, jitter=0, sleep=sleeps.append)

    assert result == "ok"
    assert len(attempts) == 3
    assert sleeps == [0.1, 0.2]


def test_retry_call_reraises_last_error():
    calls = []

    def always_fails():
        calls.append(1)
        raise ConnectionError(f"failure {len(calls)}")

    with pytest.raises(ConnectionError, match="failure 3"):
        retry_call(always_fails, retries=2, base_delay=0, sleep=lambda _: None)
    assert len(calls) == 3


def test_retry_call_does_not_retry_other_exceptions():
    calls = []

    def bad():
        calls.append(1)
        raise KeyError("x")

    with pytest.raises(KeyError):
        retry_call(bad, retries=3, exceptions=(ConnectionError,), sleep=lambda _: None)
    assert len(calls) == 1

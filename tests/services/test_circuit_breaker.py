"""Tests for RedisCircuitBreakerStorage: counters in Redis, half-open -> closed recovery."""
from unittest.mock import patch

import pybreaker
import pytest

from app.services.circuit_breaker import RedisCircuitBreakerStorage


class InMemoryRedis:
    """The handful of Redis string commands the breaker storage issues."""

    def __init__(self):
        self.data = {}

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value, ex=None):
        self.data[key] = str(value)

    def incr(self, key):
        self.data[key] = str(int(self.data.get(key, 0)) + 1)
        return int(self.data[key])

    def expire(self, key, seconds):
        return key in self.data

    def delete(self, key):
        self.data.pop(key, None)


@pytest.fixture
def storage():
    with patch("app.services.circuit_breaker.redis.Redis.from_url", return_value=InMemoryRedis()):
        yield RedisCircuitBreakerStorage("gateway:test")


def _fail():
    raise ConnectionError("provider down")


class TestRedisStorage:
    def test_success_counter_is_persisted(self, storage):
        storage.increment_success_counter()
        storage.increment_success_counter()
        assert storage.success_counter == 2
        assert storage.client.get("cb:gateway:test:success_counter") == "2"

        storage.reset_success_counter()
        assert storage.success_counter == 0

    def test_failure_counter_is_separate(self, storage):
        storage.increment_counter()
        assert storage.counter == 1
        assert storage.success_counter == 0

    def test_breaker_closes_after_successful_trial_call(self, storage):
        breaker = pybreaker.CircuitBreaker(fail_max=1, reset_timeout=0, state_storage=storage)

        with pytest.raises((ConnectionError, pybreaker.CircuitBreakerError)):
            breaker.call(_fail)
        assert breaker.current_state == pybreaker.STATE_OPEN

        assert breaker.call(lambda: "ok") == "ok"

        assert breaker.current_state == pybreaker.STATE_CLOSED
        assert storage.state == pybreaker.STATE_CLOSED

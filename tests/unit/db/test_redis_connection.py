"""Tests for the shared Redis connection."""

import pytest
import redis

from policybinder.db.redis import (close_redis_connection, get_redis_client,
                                   get_redis_pool)
from policybinder.errors import RuntimeDriverError


@pytest.mark.unit
class TestRedisPool:
    def test_pool_follows_redis_url(self, monkeypatch):
        monkeypatch.setenv("REDIS_URL", "redis://:s3cret@cache:6380/3")
        monkeypatch.setenv("REDIS_MAX_CONNECTIONS", "7")

        pool = get_redis_pool()

        assert pool.connection_kwargs["host"] == "cache"
        assert pool.connection_kwargs["port"] == 6380
        assert pool.connection_kwargs["db"] == 3
        assert pool.connection_kwargs["password"] == "s3cret"
        assert pool.max_connections == 7

    def test_pool_built_from_host_settings(self, monkeypatch):
        monkeypatch.setenv("REDIS_HOST", "runtime-store")
        monkeypatch.setenv("REDIS_DB", "1")

        pool = get_redis_pool()

        assert pool.connection_kwargs["host"] == "runtime-store"
        assert pool.connection_kwargs["db"] == 1

    def test_close_clears_cached_pool(self):
        first = get_redis_pool()

        close_redis_connection()

        assert get_redis_pool() is not first

    def test_close_without_pool_is_a_no_op(self):
        close_redis_connection()

        assert get_redis_pool.cache_info().currsize == 0


@pytest.mark.unit
class TestRedisClient:
    def test_unreachable_redis_is_a_runtime_driver_error(self, monkeypatch):
        def refuse(self):
            raise redis.ConnectionError("connection refused")

        monkeypatch.setattr(redis.Redis, "ping", refuse)

        with pytest.raises(RuntimeDriverError, match="unreachable"):
            get_redis_client()

    def test_client_uses_shared_pool(self, monkeypatch):
        monkeypatch.setattr(redis.Redis, "ping", lambda self: True)

        client = get_redis_client()

        assert client.connection_pool is get_redis_pool()
        assert get_redis_client() is client

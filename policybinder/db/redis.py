"""Redis connection shared by the operator and the worker pool runtime driver."""

from functools import lru_cache

import redis

from policybinder.core.config import get_settings
from policybinder.core.logging import get_logger
from policybinder.errors import RuntimeDriverError

logger = get_logger(__name__)


@lru_cache(maxsize=1)
def get_redis_pool() -> redis.ConnectionPool:
    """Connection pool for ``settings.redis_url``."""
    settings = get_settings()
    return redis.ConnectionPool.from_url(
        settings.redis_url,
        decode_responses=True,
        max_connections=settings.redis_max_connections,
        socket_connect_timeout=settings.redis_socket_timeout,
        socket_timeout=settings.redis_socket_timeout,
        health_check_interval=30,
    )


@lru_cache(maxsize=1)
def get_redis_client() -> redis.Redis:
    """Client on the shared pool, checked with a ping before first use.

    Raises RuntimeDriverError when Redis cannot be reached, so callers treat
    an outage like any other runtime driver failure and retry.
    """
    pool = get_redis_pool()
    client = redis.Redis(connection_pool=pool)

    try:
        client.ping()
    except redis.RedisError as e:
        kwargs = pool.connection_kwargs
        raise RuntimeDriverError(
            f"Redis at {kwargs.get('host')}:{kwargs.get('port')}/{kwargs.get('db')} "
            f"is unreachable: {e}"
        ) from e

    logger.info(f"Connected to policy server runtime store at {pool.connection_kwargs.get('host')}")
    return client


def close_redis_connection():
    """Disconnect the pool and forget the cached client."""
    if get_redis_pool.cache_info().currsize == 0:
        return
    try:
        get_redis_pool().disconnect()
    except redis.RedisError as e:
        logger.warning(f"Error closing Redis pool: {e}")
    finally:
        get_redis_pool.cache_clear()
        get_redis_client.cache_clear()
    logger.info("Redis connection pool closed")

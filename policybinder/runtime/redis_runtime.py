"""Redis-backed worker pool runtime driver.

Each PolicyServer's effective configuration is a Redis hash mapping binding
references to the policy configuration its workers must load. Workers read
the hash, subscribe to ``pool:events`` for changes, and report their replica
readiness back under ``pool:{name}:replicas``.

Every operation is idempotent: writing the configuration a pool already has
neither touches Redis nor publishes an event.
"""

import json
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from redis import Redis
from redis.exceptions import RedisError

from policybinder.constants import (POOL_BINDINGS_KEY_PATTERN,
                                    POOL_EVENTS_CHANNEL,
                                    POOL_REPLICAS_KEY_PATTERN, POOLS_ALL_KEY)
from policybinder.core.logging import get_logger
from policybinder.core.metrics import runtime_operations
from policybinder.errors import RuntimeDriverError
from policybinder.models.policy import BindingRef, PolicyBinding
from policybinder.runtime.base import ReplicaStatus

logger = get_logger(__name__)


def binding_config(policy: PolicyBinding) -> Dict[str, Any]:
    """Configuration a worker needs to serve ``policy``."""
    return {
        "module": policy.spec.module,
        "settings": policy.spec.settings,
        "rules": [r.model_dump(by_alias=True, exclude_none=True) for r in policy.spec.rules],
        "mutating": policy.spec.mutating,
        "failurePolicy": policy.spec.failure_policy,
        "timeoutSeconds": policy.spec.timeout_seconds,
    }


class RedisPoolRuntime:
    """Publishes pool configurations to Redis."""

    def __init__(self, redis_client: Redis):
        self.redis = redis_client

    def apply_bindings(self, pool: str, bindings: Mapping[BindingRef, Dict[str, Any]]) -> bool:
        """Make ``bindings`` the complete configuration of ``pool``.

        Returns True when the stored configuration changed.
        """
        key = POOL_BINDINGS_KEY_PATTERN.format(pool=pool)
        desired = {
            str(ref): json.dumps(config, sort_keys=True) for ref, config in bindings.items()
        }

        with runtime_operations.labels(operation="apply_bindings").time():
            try:
                current = self.redis.hgetall(key)
                registered = self.redis.sismember(POOLS_ALL_KEY, pool)
                if current == desired and registered:
                    return False

                pipeline = self.redis.pipeline()
                pipeline.delete(key)
                if desired:
                    pipeline.hset(key, mapping=desired)
                pipeline.sadd(POOLS_ALL_KEY, pool)
                pipeline.execute()
            except RedisError as e:
                raise RuntimeDriverError(f"Failed to apply bindings to pool {pool}: {e}") from e

        self._publish_pool_event("configured", pool, bindings=sorted(desired))
        logger.info(f"Applied {len(desired)} policies to policy server {pool}")
        return True

    def remove_binding(self, pool: str, ref: BindingRef) -> bool:
        """Drop ``ref`` from the pool configuration. Returns True when removed."""
        key = POOL_BINDINGS_KEY_PATTERN.format(pool=pool)

        with runtime_operations.labels(operation="remove_binding").time():
            try:
                removed = self.redis.hdel(key, str(ref))
            except RedisError as e:
                raise RuntimeDriverError(
                    f"Failed to remove {ref} from pool {pool}: {e}"
                ) from e

        if removed:
            self._publish_pool_event("binding_removed", pool, binding=str(ref))
            logger.info(f"Removed {ref} from policy server {pool}")
        return bool(removed)

    def replica_status(self, pool: str) -> Optional[ReplicaStatus]:
        """Readiness reported by the pool's workers, None if never reported."""
        with runtime_operations.labels(operation="replica_status").time():
            try:
                data = self.redis.hgetall(POOL_REPLICAS_KEY_PATTERN.format(pool=pool))
            except RedisError as e:
                raise RuntimeDriverError(f"Failed to read replicas of pool {pool}: {e}") from e

        if not data:
            return None
        try:
            return ReplicaStatus(int(data.get("desired", 0)), int(data.get("ready", 0)))
        except ValueError:
            logger.warning(f"Ignoring malformed replica report for pool {pool}: {data}")
            return None

    def report_replicas(self, pool: str, desired: int, ready: int) -> None:
        """Record readiness of a pool; called from the worker deployment side."""
        try:
            self.redis.hset(
                POOL_REPLICAS_KEY_PATTERN.format(pool=pool),
                mapping={"desired": desired, "ready": ready},
            )
        except RedisError as e:
            raise RuntimeDriverError(f"Failed to report replicas of pool {pool}: {e}") from e

    def forget_pool(self, pool: str) -> bool:
        """Remove every trace of ``pool``. Returns True if anything was removed."""
        with runtime_operations.labels(operation="forget_pool").time():
            try:
                pipeline = self.redis.pipeline()
                pipeline.delete(POOL_BINDINGS_KEY_PATTERN.format(pool=pool))
                pipeline.delete(POOL_REPLICAS_KEY_PATTERN.format(pool=pool))
                pipeline.srem(POOLS_ALL_KEY, pool)
                results = pipeline.execute()
            except RedisError as e:
                raise RuntimeDriverError(f"Failed to forget pool {pool}: {e}") from e

        removed = any(results)
        if removed:
            self._publish_pool_event("removed", pool)
            logger.info(f"Forgot policy server {pool}")
        return removed

    def list_bindings(self, pool: str) -> Dict[BindingRef, Dict[str, Any]]:
        try:
            data = self.redis.hgetall(POOL_BINDINGS_KEY_PATTERN.format(pool=pool))
        except RedisError as e:
            raise RuntimeDriverError(f"Failed to read bindings of pool {pool}: {e}") from e
        return {BindingRef.parse(ref): json.loads(config) for ref, config in data.items()}

    def list_pools(self):
        try:
            return sorted(self.redis.smembers(POOLS_ALL_KEY))
        except RedisError as e:
            raise RuntimeDriverError(f"Failed to list pools: {e}") from e

    def _publish_pool_event(self, action: str, pool: str, **details):
        """Publish pool change event"""
        event = {
            "type": f"pool.{action}",
            "pool": pool,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            **details,
        }
        try:
            self.redis.publish(POOL_EVENTS_CHANNEL, json.dumps(event))
        except RedisError as e:
            # Workers also poll the hash, a lost notification only delays them
            logger.warning(f"Failed to publish {event['type']} for pool {pool}: {e}")

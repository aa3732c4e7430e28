"""Worker pool runtime drivers."""

from .base import ReplicaStatus, WorkerPoolRuntime
from .redis_runtime import RedisPoolRuntime, binding_config

__all__ = ["ReplicaStatus", "WorkerPoolRuntime", "RedisPoolRuntime", "binding_config"]

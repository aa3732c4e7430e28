"""Pytest configuration and shared fixtures for policybinder tests."""

import copy
from typing import Any, Dict, List, Optional

import pytest
from fakeredis import FakeStrictRedis

from policybinder.constants import (API_VERSION, KIND_ADMISSION_POLICY,
                                    KIND_CLUSTER_ADMISSION_POLICY,
                                    KIND_POLICY_SERVER)
from policybinder.controller.reconciler import BindingReconciler
from policybinder.core.config import Settings
from policybinder.runtime.redis_runtime import RedisPoolRuntime
from policybinder.store.memory import MemoryStore

POLICY_SERVER_IMAGE = "ghcr.io/kubewarden/policy-server:v1.9.0"
POLICY_MODULE = "registry://ghcr.io/kubewarden/policies/pod-privileged:v0.2.5"

PODS_RULE = {
    "apiGroups": [""],
    "apiVersions": ["v1"],
    "resources": ["pods"],
    "operations": ["CREATE", "UPDATE"],
}

# ============================================================================
# Redis Fixtures
# ============================================================================


@pytest.fixture(scope="session")
def fake_redis_session():
    """Single FakeRedis instance for entire test session."""
    return FakeStrictRedis(decode_responses=True)


@pytest.fixture(autouse=True)
def fake_redis(fake_redis_session):
    """Clear the session redis before each test."""
    fake_redis_session.flushdb()
    yield fake_redis_session


# ============================================================================
# Controller Fixtures
# ============================================================================


@pytest.fixture
def test_settings():
    """Settings with a short backoff so delays are easy to assert on."""
    return Settings(backoff_base=1.0, backoff_max=8.0, resync_interval=1)


@pytest.fixture
def store():
    """In-memory store running the admission hooks on every write."""
    return MemoryStore()


@pytest.fixture
def runtime(fake_redis):
    return RedisPoolRuntime(fake_redis)


@pytest.fixture
def reconciler(store, runtime, test_settings):
    return BindingReconciler(store, runtime, test_settings)


# ============================================================================
# Object Fixtures
# ============================================================================


@pytest.fixture
def make_policy_server():
    """Factory for PolicyServer objects in wire format."""

    def _make(
        name: str = "default",
        image: str = POLICY_SERVER_IMAGE,
        replicas: int = 1,
        **spec: Any,
    ) -> Dict[str, Any]:
        return {
            "apiVersion": API_VERSION,
            "kind": KIND_POLICY_SERVER,
            "metadata": {"name": name},
            "spec": {"image": image, "replicas": replicas, **spec},
        }

    return _make


@pytest.fixture
def make_policy():
    """Factory for policy objects; a namespace makes it an AdmissionPolicy."""

    def _make(
        name: str = "privileged-pods",
        policy_server: Optional[str] = "default",
        namespace: Optional[str] = None,
        rules: Optional[List[Dict[str, Any]]] = None,
        **spec: Any,
    ) -> Dict[str, Any]:
        obj = {
            "apiVersion": API_VERSION,
            "kind": KIND_ADMISSION_POLICY if namespace else KIND_CLUSTER_ADMISSION_POLICY,
            "metadata": {"name": name},
            "spec": {
                "module": POLICY_MODULE,
                "rules": [copy.deepcopy(PODS_RULE)] if rules is None else rules,
                **spec,
            },
        }
        if policy_server is not None:
            obj["spec"]["policyServer"] = policy_server
        if namespace:
            obj["metadata"]["namespace"] = namespace
        return obj

    return _make


# ============================================================================
# Utility Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def reset_lru_caches():
    """Reset LRU caches between tests."""
    from policybinder.core.config import get_settings
    from policybinder.db.redis import get_redis_client, get_redis_pool

    get_settings.cache_clear()
    get_redis_client.cache_clear()
    get_redis_pool.cache_clear()

    yield

    get_settings.cache_clear()
    get_redis_client.cache_clear()
    get_redis_pool.cache_clear()


# ============================================================================
# Markers
# ============================================================================


def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "redis: Redis-dependent tests")

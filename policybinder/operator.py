"""
Operator process: kopf handlers feeding cluster events into the binding
reconciler, plus a periodic full resync.

Finalizers are owned by the reconciler. kopf never adds its own: every delete
handler is optional and only serves as a trigger.
"""

import asyncio
from collections import Counter
from functools import lru_cache
from typing import Any, Dict, Optional

import kopf
from prometheus_client import start_http_server
from redis.exceptions import RedisError

from policybinder.constants import (GROUP, PLURAL_ADMISSION_POLICIES,
                                    PLURAL_CLUSTER_ADMISSION_POLICIES,
                                    PLURAL_POLICY_SERVERS, POOLS_ALL_KEY,
                                    VERSION)
from policybinder.controller.reconciler import (DONE, INVALID, REQUEUE,
                                                BindingReconciler,
                                                ReconcileResult)
from policybinder.core.config import get_settings
from policybinder.core.logging import get_logger, setup_logging
from policybinder.db.redis import close_redis_connection, get_redis_client
from policybinder.errors import RuntimeDriverError
from policybinder.models.kinds import (ADMISSION_POLICY,
                                       CLUSTER_ADMISSION_POLICY, POLICY_SERVER,
                                       ResourceKind, kind_for)
from policybinder.models.meta import ObjectKey
from policybinder.runtime.redis_runtime import RedisPoolRuntime
from policybinder.store.kubernetes import KubernetesStore

logger = get_logger(__name__)

# Immediate requeues (finalizer just added) are run again in the same handler
MAX_INLINE_PASSES = 5

_resync_task: Optional[asyncio.Task] = None


@lru_cache(maxsize=1)
def get_reconciler() -> BindingReconciler:
    """Reconciler wired to the cluster and the Redis runtime driver."""
    return BindingReconciler(
        KubernetesStore(), RedisPoolRuntime(get_redis_client()), get_settings()
    )


# ============================================================================
# ADAPTERS
# ============================================================================


def run_reconcile(kind: ResourceKind, key: ObjectKey) -> ReconcileResult:
    reconciler = get_reconciler()
    result = reconciler.reconcile(kind, key)
    passes = 1
    while result.outcome == REQUEUE and not result.requeue_after and passes < MAX_INLINE_PASSES:
        result = reconciler.reconcile(kind, key)
        passes += 1
    return result


def reconcile_dependents(pool: str) -> None:
    """Refresh the status of every policy naming ``pool``."""
    reconciler = get_reconciler()
    for ref in reconciler.reverse_index().get(pool, {}):
        reconciler.reconcile(kind_for(ref.kind), ObjectKey(ref.name, ref.namespace))


def raise_for(result: ReconcileResult) -> None:
    """Hand a reconcile result back to kopf's retry machinery."""
    if result.outcome == INVALID:
        raise kopf.PermanentError(result.message)
    if result.requeue:
        raise kopf.TemporaryError(
            result.message or result.outcome, delay=result.requeue_after or 1.0
        )


async def _policy_changed(
    kind: ResourceKind, name: str, namespace: Optional[str], spec: Dict[str, Any]
) -> None:
    result = await asyncio.to_thread(run_reconcile, kind, ObjectKey(name, namespace))

    pool = (spec or {}).get("policyServer")
    if result.outcome == DONE and result.message == "finalized" and pool:
        # The pool may have been waiting on this policy to finish deleting
        await asyncio.to_thread(run_reconcile, POLICY_SERVER, ObjectKey(pool))

    raise_for(result)


# ============================================================================
# KOPF HANDLERS
# ============================================================================


@kopf.on.resume(GROUP, VERSION, PLURAL_POLICY_SERVERS)
@kopf.on.create(GROUP, VERSION, PLURAL_POLICY_SERVERS)
@kopf.on.update(GROUP, VERSION, PLURAL_POLICY_SERVERS)
@kopf.on.delete(GROUP, VERSION, PLURAL_POLICY_SERVERS, optional=True)
async def policy_server_changed(name: str, **kwargs):
    """Handle PolicyServer creation, updates and deletion"""
    logger.info(f"PolicyServer {name} changed")

    result = await asyncio.to_thread(run_reconcile, POLICY_SERVER, ObjectKey(name))
    if result.outcome == DONE:
        await asyncio.to_thread(reconcile_dependents, name)

    raise_for(result)


@kopf.on.resume(GROUP, VERSION, PLURAL_CLUSTER_ADMISSION_POLICIES)
@kopf.on.create(GROUP, VERSION, PLURAL_CLUSTER_ADMISSION_POLICIES)
@kopf.on.update(GROUP, VERSION, PLURAL_CLUSTER_ADMISSION_POLICIES)
@kopf.on.delete(GROUP, VERSION, PLURAL_CLUSTER_ADMISSION_POLICIES, optional=True)
async def cluster_admission_policy_changed(name: str, spec: Dict[str, Any], **kwargs):
    """Handle ClusterAdmissionPolicy creation, updates and deletion"""
    logger.info(f"ClusterAdmissionPolicy {name} changed")
    await _policy_changed(CLUSTER_ADMISSION_POLICY, name, None, spec)


@kopf.on.resume(GROUP, VERSION, PLURAL_ADMISSION_POLICIES)
@kopf.on.create(GROUP, VERSION, PLURAL_ADMISSION_POLICIES)
@kopf.on.update(GROUP, VERSION, PLURAL_ADMISSION_POLICIES)
@kopf.on.delete(GROUP, VERSION, PLURAL_ADMISSION_POLICIES, optional=True)
async def admission_policy_changed(name: str, namespace: str, spec: Dict[str, Any], **kwargs):
    """Handle AdmissionPolicy creation, updates and deletion"""
    logger.info(f"AdmissionPolicy {namespace}/{name} changed")
    await _policy_changed(ADMISSION_POLICY, name, namespace, spec)


# ============================================================================
# STARTUP AND SHUTDOWN
# ============================================================================


@kopf.on.startup()
def configure(settings: kopf.OperatorSettings, **_):
    """Configure kopf settings"""
    app_settings = get_settings()

    settings.batching.worker_limit = app_settings.worker_limit
    settings.posting.enabled = False
    settings.watching.server_timeout = 300
    settings.watching.client_timeout = 310
    settings.watching.connect_timeout = 10
    settings.persistence.progress_storage = kopf.AnnotationsProgressStorage(prefix=GROUP)
    settings.execution.max_workers = app_settings.worker_limit
    settings.batching.idle_timeout = 1.0
    settings.batching.batch_window = 0.5

    logger.info("Kopf configured")


@kopf.on.startup()
async def startup_handler(**kwargs):
    """Startup tasks"""
    global _resync_task
    app_settings = get_settings()
    logger.info(f"{app_settings.app_name} operator starting up")

    try:
        pools = get_redis_client().scard(POOLS_ALL_KEY)
    except (RedisError, RuntimeDriverError) as e:
        raise kopf.TemporaryError(f"Redis unavailable: {e}", delay=10)
    logger.info(f"Redis connection successful, {pools} policy servers configured")

    start_http_server(app_settings.metrics_port)

    _resync_task = asyncio.create_task(periodic_resync(app_settings.resync_interval))
    logger.info("Operator ready")


async def periodic_resync(interval: float):
    """Reconcile everything every ``interval`` seconds"""
    while True:
        await asyncio.sleep(interval)
        try:
            results = await asyncio.to_thread(get_reconciler().reconcile_all)
        except Exception as e:
            logger.error(f"Error in periodic resync: {e}", exc_info=True)
            continue

        outcomes = Counter(result.outcome for result in results.values())
        logger.info(
            f"Resynced {len(results)} objects: "
            + ", ".join(f"{count} {outcome}" for outcome, count in sorted(outcomes.items()))
        )


@kopf.on.cleanup()
async def cleanup_handler(**kwargs):
    """Cleanup tasks"""
    logger.info("Operator shutting down")

    if _resync_task is not None:
        _resync_task.cancel()
    close_redis_connection()


@kopf.on.probe(id="health")
async def health_probe(**kwargs):
    """Health check probe"""
    try:
        pools = get_redis_client().scard(POOLS_ALL_KEY)
    except (RedisError, RuntimeDriverError) as e:
        logger.error(f"Health check failed: {e}")
        return {"status": "unhealthy", "error": str(e)}

    return {
        "status": "healthy",
        "policy_servers": pools,
        "blocked_policy_servers": sorted(get_reconciler().blocked_policy_servers),
    }


# ============================================================================
# MAIN
# ============================================================================

if __name__ == "__main__":
    setup_logging()
    kopf.run(
        clusterwide=True,
        liveness_endpoint=f"http://0.0.0.0:{get_settings().liveness_port}/healthz",
    )

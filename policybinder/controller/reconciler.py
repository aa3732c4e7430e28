"""
Binding reconciler: finalizer management, deletion ordering and status
propagation for PolicyServers and the policies bound to them.

Every pass re-reads the object from the store and decides what to do from
its current state alone:

* not deleting, no finalizer      -> add the finalizer, requeue
* not deleting, finalizer present -> sync the pool configuration, write status
* deleting, finalizer present     -> clean up, then drop the finalizer
* deleting, no finalizer          -> nothing left to do

A PolicyServer being deleted keeps its finalizer for as long as any policy
still names it, which orders policy teardown before pool teardown.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from policybinder.constants import FINALIZER
from policybinder.controller.index import (ReverseIndex, binding_ref,
                                           load_reverse_index,
                                           policy_server_name)
from policybinder.controller.locks import KeyedLock
from policybinder.controller.status import project, project_policy_server
from policybinder.core.config import Settings, get_settings
from policybinder.core.logging import get_logger, get_logger_with_context
from policybinder.core.metrics import (blocked_pools, reconcile_duration,
                                       reconcile_total)
from policybinder.errors import (ConfigurationError, InvalidObjectError,
                                 NotFoundError, RuntimeDriverError,
                                 TransientStoreError)
from policybinder.models.kinds import (BINDING_KINDS, POLICY_SERVER,
                                       ResourceKind, kind_for)
from policybinder.models.meta import (ObjectKey, add_finalizer, has_finalizer,
                                      is_deleting, remove_finalizer)
from policybinder.models.policy_server import PolicyServer
from policybinder.runtime.base import WorkerPoolRuntime
from policybinder.runtime.redis_runtime import binding_config
from policybinder.store.base import Store

logger = get_logger(__name__)

# Outcomes, also used as metric label values
DONE = "done"
REQUEUE = "requeue"
BLOCKED = "blocked"
INVALID = "invalid"
ERROR = "error"


@dataclass(frozen=True)
class ReconcileResult:
    outcome: str = DONE
    requeue_after: Optional[float] = None
    message: str = ""

    @property
    def requeue(self) -> bool:
        return self.requeue_after is not None


class BindingReconciler:
    """Level-triggered reconciler for PolicyServers and policies."""

    def __init__(
        self,
        store: Store,
        runtime: WorkerPoolRuntime,
        settings: Optional[Settings] = None,
    ):
        self.store = store
        self.runtime = runtime
        self.settings = settings or get_settings()
        self._locks = KeyedLock()
        self._attempts: Dict[Tuple[str, ObjectKey], int] = {}
        self._blocked = set()

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def reconcile(self, kind: ResourceKind, key: ObjectKey) -> ReconcileResult:
        """Run one pass for a single object, serialised per object identity."""
        identity = (kind.kind, key)
        log = get_logger_with_context(__name__, kind=kind.kind, object_key=str(key))

        with self._locks.hold(identity), reconcile_duration.labels(kind=kind.kind).time():
            try:
                if kind.is_binding:
                    result = self._reconcile_binding(kind, key, log)
                else:
                    result = self._reconcile_policy_server(key, log)
            except (TransientStoreError, RuntimeDriverError) as e:
                log.warning(f"Reconciliation failed, will retry: {e}")
                result = ReconcileResult(ERROR, self._next_delay(identity), str(e))
            except InvalidObjectError as e:
                log.error(f"Store rejected the write: {e}")
                result = ReconcileResult(INVALID, message=str(e))
            except NotFoundError:
                log.info("Object removed during reconciliation")
                self._attempts.pop(identity, None)
                if not kind.is_binding:
                    self._unblock(key.name)
                result = ReconcileResult(DONE, message="gone")
            else:
                if result.outcome == BLOCKED:
                    result = ReconcileResult(BLOCKED, self._next_delay(identity), result.message)
                elif result.outcome != REQUEUE:
                    self._attempts.pop(identity, None)

        reconcile_total.labels(kind=kind.kind, result=result.outcome).inc()
        return result

    def reconcile_all(self) -> Dict[Tuple[str, ObjectKey], ReconcileResult]:
        """Full resync over every managed object.

        Policies go first so that a pool whose last policy is finalized in
        this pass can itself be finalized in the same pass. A failing object
        is logged and skipped; the pass always continues.
        """
        results: Dict[Tuple[str, ObjectKey], ReconcileResult] = {}

        for kind in BINDING_KINDS + (POLICY_SERVER,):
            try:
                objects = self.store.list(kind)
            except TransientStoreError as e:
                logger.warning(f"Could not list {kind.plural}, skipping this resync: {e}")
                continue

            for obj in objects:
                key = ObjectKey.from_object(obj)
                try:
                    results[(kind.kind, key)] = self.reconcile(kind, key)
                except Exception as e:
                    logger.error(f"Unexpected error reconciling {kind} {key}: {e}", exc_info=True)
                    reconcile_total.labels(kind=kind.kind, result=ERROR).inc()
                    results[(kind.kind, key)] = ReconcileResult(ERROR, None, str(e))

        return results

    def settle(self, max_passes: int = 10) -> Dict[Tuple[str, ObjectKey], ReconcileResult]:
        """Resync until no object asks to be requeued immediately.

        Blocked and failed objects are left for a later resync.
        """
        results = {}
        for _ in range(max_passes):
            results = self.reconcile_all()
            if not any(r.outcome == REQUEUE for r in results.values()):
                break
        return results

    def backoff(self, attempt: int) -> float:
        """Exponential requeue delay for the given attempt number."""
        delay = self.settings.backoff_base * (2 ** attempt)
        return min(delay, self.settings.backoff_max)

    def reverse_index(self) -> ReverseIndex:
        return load_reverse_index(self.store)

    @property
    def blocked_policy_servers(self):
        return frozenset(self._blocked)

    # ------------------------------------------------------------------
    # Policies
    # ------------------------------------------------------------------

    def _reconcile_binding(self, kind: ResourceKind, key: ObjectKey, log) -> ReconcileResult:
        try:
            obj = self.store.get(kind, key)
        except NotFoundError:
            return ReconcileResult(DONE, message="gone")

        pool = policy_server_name(obj)

        if is_deleting(obj):
            if not has_finalizer(obj, FINALIZER):
                return ReconcileResult(DONE, message="awaiting removal")

            if pool:
                with self._pool_lock(pool):
                    self.runtime.remove_binding(pool, binding_ref(kind, obj))
            remove_finalizer(obj, FINALIZER)
            self.store.update(obj)
            log.info("Cleanup complete, finalizer removed")
            return ReconcileResult(DONE, message="finalized")

        if not has_finalizer(obj, FINALIZER):
            add_finalizer(obj, FINALIZER)
            self.store.update(obj)
            log.info("Added missing finalizer")
            return ReconcileResult(REQUEUE, 0.0, "finalizer added")

        try:
            policy = kind.model.from_object(obj)
        except ConfigurationError as e:
            log.error(f"Cannot interpret policy: {e}")
            return ReconcileResult(INVALID, message=str(e))

        server = self._find_policy_server(pool) if pool else None
        if server is not None and not server.metadata.deletion_timestamp:
            self._sync_pool(pool)

        status = project(policy, server).model_dump(by_alias=True, exclude_none=True, mode="json")
        if obj.get("status") != status:
            self.store.update_status(kind, key, status)
            log.info(f"Status set to {status['policyStatus']}")
        return ReconcileResult(DONE)

    # ------------------------------------------------------------------
    # PolicyServers
    # ------------------------------------------------------------------

    def _reconcile_policy_server(self, key: ObjectKey, log) -> ReconcileResult:
        try:
            obj = self.store.get(POLICY_SERVER, key)
        except NotFoundError:
            self._unblock(key.name)
            return ReconcileResult(DONE, message="gone")

        if is_deleting(obj):
            if not has_finalizer(obj, FINALIZER):
                self._unblock(key.name)
                return ReconcileResult(DONE, message="awaiting removal")

            dependents = self.reverse_index().get(key.name, {})
            if dependents:
                self._block(key.name)
                refs = ", ".join(sorted(str(ref) for ref in dependents))
                log.info(f"Deletion waits for {len(dependents)} policies: {refs}")
                return ReconcileResult(BLOCKED, message=f"still referenced by {refs}")

            with self._pool_lock(key.name):
                self.runtime.forget_pool(key.name)
            remove_finalizer(obj, FINALIZER)
            self.store.update(obj)
            self._unblock(key.name)
            log.info("No policies left, finalizer removed")
            return ReconcileResult(DONE, message="finalized")

        if not has_finalizer(obj, FINALIZER):
            add_finalizer(obj, FINALIZER)
            self.store.update(obj)
            log.info("Added missing finalizer")
            return ReconcileResult(REQUEUE, 0.0, "finalizer added")

        try:
            server = PolicyServer.from_object(obj)
        except ConfigurationError as e:
            log.error(f"Cannot interpret policy server: {e}")
            return ReconcileResult(INVALID, message=str(e))

        self._sync_pool(key.name)

        replicas = self.runtime.replica_status(key.name)
        status = project_policy_server(server, replicas).model_dump(by_alias=True, mode="json")
        if obj.get("status") != status:
            self.store.update_status(POLICY_SERVER, key, status)
            log.info(f"Readiness {status['readyReplicas']}/{status['replicas']}")
        return ReconcileResult(DONE)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _find_policy_server(self, name: str) -> Optional[PolicyServer]:
        try:
            obj = self.store.get(POLICY_SERVER, ObjectKey(name))
        except NotFoundError:
            return None
        try:
            return PolicyServer.from_object(obj)
        except ConfigurationError as e:
            logger.warning(f"Policy server {name} cannot be interpreted: {e}")
            return None

    def _sync_pool(self, pool: str) -> None:
        """Push the complete set of live policies naming ``pool`` to the runtime.

        Runs under the pool's lock so concurrent policy passes never
        interleave a stale listing with a removal.
        """
        with self._pool_lock(pool):
            configs = {}
            for ref, obj in self.reverse_index().get(pool, {}).items():
                if is_deleting(obj):
                    continue
                try:
                    policy = kind_for(ref.kind).model.from_object(obj)
                except ConfigurationError as e:
                    logger.warning(f"Leaving {ref} out of policy server {pool}: {e}")
                    continue
                configs[ref] = binding_config(policy)
            self.runtime.apply_bindings(pool, configs)

    def _pool_lock(self, pool: str):
        return self._locks.hold((POLICY_SERVER.kind, ObjectKey(pool)))

    def _next_delay(self, identity: Tuple[str, ObjectKey]) -> float:
        attempt = self._attempts.get(identity, 0)
        self._attempts[identity] = attempt + 1
        return self.backoff(attempt)

    def _block(self, pool: str) -> None:
        self._blocked.add(pool)
        blocked_pools.set(len(self._blocked))

    def _unblock(self, pool: str) -> None:
        self._blocked.discard(pool)
        blocked_pools.set(len(self._blocked))

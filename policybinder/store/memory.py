"""In-process resource store with API-server write semantics.

Used to run the controller without a cluster. Writes go through the same
admission hooks the webhook server exposes, resource versions are checked on
update, status lives in its own sub-resource, and deletion of an object that
still carries finalizers only marks it with a deletion timestamp.
"""

import copy
import threading
import uuid
from collections import deque
from datetime import datetime, timezone
from typing import Any, Callable, Deque, Dict, Iterator, List, Optional, Tuple

from policybinder.core.logging import get_logger
from policybinder.errors import ConflictError, InvalidObjectError, NotFoundError
from policybinder.models.kinds import ResourceKind, kind_for
from policybinder.models.meta import ObjectKey, finalizers_of, is_deleting
from policybinder.store.base import WatchEvent
from policybinder.webhooks.defaulting import on_mutate
from policybinder.webhooks.types import Decision, Operation
from policybinder.webhooks.validation import on_validate

logger = get_logger(__name__)

MutateHook = Callable[[ResourceKind, Operation, Dict[str, Any]], Dict[str, Any]]
ValidateHook = Callable[
    [ResourceKind, Operation, Optional[Dict[str, Any]], Dict[str, Any]], Decision
]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class WatchStream:
    """Buffered change feed for one subscriber."""

    def __init__(self, buffer: Deque[WatchEvent]):
        self._buffer = buffer

    def __iter__(self) -> Iterator[WatchEvent]:
        while self._buffer:
            yield self._buffer.popleft()


class MemoryStore:
    """Thread-safe dictionary-backed store."""

    def __init__(
        self,
        mutate: Optional[MutateHook] = on_mutate,
        validate: Optional[ValidateHook] = on_validate,
    ):
        self.mutate = mutate
        self.validate = validate
        self._objects: Dict[Tuple[str, ObjectKey], Dict[str, Any]] = {}
        self._revision = 0
        self._lock = threading.RLock()
        self._watchers: Dict[str, List[Deque[WatchEvent]]] = {}

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, kind: ResourceKind, key: ObjectKey) -> Dict[str, Any]:
        with self._lock:
            obj = self._objects.get((kind.kind, key))
            if obj is None:
                raise NotFoundError(f"{kind} {key} not found")
            return copy.deepcopy(obj)

    def list(self, kind: ResourceKind, namespace: Optional[str] = None) -> List[Dict[str, Any]]:
        with self._lock:
            items = [
                copy.deepcopy(obj)
                for (k, key), obj in self._objects.items()
                if k == kind.kind and (namespace is None or key.namespace == namespace)
            ]
        return sorted(items, key=lambda o: str(ObjectKey.from_object(o)))

    def exists(self, kind: ResourceKind, key: ObjectKey) -> bool:
        with self._lock:
            return (kind.kind, key) in self._objects

    def watch(self, kind: ResourceKind) -> "WatchStream":
        """Subscribe to changes of ``kind``.

        The returned iterator first replays the current objects as ADDED,
        then yields buffered changes and stops once the buffer is drained.
        Iterating it again later yields whatever arrived in between.
        """
        buffer: Deque[WatchEvent] = deque()
        with self._lock:
            for obj in self.list(kind):
                buffer.append(WatchEvent("ADDED", obj))
            self._watchers.setdefault(kind.kind, []).append(buffer)
        return WatchStream(buffer)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, obj: Dict[str, Any]) -> Dict[str, Any]:
        kind = self._kind_of(obj)
        candidate = copy.deepcopy(obj)
        key = ObjectKey.from_object(candidate)
        self._check_scope(kind, key)

        with self._lock:
            if (kind.kind, key) in self._objects:
                raise ConflictError(f"{kind} {key} already exists")

            candidate = self._admit(kind, Operation.CREATE, None, candidate)

            meta = candidate.setdefault("metadata", {})
            meta.pop("deletionTimestamp", None)
            meta["uid"] = str(uuid.uuid4())
            meta["creationTimestamp"] = _now()
            meta["generation"] = 1
            meta["resourceVersion"] = self._next_revision()
            # Status can only be written through update_status
            candidate.pop("status", None)

            self._objects[(kind.kind, key)] = candidate
            self._notify(kind, "ADDED", candidate)
            return copy.deepcopy(candidate)

    def update(self, obj: Dict[str, Any]) -> Dict[str, Any]:
        kind = self._kind_of(obj)
        candidate = copy.deepcopy(obj)
        key = ObjectKey.from_object(candidate)

        with self._lock:
            current = self._objects.get((kind.kind, key))
            if current is None:
                raise NotFoundError(f"{kind} {key} not found")

            expected = (candidate.get("metadata") or {}).get("resourceVersion")
            actual = current["metadata"]["resourceVersion"]
            if expected and expected != actual:
                raise ConflictError(
                    f"{kind} {key} was modified: expected resourceVersion {expected}, "
                    f"stored {actual}"
                )

            if is_deleting(current):
                added = set(finalizers_of(candidate)) - set(finalizers_of(current))
                if added:
                    raise InvalidObjectError(
                        f"{kind} {key} is being deleted: finalizers "
                        f"{sorted(added)} cannot be added"
                    )

            candidate = self._admit(kind, Operation.UPDATE, current, candidate)

            meta = candidate.setdefault("metadata", {})
            current_meta = current["metadata"]
            for field in ("uid", "creationTimestamp", "deletionTimestamp"):
                if field in current_meta:
                    meta[field] = current_meta[field]
                else:
                    meta.pop(field, None)
            generation = current_meta.get("generation", 1)
            if candidate.get("spec") != current.get("spec"):
                generation += 1
            meta["generation"] = generation
            if "status" in current:
                candidate["status"] = copy.deepcopy(current["status"])
            else:
                candidate.pop("status", None)

            return self._commit(kind, key, candidate)

    def update_status(
        self, kind: ResourceKind, key: ObjectKey, status: Dict[str, Any]
    ) -> Dict[str, Any]:
        with self._lock:
            current = self._objects.get((kind.kind, key))
            if current is None:
                raise NotFoundError(f"{kind} {key} not found")
            updated = copy.deepcopy(current)
            updated["status"] = copy.deepcopy(status)
            return self._commit(kind, key, updated)

    def delete(self, kind: ResourceKind, key: ObjectKey) -> None:
        with self._lock:
            current = self._objects.get((kind.kind, key))
            if current is None:
                raise NotFoundError(f"{kind} {key} not found")

            if not finalizers_of(current):
                del self._objects[(kind.kind, key)]
                self._notify(kind, "DELETED", current)
                return

            if is_deleting(current):
                return

            marked = copy.deepcopy(current)
            marked["metadata"]["deletionTimestamp"] = _now()
            self._commit(kind, key, marked)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _commit(self, kind: ResourceKind, key: ObjectKey, obj: Dict[str, Any]) -> Dict[str, Any]:
        obj["metadata"]["resourceVersion"] = self._next_revision()

        if is_deleting(obj) and not finalizers_of(obj):
            del self._objects[(kind.kind, key)]
            logger.debug(f"{kind} {key} finalized and removed")
            self._notify(kind, "DELETED", obj)
        else:
            self._objects[(kind.kind, key)] = obj
            self._notify(kind, "MODIFIED", obj)
        return copy.deepcopy(obj)

    def _admit(
        self,
        kind: ResourceKind,
        operation: Operation,
        old: Optional[Dict[str, Any]],
        new: Dict[str, Any],
    ) -> Dict[str, Any]:
        if self.mutate is not None:
            new = self.mutate(kind, operation, new)
        if self.validate is not None:
            decision = self.validate(kind, operation, old, new)
            if not decision.allowed:
                raise InvalidObjectError(decision.message)
        return new

    def _next_revision(self) -> str:
        self._revision += 1
        return str(self._revision)

    def _notify(self, kind: ResourceKind, event_type: str, obj: Dict[str, Any]) -> None:
        for buffer in self._watchers.get(kind.kind, []):
            buffer.append(WatchEvent(event_type, copy.deepcopy(obj)))

    @staticmethod
    def _kind_of(obj: Dict[str, Any]) -> ResourceKind:
        try:
            return kind_for(obj.get("kind", ""))
        except KeyError as e:
            raise InvalidObjectError(str(e)) from e

    @staticmethod
    def _check_scope(kind: ResourceKind, key: ObjectKey) -> None:
        if not key.name:
            raise InvalidObjectError(f"{kind}: metadata.name is required")
        if kind.namespaced and not key.namespace:
            raise InvalidObjectError(f"{kind} {key.name}: metadata.namespace is required")
        if not kind.namespaced and key.namespace:
            raise InvalidObjectError(f"{kind} {key.name} is cluster scoped")

"""Resource store interface consumed by the reconciler.

Implementations honour optimistic concurrency: ``update`` compares the
``metadata.resourceVersion`` carried by the object with the stored one and
raises ConflictError when they differ.
"""

from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Protocol

from policybinder.models.kinds import ResourceKind
from policybinder.models.meta import ObjectKey


class WatchEvent(NamedTuple):
    type: str  # ADDED, MODIFIED or DELETED
    object: Dict[str, Any]


class Store(Protocol):
    def get(self, kind: ResourceKind, key: ObjectKey) -> Dict[str, Any]: ...

    def list(self, kind: ResourceKind, namespace: Optional[str] = None) -> List[Dict[str, Any]]: ...

    def watch(self, kind: ResourceKind) -> Iterable[WatchEvent]: ...

    def create(self, obj: Dict[str, Any]) -> Dict[str, Any]: ...

    def update(self, obj: Dict[str, Any]) -> Dict[str, Any]: ...

    def update_status(
        self, kind: ResourceKind, key: ObjectKey, status: Dict[str, Any]
    ) -> Dict[str, Any]: ...

    def delete(self, kind: ResourceKind, key: ObjectKey) -> None: ...

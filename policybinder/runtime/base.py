"""Worker pool runtime driver interface consumed by the reconciler."""

from typing import Any, Dict, Mapping, NamedTuple, Optional, Protocol

from policybinder.models.policy import BindingRef


class ReplicaStatus(NamedTuple):
    desired: int
    ready: int


class WorkerPoolRuntime(Protocol):
    def apply_bindings(self, pool: str, bindings: Mapping[BindingRef, Dict[str, Any]]) -> bool: ...

    def remove_binding(self, pool: str, ref: BindingRef) -> bool: ...

    def replica_status(self, pool: str) -> Optional[ReplicaStatus]: ...

    def forget_pool(self, pool: str) -> bool: ...

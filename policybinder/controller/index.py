"""Reverse index from PolicyServer name to the policies naming it.

The index is rebuilt from the live policy objects every time it is needed
and never persisted. It works on raw objects so that a policy whose spec no
longer parses still counts as a dependent of its pool.
"""

from typing import Any, Dict, Iterable, Tuple

from policybinder.models.kinds import BINDING_KINDS, ResourceKind
from policybinder.models.policy import BindingRef
from policybinder.store.base import Store

ReverseIndex = Dict[str, Dict[BindingRef, Dict[str, Any]]]


def binding_ref(kind: ResourceKind, obj: Dict[str, Any]) -> BindingRef:
    meta = obj.get("metadata") or {}
    return BindingRef(kind.kind, meta.get("name", ""), meta.get("namespace") or None)


def policy_server_name(obj: Dict[str, Any]) -> str:
    return (obj.get("spec") or {}).get("policyServer") or ""


def build_reverse_index(objects: Iterable[Tuple[ResourceKind, Dict[str, Any]]]) -> ReverseIndex:
    index: ReverseIndex = {}
    for kind, obj in objects:
        pool = policy_server_name(obj)
        if not pool:
            continue
        index.setdefault(pool, {})[binding_ref(kind, obj)] = obj
    return index


def load_reverse_index(store: Store) -> ReverseIndex:
    """Build the index from a full listing of every policy kind."""
    return build_reverse_index(
        (kind, obj) for kind in BINDING_KINDS for obj in store.list(kind)
    )

"""Object identity and metadata helpers shared by every resource kind.

Objects travel through the store as plain dictionaries shaped like the
Kubernetes wire format. The helpers here read and mutate their metadata
without validating the rest of the object, so finalizer bookkeeping keeps
working on malformed objects.
"""

from typing import Any, Dict, List, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field


class ObjectKey(NamedTuple):
    """Identity of a stored object within its kind."""

    name: str
    namespace: Optional[str] = None

    def __str__(self) -> str:
        if self.namespace:
            return f"{self.namespace}/{self.name}"
        return self.name

    @classmethod
    def from_object(cls, obj: Dict[str, Any]) -> "ObjectKey":
        meta = obj.get("metadata") or {}
        return cls(meta.get("name", ""), meta.get("namespace") or None)


class ObjectMeta(BaseModel):
    """Subset of Kubernetes object metadata the controller relies on."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    name: str = ""
    namespace: Optional[str] = None
    uid: Optional[str] = None
    resource_version: Optional[str] = Field(None, alias="resourceVersion")
    generation: Optional[int] = None
    finalizers: List[str] = Field(default_factory=list)
    deletion_timestamp: Optional[str] = Field(None, alias="deletionTimestamp")
    labels: Optional[Dict[str, str]] = None
    annotations: Optional[Dict[str, str]] = None


def finalizers_of(obj: Dict[str, Any]) -> List[str]:
    return list((obj.get("metadata") or {}).get("finalizers") or [])


def has_finalizer(obj: Dict[str, Any], token: str) -> bool:
    return token in finalizers_of(obj)


def add_finalizer(obj: Dict[str, Any], token: str) -> bool:
    """Append ``token`` to the object's finalizers in place.

    Returns True when the object changed.
    """
    meta = obj.setdefault("metadata", {})
    finalizers = meta.get("finalizers") or []
    if token in finalizers:
        return False
    meta["finalizers"] = finalizers + [token]
    return True


def remove_finalizer(obj: Dict[str, Any], token: str) -> bool:
    """Drop every occurrence of ``token`` in place. Returns True when changed."""
    meta = obj.setdefault("metadata", {})
    finalizers = meta.get("finalizers") or []
    if token not in finalizers:
        return False
    meta["finalizers"] = [f for f in finalizers if f != token]
    return True


def is_deleting(obj: Dict[str, Any]) -> bool:
    return bool((obj.get("metadata") or {}).get("deletionTimestamp"))


def resource_version_of(obj: Dict[str, Any]) -> Optional[str]:
    return (obj.get("metadata") or {}).get("resourceVersion")

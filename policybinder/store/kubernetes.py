"""Store implementation backed by the Kubernetes custom objects API."""

from typing import Any, Dict, Iterator, List, Optional

from kubernetes import client, config, watch
from kubernetes.client.rest import ApiException

from policybinder.constants import GROUP, VERSION
from policybinder.core.logging import get_logger
from policybinder.errors import (ConflictError, InvalidObjectError,
                                 NotFoundError, TransientStoreError)
from policybinder.models.kinds import ResourceKind, kind_for
from policybinder.models.meta import ObjectKey
from policybinder.store.base import WatchEvent

logger = get_logger(__name__)

_k8s_loaded = False


def _ensure_k8s():
    """Load cluster credentials exactly once."""
    global _k8s_loaded
    if _k8s_loaded:
        return
    try:
        config.load_incluster_config()
        logger.info("Loaded in-cluster Kubernetes config")
    except config.ConfigException:
        config.load_kube_config()
        logger.info("Loaded local Kubernetes config")
    _k8s_loaded = True


def custom_api() -> client.CustomObjectsApi:
    _ensure_k8s()
    return client.CustomObjectsApi()


def _translate(e: ApiException, kind: ResourceKind, key: Optional[ObjectKey]) -> Exception:
    """Map an API error onto the store error taxonomy."""
    target = f"{kind} {key}" if key else str(kind)
    reason = e.reason or ""
    if e.status == 404:
        return NotFoundError(f"{target} not found")
    if e.status == 409:
        return ConflictError(f"{target}: {reason}")
    if e.status in (400, 403, 422):
        return InvalidObjectError(f"{target}: {reason} {e.body or ''}".strip())
    return TransientStoreError(f"{target}: API error {e.status} {reason}")


class KubernetesStore:
    """Reads and writes PolicyServers and policies through the API server."""

    def __init__(self, api: Optional[client.CustomObjectsApi] = None):
        self.api = api or custom_api()

    def get(self, kind: ResourceKind, key: ObjectKey) -> Dict[str, Any]:
        try:
            if kind.namespaced:
                return self.api.get_namespaced_custom_object(
                    GROUP, VERSION, key.namespace, kind.plural, key.name
                )
            return self.api.get_cluster_custom_object(GROUP, VERSION, kind.plural, key.name)
        except ApiException as e:
            raise _translate(e, kind, key) from e

    def list(self, kind: ResourceKind, namespace: Optional[str] = None) -> List[Dict[str, Any]]:
        try:
            if kind.namespaced and namespace:
                response = self.api.list_namespaced_custom_object(
                    GROUP, VERSION, namespace, kind.plural
                )
            else:
                # Lists namespaced kinds across all namespaces
                response = self.api.list_cluster_custom_object(GROUP, VERSION, kind.plural)
        except ApiException as e:
            raise _translate(e, kind, None) from e

        items = response.get("items", [])
        for item in items:
            # List responses omit the per-item kind
            item.setdefault("apiVersion", f"{GROUP}/{VERSION}")
            item.setdefault("kind", kind.kind)
        return items

    def watch(self, kind: ResourceKind, timeout_seconds: int = 300) -> Iterator[WatchEvent]:
        stream = watch.Watch()
        try:
            for event in stream.stream(
                self.api.list_cluster_custom_object,
                GROUP,
                VERSION,
                kind.plural,
                timeout_seconds=timeout_seconds,
            ):
                yield WatchEvent(event["type"], event["object"])
        except ApiException as e:
            raise _translate(e, kind, None) from e
        finally:
            stream.stop()

    def create(self, obj: Dict[str, Any]) -> Dict[str, Any]:
        kind = kind_for(obj["kind"])
        key = ObjectKey.from_object(obj)
        try:
            if kind.namespaced:
                return self.api.create_namespaced_custom_object(
                    GROUP, VERSION, key.namespace, kind.plural, obj
                )
            return self.api.create_cluster_custom_object(GROUP, VERSION, kind.plural, obj)
        except ApiException as e:
            raise _translate(e, kind, key) from e

    def update(self, obj: Dict[str, Any]) -> Dict[str, Any]:
        """Replace the object; the API server rejects stale resourceVersions."""
        kind = kind_for(obj["kind"])
        key = ObjectKey.from_object(obj)
        try:
            if kind.namespaced:
                return self.api.replace_namespaced_custom_object(
                    GROUP, VERSION, key.namespace, kind.plural, key.name, obj
                )
            return self.api.replace_cluster_custom_object(
                GROUP, VERSION, kind.plural, key.name, obj
            )
        except ApiException as e:
            raise _translate(e, kind, key) from e

    def update_status(
        self, kind: ResourceKind, key: ObjectKey, status: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Merge-patch the status sub-resource, leaving spec untouched."""
        body = {"status": status}
        try:
            if kind.namespaced:
                return self.api.patch_namespaced_custom_object_status(
                    GROUP, VERSION, key.namespace, kind.plural, key.name, body
                )
            return self.api.patch_cluster_custom_object_status(
                GROUP, VERSION, kind.plural, key.name, body
            )
        except ApiException as e:
            raise _translate(e, kind, key) from e

    def delete(self, kind: ResourceKind, key: ObjectKey) -> None:
        try:
            if kind.namespaced:
                self.api.delete_namespaced_custom_object(
                    GROUP, VERSION, key.namespace, kind.plural, key.name
                )
            else:
                self.api.delete_cluster_custom_object(GROUP, VERSION, kind.plural, key.name)
        except ApiException as e:
            raise _translate(e, kind, key) from e

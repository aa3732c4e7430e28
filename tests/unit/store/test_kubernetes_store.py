"""Tests for the Kubernetes-backed store with a mocked CustomObjectsApi."""

from unittest.mock import MagicMock

import pytest
from kubernetes.client.rest import ApiException

from policybinder.errors import (ConflictError, InvalidObjectError,
                                 NotFoundError, TransientStoreError)
from policybinder.models import (ADMISSION_POLICY, CLUSTER_ADMISSION_POLICY,
                                 POLICY_SERVER, ObjectKey)
from policybinder.store.kubernetes import KubernetesStore

GROUP = "policies.kubewarden.io"


@pytest.fixture
def api():
    return MagicMock()


@pytest.fixture
def k8s_store(api):
    return KubernetesStore(api=api)


@pytest.mark.unit
class TestReads:
    def test_get_cluster_scoped(self, k8s_store, api):
        api.get_cluster_custom_object.return_value = {"metadata": {"name": "default"}}

        obj = k8s_store.get(POLICY_SERVER, ObjectKey("default"))

        assert obj["metadata"]["name"] == "default"
        api.get_cluster_custom_object.assert_called_once_with(
            GROUP, "v1", "policyservers", "default"
        )

    def test_get_namespaced(self, k8s_store, api):
        k8s_store.get(ADMISSION_POLICY, ObjectKey("p", "team-a"))

        api.get_namespaced_custom_object.assert_called_once_with(
            GROUP, "v1", "team-a", "admissionpolicies", "p"
        )

    def test_list_fills_in_kind(self, k8s_store, api):
        api.list_cluster_custom_object.return_value = {
            "items": [{"metadata": {"name": "a"}}, {"metadata": {"name": "b"}}]
        }

        items = k8s_store.list(CLUSTER_ADMISSION_POLICY)

        assert [i["kind"] for i in items] == ["ClusterAdmissionPolicy"] * 2
        assert items[0]["apiVersion"] == f"{GROUP}/v1"

    def test_list_namespaced_kind_across_namespaces(self, k8s_store, api):
        api.list_cluster_custom_object.return_value = {"items": []}

        k8s_store.list(ADMISSION_POLICY)

        api.list_cluster_custom_object.assert_called_once_with(GROUP, "v1", "admissionpolicies")
        api.list_namespaced_custom_object.assert_not_called()

    def test_list_in_one_namespace(self, k8s_store, api):
        api.list_namespaced_custom_object.return_value = {"items": []}

        k8s_store.list(ADMISSION_POLICY, namespace="team-a")

        api.list_namespaced_custom_object.assert_called_once_with(
            GROUP, "v1", "team-a", "admissionpolicies"
        )


@pytest.mark.unit
class TestWrites:
    def test_update_replaces_object(self, k8s_store, api, make_policy_server):
        server = make_policy_server()

        k8s_store.update(server)

        api.replace_cluster_custom_object.assert_called_once_with(
            GROUP, "v1", "policyservers", "default", server
        )

    def test_update_status_patches_sub_resource(self, k8s_store, api):
        k8s_store.update_status(
            ADMISSION_POLICY, ObjectKey("p", "team-a"), {"policyStatus": "active"}
        )

        api.patch_namespaced_custom_object_status.assert_called_once_with(
            GROUP, "v1", "team-a", "admissionpolicies", "p", {"status": {"policyStatus": "active"}}
        )

    def test_create_namespaced(self, k8s_store, api, make_policy):
        policy = make_policy(namespace="team-a")

        k8s_store.create(policy)

        api.create_namespaced_custom_object.assert_called_once_with(
            GROUP, "v1", "team-a", "admissionpolicies", policy
        )

    def test_delete_cluster_scoped(self, k8s_store, api):
        k8s_store.delete(CLUSTER_ADMISSION_POLICY, ObjectKey("p"))

        api.delete_cluster_custom_object.assert_called_once_with(
            GROUP, "v1", "clusteradmissionpolicies", "p"
        )


@pytest.mark.unit
class TestErrorTranslation:
    @pytest.mark.parametrize(
        "status,expected",
        [
            (404, NotFoundError),
            (409, ConflictError),
            (422, InvalidObjectError),
            (400, InvalidObjectError),
            (500, TransientStoreError),
            (503, TransientStoreError),
        ],
    )
    def test_maps_api_status(self, k8s_store, api, make_policy_server, status, expected):
        api.replace_cluster_custom_object.side_effect = ApiException(status=status, reason="x")

        with pytest.raises(expected):
            k8s_store.update(make_policy_server())

    def test_conflict_is_transient(self, k8s_store, api):
        api.get_cluster_custom_object.side_effect = ApiException(status=409, reason="Conflict")

        with pytest.raises(TransientStoreError):
            k8s_store.get(POLICY_SERVER, ObjectKey("default"))

    def test_admission_denial_surfaces_as_invalid(self, k8s_store, api, make_policy):
        api.create_cluster_custom_object.side_effect = ApiException(
            status=403, reason="Forbidden"
        )

        with pytest.raises(InvalidObjectError, match="Forbidden"):
            k8s_store.create(make_policy())

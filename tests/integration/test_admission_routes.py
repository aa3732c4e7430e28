"""Integration tests for the AdmissionReview endpoints."""

import base64
import json
import uuid

import pytest
from fastapi import status
from fastapi.testclient import TestClient

from policybinder.main import app


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def review():
    """Builds an admission.k8s.io/v1 AdmissionReview request."""

    def _review(operation, obj=None, old=None, namespace=None):
        request = {
            "uid": str(uuid.uuid4()),
            "kind": {"group": "policies.kubewarden.io", "version": "v1", "kind": "x"},
            "operation": operation,
            "object": obj,
            "oldObject": old,
        }
        if namespace:
            request["namespace"] = namespace
        return {
            "apiVersion": "admission.k8s.io/v1",
            "kind": "AdmissionReview",
            "request": request,
        }

    return _review


def _patch_of(response):
    return json.loads(base64.b64decode(response["patch"]))


@pytest.mark.integration
class TestMutateEndpoint:
    def test_create_adds_finalizer(self, client, review, make_policy):
        body = review("CREATE", make_policy())

        response = client.post("/mutate/clusteradmissionpolicies", json=body)

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["apiVersion"] == "admission.k8s.io/v1"
        assert data["kind"] == "AdmissionReview"
        assert data["response"]["uid"] == body["request"]["uid"]
        assert data["response"]["allowed"] is True
        assert data["response"]["patchType"] == "JSONPatch"
        assert _patch_of(data["response"]) == [
            {"op": "add", "path": "/metadata/finalizers", "value": ["kubewarden"]}
        ]

    def test_existing_finalizers_are_replaced_with_extended_list(
        self, client, review, make_policy_server
    ):
        server = make_policy_server()
        server["metadata"]["finalizers"] = ["example.com/cleanup"]

        response = client.post("/mutate/policyservers", json=review("CREATE", server))

        assert _patch_of(response.json()["response"]) == [
            {
                "op": "replace",
                "path": "/metadata/finalizers",
                "value": ["example.com/cleanup", "kubewarden"],
            }
        ]

    def test_already_defaulted_object_gets_no_patch(self, client, review, make_policy):
        policy = make_policy(namespace="team-a")
        policy["metadata"]["finalizers"] = ["kubewarden"]

        response = client.post("/mutate/admissionpolicies", json=review("CREATE", policy))

        data = response.json()["response"]
        assert data["allowed"] is True
        assert "patch" not in data

    def test_update_is_not_mutated(self, client, review, make_policy):
        response = client.post(
            "/mutate/clusteradmissionpolicies",
            json=review("UPDATE", make_policy(), old=make_policy()),
        )

        assert "patch" not in response.json()["response"]

    def test_kind_name_is_accepted_as_path(self, client, review, make_policy_server):
        response = client.post("/mutate/policyserver", json=review("CREATE", make_policy_server()))

        assert response.status_code == status.HTTP_200_OK


@pytest.mark.integration
class TestValidateEndpoint:
    def test_allows_valid_policy(self, client, review, make_policy):
        response = client.post(
            "/validate/clusteradmissionpolicies", json=review("CREATE", make_policy())
        )

        data = response.json()["response"]
        assert data["allowed"] is True
        assert "status" not in data

    def test_denies_empty_rule(self, client, review, make_policy):
        response = client.post(
            "/validate/clusteradmissionpolicies",
            json=review("CREATE", make_policy(rules=[{}])),
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()["response"]
        assert data["allowed"] is False
        assert data["status"]["code"] == 403
        assert "spec.rules[0]" in data["status"]["message"]

    def test_denies_policy_server_change(self, client, review, make_policy):
        response = client.post(
            "/validate/admissionpolicies",
            json=review(
                "UPDATE",
                make_policy(namespace="team-a", policy_server="other"),
                old=make_policy(namespace="team-a"),
                namespace="team-a",
            ),
        )

        data = response.json()["response"]
        assert data["allowed"] is False
        assert "immutable" in data["status"]["message"]

    def test_delete_is_allowed(self, client, review, make_policy):
        response = client.post(
            "/validate/clusteradmissionpolicies",
            json=review("DELETE", None, old=make_policy(rules=[])),
        )

        assert response.json()["response"]["allowed"] is True

    def test_denies_policy_server_without_image(self, client, review, make_policy_server):
        response = client.post(
            "/validate/policyservers", json=review("CREATE", make_policy_server(image=""))
        )

        assert response.json()["response"]["allowed"] is False

    def test_unexpected_error_becomes_denial(self, client, review, make_policy, monkeypatch):
        def explode(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr("policybinder.api.v1.endpoints.admission.on_validate", explode)

        response = client.post(
            "/validate/clusteradmissionpolicies", json=review("CREATE", make_policy())
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()["response"]
        assert data["allowed"] is False
        assert data["status"]["code"] == 500
        assert "boom" in data["status"]["message"]


@pytest.mark.integration
class TestRequestHandling:
    def test_unknown_resource_is_not_found(self, client, review, make_policy):
        response = client.post("/validate/deployments", json=review("CREATE", make_policy()))

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_malformed_review_is_rejected(self, client):
        response = client.post("/validate/policyservers", json={"kind": "AdmissionReview"})

        assert response.status_code == 422

    def test_health_in_development(self, client):
        response = client.get("/healthz")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["status"] == "degraded"
        assert data["checks"]["tls"]["status"] == "degraded"

    def test_readiness_in_development(self, client):
        response = client.get("/readyz")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["ready"] is True

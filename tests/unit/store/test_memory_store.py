"""Tests for the in-memory store."""

import copy

import pytest

from policybinder.constants import FINALIZER
from policybinder.errors import (ConflictError, InvalidObjectError,
                                 NotFoundError)
from policybinder.models import (ADMISSION_POLICY, CLUSTER_ADMISSION_POLICY,
                                 POLICY_SERVER, ObjectKey)
from policybinder.store.memory import MemoryStore


@pytest.mark.unit
class TestCreate:
    def test_runs_defaulting(self, store, make_policy_server):
        created = store.create(make_policy_server())

        assert created["metadata"]["finalizers"] == [FINALIZER]
        assert created["metadata"]["generation"] == 1
        assert created["metadata"]["uid"]

    def test_rejects_denied_objects(self, store, make_policy):
        with pytest.raises(InvalidObjectError, match=r"spec\.rules\[0\]"):
            store.create(make_policy(rules=[{}]))

        assert store.list(CLUSTER_ADMISSION_POLICY) == []

    def test_rejects_duplicates(self, store, make_policy_server):
        store.create(make_policy_server())

        with pytest.raises(ConflictError):
            store.create(make_policy_server())

    def test_ignores_submitted_status(self, store, make_policy):
        policy = make_policy()
        policy["status"] = {"policyStatus": "active"}

        created = store.create(policy)

        assert "status" not in created

    def test_namespaced_kind_requires_namespace(self, store, make_policy):
        policy = make_policy()
        policy["kind"] = "AdmissionPolicy"

        with pytest.raises(InvalidObjectError, match="namespace"):
            store.create(policy)

    def test_cluster_kind_rejects_namespace(self, store, make_policy_server):
        server = make_policy_server()
        server["metadata"]["namespace"] = "kubewarden"

        with pytest.raises(InvalidObjectError, match="cluster scoped"):
            store.create(server)

    def test_unknown_kind(self, store):
        with pytest.raises(InvalidObjectError):
            store.create({"kind": "Deployment", "metadata": {"name": "x"}})


@pytest.mark.unit
class TestUpdate:
    def test_stale_resource_version_conflicts(self, store, make_policy):
        created = store.create(make_policy())
        store.update(copy.deepcopy(created))

        with pytest.raises(ConflictError):
            store.update(created)

    def test_runs_validation_against_stored_version(self, store, make_policy):
        created = store.create(make_policy())
        created["spec"]["policyServer"] = "reserved"

        with pytest.raises(InvalidObjectError, match="immutable"):
            store.update(created)

    def test_bumps_generation_on_spec_change_only(self, store, make_policy):
        created = store.create(make_policy())
        created["metadata"]["labels"] = {"team": "a"}
        relabelled = store.update(created)
        relabelled["spec"]["mutating"] = True
        changed = store.update(relabelled)

        assert relabelled["metadata"]["generation"] == 1
        assert changed["metadata"]["generation"] == 2

    def test_preserves_status(self, store, make_policy):
        created = store.create(make_policy())
        store.update_status(
            CLUSTER_ADMISSION_POLICY, ObjectKey("privileged-pods"), {"policyStatus": "active"}
        )
        created = store.get(CLUSTER_ADMISSION_POLICY, ObjectKey("privileged-pods"))
        created["status"] = {"policyStatus": "unscheduled"}

        updated = store.update(created)

        assert updated["status"] == {"policyStatus": "active"}

    def test_missing_object(self, store, make_policy):
        with pytest.raises(NotFoundError):
            store.update(make_policy())

    def test_cannot_add_finalizers_while_deleting(self, store, make_policy_server):
        store.create(make_policy_server())
        store.delete(POLICY_SERVER, ObjectKey("default"))
        server = store.get(POLICY_SERVER, ObjectKey("default"))
        server["metadata"]["finalizers"].append("example.com/late")

        with pytest.raises(InvalidObjectError):
            store.update(server)


@pytest.mark.unit
class TestDelete:
    def test_finalizer_defers_removal(self, store, make_policy_server):
        store.create(make_policy_server())

        store.delete(POLICY_SERVER, ObjectKey("default"))

        server = store.get(POLICY_SERVER, ObjectKey("default"))
        assert server["metadata"]["deletionTimestamp"]

    def test_removing_last_finalizer_completes_deletion(self, store, make_policy_server):
        store.create(make_policy_server())
        store.delete(POLICY_SERVER, ObjectKey("default"))
        server = store.get(POLICY_SERVER, ObjectKey("default"))
        server["metadata"]["finalizers"] = []

        store.update(server)

        assert not store.exists(POLICY_SERVER, ObjectKey("default"))

    def test_object_without_finalizers_is_removed_immediately(self, make_policy):
        store = MemoryStore(mutate=None, validate=None)
        store.create(make_policy(namespace="team-a"))

        store.delete(ADMISSION_POLICY, ObjectKey("privileged-pods", "team-a"))

        with pytest.raises(NotFoundError):
            store.get(ADMISSION_POLICY, ObjectKey("privileged-pods", "team-a"))

    def test_repeated_delete_keeps_first_timestamp(self, store, make_policy_server):
        store.create(make_policy_server())
        store.delete(POLICY_SERVER, ObjectKey("default"))
        first = store.get(POLICY_SERVER, ObjectKey("default"))

        store.delete(POLICY_SERVER, ObjectKey("default"))

        assert store.get(POLICY_SERVER, ObjectKey("default")) == first


@pytest.mark.unit
class TestListAndWatch:
    def test_list_filters_by_namespace(self, store, make_policy):
        store.create(make_policy("a", namespace="team-a"))
        store.create(make_policy("b", namespace="team-b"))

        names = [o["metadata"]["name"] for o in store.list(ADMISSION_POLICY, namespace="team-b")]

        assert names == ["b"]
        assert len(store.list(ADMISSION_POLICY)) == 2

    def test_watch_replays_then_streams(self, store, make_policy_server):
        store.create(make_policy_server("first"))
        stream = store.watch(POLICY_SERVER)

        store.create(make_policy_server("second"))
        store.delete(POLICY_SERVER, ObjectKey("first"))

        events = [(e.type, e.object["metadata"]["name"]) for e in stream]
        assert events == [("ADDED", "first"), ("ADDED", "second"), ("MODIFIED", "first")]

    def test_watch_reports_final_removal(self, store, make_policy_server):
        store.create(make_policy_server())
        store.delete(POLICY_SERVER, ObjectKey("default"))
        stream = store.watch(POLICY_SERVER)
        list(stream)

        server = store.get(POLICY_SERVER, ObjectKey("default"))
        server["metadata"]["finalizers"] = []
        store.update(server)

        assert [e.type for e in stream] == ["DELETED"]

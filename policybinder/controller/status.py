"""Status projection: derived status fields computed from observed state."""

from typing import Optional

from policybinder.models.policy import PolicyBinding, PolicyState, PolicyStatus
from policybinder.models.policy_server import PolicyServer, PolicyServerStatus
from policybinder.runtime.base import ReplicaStatus


def project(binding: PolicyBinding, policy_server: Optional[PolicyServer]) -> PolicyStatus:
    """Status of ``binding`` given the PolicyServer it names, if that exists."""
    name = binding.policy_server
    if not name:
        return PolicyStatus(
            policy_status=PolicyState.UNSCHEDULED,
            message="no policy server assigned",
        )

    if policy_server is None:
        return PolicyStatus(
            policy_status=PolicyState.UNSCHEDULABLE,
            message=f"policy server {name} not found",
        )

    if not policy_server.is_ready():
        ready = policy_server.status.ready_replicas if policy_server.status else 0
        return PolicyStatus(
            policy_status=PolicyState.SCHEDULED,
            message=(
                f"waiting for policy server {name}: "
                f"{ready}/{policy_server.spec.replicas} replicas ready"
            ),
        )

    return PolicyStatus(
        policy_status=PolicyState.ACTIVE,
        message=f"enforced by policy server {name}",
    )


def project_policy_server(
    policy_server: PolicyServer, replicas: Optional[ReplicaStatus]
) -> PolicyServerStatus:
    """Readiness summary of a pool from what its workers report."""
    desired = policy_server.spec.replicas
    ready = min(replicas.ready, desired) if replicas else 0
    return PolicyServerStatus(
        replicas=desired,
        ready_replicas=ready,
        ready=desired > 0 and ready >= desired,
    )

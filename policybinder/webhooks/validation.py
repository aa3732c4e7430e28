"""Validation stage: pure admission decisions over old and new object versions.

Nothing in this module touches the store or any shared state; every function
is a function of its arguments only.
"""

from typing import Any, Dict, Optional

from policybinder.core.logging import get_logger
from policybinder.core.metrics import admission_decisions
from policybinder.errors import ConfigurationError, RejectedInvariantError
from policybinder.models.kinds import ResourceKind
from policybinder.models.meta import ObjectKey, is_deleting
from policybinder.models.policy import PolicyBinding
from policybinder.models.policy_server import PolicyServer
from policybinder.webhooks.types import Decision, Operation

logger = get_logger(__name__)


def _policy_server_of(obj: Optional[Dict[str, Any]]) -> str:
    return _spec_of(obj).get("policyServer") or ""


def _spec_of(obj: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    return (obj or {}).get("spec") or {}


def check_rules(policy: PolicyBinding) -> None:
    """Raise unless at least one rule names both operations and resources."""
    if policy.has_effective_rule():
        return

    if not policy.spec.rules:
        raise RejectedInvariantError(
            "spec.rules: at least one rule with non-empty operations "
            "and resources is required"
        )

    offending = ", ".join(f"spec.rules[{i}]" for i in policy.empty_rule_indexes())
    raise RejectedInvariantError(
        f"{offending}: rule must specify at least one operation and one resource; "
        "a policy needs at least one such rule"
    )


def check_policy_server_unchanged(old: Dict[str, Any], new: Dict[str, Any]) -> None:
    """Raise if an update rebinds the policy to another PolicyServer."""
    old_server = _policy_server_of(old)
    new_server = _policy_server_of(new)
    if new_server != old_server:
        raise RejectedInvariantError(
            f"spec.policyServer is immutable: cannot change from "
            f"'{old_server}' to '{new_server}'; delete and recreate the policy instead"
        )


def validate_policy(
    kind: ResourceKind,
    operation: Operation,
    old: Optional[Dict[str, Any]],
    new: Dict[str, Any],
) -> Decision:
    """Validate an AdmissionPolicy or ClusterAdmissionPolicy write."""
    operation = Operation(operation)
    if operation not in (Operation.CREATE, Operation.UPDATE):
        return Decision.allow()

    try:
        if operation == Operation.UPDATE and old is not None:
            check_policy_server_unchanged(old, new)
            if is_deleting(old) and _spec_of(old) == _spec_of(new):
                # Finalizer bookkeeping on a deleting object
                return Decision.allow()
        check_rules(kind.model.from_object(new))
    except ConfigurationError as e:
        return Decision.deny(f"invalid {kind}: {e}")
    except RejectedInvariantError as e:
        return Decision.deny(str(e))

    return Decision.allow()


def validate_policy_server(
    operation: Operation,
    old: Optional[Dict[str, Any]],
    new: Dict[str, Any],
) -> Decision:
    """Validate a PolicyServer write. Every spec field stays mutable."""
    operation = Operation(operation)
    if operation not in (Operation.CREATE, Operation.UPDATE):
        return Decision.allow()
    if (
        operation == Operation.UPDATE
        and old is not None
        and is_deleting(old)
        and _spec_of(old) == _spec_of(new)
    ):
        return Decision.allow()

    try:
        server = PolicyServer.from_object(new)
    except ConfigurationError as e:
        return Decision.deny(f"invalid PolicyServer: {e}")

    if not server.spec.image.strip():
        return Decision.deny("spec.image: must not be empty")
    if server.spec.replicas < 0:
        return Decision.deny(
            f"spec.replicas: must be greater than or equal to 0, got {server.spec.replicas}"
        )
    return Decision.allow()


def on_validate(
    kind: ResourceKind,
    operation: Operation,
    old: Optional[Dict[str, Any]],
    new: Dict[str, Any],
) -> Decision:
    """Validating admission entry point for every managed kind."""
    operation = Operation(operation)
    if kind.is_binding:
        decision = validate_policy(kind, operation, old, new)
    else:
        decision = validate_policy_server(operation, old, new)

    admission_decisions.labels(
        kind=kind.kind, operation=operation.value, allowed=str(decision.allowed).lower()
    ).inc()

    if not decision.allowed:
        logger.info(
            f"Denied {operation.value} of {kind} {ObjectKey.from_object(new)}: "
            f"{decision.message}"
        )
    return decision

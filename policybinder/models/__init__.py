"""Resource models package."""

from .base import Resource, format_validation_error
from .kinds import (ADMISSION_POLICY, ALL_KINDS, BINDING_KINDS,
                    CLUSTER_ADMISSION_POLICY, POLICY_SERVER, ResourceKind,
                    kind_for)
from .meta import ObjectKey, ObjectMeta
from .policy import (AdmissionPolicy, BindingRef, ClusterAdmissionPolicy,
                     ClusterAdmissionPolicySpec, PolicyBinding, PolicySpec,
                     PolicyState, PolicyStatus, Rule)
from .policy_server import (PolicyServer, PolicyServerSpec,
                            PolicyServerStatus, ResourceRequirements)

__all__ = [
    "Resource",
    "format_validation_error",
    "ObjectKey",
    "ObjectMeta",
    # Kinds
    "ResourceKind",
    "POLICY_SERVER",
    "CLUSTER_ADMISSION_POLICY",
    "ADMISSION_POLICY",
    "BINDING_KINDS",
    "ALL_KINDS",
    "kind_for",
    # Policies
    "AdmissionPolicy",
    "ClusterAdmissionPolicy",
    "ClusterAdmissionPolicySpec",
    "PolicyBinding",
    "PolicySpec",
    "PolicyState",
    "PolicyStatus",
    "Rule",
    "BindingRef",
    # Policy servers
    "PolicyServer",
    "PolicyServerSpec",
    "PolicyServerStatus",
    "ResourceRequirements",
]

"""AdmissionPolicy and ClusterAdmissionPolicy resource models."""

from enum import Enum
from typing import Any, Dict, List, Literal, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from policybinder.constants import (KIND_ADMISSION_POLICY,
                                    KIND_CLUSTER_ADMISSION_POLICY)
from policybinder.models.base import Resource


class PolicyState(str, Enum):
    """Values of status.policyStatus. Persisted; do not rename."""

    UNSCHEDULED = "unscheduled"
    SCHEDULED = "scheduled"
    ACTIVE = "active"
    UNSCHEDULABLE = "unschedulable"


class Rule(BaseModel):
    """An admission rule: which API requests the policy is called for."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    api_groups: List[str] = Field(default_factory=list, alias="apiGroups")
    api_versions: List[str] = Field(default_factory=list, alias="apiVersions")
    resources: List[str] = Field(default_factory=list)
    operations: List[str] = Field(default_factory=list)
    scope: Optional[str] = None

    @field_validator("api_groups", "api_versions", "resources", "operations", mode="before")
    @classmethod
    def null_as_empty(cls, v):
        return [] if v is None else v

    def is_empty(self) -> bool:
        """A rule without operations or without resources never matches."""
        return not self.operations or not self.resources


class PolicySpec(BaseModel):
    """Fields shared by both policy scopes."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    policy_server: str = Field("", alias="policyServer")
    module: str = ""
    settings: Dict[str, Any] = Field(default_factory=dict)
    rules: List[Rule] = Field(default_factory=list)
    failure_policy: Literal["Fail", "Ignore"] = Field("Fail", alias="failurePolicy")
    mutating: bool = False
    timeout_seconds: int = Field(10, alias="timeoutSeconds", ge=1, le=30)

    @field_validator("settings", "rules", mode="before")
    @classmethod
    def null_as_default(cls, v, info):
        if v is None:
            return {} if info.field_name == "settings" else []
        return v


class ClusterAdmissionPolicySpec(PolicySpec):
    namespace_selector: Optional[Dict[str, Any]] = Field(None, alias="namespaceSelector")


class PolicyStatus(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    policy_status: PolicyState = Field(PolicyState.UNSCHEDULED, alias="policyStatus")
    message: Optional[str] = None


class PolicyBinding(Resource):
    """Common base of the two binding kinds."""

    spec: PolicySpec = Field(default_factory=PolicySpec)
    status: Optional[PolicyStatus] = None

    @property
    def policy_server(self) -> str:
        return self.spec.policy_server

    def empty_rule_indexes(self) -> List[int]:
        return [i for i, rule in enumerate(self.spec.rules) if rule.is_empty()]

    def has_effective_rule(self) -> bool:
        return any(not rule.is_empty() for rule in self.spec.rules)

    def ref(self) -> "BindingRef":
        return BindingRef(self.kind, self.metadata.name, self.metadata.namespace)


class ClusterAdmissionPolicy(PolicyBinding):
    kind: str = KIND_CLUSTER_ADMISSION_POLICY
    spec: ClusterAdmissionPolicySpec = Field(default_factory=ClusterAdmissionPolicySpec)


class AdmissionPolicy(PolicyBinding):
    kind: str = KIND_ADMISSION_POLICY


class BindingRef(NamedTuple):
    """Weak reference to a binding, as stored in a pool's effective set."""

    kind: str
    name: str
    namespace: Optional[str] = None

    def __str__(self) -> str:
        if self.namespace:
            return f"{self.kind}/{self.namespace}/{self.name}"
        return f"{self.kind}/{self.name}"

    @classmethod
    def parse(cls, value: str) -> "BindingRef":
        parts = value.split("/")
        if len(parts) == 3:
            return cls(parts[0], parts[2], parts[1])
        if len(parts) == 2:
            return cls(parts[0], parts[1])
        raise ValueError(f"malformed binding reference: {value!r}")

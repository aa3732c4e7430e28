"""PolicyServer resource model."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from policybinder.constants import KIND_POLICY_SERVER
from policybinder.models.base import Resource


class ResourceRequirements(BaseModel):
    """Container resource limits and requests, passed through untouched."""

    limits: Dict[str, Any] = Field(default_factory=dict)
    requests: Dict[str, Any] = Field(default_factory=dict)


class PolicyServerSpec(BaseModel):
    """Desired shape of a worker pool."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    image: str = ""
    replicas: int = 1
    resources: ResourceRequirements = Field(default_factory=ResourceRequirements)
    service_account_name: Optional[str] = Field(None, alias="serviceAccountName")
    env: List[Dict[str, Any]] = Field(default_factory=list)
    annotations: Dict[str, str] = Field(default_factory=dict)


class PolicyServerStatus(BaseModel):
    """Replica readiness summary written by the reconciler."""

    model_config = ConfigDict(populate_by_name=True)

    replicas: int = 0
    ready_replicas: int = Field(0, alias="readyReplicas")
    ready: bool = False


class PolicyServer(Resource):
    kind: str = KIND_POLICY_SERVER
    spec: PolicyServerSpec = Field(default_factory=PolicyServerSpec)
    status: Optional[PolicyServerStatus] = None

    def is_ready(self) -> bool:
        """True once every desired replica reports ready."""
        if self.status is None or self.spec.replicas <= 0:
            return False
        return self.status.ready_replicas >= self.spec.replicas

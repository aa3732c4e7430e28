"""Registry of the resource kinds this controller manages."""

from dataclasses import dataclass
from typing import Dict, Tuple, Type

from policybinder.constants import (KIND_ADMISSION_POLICY,
                                    KIND_CLUSTER_ADMISSION_POLICY,
                                    KIND_POLICY_SERVER,
                                    PLURAL_ADMISSION_POLICIES,
                                    PLURAL_CLUSTER_ADMISSION_POLICIES,
                                    PLURAL_POLICY_SERVERS)
from policybinder.models.base import Resource
from policybinder.models.policy import AdmissionPolicy, ClusterAdmissionPolicy
from policybinder.models.policy_server import PolicyServer


@dataclass(frozen=True)
class ResourceKind:
    kind: str
    plural: str
    namespaced: bool
    model: Type[Resource]

    @property
    def is_binding(self) -> bool:
        return self.kind != KIND_POLICY_SERVER

    def __str__(self) -> str:
        return self.kind


POLICY_SERVER = ResourceKind(KIND_POLICY_SERVER, PLURAL_POLICY_SERVERS, False, PolicyServer)
CLUSTER_ADMISSION_POLICY = ResourceKind(
    KIND_CLUSTER_ADMISSION_POLICY,
    PLURAL_CLUSTER_ADMISSION_POLICIES,
    False,
    ClusterAdmissionPolicy,
)
ADMISSION_POLICY = ResourceKind(
    KIND_ADMISSION_POLICY, PLURAL_ADMISSION_POLICIES, True, AdmissionPolicy
)

BINDING_KINDS: Tuple[ResourceKind, ...] = (CLUSTER_ADMISSION_POLICY, ADMISSION_POLICY)
ALL_KINDS: Tuple[ResourceKind, ...] = (POLICY_SERVER,) + BINDING_KINDS

_BY_NAME: Dict[str, ResourceKind] = {}
for _k in ALL_KINDS:
    _BY_NAME[_k.kind] = _k
    _BY_NAME[_k.kind.lower()] = _k
    _BY_NAME[_k.plural] = _k


def kind_for(name: str) -> ResourceKind:
    """Look a kind up by its Kind name or plural resource name."""
    try:
        return _BY_NAME[name]
    except KeyError:
        raise KeyError(f"unknown resource kind: {name}") from None

"""Literals persisted on cluster objects. Changing any of these breaks
compatibility with objects already stored."""

GROUP = "policies.kubewarden.io"
VERSION = "v1"
API_VERSION = f"{GROUP}/{VERSION}"

# Deletion-guard token set by the webhooks and the reconciler
FINALIZER = "kubewarden"

KIND_POLICY_SERVER = "PolicyServer"
KIND_CLUSTER_ADMISSION_POLICY = "ClusterAdmissionPolicy"
KIND_ADMISSION_POLICY = "AdmissionPolicy"

PLURAL_POLICY_SERVERS = "policyservers"
PLURAL_CLUSTER_ADMISSION_POLICIES = "clusteradmissionpolicies"
PLURAL_ADMISSION_POLICIES = "admissionpolicies"

# Redis key patterns used by the worker pool runtime driver
POOL_BINDINGS_KEY_PATTERN = "pool:{pool}:bindings"
POOL_REPLICAS_KEY_PATTERN = "pool:{pool}:replicas"
POOLS_ALL_KEY = "pools:all"
POOL_EVENTS_CHANNEL = "pool:events"

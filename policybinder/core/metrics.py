"""Prometheus metrics shared by the operator and the webhook server."""

from prometheus_client import Counter, Gauge, Histogram

reconcile_duration = Histogram(
    "policybinder_reconcile_duration_seconds",
    "Time spent in a single reconciliation pass",
    ["kind"],
)

reconcile_total = Counter(
    "policybinder_reconcile_total",
    "Reconciliation passes by outcome",
    ["kind", "result"],
)

admission_decisions = Counter(
    "policybinder_admission_decisions_total",
    "Admission decisions returned by the webhooks",
    ["kind", "operation", "allowed"],
)

runtime_operations = Histogram(
    "policybinder_runtime_operation_duration_seconds",
    "Worker pool runtime driver operation duration",
    ["operation"],
)

blocked_pools = Gauge(
    "policybinder_blocked_policy_servers",
    "PolicyServers whose deletion waits for referencing policies",
)

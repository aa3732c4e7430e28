"""Exception taxonomy for the policy binding controller."""


class PolicyBinderError(Exception):
    """Base exception for policy binding errors"""


# Admission-time failures, surfaced to the writer as denials


class RejectedInvariantError(PolicyBinderError):
    """Write violates a structural or lifecycle invariant"""


class ConfigurationError(PolicyBinderError):
    """Object is malformed or its configuration cannot be interpreted"""


# Store outcomes


class NotFoundError(PolicyBinderError):
    """Requested object does not exist in the store"""


class InvalidObjectError(PolicyBinderError):
    """Store refused the write because the object is invalid or denied"""


class TransientStoreError(PolicyBinderError):
    """Store call failed in a way that is expected to heal (timeout, outage)"""


class ConflictError(TransientStoreError):
    """Write was based on a stale resource version"""


# Worker pool runtime


class RuntimeDriverError(PolicyBinderError):
    """Worker pool runtime driver could not apply a change; retryable"""

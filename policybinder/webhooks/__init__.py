"""Admission hooks: the defaulting and validation stages."""

from .defaulting import default_object, on_mutate
from .types import Decision, Operation
from .validation import (check_policy_server_unchanged, check_rules,
                         on_validate, validate_policy, validate_policy_server)

__all__ = [
    "Decision",
    "Operation",
    "default_object",
    "on_mutate",
    "on_validate",
    "validate_policy",
    "validate_policy_server",
    "check_rules",
    "check_policy_server_unchanged",
]

"""Defaulting stage: mutations applied to objects before they are persisted."""

import copy
from typing import Any, Dict

from policybinder.constants import FINALIZER
from policybinder.core.logging import get_logger
from policybinder.models.kinds import ResourceKind
from policybinder.models.meta import ObjectKey, add_finalizer
from policybinder.webhooks.types import Operation

logger = get_logger(__name__)


def default_object(obj: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of ``obj`` carrying the deletion-guard finalizer.

    Applying it to its own output returns an equal object.
    """
    mutated = copy.deepcopy(obj)
    add_finalizer(mutated, FINALIZER)
    return mutated


def on_mutate(kind: ResourceKind, operation: Operation, obj: Dict[str, Any]) -> Dict[str, Any]:
    """Mutating admission entry point.

    Only creations are defaulted: an update may be the one removing the
    finalizer from an object being deleted and must pass through untouched.
    """
    if Operation(operation) != Operation.CREATE:
        return copy.deepcopy(obj)

    logger.debug(f"Defaulting {kind} {ObjectKey.from_object(obj)}")
    return default_object(obj)

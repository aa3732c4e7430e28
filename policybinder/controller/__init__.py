"""Reconciliation package."""

from .index import build_reverse_index, load_reverse_index
from .reconciler import BindingReconciler, ReconcileResult
from .status import project, project_policy_server

__all__ = [
    "BindingReconciler",
    "ReconcileResult",
    "build_reverse_index",
    "load_reverse_index",
    "project",
    "project_policy_server",
]

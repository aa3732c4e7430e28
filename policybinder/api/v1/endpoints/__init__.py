"""API routes package."""

from . import admission, health

__all__ = ["admission", "health"]

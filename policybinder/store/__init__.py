"""Resource store implementations."""

from .base import Store, WatchEvent
from .memory import MemoryStore

__all__ = ["Store", "WatchEvent", "MemoryStore"]

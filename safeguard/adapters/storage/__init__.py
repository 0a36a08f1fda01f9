"""
Storage adapters for SafeGuard hexagonal architecture.

This module contains the durable and in-memory implementations
of the alert task storage port.
"""

from .sqlite_tasks import SQLiteTaskStore
from .memory import InMemoryTaskStore

__all__ = ["SQLiteTaskStore", "InMemoryTaskStore"]

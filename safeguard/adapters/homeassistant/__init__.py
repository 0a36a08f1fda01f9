"""
Home Assistant adapters for SafeGuard.
"""

from .client import HAClient, HALocationSource, HANotifySender

__all__ = ["HAClient", "HALocationSource", "HANotifySender"]

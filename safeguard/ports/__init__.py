"""
Port interfaces for SafeGuard hexagonal architecture.

This module defines the port interfaces (Protocols) that define
the contracts between the core domain and external collaborators.
"""

from .zones import ZoneSourcePort, ZoneProviderPort
from .location import LocationSourcePort, LocationWatchPort
from .profile import ProfileStorePort
from .dispatch import AlertSendPort, AlertQueuePort
from .storage import TaskStoragePort

__all__ = [
    "ZoneSourcePort", "ZoneProviderPort",
    "LocationSourcePort", "LocationWatchPort",
    "ProfileStorePort",
    "AlertSendPort", "AlertQueuePort",
    "TaskStoragePort",
]

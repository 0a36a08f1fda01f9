"""
Adapters for SafeGuard hexagonal architecture.

This module contains the concrete implementations of port interfaces
that handle external I/O and infrastructure concerns.
"""

from .storage import SQLiteTaskStore, InMemoryTaskStore
from .mqtt_local.publisher import DryRunAlertSender
from .mqtt_local.publisher_async import MqttAlertSender
from .mqtt_remote.client_async import MqttLocationWatcher
from .homeassistant.client import HAClient, HALocationSource, HANotifySender
from .zones import FileZoneSource, HttpZoneSource
from .profile.static import StaticProfileStore

__all__ = [
    "SQLiteTaskStore", "InMemoryTaskStore",
    "DryRunAlertSender", "MqttAlertSender", "MqttLocationWatcher",
    "HAClient", "HALocationSource", "HANotifySender",
    "FileZoneSource", "HttpZoneSource",
    "StaticProfileStore",
]

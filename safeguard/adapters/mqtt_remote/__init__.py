"""
MQTT location ingestion adapter for SafeGuard.

This module provides the device location stream received over MQTT.
"""

from .client_async import MqttLocationWatcher

__all__ = ["MqttLocationWatcher"]

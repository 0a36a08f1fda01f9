"""
MQTT alert sending adapter for SafeGuard.

This module provides the implementation of AlertSendPort
for publishing alert tasks to an MQTT broker.
"""

from .publisher import DryRunAlertSender
from .publisher_async import MqttAlertSender

__all__ = ["DryRunAlertSender", "MqttAlertSender"]

"""
Orchestrators for SafeGuard.

This module contains the orchestrator that coordinates
the flow between ports, core services and adapters.
"""
from .orchestrator import Orchestrator

__all__ = ["Orchestrator"]

"""
Core domain models and pure functions for SafeGuard.

This module contains the domain models and pure business logic
that are independent of external I/O and infrastructure concerns.
"""

from .models import (
    AlertTask, Coordinate, Factor, GeofenceEvent, PanicSession,
    SafetyAssessment, SafetyZone, risk_bucket,
)
from .classifier import classify
from .scoring import ScoreContext, score

__all__ = [
    "AlertTask", "Coordinate", "Factor", "GeofenceEvent", "PanicSession",
    "SafetyAssessment", "SafetyZone", "risk_bucket",
    "classify", "ScoreContext", "score",
]

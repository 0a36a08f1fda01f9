"""
Safety zone source adapters for SafeGuard.
"""

from .file_source import FileZoneSource
from .http_source import HttpZoneSource

__all__ = ["FileZoneSource", "HttpZoneSource"]

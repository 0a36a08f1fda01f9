"""
Profile store adapters for SafeGuard.
"""

from .static import StaticProfileStore

__all__ = ["StaticProfileStore"]

"""
Update detection: first load on startup and manifest re-checks afterwards.
"""

from .coordinator import UpdateCoordinator

__all__ = ["UpdateCoordinator"]

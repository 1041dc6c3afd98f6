"""
Request routing for the Offline Service.
"""

from .router import OfflineRequest, OfflineRouter, RequestClass

__all__ = ["OfflineRequest", "OfflineRouter", "RequestClass"]

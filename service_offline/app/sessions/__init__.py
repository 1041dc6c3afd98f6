"""
Session handling: the registry of live page loads and the pin-once binder.
"""

from .binder import BindingTable, SessionCacheBinder
from .registry import SESSION_HEADER, SessionRegistry

__all__ = [
    "BindingTable",
    "SessionCacheBinder",
    "SESSION_HEADER",
    "SessionRegistry",
]

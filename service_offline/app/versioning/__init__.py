"""
Version naming for offline caches.

Store entity names are flat strings (``<base_name>-v<version>``); everything
inside the service works with the structured ``CacheKey`` instead.
"""

from .models import CacheKey, Manifest, cache_base_name, normalize_resource_id

__all__ = [
    "CacheKey",
    "Manifest",
    "cache_base_name",
    "normalize_resource_id",
]

"""
Adapters package for the Offline Service.

HTTP clients for the origin behind the deployment scope:

- NetworkFetcher: resource fetches (with cache-mode directives) and
  pass-through forwarding
- ManifestClient: fresh manifest fetches with retry and circuit breaking

Errors are mapped to shared errors; adapters hold no cache state.
"""

from .network import CacheMode, NetworkFetcher
from .manifest_client import ManifestClient

__all__ = [
    "CacheMode",
    "NetworkFetcher",
    "ManifestClient",
]

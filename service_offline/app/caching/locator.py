"""
Version discovery and pruning for versioned caches.
"""

import asyncio
from typing import List, Optional, TYPE_CHECKING

from shared.logging import get_logger
from ..versioning import CacheKey
from ..versioning.models import VERSION_SEPARATOR
from .store import CacheStore, VersionedCache

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


class VersionLocator:
    """Enumerates this deployment's cache versions and opens the newest one."""

    def __init__(self, store: CacheStore, base_name: str):
        self.store = store
        self.base_name = base_name
        self.logger = get_logger("offline.locator")

    async def list_versions(self) -> List[CacheKey]:
        """All parseable versions for this base name, ascending."""
        prefix = f"{self.base_name}{VERSION_SEPARATOR}"
        keys: List[CacheKey] = []

        for name in await self.store.keys():
            key = CacheKey.parse(name, self.base_name)
            if key is None:
                if name.startswith(prefix):
                    self.logger.warning("Ignoring cache with malformed version", cache=name)
                continue
            keys.append(key)

        keys.sort()
        return keys

    async def open(self, key: CacheKey) -> VersionedCache:
        handle = await self.store.open(key.name)
        return VersionedCache(key=key, handle=handle)

    async def has_version(self, version: int) -> bool:
        return await self.store.has(CacheKey(base_name=self.base_name, version=version).name)

    async def find_newest(self) -> Optional[VersionedCache]:
        """Open the newest version, or return None when no version exists."""
        keys = await self.list_versions()
        if not keys:
            return None

        newest = keys[-1]
        self.logger.debug("Using newest cache", cache=newest.name)
        return await self.open(newest)


class GarbageCollector:
    """Deletes every version but the newest.

    Only call this where "most recent wins" is the wanted retention policy:
    it knows nothing about sessions that may still be pinned to older
    versions. The router calls it for navigation requests only.
    """

    def __init__(self, locator: VersionLocator, metrics: Optional["MetricsCollector"] = None):
        self.locator = locator
        self.metrics = metrics
        self.logger = get_logger("offline.gc")

    async def prune_to_newest(self) -> Optional[VersionedCache]:
        keys = await self.locator.list_versions()
        self.logger.debug("Version list", versions=[key.version for key in keys])

        if not keys:
            return None

        stale = keys[:-1]
        if stale:
            removed = await asyncio.gather(*(self.locator.store.delete(key.name) for key in stale))
            for key, was_present in zip(stale, removed):
                if was_present:
                    self.logger.info("Deleted old cache", cache=key.name)
                    if self.metrics:
                        self.metrics.increment_counter("caches_pruned_total")
                else:
                    self.logger.debug("Old cache already removed", cache=key.name)

        newest = keys[-1]
        if self.metrics:
            self.metrics.set_gauge("newest_cache_version", newest.version)
        self.logger.debug("Using newest cache", cache=newest.name)
        return await self.locator.open(newest)

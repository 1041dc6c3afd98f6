"""
First load and background update checks.
"""

import asyncio
from typing import Callable, Optional, Set, TYPE_CHECKING

from shared.logging import get_logger
from ..adapters.manifest_client import ManifestClient
from ..caching.builder import CacheBuilder
from ..caching.locator import VersionLocator
from ..versioning import CacheKey, Manifest, normalize_resource_id

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


class UpdateCoordinator:
    """Decides when a manifest version needs building and hands it to the builder.

    Neither entry point raises: a failed first load or update check is logged
    and the service keeps serving whatever it already has (or the network).
    """

    def __init__(
        self,
        manifest_client: ManifestClient,
        builder: CacheBuilder,
        locator: VersionLocator,
        scope_url: str,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.manifest_client = manifest_client
        self.builder = builder
        self.locator = locator
        self.scope_url = scope_url
        self.metrics = metrics
        self.logger = get_logger("offline.updates")
        self._building: Set[int] = set()

    def normalize(self, main_resource_id: str) -> str:
        return normalize_resource_id(main_resource_id, self.scope_url) if main_resource_id else ""

    async def activate(self, main_page_url: str = "") -> Optional[CacheKey]:
        """First load: build the current manifest, including the main document."""
        main_resource_id = self.normalize(main_page_url)
        self.logger.info("Activating", scope=self.scope_url, main_page=main_resource_id)
        if not main_resource_id:
            self.logger.warning(
                "No main page known at activation, navigation document will not be cached "
                "until the next manifest version; set ACCESS_MAIN_PAGE_URL",
                scope=self.scope_url
            )

        try:
            manifest = (await self.manifest_client.fetch_manifest()).with_main_resource(main_resource_id)
            return await self._build(manifest, first_load=True)
        except Exception as exc:
            self.logger.warning("Error activating", error=str(exc), exc_info=True)
            self._record("failed")
            return None

    async def check_for_update(self, main_resource_id: str) -> Optional[CacheKey]:
        """Build the manifest's version if no cache for it exists yet.

        Returns the new version's key, or None when up to date, already
        building, or failed.
        """
        main_resource_id = self.normalize(main_resource_id)
        self.logger.info("Checking for update", main_page=main_resource_id)

        try:
            manifest = (await self.manifest_client.fetch_manifest()).with_main_resource(main_resource_id)

            if await self.locator.has_version(manifest.version):
                self.logger.info("Up-to-date", version=manifest.version)
                self._record("up_to_date")
                return None

            self.logger.info("New version available", version=manifest.version)
            return await self._build(manifest, first_load=False)
        except Exception as exc:
            self.logger.error("Error checking for update", error=str(exc), exc_info=True)
            self._record("failed")
            return None

    async def _build(self, manifest: Manifest, first_load: bool) -> Optional[CacheKey]:
        if manifest.version in self._building:
            self.logger.info("Build already in progress", version=manifest.version)
            self._record("in_progress")
            return None

        self._building.add(manifest.version)
        try:
            key = await self.builder.build(manifest, first_load=first_load)
        finally:
            self._building.discard(manifest.version)

        self._record("built")
        return key

    async def run_periodic(self, interval: float, main_page_url: Callable[[], str]) -> None:
        """Re-check the manifest every ``interval`` seconds until cancelled."""
        self.logger.info("Starting periodic update checks", interval_seconds=interval)
        while True:
            await asyncio.sleep(interval)
            await self.check_for_update(main_page_url())

    def _record(self, result: str) -> None:
        if self.metrics:
            self.metrics.increment_counter("update_checks_total", result=result)

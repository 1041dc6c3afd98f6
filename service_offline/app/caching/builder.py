"""
Builds a versioned cache from a manifest.
"""

import asyncio
import time
from typing import Any, Dict, List, Optional, TYPE_CHECKING

from shared.errors import IncompleteFetchSetError
from shared.logging import get_logger
from ..adapters.network import CacheMode, NetworkFetcher
from ..versioning import CacheKey, Manifest, normalize_resource_id
from .store import CacheStore

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


DEFAULT_GRACE_PERIOD_SECONDS = 1.0


class CacheBuilder:
    """Fetches a manifest's full file set and publishes it as a new cache version.

    Nothing is written to the store unless every file fetched successfully.
    Before naming the cache the builder waits ``grace_period`` seconds: a page
    load only gets pinned to a version on its first sub-resource request, so a
    cache created between the main document and that request would split the
    page across two versions. The wait makes that less likely; it does not
    rule it out.
    """

    def __init__(
        self,
        store: CacheStore,
        fetcher: NetworkFetcher,
        base_name: str,
        *,
        grace_period: float = DEFAULT_GRACE_PERIOD_SECONDS,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.store = store
        self.fetcher = fetcher
        self.base_name = base_name
        self.grace_period = grace_period
        self.metrics = metrics
        self.logger = get_logger("offline.builder")

    async def build(self, manifest: Manifest, first_load: bool) -> CacheKey:
        """Build the cache for ``manifest.version``.

        First loads use the default cache mode so concurrent identical requests
        are shared; update builds reload every file from the origin.
        """
        cache_mode = CacheMode.DEFAULT if first_load else CacheMode.RELOAD
        files = list(manifest.files)
        start = time.perf_counter()

        self.logger.info(
            "Requesting files to cache",
            version=manifest.version,
            files=len(files),
            cache_mode=cache_mode.value
        )

        results = await asyncio.gather(
            *(self.fetcher.fetch(file_id, cache_mode=cache_mode) for file_id in files),
            return_exceptions=True
        )

        failures: List[Dict[str, Any]] = []
        for file_id, result in zip(files, results):
            if isinstance(result, BaseException):
                failures.append({"file": file_id, "error": str(result)})
            elif not result.ok:
                failures.append({"file": file_id, "status": result.status, "reason": result.reason})

        if len(results) != len(files) or failures:
            self._record_build("incomplete", cache_mode, start)
            self.logger.warning(
                "Aborting build, file set incomplete",
                version=manifest.version,
                failures=failures
            )
            raise IncompleteFetchSetError(
                manifest.version,
                failures,
                expected=len(files),
                received=len(results) - len(failures),
            )

        self.logger.info("Finished fetching files", version=manifest.version)

        await asyncio.sleep(self.grace_period)

        key = CacheKey(base_name=self.base_name, version=manifest.version)
        self.logger.info("Opening cache", cache=key.name)
        handle = await self.store.open(key.name)

        # Keyed the way the router looks requests up, whatever form the manifest used
        keys = [self.resource_key(file_id) for file_id in files]

        # Not atomic as a set; nobody is handed this version until we return
        await asyncio.gather(*(handle.put(resource_id, response) for resource_id, response in zip(keys, results)))

        self._record_build("published", cache_mode, start)
        self.logger.info("Finished caching files, ready to work offline", cache=key.name, files=len(files))
        return key

    def resource_key(self, file_id: str) -> str:
        """Store key for a manifest entry.

        ``./a.js``, ``/app/a.js`` and ``https://example.com/app/a.js`` all map
        to ``a.js`` under scope ``https://example.com/app/``.
        """
        return normalize_resource_id(self.fetcher.resolve(file_id), self.fetcher.scope_url)

    def _record_build(self, result: str, cache_mode: CacheMode, start: float) -> None:
        if not self.metrics:
            return
        self.metrics.increment_counter("cache_builds_total", result=result)
        self.metrics.observe_histogram(
            "cache_build_duration_seconds",
            time.perf_counter() - start,
            mode=cache_mode.value
        )

"""
Request routing between versioned caches and the network.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Dict, Optional, Set, TYPE_CHECKING

from shared.logging import get_logger, set_session_context
from ..adapters.network import NetworkFetcher
from ..caching.locator import GarbageCollector
from ..caching.store import CachedResponse, VersionedCache
from ..sessions.binder import SessionCacheBinder
from ..sessions.registry import SESSION_HEADER
from ..updates.coordinator import UpdateCoordinator
from ..versioning import normalize_resource_id

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


class RequestClass(str, Enum):
    """How the router treats a request."""

    NAVIGATION = "navigation"
    SUBRESOURCE = "subresource"
    PASSTHROUGH = "passthrough"


@dataclass
class OfflineRequest:
    """An inbound request as seen by the router."""

    url: str
    method: str = "GET"
    session_id: Optional[str] = None
    navigate: bool = False
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""


class OfflineRouter:
    """Serves in-scope GET requests from the right cache version, else the network.

    Navigation requests carry no session yet: they prune old versions, use
    whatever is newest, and kick off an update check in the background.
    Sub-resource requests use the version their session is pinned to.
    """

    def __init__(
        self,
        scope_url: str,
        binder: SessionCacheBinder,
        collector: GarbageCollector,
        coordinator: UpdateCoordinator,
        fetcher: NetworkFetcher,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.scope_url = scope_url
        self.binder = binder
        self.collector = collector
        self.coordinator = coordinator
        self.fetcher = fetcher
        self.metrics = metrics
        self.logger = get_logger("offline.router")
        self._background: Set[asyncio.Task] = set()

    def in_scope(self, url: str) -> bool:
        return url.startswith(self.scope_url)

    def classify(self, request: OfflineRequest) -> RequestClass:
        if not self.in_scope(request.url) or request.method.upper() != "GET":
            return RequestClass.PASSTHROUGH
        if request.navigate:
            return RequestClass.NAVIGATION
        return RequestClass.SUBRESOURCE

    async def handle(self, request: OfflineRequest) -> CachedResponse:
        request_class = self.classify(request)

        if request_class is RequestClass.PASSTHROUGH:
            self.logger.debug("Out-of-scope or non-GET request", method=request.method, url=request.url)
            return await self._network(request, reason="passthrough")

        set_session_context(request.session_id)
        self.logger.debug(
            "Fetch event",
            url=request.url,
            request_class=request_class.value,
            session_id=request.session_id
        )

        if request_class is RequestClass.NAVIGATION:
            # Not awaited: the response never waits on the update check
            self.spawn(self.coordinator.check_for_update(request.url))
            lookup = self.collector.prune_to_newest()
        else:
            lookup = self.binder.resolve(request.session_id)

        response = await self._match(request, request_class, lookup)
        if response is not None:
            self.logger.debug("Returned from cache", url=request.url)
            return response

        self.logger.debug("Not in cache, dispatching to network", url=request.url)
        return await self._network(request, reason="miss")

    async def _match(
        self,
        request: OfflineRequest,
        request_class: RequestClass,
        lookup: Awaitable[Optional[VersionedCache]],
    ) -> Optional[CachedResponse]:
        try:
            cache = await lookup
            if cache is None:
                self._record_lookup(request_class, "no_cache")
                return None

            response = await cache.match(normalize_resource_id(request.url, self.scope_url))
        except Exception as exc:
            self.logger.warning("Cache lookup failed, falling back to network", url=request.url, error=str(exc))
            self._record_lookup(request_class, "error")
            return None

        self._record_lookup(request_class, "hit" if response is not None else "miss")
        return response

    async def _network(self, request: OfflineRequest, *, reason: str) -> CachedResponse:
        if self.metrics:
            self.metrics.increment_counter("network_fallbacks_total", reason=reason)
        headers = {
            key: value for key, value in request.headers.items()
            if key.lower() != SESSION_HEADER.lower()
        }
        return await self.fetcher.forward(request.method, request.url, headers, request.body)

    def spawn(self, coro: Awaitable) -> "asyncio.Task":
        """Run ``coro`` in the background, holding a reference until it finishes."""
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def drain(self) -> None:
        """Wait for background work started by earlier requests."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def cancel_background(self) -> None:
        for task in list(self._background):
            task.cancel()
        await asyncio.gather(*list(self._background), return_exceptions=True)

    def _record_lookup(self, request_class: RequestClass, result: str) -> None:
        if self.metrics:
            self.metrics.increment_counter("cache_lookups_total", request_class=request_class.value, result=result)

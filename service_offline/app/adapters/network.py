"""
Network fetch client for the deployment origin.
"""

import asyncio
from enum import Enum
from typing import Dict, Mapping, Optional
from urllib.parse import urljoin

import httpx

from shared.errors import ExternalServiceError
from shared.logging import get_logger
from ..caching.store import CachedResponse


class CacheMode(str, Enum):
    """How a fetch treats transport-level caches between us and the origin.

    ``DEFAULT`` lets identical in-flight requests share one response.
    ``RELOAD`` and ``NO_STORE`` always hit the origin and send no-cache
    directives so intermediaries cannot answer with stale bytes.
    """

    DEFAULT = "default"
    RELOAD = "reload"
    NO_STORE = "no-store"


_CACHE_DIRECTIVES: Dict[CacheMode, Dict[str, str]] = {
    CacheMode.DEFAULT: {},
    CacheMode.RELOAD: {"Cache-Control": "no-cache", "Pragma": "no-cache"},
    CacheMode.NO_STORE: {"Cache-Control": "no-store", "Pragma": "no-cache"},
}

# Hop-by-hop headers, plus the ones httpx invalidates by decoding the body
_DROPPED_HEADERS = frozenset({
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailer",
    "transfer-encoding",
    "upgrade",
    "content-encoding",
    "content-length",
    "host",
})


def _filter_headers(headers: Mapping[str, str]) -> Dict[str, str]:
    return {key: value for key, value in headers.items() if key.lower() not in _DROPPED_HEADERS}


def to_cached_response(response: httpx.Response) -> CachedResponse:
    return CachedResponse(
        url=str(response.url),
        status=response.status_code,
        reason=response.reason_phrase,
        headers=tuple(
            (key, value) for key, value in response.headers.multi_items()
            if key.lower() not in _DROPPED_HEADERS
        ),
        body=response.content,
    )


class NetworkFetcher:
    """Fetches resources from the origin behind the deployment scope."""

    def __init__(
        self,
        scope_url: str,
        *,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.scope_url = scope_url
        self.logger = get_logger("offline.network")
        self._client = client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)
        self._in_flight: Dict[str, "asyncio.Task[CachedResponse]"] = {}

    def resolve(self, request_id: str) -> str:
        """Absolute URL for a resource id (ids are relative to the scope)."""
        return urljoin(self.scope_url, request_id)

    async def fetch(self, request_id: str, *, cache_mode: CacheMode = CacheMode.DEFAULT) -> CachedResponse:
        """GET a resource. Non-2xx statuses are returned, transport failures raise."""
        url = self.resolve(request_id)

        if cache_mode is not CacheMode.DEFAULT:
            return await self._get(url, _CACHE_DIRECTIVES[cache_mode])

        task = self._in_flight.get(url)
        if task is None:
            task = asyncio.ensure_future(self._get(url, {}))
            self._in_flight[url] = task
            task.add_done_callback(lambda done, key=url: self._release(key, done))
        else:
            self.logger.debug("Sharing in-flight request", url=url)

        return await asyncio.shield(task)

    def _release(self, url: str, task: "asyncio.Task[CachedResponse]") -> None:
        if self._in_flight.get(url) is task:
            del self._in_flight[url]

    async def _get(self, url: str, headers: Dict[str, str]) -> CachedResponse:
        try:
            response = await self._client.get(url, headers=headers)
        except httpx.HTTPError as exc:
            self.logger.warning("Origin request failed", url=url, error=str(exc))
            raise ExternalServiceError(
                service="origin",
                message=str(exc) or exc.__class__.__name__,
                details={"url": url}
            ) from exc

        return to_cached_response(response)

    async def forward(
        self,
        method: str,
        url: str,
        headers: Optional[Mapping[str, str]] = None,
        content: bytes = b"",
    ) -> CachedResponse:
        """Send a request to the network unchanged (cache misses and pass-through)."""
        try:
            response = await self._client.request(
                method,
                url,
                headers=_filter_headers(headers or {}),
                content=content or None,
            )
        except httpx.HTTPError as exc:
            self.logger.warning("Network request failed", method=method, url=url, error=str(exc))
            raise ExternalServiceError(
                service="origin",
                message=str(exc) or exc.__class__.__name__,
                details={"url": url, "method": method}
            ) from exc

        return to_cached_response(response)

    async def close(self) -> None:
        await self._client.aclose()

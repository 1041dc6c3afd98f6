"""
Manifest client for the offline bundle descriptor (``offline.js``).
"""

import random
from typing import Optional

import pydantic

from shared.circuit_breaker import CircuitBreaker, CircuitBreakerOpenException
from shared.errors import ExternalServiceError, ManifestFetchError
from shared.logging import get_logger
from shared.retry import RetryConfig, RetryError, retry_on_exception
from ..caching.store import CachedResponse
from ..versioning import Manifest
from .network import CacheMode, NetworkFetcher


class ManifestClient:
    """Fetches the manifest fresh on every call; the manifest itself is never cached."""

    def __init__(
        self,
        fetcher: NetworkFetcher,
        manifest_path: str = "offline.js",
        *,
        retry_config: Optional[RetryConfig] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        self.fetcher = fetcher
        self.manifest_path = manifest_path
        self.logger = get_logger("offline.manifest_client")

        self.circuit_breaker = circuit_breaker or CircuitBreaker(
            failure_threshold=3,
            recovery_timeout=30.0,
            name="manifest"
        )

        self.retry_config = retry_config or RetryConfig(
            max_attempts=3,
            base_delay=0.5,
            max_delay=5.0,
            exponential_base=2.0,
            jitter=True
        )
        self._request = retry_on_exception((ExternalServiceError,), config=self.retry_config)(self._request_once)

    def manifest_request_id(self) -> str:
        # Random query string so no intermediary can answer from its cache
        return f"{self.manifest_path}?r={random.randrange(1_000_000)}"

    async def _request_once(self) -> CachedResponse:
        return await self.fetcher.fetch(self.manifest_request_id(), cache_mode=CacheMode.NO_STORE)

    async def _fetch_manifest(self) -> Manifest:
        response = await self._request()

        if not response.ok:
            raise ManifestFetchError(
                f"Unexpected status {response.status} {response.reason}".rstrip(),
                details={"status_code": response.status, "url": response.url}
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise ManifestFetchError("Manifest is not valid JSON", details={"url": response.url}) from exc

        try:
            return Manifest.model_validate(data)
        except pydantic.ValidationError as exc:
            raise ManifestFetchError(
                "Manifest does not match {version, files}",
                details={"url": response.url, "errors": exc.errors(include_url=False)}
            ) from exc

    async def fetch_manifest(self) -> Manifest:
        """Fetch and parse the manifest, raising ManifestFetchError on any failure."""
        self.logger.info("Fetching manifest", path=self.manifest_path)

        try:
            manifest = await self.circuit_breaker.call(self._fetch_manifest)
        except ManifestFetchError:
            raise
        except RetryError as exc:
            raise ManifestFetchError(
                str(exc.last_exception),
                details={"attempts": exc.attempts}
            ) from exc
        except CircuitBreakerOpenException as exc:
            raise ManifestFetchError(str(exc), details={"circuit_breaker": self.circuit_breaker.name}) from exc

        self.logger.info("Fetched manifest", version=manifest.version, files=len(manifest.files))
        return manifest

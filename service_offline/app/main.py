"""
Offline Bundle service.
"""

import asyncio
from typing import Any, Dict, Optional, Set
from urllib.parse import urlsplit

import httpx
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from shared.base_service import BaseService
from shared.config import ServiceConfig, get_config
from shared.errors import ExternalServiceError, ValidationError
from .adapters import ManifestClient, NetworkFetcher
from .caching.builder import CacheBuilder
from .caching.locator import GarbageCollector, VersionLocator
from .caching.redis_store import RedisCacheStore
from .caching.store import CacheStore, MemoryCacheStore
from .routing import OfflineRequest, OfflineRouter, RequestClass
from .sessions import SESSION_HEADER, SessionCacheBinder, SessionRegistry
from .updates import UpdateCoordinator
from .versioning import cache_base_name


PROXY_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


class UpdateCheckRequest(BaseModel):
    """Body of a manual update check."""

    main_resource_id: Optional[str] = None


class OfflineService(BaseService):
    """Offline bundle service implementation."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        *,
        store: Optional[CacheStore] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__("offline", 8080, config)
        scope_url = self._validated_scope_url()
        self.base_name = cache_base_name(self.config.cache_name_prefix, scope_url)

        self.store = store or self._create_store()
        self.fetcher = NetworkFetcher(
            scope_url,
            timeout=self.config.fetch_timeout_seconds,
            client=http_client,
        )
        self.manifest_client = ManifestClient(self.fetcher, self.config.manifest_path)

        self.locator = VersionLocator(self.store, self.base_name)
        self.collector = GarbageCollector(self.locator, metrics=self.metrics)
        self.builder = CacheBuilder(
            self.store,
            self.fetcher,
            self.base_name,
            grace_period=self.config.build_grace_period_seconds,
            metrics=self.metrics,
        )
        self.coordinator = UpdateCoordinator(
            self.manifest_client,
            self.builder,
            self.locator,
            scope_url,
            metrics=self.metrics,
        )

        self.binder = SessionCacheBinder(self.locator, metrics=self.metrics)
        self.sessions = SessionRegistry(
            max_sessions=self.config.max_sessions,
            idle_ttl=self.config.session_idle_ttl_seconds,
            on_expire=self.binder.forget,
        )
        self.router = OfflineRouter(
            scope_url,
            self.binder,
            self.collector,
            self.coordinator,
            self.fetcher,
            metrics=self.metrics,
        )

        self._tasks: Set[asyncio.Task] = set()

        self._setup_offline_routes()

        # Expose service instance via app state for introspection/testing
        self.app.state.offline_service = self

    def _validated_scope_url(self) -> str:
        """The configured scope, rejected if missing or pointing back at this service."""
        scope_url = self.config.scope_url
        if not scope_url:
            raise ValidationError("ACCESS_SCOPE_URL must be set to the origin this service fronts")

        parts = urlsplit(scope_url)
        if parts.scheme not in ("http", "https") or not parts.hostname:
            raise ValidationError(
                f"Scope '{scope_url}' is not an absolute http(s) URL",
                details={"scope_url": scope_url}
            )

        port = parts.port or (443 if parts.scheme == "https" else 80)
        own_hosts = {"localhost", "127.0.0.1", "0.0.0.0", self.config.host}
        if parts.hostname in own_hosts and port == self.config.port:
            raise ValidationError(
                f"Scope '{scope_url}' points at this service; misses would be proxied back to it",
                details={"scope_url": scope_url, "port": self.config.port}
            )

        return scope_url

    def _create_store(self) -> CacheStore:
        backend = self.config.store_backend.lower()
        if backend == "memory":
            return MemoryCacheStore()
        if backend == "redis":
            return RedisCacheStore.from_url(self.config.redis_url, self.config.store_namespace)
        raise ValidationError(
            f"Unknown store backend '{self.config.store_backend}'",
            details={"supported": ["memory", "redis"]}
        )

    def main_page_url(self) -> str:
        """Main document address: first live session, else the configured fallback."""
        return self.sessions.main_page_url() or self.config.main_page_url or ""

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def on_startup(self) -> None:
        if self.config.activate_on_startup:
            self._spawn(self.coordinator.activate(self.main_page_url()))

        interval = self.config.update_check_interval_seconds
        if interval > 0:
            self._spawn(self.coordinator.run_periodic(interval, self.main_page_url))

    async def on_shutdown(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
        await self.router.cancel_background()
        await self.fetcher.close()
        await self.store.close()

    async def _check_dependencies(self) -> Dict[str, str]:
        await self.store.ping()
        return {
            "store": "ok",
            "manifest_circuit": self.manifest_client.circuit_breaker.get_state()["state"],
        }

    def upstream_url(self, request: Request) -> str:
        """Map a proxied request onto the origin behind the scope."""
        scope = urlsplit(self.config.scope_url)
        url = f"{scope.scheme}://{scope.netloc}{request.url.path}"
        if request.url.query:
            url = f"{url}?{request.url.query}"
        return url

    def _setup_offline_routes(self):
        """Set up admin routes, then the catch-all proxy route."""

        @self.app.get("/_offline/versions")
        async def list_versions():
            """Known cache versions for this deployment."""
            self.sessions.expire()
            keys = await self.locator.list_versions()
            return {
                "base_name": self.base_name,
                "versions": [key.version for key in keys],
                "newest": keys[-1].version if keys else None,
                "live_sessions": len(self.sessions),
                "bound_sessions": len(self.binder.table),
            }

        @self.app.post("/_offline/update-check")
        async def trigger_update_check(body: Optional[UpdateCheckRequest] = None):
            """Run an update check now and report the version built, if any."""
            main_resource_id = (body.main_resource_id if body else None) or self.main_page_url()
            key = await self.coordinator.check_for_update(main_resource_id)
            return {"built_version": key.version if key else None}

        @self.app.delete("/_offline/sessions/{session_id}")
        async def end_session(session_id: str):
            """Report a session's end; its binding is dropped."""
            ended = self.sessions.end_session(session_id)
            unbound = self.binder.forget(session_id)
            return {"session_id": session_id, "ended": ended or unbound}

        @self.app.api_route("/{path:path}", methods=PROXY_METHODS)
        async def proxy(path: str, request: Request):
            """Serve a request from the offline cache or the network."""
            session_id = self.sessions.session_id_for(request.headers)
            # Unknown or expired sessions are not bound; they go to the network
            if session_id and not self.sessions.touch(session_id):
                session_id = None

            offline_request = OfflineRequest(
                url=self.upstream_url(request),
                method=request.method,
                session_id=session_id,
                navigate=request.headers.get("sec-fetch-mode") == "navigate",
                headers=dict(request.headers),
                body=await request.body(),
            )

            issued_session: Optional[str] = None
            if self.router.classify(offline_request) is RequestClass.NAVIGATION:
                issued_session = self.sessions.open_session(offline_request.url)

            try:
                result = await self.router.handle(offline_request)
            except ExternalServiceError as exc:
                self.metrics.record_error(exc.code)
                return JSONResponse(status_code=502, content=exc.to_response().model_dump())

            response = Response(content=result.body, status_code=result.status)
            for key, value in result.headers:
                response.headers.append(key, value)
            if issued_session:
                response.headers[SESSION_HEADER] = issued_session
            return response


def create_app(config: Optional[ServiceConfig] = None, **kwargs: Any):
    """Create FastAPI application."""
    service = OfflineService(config or get_config("offline", 8080), **kwargs)
    return service.app


if __name__ == "__main__":
    service = OfflineService()
    service.run()

"""
End-to-end tests for version rollover across page loads.
"""

import pytest

from conftest import SCOPE_URL
from service_offline.app.adapters import NetworkFetcher
from service_offline.app.caching.store import MemoryCacheStore
from service_offline.app.cli import build
from service_offline.app.main import OfflineService
from service_offline.app.routing import OfflineRequest
from shared.config import get_config


BASE = "offline-https://example.com/app/"


def _publish(origin, version):
    origin.serve(SCOPE_URL, f"<html>v{version}</html>", content_type="text/html")
    origin.serve("app.js", f"app v{version}", content_type="application/javascript")
    origin.serve("style.css", f"style v{version}", content_type="text/css")
    origin.serve_manifest(version, ["app.js", "style.css"])


class TestOfflineFlow:
    """Page loads keep their version while newer versions are built and rolled out."""

    @pytest.fixture
    def service(self, origin):
        config = get_config(
            "offline",
            8080,
            scope_url=SCOPE_URL,
            activate_on_startup=False,
            build_grace_period_seconds=0,
        )
        return OfflineService(config, store=MemoryCacheStore(), http_client=origin.client())

    async def _navigate(self, service):
        request = OfflineRequest(url=SCOPE_URL, navigate=True)
        session_id = service.sessions.open_session(request.url)
        response = await service.router.handle(request)
        return session_id, response

    async def _load(self, service, session_id, path):
        return await service.router.handle(OfflineRequest(url=f"{SCOPE_URL}{path}", session_id=session_id))

    @pytest.mark.asyncio
    async def test_pinned_session_survives_rollover(self, service, origin):
        _publish(origin, 1)
        assert (await service.coordinator.activate(SCOPE_URL)).version == 1

        old_session, page = await self._navigate(service)
        await service.router.drain()
        assert page.body == b"<html>v1</html>"
        assert (await self._load(service, old_session, "app.js")).body == b"app v1"

        _publish(origin, 2)
        new_session, page = await self._navigate(service)
        assert page.body == b"<html>v1</html>"
        await service.router.drain()

        assert [key.version for key in await service.locator.list_versions()] == [1, 2]

        # The old page keeps loading v1 files
        assert (await self._load(service, old_session, "style.css")).body == b"style v1"

        # A page that navigated before v2 existed but had not bound yet gets v2
        assert (await self._load(service, new_session, "app.js")).body == b"app v2"

        third_session, page = await self._navigate(service)
        await service.router.drain()
        assert page.body == b"<html>v2</html>"
        assert (await self._load(service, third_session, "style.css")).body == b"style v2"
        assert [key.version for key in await service.locator.list_versions()] == [2]

    @pytest.mark.asyncio
    async def test_failed_rollover_keeps_serving_current_version(self, service, origin):
        _publish(origin, 1)
        await service.coordinator.activate(SCOPE_URL)

        origin.serve_manifest(2, ["app.js", "style.css", "missing.js"])
        session_id, page = await self._navigate(service)
        await service.router.drain()

        assert page.body == b"<html>v1</html>"
        assert [key.version for key in await service.locator.list_versions()] == [1]
        assert (await self._load(service, session_id, "app.js")).body == b"app v1"

    @pytest.mark.asyncio
    async def test_session_started_without_cache_stays_on_network(self, service, origin):
        _publish(origin, 1)
        origin.serve("offline.js", "not yet", status=404)

        session_id, page = await self._navigate(service)
        await service.router.drain()
        assert page.body == b"<html>v1</html>"
        assert (await self._load(service, session_id, "app.js")).body == b"app v1"
        assert await service.locator.list_versions() == []

        origin.serve_manifest(1, ["app.js", "style.css"])
        later_session, _ = await self._navigate(service)
        await service.router.drain()
        assert [key.version for key in await service.locator.list_versions()] == [1]

        # Bound to "no cache" before the build: keeps going to the network
        fetches = origin.count("app.js")
        assert (await self._load(service, session_id, "app.js")).body == b"app v1"
        assert origin.count("app.js") == fetches + 1

        fetches = origin.count("app.js")
        assert (await self._load(service, later_session, "app.js")).body == b"app v1"
        assert origin.count("app.js") == fetches


class TestBuildCommand:
    """The build command runs the same pipeline against a given store."""

    @pytest.mark.asyncio
    async def test_build_then_skip_existing_version(self, origin):
        _publish(origin, 3)
        store = MemoryCacheStore()
        fetcher = NetworkFetcher(SCOPE_URL, client=origin.client())
        options = dict(
            store=store,
            fetcher=fetcher,
            scope_url=SCOPE_URL,
            prefix="offline",
            manifest_path="offline.js",
            main_page=SCOPE_URL,
            first_load=True,
            grace_period=0,
            prune=True,
            dry_run=False,
        )

        summary = await build(**options)

        assert summary["built"] is True
        assert summary["version"] == 3
        assert summary["files"] == [SCOPE_URL, "app.js", "style.css"]
        assert summary["pruned_to"] == 3
        assert await store.keys() == [f"{BASE}-v3"]

        summary = await build(**options)
        assert summary["built"] is False
        assert summary["existing_versions"] == [3]

    @pytest.mark.asyncio
    async def test_dry_run_writes_nothing(self, origin):
        _publish(origin, 1)
        store = MemoryCacheStore()

        summary = await build(
            store=store,
            fetcher=NetworkFetcher(SCOPE_URL, client=origin.client()),
            scope_url=SCOPE_URL,
            prefix="offline",
            manifest_path="offline.js",
            main_page=None,
            first_load=True,
            grace_period=0,
            prune=False,
            dry_run=True,
        )

        assert summary["files"] == ["app.js", "style.css"]
        assert summary["built"] is False
        assert await store.keys() == []
        assert origin.count("app.js") == 0

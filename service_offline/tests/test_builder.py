"""
Unit tests for CacheBuilder.
"""

import pytest
from unittest.mock import AsyncMock, patch

from service_offline.app.adapters.network import NetworkFetcher
from service_offline.app.caching.builder import CacheBuilder
from service_offline.app.caching.store import MemoryCacheStore
from service_offline.app.versioning import Manifest, cache_base_name
from shared.errors import IncompleteFetchSetError


@pytest.fixture
def store():
    return MemoryCacheStore()


@pytest.fixture
def builder(store, origin, scope_url, metrics):
    fetcher = NetworkFetcher(scope_url, client=origin.client())
    return CacheBuilder(
        store,
        fetcher,
        cache_base_name("offline", scope_url),
        grace_period=0,
        metrics=metrics,
    )


class TestCacheBuilder:
    """Test cases for CacheBuilder."""

    @pytest.mark.asyncio
    async def test_build_publishes_every_file(self, builder, store, origin):
        """Test a complete file set becomes a cache named after the version."""
        origin.serve("a.js", "console.log('a')", content_type="application/javascript")
        origin.serve("b.js", "console.log('b')", content_type="application/javascript")

        key = await builder.build(Manifest(version=5, files=["a.js", "b.js"]), first_load=True)

        assert key.name == "offline-https://example.com/app/-v5"
        assert await store.keys() == [key.name]

        handle = await store.open(key.name)
        cached = await handle.match("a.js")
        assert cached.body == b"console.log('a')"
        assert cached.header("content-type") == "application/javascript"
        assert (await handle.match("b.js")).body == b"console.log('b')"

    @pytest.mark.asyncio
    async def test_scope_root_is_fetched_and_keyed_by_scope(self, builder, store, origin, scope_url):
        """Test the main document at the scope root is cached under the scope string."""
        origin.serve(scope_url, "<html></html>", content_type="text/html")
        origin.serve("a.js", "a")

        key = await builder.build(Manifest(version=1, files=[scope_url, "a.js"]), first_load=True)

        handle = await store.open(key.name)
        assert (await handle.match(scope_url)).body == b"<html></html>"

    @pytest.mark.asyncio
    async def test_non_ok_status_aborts_build(self, builder, store, origin, metrics):
        """Test one failing file leaves no cache for the version."""
        origin.serve("a.js", "a")
        origin.serve("b.js", "boom", status=500)

        with pytest.raises(IncompleteFetchSetError) as exc_info:
            await builder.build(Manifest(version=5, files=["a.js", "b.js"]), first_load=True)

        assert exc_info.value.version == 5
        assert exc_info.value.failures == [{"file": "b.js", "status": 500, "reason": "Internal Server Error"}]
        assert await store.keys() == []
        assert ("cache_builds_total", {"result": "incomplete"}) in metrics.counters

    @pytest.mark.asyncio
    async def test_transport_error_aborts_build(self, builder, store, origin):
        """Test a network failure leaves no cache for the version."""
        origin.serve("a.js", "a")
        origin.fail("b.js")

        with pytest.raises(IncompleteFetchSetError) as exc_info:
            await builder.build(Manifest(version=2, files=["a.js", "b.js"]), first_load=False)

        assert [failure["file"] for failure in exc_info.value.failures] == ["b.js"]
        assert await store.keys() == []

    @pytest.mark.asyncio
    async def test_missing_file_aborts_build(self, builder, store, origin):
        origin.serve("a.js", "a")

        with pytest.raises(IncompleteFetchSetError):
            await builder.build(Manifest(version=3, files=["a.js", "gone.js"]), first_load=True)

        assert await store.keys() == []

    @pytest.mark.asyncio
    async def test_first_load_uses_default_cache_mode(self, builder, origin):
        origin.serve("a.js", "a")

        await builder.build(Manifest(version=1, files=["a.js"]), first_load=True)

        request = origin.requests_for("a.js")[0]
        assert "cache-control" not in request.headers

    @pytest.mark.asyncio
    async def test_update_build_reloads_from_origin(self, builder, origin):
        origin.serve("a.js", "a")

        await builder.build(Manifest(version=2, files=["a.js"]), first_load=False)

        request = origin.requests_for("a.js")[0]
        assert request.headers["cache-control"] == "no-cache"
        assert request.headers["pragma"] == "no-cache"

    @pytest.mark.asyncio
    async def test_grace_period_elapses_before_cache_is_named(self, builder, store, origin):
        """Test no cache entity exists while the grace period runs."""
        origin.serve("a.js", "a")
        builder.grace_period = 1.5

        async def check_store(delay):
            assert delay == 1.5
            assert await store.keys() == []

        with patch("service_offline.app.caching.builder.asyncio.sleep", AsyncMock(side_effect=check_store)) as sleep:
            await builder.build(Manifest(version=4, files=["a.js"]), first_load=True)

        sleep.assert_awaited_once_with(1.5)
        assert await store.keys() == ["offline-https://example.com/app/-v4"]

    @pytest.mark.asyncio
    async def test_records_published_build(self, builder, origin, metrics):
        origin.serve("a.js", "a")

        await builder.build(Manifest(version=1, files=["a.js"]), first_load=True)

        assert ("cache_builds_total", {"result": "published"}) in metrics.counters
        assert metrics.histograms[0][0] == "cache_build_duration_seconds"
        assert metrics.histograms[0][2] == {"mode": "default"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("entry", [
        "a.js",
        "./a.js",
        "/app/a.js",
        "https://example.com/app/a.js",
    ])
    async def test_entries_are_keyed_relative_to_scope(self, builder, store, origin, entry):
        """Test every way of writing an in-scope entry is stored under the routed key."""
        origin.serve("a.js", "a")

        key = await builder.build(Manifest(version=1, files=[entry]), first_load=True)

        handle = await store.open(key.name)
        assert handle.request_ids() == ["a.js"]
        assert (await handle.match("a.js")).body == b"a"

    @pytest.mark.asyncio
    async def test_out_of_scope_entry_is_keyed_by_absolute_url(self, builder, store, origin):
        origin.serve("https://cdn.example.net/lib.js", "lib")

        key = await builder.build(Manifest(version=1, files=["https://cdn.example.net/lib.js"]), first_load=True)

        assert (await store.open(key.name)).request_ids() == ["https://cdn.example.net/lib.js"]

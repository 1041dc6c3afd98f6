"""
Build or inspect offline caches from a workstation or CI job.

This mirrors what the service does on startup (first load) and on update
checks, but against a Redis store directly, so a fresh deployment can be
pre-built before any client navigates to it.
"""

import argparse
import asyncio
import json
import os
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from shared.logging import configure_logging
from .adapters import ManifestClient, NetworkFetcher
from .caching.builder import CacheBuilder
from .caching.locator import GarbageCollector, VersionLocator
from .caching.redis_store import RedisCacheStore
from .caching.store import CacheStore
from .versioning import cache_base_name, normalize_resource_id


async def build(
    *,
    store: CacheStore,
    fetcher: NetworkFetcher,
    scope_url: str,
    prefix: str,
    manifest_path: str,
    main_page: Optional[str],
    first_load: bool,
    grace_period: float,
    prune: bool,
    dry_run: bool,
) -> Dict[str, Any]:
    """Fetch the manifest and build its version unless it already exists."""
    base_name = cache_base_name(prefix, scope_url)
    locator = VersionLocator(store, base_name)
    manifest_client = ManifestClient(fetcher, manifest_path)

    main_resource_id = normalize_resource_id(main_page, scope_url) if main_page else ""
    manifest = (await manifest_client.fetch_manifest()).with_main_resource(main_resource_id)

    summary: Dict[str, Any] = {
        "base_name": base_name,
        "version": manifest.version,
        "files": manifest.files,
        "existing_versions": [key.version for key in await locator.list_versions()],
        "built": False,
        "pruned_to": None,
    }

    if dry_run:
        return summary

    if not await locator.has_version(manifest.version):
        builder = CacheBuilder(store, fetcher, base_name, grace_period=grace_period)
        await builder.build(manifest, first_load=first_load)
        summary["built"] = True

    if prune:
        newest = await GarbageCollector(locator).prune_to_newest()
        summary["pruned_to"] = newest.version if newest else None

    return summary


async def _run(args: argparse.Namespace) -> Dict[str, Any]:
    store = RedisCacheStore.from_url(args.redis_url, args.namespace)
    fetcher = NetworkFetcher(args.scope_url, timeout=args.timeout)
    try:
        return await build(
            store=store,
            fetcher=fetcher,
            scope_url=args.scope_url,
            prefix=args.prefix,
            manifest_path=args.manifest_path,
            main_page=args.main_page,
            first_load=not args.reload,
            grace_period=args.grace_period,
            prune=args.prune,
            dry_run=args.dry_run,
        )
    finally:
        await fetcher.close()
        await store.close()


def _parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Build the offline cache for the current manifest version.")
    parser.add_argument("--redis-url", default=os.getenv("ACCESS_REDIS_URL", "redis://localhost:6379/0"), help="Redis connection URL")
    parser.add_argument("--namespace", default=os.getenv("ACCESS_STORE_NAMESPACE", "offline"), help="Redis key namespace")
    parser.add_argument(
        "--scope-url",
        default=os.getenv("ACCESS_SCOPE_URL"),
        required=not os.getenv("ACCESS_SCOPE_URL"),
        help="Deployment scope URL (origin the service fronts)",
    )
    parser.add_argument("--prefix", default=os.getenv("ACCESS_CACHE_NAME_PREFIX", "offline"), help="Cache name prefix")
    parser.add_argument("--manifest-path", default=os.getenv("ACCESS_MANIFEST_PATH", "offline.js"), help="Manifest path relative to the scope")
    parser.add_argument("--main-page", default=None, help="Main document URL to include in the file list")
    parser.add_argument("--reload", action="store_true", help="Bypass transport caches for every file (update-build mode)")
    parser.add_argument("--grace-period", type=float, default=0.0, help="Seconds to wait before naming the new cache")
    parser.add_argument("--timeout", type=float, default=30.0, help="Per-request timeout in seconds")
    parser.add_argument("--prune", action="store_true", help="Delete all but the newest version afterwards")
    parser.add_argument("--dry-run", action="store_true", help="Fetch the manifest and print the plan without writing")
    parser.add_argument("--output", type=Path, default=None, help="Optional path to write JSON summary")
    parser.add_argument("--log-level", default=os.getenv("ACCESS_LOG_LEVEL", "warning"), help="Log level")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = _parse_args(argv)
    configure_logging("offline", args.log_level)
    try:
        summary = asyncio.run(_run(args))
    except KeyboardInterrupt:
        return 130
    except Exception as exc:  # pragma: no cover - CLI surface
        print(f"[offline-cache] failed: {exc}", file=sys.stderr)
        return 1

    if args.dry_run:
        print("[offline-cache] DRY RUN - no store writes executed")

    print(json.dumps(summary, indent=2))

    if args.output:
        args.output.write_text(json.dumps(summary, indent=2))

    return 0


if __name__ == "__main__":
    raise SystemExit(main())

"""
Redis-backed cache store.

Layout under ``<namespace>``:
- ``<namespace>:caches``: set of cache entity names
- ``<namespace>:cache:<name>``: hash of resource id -> serialized response
"""

from contextlib import asynccontextmanager
from typing import List, Optional

import redis.asyncio as redis

from shared.errors import StoreOperationError
from shared.logging import get_logger
from .store import CacheHandle, CacheStore, CachedResponse


@asynccontextmanager
async def _store_operation(operation: str, name: Optional[str] = None):
    try:
        yield
    except redis.RedisError as exc:
        raise StoreOperationError(operation, str(exc), {"cache": name}) from exc


class RedisCacheHandle(CacheHandle):
    """Handle on one Redis hash holding a cache entity."""

    def __init__(self, client: redis.Redis, name: str, hash_key: str):
        self.name = name
        self._client = client
        self._hash_key = hash_key

    async def match(self, request_id: str) -> Optional[CachedResponse]:
        async with _store_operation("match", self.name):
            payload = await self._client.hget(self._hash_key, request_id)
        if payload is None:
            return None
        return CachedResponse.from_json(payload)

    async def put(self, request_id: str, response: CachedResponse) -> None:
        async with _store_operation("put", self.name):
            await self._client.hset(self._hash_key, request_id, response.to_json())


class RedisCacheStore(CacheStore):
    """Cache store persisted in Redis."""

    def __init__(self, client: redis.Redis, namespace: str = "offline"):
        self._client = client
        self.namespace = namespace
        self.registry_key = f"{namespace}:caches"
        self.logger = get_logger("offline.store.redis")

    @classmethod
    def from_url(cls, redis_url: str, namespace: str = "offline") -> "RedisCacheStore":
        client = redis.from_url(
            redis_url,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
            retry_on_timeout=True,
            health_check_interval=30
        )
        return cls(client, namespace)

    def _hash_key(self, name: str) -> str:
        return f"{self.namespace}:cache:{name}"

    async def open(self, name: str) -> RedisCacheHandle:
        async with _store_operation("open", name):
            created = await self._client.sadd(self.registry_key, name)
        if created:
            self.logger.debug("Created cache entity", cache=name)
        return RedisCacheHandle(self._client, name, self._hash_key(name))

    async def has(self, name: str) -> bool:
        async with _store_operation("has", name):
            return bool(await self._client.sismember(self.registry_key, name))

    async def keys(self) -> List[str]:
        async with _store_operation("keys"):
            members = await self._client.smembers(self.registry_key)
        return sorted(members)

    async def delete(self, name: str) -> bool:
        async with _store_operation("delete", name):
            removed = await self._client.srem(self.registry_key, name)
            await self._client.delete(self._hash_key(name))
        return bool(removed)

    async def ping(self) -> bool:
        async with _store_operation("ping"):
            return bool(await self._client.ping())

    async def close(self) -> None:
        await self._client.aclose()

"""
Durable keyed cache store primitives.

A store holds named cache entities; each entity maps a resource id to a
stored response. ``MemoryCacheStore`` keeps everything in process and is used
for local runs and tests; ``RedisCacheStore`` (see ``redis_store``) persists
across restarts.
"""

from __future__ import annotations

import base64
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from ..versioning import CacheKey


@dataclass(frozen=True)
class CachedResponse:
    """A response payload as fetched from the origin or read from a cache."""

    url: str
    status: int
    headers: Tuple[Tuple[str, str], ...] = ()
    body: bytes = b""
    reason: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def header(self, name: str) -> Optional[str]:
        lowered = name.lower()
        for key, value in self.headers:
            if key.lower() == lowered:
                return value
        return None

    def json(self) -> Any:
        """Decode the body as JSON. Raises ValueError on malformed content."""
        return json.loads(self.body)

    def to_json(self) -> str:
        """Serialize for stores that only hold strings."""
        return json.dumps({
            "url": self.url,
            "status": self.status,
            "reason": self.reason,
            "headers": [list(pair) for pair in self.headers],
            "body": base64.b64encode(self.body).decode("ascii"),
        })

    @classmethod
    def from_json(cls, payload: str) -> "CachedResponse":
        data = json.loads(payload)
        return cls(
            url=data["url"],
            status=int(data["status"]),
            reason=data.get("reason", ""),
            headers=tuple((str(k), str(v)) for k, v in data.get("headers", [])),
            body=base64.b64decode(data.get("body", "")),
        )


class CacheHandle(ABC):
    """Handle on one named cache entity."""

    name: str

    @abstractmethod
    async def match(self, request_id: str) -> Optional[CachedResponse]:
        """Return the stored response for ``request_id`` or None."""

    @abstractmethod
    async def put(self, request_id: str, response: CachedResponse) -> None:
        """Store ``response`` under ``request_id``."""


class CacheStore(ABC):
    """Named cache entities. ``open`` creates an entity if it is absent."""

    @abstractmethod
    async def open(self, name: str) -> CacheHandle: ...

    @abstractmethod
    async def has(self, name: str) -> bool: ...

    @abstractmethod
    async def keys(self) -> List[str]: ...

    @abstractmethod
    async def delete(self, name: str) -> bool:
        """Delete an entity. Returns False if it did not exist."""

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None


@dataclass(frozen=True)
class VersionedCache:
    """An opened cache together with the version it holds."""

    key: CacheKey
    handle: CacheHandle

    @property
    def version(self) -> int:
        return self.key.version

    @property
    def name(self) -> str:
        return self.key.name

    async def match(self, request_id: str) -> Optional[CachedResponse]:
        return await self.handle.match(request_id)


class MemoryCacheHandle(CacheHandle):
    """Handle on an in-process cache entity."""

    def __init__(self, name: str, entries: Dict[str, CachedResponse]):
        self.name = name
        self._entries = entries

    async def match(self, request_id: str) -> Optional[CachedResponse]:
        return self._entries.get(request_id)

    async def put(self, request_id: str, response: CachedResponse) -> None:
        self._entries[request_id] = response

    def request_ids(self) -> List[str]:
        return list(self._entries)


class MemoryCacheStore(CacheStore):
    """In-process store. Entity names keep their creation order."""

    def __init__(self):
        self._caches: Dict[str, Dict[str, CachedResponse]] = {}

    async def open(self, name: str) -> MemoryCacheHandle:
        return MemoryCacheHandle(name, self._caches.setdefault(name, {}))

    async def has(self, name: str) -> bool:
        return name in self._caches

    async def keys(self) -> List[str]:
        return list(self._caches)

    async def delete(self, name: str) -> bool:
        return self._caches.pop(name, None) is not None

    def snapshot(self) -> Dict[str, Dict[str, CachedResponse]]:
        """Copy of the current contents, for inspection."""
        return {name: dict(entries) for name, entries in self._caches.items()}

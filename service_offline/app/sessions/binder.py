"""
Session to cache-version binding.
"""

from typing import Dict, Optional, Tuple, TYPE_CHECKING

from shared.logging import get_logger
from ..caching.locator import VersionLocator
from ..caching.store import VersionedCache

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


_ABSENT = object()


class BindingTable:
    """session id -> VersionedCache or None, each entry written at most once.

    A None entry is a real binding: the session started while no cache
    existed and goes to the network for its whole lifetime.
    """

    def __init__(self):
        self._entries: Dict[str, Optional[VersionedCache]] = {}

    def lookup(self, session_id: str) -> Tuple[bool, Optional[VersionedCache]]:
        if session_id in self._entries:
            return True, self._entries[session_id]
        return False, None

    def insert_if_absent(
        self, session_id: str, cache: Optional[VersionedCache]
    ) -> Tuple[Optional[VersionedCache], bool]:
        """Record ``cache`` unless an entry exists. Returns (winner, inserted)."""
        if session_id in self._entries:
            return self._entries[session_id], False
        self._entries[session_id] = cache
        return cache, True

    def discard(self, session_id: str) -> bool:
        return self._entries.pop(session_id, _ABSENT) is not _ABSENT

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class SessionCacheBinder:
    """Pins each session to the cache version that was newest when it was first seen.

    The first requests of a new session arrive together and all start a
    newest-version lookup. Whichever lookup finishes first is recorded; the
    others find the entry already present and return it instead of their own
    result.
    """

    def __init__(
        self,
        locator: VersionLocator,
        table: Optional[BindingTable] = None,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.locator = locator
        self.table = table if table is not None else BindingTable()
        self.metrics = metrics
        self.logger = get_logger("offline.binder")

    async def resolve(self, session_id: Optional[str]) -> Optional[VersionedCache]:
        if not session_id:
            return None

        found, cache = self.table.lookup(session_id)
        if found:
            return cache

        newest = await self.locator.find_newest()

        winner, inserted = self.table.insert_if_absent(session_id, newest)
        if inserted:
            self.logger.info(
                "Associating cache with session",
                session_id=session_id,
                cache=newest.name if newest else None
            )
            self._record("bound" if newest else "no_cache")
        else:
            self.logger.debug("Session bound by a concurrent lookup", session_id=session_id)
            self._record("raced")

        return winner

    def forget(self, session_id: str) -> bool:
        """Drop a dead session's binding."""
        return self.table.discard(session_id)

    def _record(self, outcome: str) -> None:
        if self.metrics:
            self.metrics.increment_counter("session_bindings_total", outcome=outcome)

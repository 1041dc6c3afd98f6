"""
Session registry.

A session is one page load. Its id is minted when the navigation response
is served and travels back on every sub-resource request in the
``X-Offline-Session`` header.

Clients rarely report a page going away, so sessions also end on their own:
after ``idle_ttl`` seconds without a request, or when ``max_sessions`` is
exceeded (least recently active first).
"""

import time
import uuid
from collections import OrderedDict
from typing import Any, Callable, List, Mapping, Optional, Tuple

from shared.logging import get_logger


SESSION_HEADER = "X-Offline-Session"

DEFAULT_MAX_SESSIONS = 10_000
DEFAULT_IDLE_TTL_SECONDS = 1800.0


class SessionRegistry:
    """Live sessions and the address of the document each one loaded."""

    def __init__(
        self,
        max_sessions: int = DEFAULT_MAX_SESSIONS,
        idle_ttl: float = DEFAULT_IDLE_TTL_SECONDS,
        on_expire: Optional[Callable[[str], Any]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_sessions = max_sessions
        self.idle_ttl = idle_ttl
        self.on_expire = on_expire
        self.logger = get_logger("offline.sessions")
        self._clock = clock
        # session id -> (document url, last seen); least recently active first
        self._endpoints: "OrderedDict[str, Tuple[str, float]]" = OrderedDict()

    def open_session(self, url: str) -> str:
        self.expire()

        session_id = uuid.uuid4().hex
        self._endpoints[session_id] = (url, self._clock())
        self.logger.debug("Opened session", session_id=session_id, url=url)

        while len(self._endpoints) > self.max_sessions:
            oldest, _ = self._endpoints.popitem(last=False)
            self._expired(oldest, reason="capacity")

        return session_id

    def touch(self, session_id: str) -> bool:
        """Mark a session active. Returns False if it is unknown or has expired."""
        self.expire()

        entry = self._endpoints.get(session_id)
        if entry is None:
            return False

        self._endpoints[session_id] = (entry[0], self._clock())
        self._endpoints.move_to_end(session_id)
        return True

    def end_session(self, session_id: str) -> bool:
        ended = self._endpoints.pop(session_id, None) is not None
        if ended:
            self.logger.debug("Ended session", session_id=session_id)
        return ended

    def expire(self) -> List[str]:
        """End every session idle for longer than ``idle_ttl``."""
        if self.idle_ttl <= 0:
            return []

        cutoff = self._clock() - self.idle_ttl
        expired: List[str] = []
        while self._endpoints:
            session_id, (_, last_seen) = next(iter(self._endpoints.items()))
            if last_seen > cutoff:
                break
            del self._endpoints[session_id]
            self._expired(session_id, reason="idle")
            expired.append(session_id)
        return expired

    def _expired(self, session_id: str, reason: str) -> None:
        self.logger.debug("Session expired", session_id=session_id, reason=reason)
        if self.on_expire:
            self.on_expire(session_id)

    @staticmethod
    def session_id_for(headers: Mapping[str, str]) -> Optional[str]:
        """Session id carried by a request, or None (navigation requests carry none)."""
        session_id = headers.get(SESSION_HEADER) or headers.get(SESSION_HEADER.lower()) or ""
        return session_id.strip() or None

    def live_endpoints(self) -> List[str]:
        self.expire()
        return [url for url, _ in self._endpoints.values()]

    def main_page_url(self) -> str:
        """Address of the first live session's document, or '' if none is live."""
        endpoints = self.live_endpoints()
        return endpoints[0] if endpoints else ""

    def __len__(self) -> int:
        return len(self._endpoints)

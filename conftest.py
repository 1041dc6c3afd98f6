"""
Shared pytest fixtures: an in-process origin behind httpx.MockTransport.
"""

import json
from typing import Dict, List, Optional, Tuple

import httpx
import pytest


SCOPE_URL = "https://example.com/app/"


class FakeOrigin:
    """Serves registered paths under the scope; everything else is a 404."""

    def __init__(self, scope_url: str = SCOPE_URL):
        self.scope_url = scope_url
        self.routes: Dict[str, Tuple[int, bytes, Dict[str, str]]] = {}
        self.failing: set = set()
        self.requests: List[httpx.Request] = []

    def serve(self, path: str, body, status: int = 200, content_type: str = "text/plain") -> None:
        if isinstance(body, str):
            body = body.encode()
        self.routes[path] = (status, body, {"content-type": content_type})

    def serve_manifest(self, version: int, files: List[str], status: int = 200) -> None:
        self.serve(
            "offline.js",
            json.dumps({"version": version, "files": files}),
            status=status,
            content_type="application/json",
        )

    def fail(self, path: str) -> None:
        """Make requests for ``path`` raise a transport error."""
        self.failing.add(path)

    def _path(self, request: httpx.Request) -> str:
        url = str(request.url).split("?", 1)[0]
        if url.startswith(self.scope_url):
            return url[len(self.scope_url):] or self.scope_url
        return url

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = self._path(request)

        if path in self.failing:
            raise httpx.ConnectError("connection refused", request=request)

        if path not in self.routes:
            return httpx.Response(404, content=b"not found", request=request)

        status, body, headers = self.routes[path]
        return httpx.Response(status, content=body, headers=headers, request=request)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def requests_for(self, path: str, method: Optional[str] = None) -> List[httpx.Request]:
        return [
            r for r in self.requests
            if self._path(r) == path and (method is None or r.method == method)
        ]

    def count(self, path: str) -> int:
        return len(self.requests_for(path))


class DummyMetrics:
    """Minimal metrics collector stub."""

    def __init__(self):
        self.counters = []
        self.histograms = []
        self.gauges = []

    def increment_counter(self, metric_name: str, **labels):
        self.counters.append((metric_name, labels))

    def observe_histogram(self, metric_name: str, value: float, **labels):
        self.histograms.append((metric_name, value, labels))

    def set_gauge(self, metric_name: str, value: float, **labels):
        self.gauges.append((metric_name, value, labels))

    def record_error(self, error_type: str, service: Optional[str] = None):
        self.counters.append(("errors_total", {"error_type": error_type}))


@pytest.fixture
def scope_url():
    return SCOPE_URL


@pytest.fixture
def origin():
    return FakeOrigin(SCOPE_URL)


@pytest.fixture
def metrics():
    return DummyMetrics()

"""
Shared metrics configuration for the Offline Bundle service.
"""

from prometheus_client import Counter, Histogram, Gauge, Info, CollectorRegistry, generate_latest
from typing import Dict, Any, Optional


class MetricsCollector:
    """Centralized metrics collector for services.

    Each collector owns its registry so several service instances (tests,
    embedded runs) can coexist in one process.
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up common metrics for the service."""

        # Service info
        self._metrics["service_info"] = Info(
            "service_info",
            "Service information",
            registry=self.registry
        )
        self._metrics["service_info"].info({
            "service": self.service_name,
            "version": "1.0.0"
        })

        # HTTP metrics
        self._metrics["http_requests_total"] = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["method", "endpoint", "status_code"],
            registry=self.registry
        )

        self._metrics["http_request_duration_seconds"] = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "endpoint"],
            registry=self.registry
        )

        # Health check metrics
        self._metrics["health_check_total"] = Counter(
            "health_check_total",
            "Total health check requests",
            ["status"],
            registry=self.registry
        )

        # Error metrics
        self._metrics["errors_total"] = Counter(
            "errors_total",
            "Total errors",
            ["error_type", "service"],
            registry=self.registry
        )

        if self.service_name == "offline":
            self._setup_offline_metrics()

    def _setup_offline_metrics(self):
        """Set up offline-cache specific metrics."""
        self._metrics["cache_builds_total"] = Counter(
            "cache_builds_total",
            "Total versioned cache builds",
            ["result"],
            registry=self.registry
        )

        self._metrics["cache_build_duration_seconds"] = Histogram(
            "cache_build_duration_seconds",
            "Versioned cache build duration in seconds",
            ["mode"],
            registry=self.registry
        )

        self._metrics["cache_lookups_total"] = Counter(
            "cache_lookups_total",
            "Total cache lookups by request class",
            ["request_class", "result"],
            registry=self.registry
        )

        self._metrics["caches_pruned_total"] = Counter(
            "caches_pruned_total",
            "Total superseded cache versions deleted",
            registry=self.registry
        )

        self._metrics["session_bindings_total"] = Counter(
            "session_bindings_total",
            "Total session to version bindings",
            ["outcome"],
            registry=self.registry
        )

        self._metrics["update_checks_total"] = Counter(
            "update_checks_total",
            "Total manifest update checks",
            ["result"],
            registry=self.registry
        )

        self._metrics["network_fallbacks_total"] = Counter(
            "network_fallbacks_total",
            "Requests served from the network instead of a cache",
            ["reason"],
            registry=self.registry
        )

        self._metrics["newest_cache_version"] = Gauge(
            "newest_cache_version",
            "Newest published cache version",
            registry=self.registry
        )

    def render(self) -> bytes:
        """Render the registry in the Prometheus text format."""
        return generate_latest(self.registry)

    def record_http_request(self, method: str, endpoint: str, status_code: int, duration: float):
        """Record HTTP request metrics."""
        self._metrics["http_requests_total"].labels(
            method=method,
            endpoint=endpoint,
            status_code=str(status_code)
        ).inc()

        self._metrics["http_request_duration_seconds"].labels(
            method=method,
            endpoint=endpoint
        ).observe(duration)

    def record_health_check(self, status: str):
        """Record health check metrics."""
        self._metrics["health_check_total"].labels(status=status).inc()

    def record_error(self, error_type: str, service: Optional[str] = None):
        """Record error metrics."""
        service_name = service or self.service_name
        self._metrics["errors_total"].labels(error_type=error_type, service=service_name).inc()

    def increment_counter(self, metric_name: str, **labels):
        """Increment a counter metric."""
        if metric_name in self._metrics:
            metric = self._metrics[metric_name]
            (metric.labels(**labels) if labels else metric).inc()

    def set_gauge(self, metric_name: str, value: float, **labels):
        """Set a gauge metric value."""
        if metric_name in self._metrics:
            metric = self._metrics[metric_name]
            (metric.labels(**labels) if labels else metric).set(value)

    def observe_histogram(self, metric_name: str, value: float, **labels):
        """Observe a histogram metric."""
        if metric_name in self._metrics:
            metric = self._metrics[metric_name]
            (metric.labels(**labels) if labels else metric).observe(value)


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)

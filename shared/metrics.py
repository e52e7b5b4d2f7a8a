"""
Shared metrics configuration for the RiftRadar lookup layer.
"""

from typing import Dict, Any, Optional

from prometheus_client import CollectorRegistry, Counter, Histogram, Info, generate_latest


class MetricsCollector:
    """Centralized metrics collector for services.

    Every collector owns its registry unless one is passed in, so building the
    service twice in one process (tests, reloads) never double-registers.
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up common metrics for the service."""

        self._metrics["service_info"] = Info(
            "service",
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

        self._metrics["health_check_total"] = Counter(
            "health_check_total",
            "Total health check requests",
            ["status"],
            registry=self.registry
        )

        # Cache metrics
        self._metrics["cache_lookups_total"] = Counter(
            "cache_lookups_total",
            "Resource lookups by answering tier",
            ["kind", "provenance"],
            registry=self.registry
        )

        self._metrics["tier_errors_total"] = Counter(
            "tier_errors_total",
            "Absorbed cache tier failures",
            ["tier", "operation"],
            registry=self.registry
        )

        # Upstream metrics
        self._metrics["upstream_calls_total"] = Counter(
            "upstream_calls_total",
            "Upstream API calls by outcome",
            ["endpoint", "outcome"],
            registry=self.registry
        )

        self._metrics["upstream_call_duration_seconds"] = Histogram(
            "upstream_call_duration_seconds",
            "Upstream API call duration in seconds",
            ["endpoint"],
            registry=self.registry
        )

    def get_metric(self, name: str):
        """Get a metric by name."""
        return self._metrics.get(name)

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
        self._metrics["health_check_total"].labels(status=status).inc()

    def record_lookup(self, kind: str, provenance: str):
        self._metrics["cache_lookups_total"].labels(kind=kind, provenance=provenance).inc()

    def record_tier_error(self, tier: str, operation: str):
        self._metrics["tier_errors_total"].labels(tier=tier, operation=operation).inc()

    def record_upstream_call(self, endpoint: str, outcome: str, duration: float):
        """Record one upstream API call."""
        self._metrics["upstream_calls_total"].labels(endpoint=endpoint, outcome=outcome).inc()
        self._metrics["upstream_call_duration_seconds"].labels(endpoint=endpoint).observe(duration)

    def sample(self, metric_name: str, **labels) -> float:
        """Read the current value of a labelled sample (0.0 if unseen)."""
        value = self.registry.get_sample_value(metric_name, labels)
        return value or 0.0

    def export(self) -> bytes:
        """Render the registry in Prometheus text format."""
        return generate_latest(self.registry)


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)

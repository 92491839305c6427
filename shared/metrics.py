"""
Prometheus metrics for the Resilient Bot services.
"""

from typing import Any, Dict, Optional, Sequence, Tuple

from prometheus_client import CollectorRegistry, Counter, Histogram, Info, generate_latest

MetricSpec = Tuple[str, str, Sequence[str]]

# name, help, labels
COMMON_COUNTERS: Sequence[MetricSpec] = (
    ("http_requests_total", "Total HTTP requests", ("method", "endpoint", "status_code")),
    ("health_check_total", "Total health check requests", ("status",)),
    ("errors_total", "Total errors", ("error_type", "service")),
)

BOT_COUNTERS: Sequence[MetricSpec] = (
    ("telegram_api_calls_total", "Logical Telegram Bot API calls by outcome", ("method", "outcome")),
    ("circuit_breaker_transitions_total", "Circuit breaker state transitions", ("name", "state")),
    ("updates_total", "Webhook updates by variant and dispatch outcome", ("update_type", "outcome")),
)

SERVICE_COUNTERS: Dict[str, Sequence[MetricSpec]] = {
    "bot": BOT_COUNTERS,
}


class MetricsCollector:
    """Named metrics for one service instance.

    Each collector owns its registry, so several service instances (and test
    apps) can live in one process without colliding on metric names.
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}

        info = Info("service_info", "Service information", registry=self.registry)
        info.info({"service": service_name, "version": "1.0.0"})
        self._metrics["service_info"] = info

        self._metrics["http_request_duration_seconds"] = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "endpoint"],
            registry=self.registry
        )

        for name, documentation, labels in (*COMMON_COUNTERS, *SERVICE_COUNTERS.get(service_name, ())):
            self._metrics[name] = Counter(name, documentation, list(labels), registry=self.registry)

    def get_metric(self, name: str):
        return self._metrics.get(name)

    def record_http_request(self, method: str, endpoint: str, status_code: int, duration: float):
        self._metrics["http_requests_total"].labels(
            method=method, endpoint=endpoint, status_code=str(status_code)
        ).inc()
        self._metrics["http_request_duration_seconds"].labels(method=method, endpoint=endpoint).observe(duration)

    def record_health_check(self, status: str):
        self._metrics["health_check_total"].labels(status=status).inc()

    def record_error(self, error_type: str, service: Optional[str] = None):
        self._metrics["errors_total"].labels(error_type=error_type, service=service or self.service_name).inc()

    def increment_counter(self, metric_name: str, **labels):
        """Increment a registered counter; unknown names are ignored."""
        metric = self._metrics.get(metric_name)
        if metric is not None:
            metric.labels(**labels).inc()

    def get_sample_value(self, metric_name: str, **labels) -> Optional[float]:
        """Read back a single sample, for status pages and tests."""
        return self.registry.get_sample_value(metric_name, labels)

    def export(self) -> bytes:
        """Render the registry in Prometheus text format."""
        return generate_latest(self.registry)


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    return MetricsCollector(service_name, registry)

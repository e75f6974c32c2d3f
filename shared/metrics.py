"""
Shared metrics configuration for the federation services.
"""

from prometheus_client import CollectorRegistry, Counter, Histogram, Info, generate_latest
from typing import Dict, Any, Optional


class MetricsCollector:
    """Centralized metrics collector for services.

    Each collector owns its registry so several services (or test fixtures)
    can live in one process without duplicate-timeseries errors.
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry or CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up common metrics for the service."""

        self._metrics["service_info"] = Info(
            "service_info",
            "Service information",
            registry=self.registry
        )
        self._metrics["service_info"].info({
            "service": self.service_name,
            "version": "1.0.0"
        })

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

        self._metrics["errors_total"] = Counter(
            "errors_total",
            "Total errors",
            ["error_type", "service"],
            registry=self.registry
        )

        if self.service_name == "gateway":
            self._setup_gateway_metrics()
        else:
            self._setup_subgraph_metrics()

    def _setup_gateway_metrics(self):
        """Set up gateway-specific metrics."""
        self._metrics["subgraph_requests_total"] = Counter(
            "subgraph_requests_total",
            "Total subgraph fetches issued by the gateway",
            ["service", "outcome"],
            registry=self.registry
        )

        self._metrics["subgraph_request_duration_seconds"] = Histogram(
            "subgraph_request_duration_seconds",
            "Subgraph fetch duration in seconds",
            ["service"],
            registry=self.registry
        )

        self._metrics["session_mutations_total"] = Counter(
            "session_mutations_total",
            "Mutation proposals accepted into a request log",
            ["service"],
            registry=self.registry
        )

        self._metrics["session_mutations_discarded_total"] = Counter(
            "session_mutations_discarded_total",
            "Mutation proposals discarded because their call errored",
            ["service"],
            registry=self.registry
        )

        self._metrics["session_saves_total"] = Counter(
            "session_saves_total",
            "Reconciled session saves",
            ["outcome"],
            registry=self.registry
        )

    def _setup_subgraph_metrics(self):
        """Set up metrics emitted by subgraph services."""
        self._metrics["session_decode_failures_total"] = Counter(
            "session_decode_failures_total",
            "Session headers that failed to decode",
            registry=self.registry
        )

        self._metrics["session_mutations_emitted_total"] = Counter(
            "session_mutations_emitted_total",
            "Mutation proposals emitted to the gateway",
            registry=self.registry
        )

    def export(self) -> bytes:
        """Render the registry in Prometheus text format."""
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
        metric = self._metrics.get(metric_name)
        if metric is None:
            return
        if labels:
            metric = metric.labels(**labels)
        metric.inc()

    def observe_histogram(self, metric_name: str, value: float, **labels):
        """Observe a histogram metric."""
        metric = self._metrics.get(metric_name)
        if metric is None:
            return
        if labels:
            metric = metric.labels(**labels)
        metric.observe(value)


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)

"""
Shared metrics configuration for the Access Exceptions Layer.
"""

from prometheus_client import Counter, Histogram, Info, CollectorRegistry
from typing import Dict, Any, Optional
import threading


class MetricsCollector:
    """Centralized metrics collector for services."""

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _register(self, metric_cls, name: str, documentation: str, labelnames=(), **kwargs):
        """Create a metric bound to this collector's registry."""
        kwargs = dict(kwargs)
        if self.registry is not None:
            kwargs["registry"] = self.registry
        self._metrics[name] = metric_cls(name, documentation, labelnames, **kwargs)

    def _setup_metrics(self):
        """Set up common metrics for the service."""

        # Service info
        info_kwargs = {"registry": self.registry} if self.registry is not None else {}
        self._metrics["service_info"] = Info("service_info", "Service information", **info_kwargs)
        self._metrics["service_info"].info({
            "service": self.service_name,
            "version": "1.0.0"
        })

        # HTTP metrics
        self._register(
            Counter,
            "http_requests_total",
            "Total HTTP requests",
            ["method", "endpoint", "status_code"]
        )
        self._register(
            Histogram,
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "endpoint"]
        )

        # Health check metrics
        self._register(Counter, "health_check_total", "Total health check requests", ["status"])

        # Error metrics
        self._register(Counter, "errors_total", "Total errors", ["error_type", "service"])

        if self.service_name == "exceptions":
            self._setup_exceptions_metrics()

    def _setup_exceptions_metrics(self):
        """Set up exception lifecycle metrics."""
        self._register(
            Counter,
            "exception_grants_total",
            "Total exception grant attempts",
            ["rule_update", "tracking"]
        )
        self._register(Counter, "sweep_runs_total", "Total sweep runs", ["status"])
        self._register(
            Counter,
            "sweep_rule_resets_total",
            "Per-rule sweep reset outcomes",
            ["outcome"]
        )
        self._register(Histogram, "sweep_duration_seconds", "Sweep duration in seconds")

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
            self._metrics[metric_name].labels(**labels).inc()

    def observe_histogram(self, metric_name: str, value: float, **labels):
        """Observe a histogram metric."""
        metric = self._metrics.get(metric_name)
        if metric is not None:
            (metric.labels(**labels) if labels else metric).observe(value)


_collectors: Dict[str, MetricsCollector] = {}
_collectors_lock = threading.Lock()


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service.

    Collectors on the default registry are cached per service, since
    prometheus_client refuses duplicate registrations.
    """
    if registry is not None:
        return MetricsCollector(service_name, registry)

    with _collectors_lock:
        collector = _collectors.get(service_name)
        if collector is None:
            collector = MetricsCollector(service_name)
            _collectors[service_name] = collector
        return collector

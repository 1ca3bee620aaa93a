"""
Shared metrics configuration for the clinic offers services.
"""

from typing import Dict, Any, Optional
import time
from contextlib import contextmanager

from prometheus_client import Counter, Histogram, Info, CollectorRegistry


class MetricsCollector:
    """Centralized metrics collector for services."""

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry
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

        # Business metrics
        self._metrics["business_events_total"] = Counter(
            "business_events_total",
            "Total business events",
            ["event_type", "service"],
            registry=self.registry
        )

        if self.service_name == "offers":
            self._setup_offers_metrics()

    def _setup_offers_metrics(self):
        """Set up offers-specific metrics."""
        self._metrics["offer_evaluations_total"] = Counter(
            "offer_evaluations_total",
            "Total offer evaluations",
            ["outcome"],
            registry=self.registry
        )

        self._metrics["offer_evaluation_duration_seconds"] = Histogram(
            "offer_evaluation_duration_seconds",
            "Offer evaluation duration in seconds",
            registry=self.registry
        )

        self._metrics["offers_applied_total"] = Counter(
            "offers_applied_total",
            "Total offers returned as applicable",
            ["benefit_type"],
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
        """Record health check metrics."""
        self._metrics["health_check_total"].labels(status=status).inc()

    def record_error(self, error_type: str, service: Optional[str] = None):
        """Record error metrics."""
        service_name = service or self.service_name
        self._metrics["errors_total"].labels(error_type=error_type, service=service_name).inc()

    def record_business_event(self, event_type: str, service: Optional[str] = None):
        """Record business event metrics."""
        service_name = service or self.service_name
        self._metrics["business_events_total"].labels(event_type=event_type, service=service_name).inc()

    @contextmanager
    def time_operation(self, operation_name: str, **labels):
        """Context manager to time an operation."""
        start_time = time.time()
        try:
            yield
        finally:
            duration = time.time() - start_time
            metric = self._metrics.get(operation_name)
            if metric is not None:
                if labels:
                    metric = metric.labels(**labels)
                metric.observe(duration)

    def increment_counter(self, metric_name: str, **labels):
        """Increment a counter metric."""
        if metric_name in self._metrics:
            self._metrics[metric_name].labels(**labels).inc()


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service.

    Each service instance gets its own registry unless one is passed in, so
    several instances (for example one per test) never collide on metric names.
    """
    return MetricsCollector(service_name, registry if registry is not None else CollectorRegistry())

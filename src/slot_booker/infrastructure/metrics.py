"""
Application Metrics.

Provides Prometheus-compatible metrics for monitoring.
"""

import time
from collections import defaultdict
from dataclasses import dataclass, field
from threading import Lock
from typing import Dict, List, Optional

from flask import Flask, Response, g, request


def _labels_key(labels: Dict[str, str]) -> str:
    """Create a unique key from labels."""
    if not labels:
        return ""
    return ",".join(f'{k}="{v}"' for k, v in sorted(labels.items()))


def _parse_labels(key: str) -> Dict[str, str]:
    """Parse labels from key."""
    if not key:
        return {}
    labels = {}
    for part in key.split(","):
        if "=" in part:
            k, v = part.split("=", 1)
            labels[k] = v.strip('"')
    return labels


@dataclass
class MetricValue:
    """A single metric value with labels."""
    value: float
    labels: Dict[str, str] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)


class Counter:
    """A monotonically increasing counter metric."""

    type_name = "counter"

    def __init__(self, name: str, description: str) -> None:
        self.name = name
        self.description = description
        self._values: Dict[str, float] = defaultdict(float)
        self._lock = Lock()

    def inc(self, value: float = 1.0, **labels: str) -> None:
        """Increment the counter."""
        key = _labels_key(labels)
        with self._lock:
            self._values[key] += value

    def get(self, **labels: str) -> float:
        """Get the current value for a label set."""
        with self._lock:
            return self._values.get(_labels_key(labels), 0.0)

    def collect(self) -> List[MetricValue]:
        """Collect all values."""
        with self._lock:
            return [
                MetricValue(value=v, labels=_parse_labels(k))
                for k, v in self._values.items()
            ]


class Gauge(Counter):
    """A gauge metric that can go up and down."""

    type_name = "gauge"

    def set(self, value: float, **labels: str) -> None:
        """Set the gauge value."""
        key = _labels_key(labels)
        with self._lock:
            self._values[key] = value

    def dec(self, value: float = 1.0, **labels: str) -> None:
        """Decrement the gauge."""
        self.inc(-value, **labels)


class Histogram:
    """A histogram metric for tracking distributions."""

    type_name = "histogram"

    DEFAULT_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)

    def __init__(
        self,
        name: str,
        description: str,
        buckets: tuple = DEFAULT_BUCKETS,
    ) -> None:
        self.name = name
        self.description = description
        self.buckets = buckets
        self._counts: Dict[str, Dict[float, int]] = defaultdict(lambda: defaultdict(int))
        self._sums: Dict[str, float] = defaultdict(float)
        self._totals: Dict[str, int] = defaultdict(int)
        self._lock = Lock()

    def observe(self, value: float, **labels: str) -> None:
        """Record an observation."""
        key = _labels_key(labels)
        with self._lock:
            self._sums[key] += value
            self._totals[key] += 1
            for bucket in self.buckets:
                if value <= bucket:
                    self._counts[key][bucket] += 1

    def render(self) -> List[str]:
        """Render bucket, sum and count lines."""
        lines = []
        with self._lock:
            for key, total in self._totals.items():
                prefix = f"{key}," if key else ""
                for bucket in self.buckets:
                    count = self._counts[key][bucket]
                    lines.append(f'{self.name}_bucket{{{prefix}le="{bucket}"}} {count}')
                lines.append(f'{self.name}_bucket{{{prefix}le="+Inf"}} {total}')
                label_str = f"{{{key}}}" if key else ""
                lines.append(f"{self.name}_sum{label_str} {self._sums[key]}")
                lines.append(f"{self.name}_count{label_str} {total}")
        return lines


class MetricsRegistry:
    """Registry for all application metrics."""

    def __init__(self) -> None:
        # HTTP metrics
        self.http_requests_total = Counter(
            "http_requests_total",
            "Total number of HTTP requests",
        )
        self.http_request_duration_seconds = Histogram(
            "http_request_duration_seconds",
            "HTTP request latency in seconds",
        )
        self.http_requests_in_progress = Gauge(
            "http_requests_in_progress",
            "Number of HTTP requests currently being processed",
        )

        # Booking metrics
        self.booking_runs_total = Counter(
            "booking_runs_total",
            "Total number of booking runs by final status",
        )
        self.booking_run_duration_seconds = Histogram(
            "booking_run_duration_seconds",
            "Booking run duration in seconds",
            buckets=(1.0, 5.0, 15.0, 30.0, 60.0, 120.0, 300.0, 600.0),
        )
        self.automation_attempts_total = Counter(
            "automation_attempts_total",
            "Total number of unit of work attempts by outcome",
        )
        self.poll_iterations_total = Counter(
            "poll_iterations_total",
            "Total number of poll iterations by classified state",
        )

        # External service metrics
        self.external_requests_total = Counter(
            "external_requests_total",
            "Total number of external service requests",
        )
        self.external_request_duration_seconds = Histogram(
            "external_request_duration_seconds",
            "External service request latency in seconds",
            buckets=(0.5, 1.0, 5.0, 15.0, 30.0, 60.0, 120.0, 180.0),
        )

    @property
    def all_metrics(self) -> list:
        return [
            self.http_requests_total,
            self.http_request_duration_seconds,
            self.http_requests_in_progress,
            self.booking_runs_total,
            self.booking_run_duration_seconds,
            self.automation_attempts_total,
            self.poll_iterations_total,
            self.external_requests_total,
            self.external_request_duration_seconds,
        ]

    def to_prometheus_format(self) -> str:
        """Export metrics in Prometheus text format."""
        lines = []

        for metric in self.all_metrics:
            lines.append(f"# HELP {metric.name} {metric.description}")
            lines.append(f"# TYPE {metric.name} {metric.type_name}")
            if isinstance(metric, Histogram):
                lines.extend(metric.render())
                continue
            for mv in metric.collect():
                labels = ",".join(f'{k}="{v}"' for k, v in mv.labels.items())
                label_str = f"{{{labels}}}" if labels else ""
                lines.append(f"{metric.name}{label_str} {mv.value}")

        return "\n".join(lines) + "\n"


# Global metrics registry
_metrics: Optional[MetricsRegistry] = None


def get_metrics() -> MetricsRegistry:
    """Get global metrics registry."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsRegistry()
    return _metrics


def reset_metrics() -> None:
    """Drop all collected metrics (used by tests)."""
    global _metrics
    _metrics = None


def setup_metrics_middleware(app: Flask) -> None:
    """
    Setup Flask middleware for automatic HTTP metrics collection.

    Args:
        app: Flask application instance.
    """
    @app.before_request
    def before_request() -> None:
        g.metrics_start_time = time.time()
        get_metrics().http_requests_in_progress.inc(
            method=request.method,
            endpoint=request.endpoint or "unknown",
        )

    @app.after_request
    def after_request(response):
        metrics = get_metrics()
        duration = time.time() - getattr(g, "metrics_start_time", time.time())
        endpoint = request.endpoint or "unknown"
        method = request.method
        status = str(response.status_code)

        metrics.http_requests_total.inc(
            method=method,
            endpoint=endpoint,
            status=status,
        )
        metrics.http_request_duration_seconds.observe(
            duration,
            method=method,
            endpoint=endpoint,
        )
        metrics.http_requests_in_progress.dec(
            method=method,
            endpoint=endpoint,
        )

        return response


def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint handler."""
    metrics = get_metrics()
    return Response(
        metrics.to_prometheus_format(),
        mimetype="text/plain; charset=utf-8",
    )

"""Prometheus metrics collectors and helpers."""
from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    PlatformCollector,
    ProcessCollector,
    generate_latest,
)

REGISTRY: CollectorRegistry
HTTP_REQUESTS_TOTAL: Counter
HTTP_REQUEST_DURATION: Histogram
DELETION_TRANSITIONS_TOTAL: Counter
DELETION_NOTIFICATIONS_TOTAL: Counter


def _initialise_registry() -> None:
    global REGISTRY, HTTP_REQUESTS_TOTAL, HTTP_REQUEST_DURATION
    global DELETION_TRANSITIONS_TOTAL, DELETION_NOTIFICATIONS_TOTAL

    registry = CollectorRegistry(auto_describe=True)
    ProcessCollector(registry=registry)  # expose process CPU/memory stats
    PlatformCollector(registry=registry)  # platform/runtime metadata

    HTTP_REQUESTS_TOTAL = Counter(
        "http_requests_total",
        "Count of HTTP requests received",
        labelnames=("path", "method", "status"),
        registry=registry,
    )

    HTTP_REQUEST_DURATION = Histogram(
        "http_request_duration_seconds",
        "Histogram of request latency",
        labelnames=("path", "method"),
        registry=registry,
    )

    DELETION_TRANSITIONS_TOTAL = Counter(
        "deletion_transitions_total",
        "Deletion workflow transitions by outcome",
        labelnames=("transition", "outcome"),
        registry=registry,
    )

    DELETION_NOTIFICATIONS_TOTAL = Counter(
        "deletion_notifications_total",
        "Outcome of deletion webhook notifications",
        labelnames=("status", "outcome"),
        registry=registry,
    )

    REGISTRY = registry


_initialise_registry()


def render_metrics() -> bytes:
    """Return the current metrics snapshot in Prometheus format."""

    return generate_latest(REGISTRY)


def observe_request(path: str, method: str, status: int, latency_seconds: float) -> None:
    """Record HTTP request metrics in a thread-safe manner."""

    HTTP_REQUESTS_TOTAL.labels(path=path, method=method, status=str(status)).inc()
    HTTP_REQUEST_DURATION.labels(path=path, method=method).observe(latency_seconds)


def record_deletion_transition(transition: str, outcome: str) -> None:
    """Increment the workflow transition counter."""

    DELETION_TRANSITIONS_TOTAL.labels(transition=transition, outcome=outcome).inc()


def record_deletion_notification(status: str, outcome: str) -> None:
    DELETION_NOTIFICATIONS_TOTAL.labels(status=status, outcome=outcome).inc()


def reset_metrics() -> None:
    """Reset collectors; intended for deterministic tests."""

    _initialise_registry()


__all__ = [
    "CONTENT_TYPE_LATEST",
    "REGISTRY",
    "render_metrics",
    "observe_request",
    "record_deletion_transition",
    "record_deletion_notification",
    "reset_metrics",
]

"""Prometheus metric helpers."""
from __future__ import annotations

from prometheus_client import Counter, Histogram

REQUEST_COUNT = Counter(
    "vault_requests_total",
    "HTTP requests processed by the API",
    ("method", "path", "status"),
)

REQUEST_LATENCY = Histogram(
    "vault_request_latency_seconds",
    "Latency of HTTP requests processed by the API",
    ("method", "path"),
    buckets=(
        0.005,
        0.01,
        0.025,
        0.05,
        0.1,
        0.25,
        0.5,
        1.0,
        2.5,
        5.0,
        10.0,
        30.0,
    ),
)

GATE_DECISIONS = Counter(
    "vault_onboarding_gate_decisions_total",
    "Outcomes of the onboarding gate per request",
    ("decision",),
)

MEDIA_OPERATIONS = Counter(
    "vault_media_operations_total",
    "Calls made to the external media store",
    ("operation", "resource_type", "status"),
)

WEBHOOK_EVENTS = Counter(
    "vault_webhook_events_total",
    "Identity webhook events received",
    ("event_type", "status"),
)


def record_request(method: str, path: str, status_code: int, duration: float) -> None:
    """Record counters and histograms for a processed HTTP request."""

    REQUEST_COUNT.labels(method, path, str(status_code)).inc()
    REQUEST_LATENCY.labels(method, path).observe(duration)


def record_gate_decision(decision: str) -> None:
    GATE_DECISIONS.labels(decision).inc()


def record_media_operation(operation: str, resource_type: str, status: str) -> None:
    """Increment the media operation counter for the provided outcome."""

    MEDIA_OPERATIONS.labels(operation, resource_type, status).inc()


def record_webhook_event(event_type: str, status: str) -> None:
    WEBHOOK_EVENTS.labels(event_type, status).inc()

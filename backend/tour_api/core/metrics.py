"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Booking lifecycle metrics
booking_transitions = Counter(
    'booking_transitions_total',
    'Booking lifecycle transitions',
    ['transition', 'result']  # result: success, rejected, conflict
)

booking_transition_latency = Histogram(
    'booking_transition_latency_seconds',
    'Booking transition latency',
    ['transition'],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5]
)

booking_number_collisions = Counter(
    'booking_number_collisions_total',
    'Booking number unique-constraint collisions that were retried'
)

# Payment metrics
payment_sessions = Counter(
    'payment_sessions_total',
    'Payment sessions/intents requested from the provider',
    ['kind', 'currency', 'result']  # kind: checkout, intent
)

webhook_events = Counter(
    'payment_webhook_events_total',
    'Payment webhook events by stage',
    ['event_type', 'result']  # received, duplicate, applied, skipped, retry, dead, rejected
)

outbox_backlog = Gauge(
    'payment_event_outbox_backlog',
    'Payment events waiting to be applied'
)

# Cache metrics
cache_operations = Counter(
    'cache_operations_total',
    'Cache operations',
    ['operation', 'result']  # get/set, hit/miss
)


def metrics_endpoint() -> Response:
    """Prometheus scrape endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_transition(transition: str, result: str):
    """Record a lifecycle transition. Result: success, rejected, conflict"""
    booking_transitions.labels(transition=transition, result=result).inc()


def record_payment_session(kind: str, currency: str, ok: bool):
    payment_sessions.labels(kind=kind, currency=currency, result="success" if ok else "error").inc()


def record_webhook_event(event_type: str, result: str):
    webhook_events.labels(event_type=event_type, result=result).inc()


def record_cache_operation(operation: str, hit: bool):
    """Record cache operation."""
    result = "hit" if hit else "miss"
    cache_operations.labels(operation=operation, result=result).inc()

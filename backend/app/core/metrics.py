"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Seat booking metrics
booking_attempts = Counter(
    'seat_booking_attempts_total',
    'Total seat booking requests',
    ['status']  # success, conflict, invalid, replayed, error
)

booking_latency = Histogram(
    'seat_booking_latency_seconds',
    'Seat booking latency inside the service',
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

booking_cancellations = Counter(
    'booking_cancellations_total',
    'Bookings cancelled (seats returned to inventory)'
)

# Trip scheduling metrics
trip_schedule_attempts = Counter(
    'trip_schedule_attempts_total',
    'Trip schedule/update requests',
    ['operation', 'status']  # create/update; success, conflict, invalid, forbidden
)

# Database metrics
db_retries = Counter(
    'db_retry_attempts_total',
    'Retries after transient storage errors (deadlock, serialization failure)'
)

# Cache metrics
cache_operations = Counter(
    'cache_operations_total',
    'Cache operations',
    ['operation', 'result']  # get; hit/miss
)


def metrics_endpoint() -> Response:
    """Prometheus scrape endpoint body."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_booking_attempt(status: str):
    booking_attempts.labels(status=status).inc()


def record_trip_schedule(operation: str, status: str):
    trip_schedule_attempts.labels(operation=operation, status=status).inc()


def record_cache_operation(operation: str, hit: bool):
    result = "hit" if hit else "miss"
    cache_operations.labels(operation=operation, result=result).inc()

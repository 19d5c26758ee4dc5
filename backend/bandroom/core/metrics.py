"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at the /metrics endpoint.
"""

from fastapi import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest

# Scheduling metrics
reservation_operations = Counter(
    'reservation_operations_total',
    'Reservation lifecycle operations',
    ['operation', 'result']  # reserve/return/delete, success/conflict/rejected
)

meeting_operations = Counter(
    'meeting_operations_total',
    'Meeting lifecycle operations',
    ['operation', 'result']  # create/join/quit/status/delete, success/conflict/rejected
)

# Lock metrics
lock_wait_seconds = Histogram(
    'resource_lock_wait_seconds',
    'Time spent waiting for a scoped resource lock',
    ['backend'],
    buckets=[0.0001, 0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0]
)

lock_timeouts = Counter(
    'resource_lock_timeouts_total',
    'Lock acquisitions that gave up after LOCK_TIMEOUT_SECONDS',
    ['backend']
)

# Cache metrics
cache_operations = Counter(
    'cache_operations_total',
    'Cache operations',
    ['operation', 'result']  # get/set, hit/miss
)

# HTTP metrics
request_latency = Histogram(
    'http_request_duration_seconds',
    'HTTP request latency',
    ['method', 'status_code'],
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

redis_connection_errors = Counter(
    'redis_connection_errors_total',
    'Redis connection errors'
)

redis_circuit_breaker_open = Gauge(
    'redis_circuit_breaker_open',
    'Redis circuit breaker state (1=open, 0=closed)'
)


def metrics_endpoint() -> Response:
    """Render every registered metric in the Prometheus text format."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_reservation(operation: str, result: str):
    """Record a reservation operation. Result: success, conflict, rejected"""
    reservation_operations.labels(operation=operation, result=result).inc()


def record_meeting(operation: str, result: str):
    """Record a meeting operation. Result: success, conflict, rejected"""
    meeting_operations.labels(operation=operation, result=result).inc()


def record_cache_operation(operation: str, hit: bool):
    result = "hit" if hit else "miss"
    cache_operations.labels(operation=operation, result=result).inc()

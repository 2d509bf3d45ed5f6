"""
Prometheus metrics for the relay.

This module provides:
- HTTP request counter and latency histogram (health, metrics, uploads)
- Socket event outcome counter (event, result)
- Socket connection counter by role and an active connection gauge
- Personal-room notification counter

Metrics are stored in-memory using prometheus-client.
"""

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest


# =============================================================================
# Metric Definitions
# =============================================================================

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    labelnames=["method", "path", "status"]
)

request_latency_seconds = Histogram(
    "request_latency_seconds",
    "Request latency in seconds",
    labelnames=["method", "path"]
)

# result: ok, error (reported to the client), failed (unexpected exception)
socket_events_total = Counter(
    "socket_events_total",
    "Total socket events handled",
    labelnames=["event", "result"]
)

socket_connections_total = Counter(
    "socket_connections_total",
    "Total socket connections accepted",
    labelnames=["role"]
)

socket_connections_active = Gauge(
    "socket_connections_active",
    "Currently connected sockets"
)

notifications_total = Counter(
    "notifications_total",
    "Notifications emitted to personal rooms",
    labelnames=["event"]
)


# =============================================================================
# Helper Functions
# =============================================================================

def record_http_request(method: str, path: str, status: int, latency_seconds: float) -> None:
    """
    Record an HTTP request in metrics.

    Args:
        method: HTTP method (GET, POST, etc.)
        path: Request path
        status: HTTP status code
        latency_seconds: Request processing time in seconds
    """
    # Uploaded file names would explode label cardinality
    normalized_path = path.split("?")[0]
    if normalized_path.startswith("/api/uploads/"):
        normalized_path = "/api/uploads"

    http_requests_total.labels(
        method=method,
        path=normalized_path,
        status=str(status)
    ).inc()

    request_latency_seconds.labels(
        method=method,
        path=normalized_path
    ).observe(latency_seconds)


def record_socket_event(event: str, result: str) -> None:
    socket_events_total.labels(event=event, result=result).inc()


def record_connect(role: str) -> None:
    socket_connections_total.labels(role=role).inc()
    socket_connections_active.inc()


def record_disconnect() -> None:
    socket_connections_active.dec()


def record_notification(event: str) -> None:
    notifications_total.labels(event=event).inc()


def get_metrics() -> bytes:
    """
    Generate Prometheus exposition format metrics.

    Returns:
        Metrics in Prometheus text format as bytes
    """
    return generate_latest()


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST

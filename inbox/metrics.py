"""
Prometheus metrics for the inbox API.

This module provides:
- HTTP request counter (method, path, status)
- Request latency histogram (method, path)
- Submission, login and moderation outcome counters

Metrics are stored in-memory using prometheus-client.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST


# =============================================================================
# Metric Definitions
# =============================================================================

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    labelnames=["method", "path", "status"]
)

# result: created, validation_error, store_error
submissions_total = Counter(
    "submissions_total",
    "Anonymous submission outcomes",
    labelnames=["result"]
)

# result: success, invalid_secret, auth_error
login_attempts_total = Counter(
    "login_attempts_total",
    "Operator login outcomes",
    labelnames=["result"]
)

# action: list, get, mark_read, reply, delete, stats
moderation_actions_total = Counter(
    "moderation_actions_total",
    "Moderation action outcomes",
    labelnames=["action", "result"]
)

request_latency_seconds = Histogram(
    "request_latency_seconds",
    "Request latency in seconds",
    labelnames=["method", "path"]
)


# =============================================================================
# Helper Functions
# =============================================================================

def record_http_request(method: str, path: str, status: int, latency_seconds: float) -> None:
    """
    Record an HTTP request in metrics.

    Args:
        method: HTTP method (GET, POST, etc.)
        path: Route template, e.g. /admin/messages/{message_id}
        status: HTTP status code
        latency_seconds: Request processing time in seconds
    """
    normalized_path = path.split("?")[0]

    http_requests_total.labels(
        method=method,
        path=normalized_path,
        status=str(status)
    ).inc()

    request_latency_seconds.labels(
        method=method,
        path=normalized_path
    ).observe(latency_seconds)


def record_submission(result: str) -> None:
    submissions_total.labels(result=result).inc()


def record_login(result: str) -> None:
    login_attempts_total.labels(result=result).inc()


def record_moderation(action: str, result: str) -> None:
    moderation_actions_total.labels(action=action, result=result).inc()


def get_metrics() -> bytes:
    """Generate Prometheus exposition format metrics."""
    return generate_latest()


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST

"""
Prometheus metrics for the birthday message API.

This module provides:
- HTTP request counter (method, path, status)
- Request latency histogram (method, path)
- Generation collaborator outcomes (kind, result)
- Purchase status transitions (status, source)
- Premium expansion outcomes (result)
- Delivery outcomes (channel, result)

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

# Using default buckets: .005, .01, .025, .05, .075, .1, .25, .5, .75, 1.0, 2.5, 5.0, 7.5, 10.0
request_latency_seconds = Histogram(
    "request_latency_seconds",
    "Request latency in seconds",
    labelnames=["method", "path"]
)

# kind: text, image, premium; result: ok, error, fallback
generation_requests_total = Counter(
    "generation_requests_total",
    "Calls to the text/image generation provider",
    labelnames=["kind", "result"]
)

# source: created, test, simulated, payment_webhook
purchase_transitions_total = Counter(
    "purchase_transitions_total",
    "Purchase status transitions",
    labelnames=["status", "source"]
)

# result: created, existing, error
premium_expansions_total = Counter(
    "premium_expansions_total",
    "Premium expansion outcomes",
    labelnames=["result"]
)

deliveries_total = Counter(
    "deliveries_total",
    "Email/SMS delivery outcomes",
    labelnames=["channel", "result"]
)


# =============================================================================
# Helper Functions
# =============================================================================

def record_http_request(method: str, path: str, status: int, latency_seconds: float) -> None:
    """
    Record an HTTP request in metrics.

    Args:
        method: HTTP method (GET, POST, etc.)
        path: Route template when known (e.g. /api/purchase/{purchase_id})
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


def record_generation(kind: str, result: str) -> None:
    generation_requests_total.labels(kind=kind, result=result).inc()


def record_purchase_transition(status: str, source: str) -> None:
    purchase_transitions_total.labels(status=status, source=source).inc()


def record_premium_expansion(result: str) -> None:
    premium_expansions_total.labels(result=result).inc()


def record_delivery(channel: str, result: str) -> None:
    deliveries_total.labels(channel=channel, result=result).inc()


def get_metrics() -> bytes:
    """
    Generate Prometheus exposition format metrics.

    Returns:
        Metrics in Prometheus text format as bytes
    """
    return generate_latest()


def get_metrics_content_type() -> str:
    """Get the content type for Prometheus metrics."""
    return CONTENT_TYPE_LATEST

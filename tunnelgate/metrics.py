"""Prometheus metrics for the tunnel gateway."""

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

REQUESTS = Counter(
    "tunnelgate_requests_total",
    "Inbound requests by route kind and response status",
    ["route", "status"],
)

UPSTREAM_DURATION = Histogram(
    "tunnelgate_upstream_request_seconds",
    "Time until response headers from outbound calls",
    ["kind"],
)

UPSTREAM_FAILURES = Counter(
    "tunnelgate_upstream_failures_total",
    "Outbound calls that failed at the transport level",
    ["kind"],
)


def render() -> tuple[bytes, str]:
    """Render the default registry in the Prometheus text format."""
    return generate_latest(), CONTENT_TYPE_LATEST

"""Application metrics (Prometheus client).

One inventory of everything the service measures.  Modules import the
metric they own and increment/observe it at the point of action.
Prometheus scrapes GET /metrics.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# HTTP metrics (populated by the MetricsMiddleware)
# ---------------------------------------------------------------------------

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests by method, endpoint, and status code",
    ["method", "endpoint", "status_code"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_active_requests",
    "Number of HTTP requests currently being processed",
)

# ---------------------------------------------------------------------------
# Access guard
# ---------------------------------------------------------------------------

RATE_LIMIT_HITS = Counter(
    "rate_limit_hits_total",
    "Requests rejected by rate limiting (429s)",
    ["limit_class"],
)

ACCESS_DENIED = Counter(
    "access_denied_total",
    "Requests rejected with 403 by the IP block checks",
    ["reason"],  # permanent|temporary
)

SUSPICIOUS_ACTIVITY = Counter(
    "suspicious_activity_total",
    "Escalation actions taken on repeated rate-limit violations",
    ["action"],  # violation|alert|auto_block
)

GUARD_STORE_ERRORS = Counter(
    "access_guard_store_errors_total",
    "Ephemeral store failures the access guard failed open on",
    ["store"],  # rate_limiter|block_store|suspicious_counter
)

# ---------------------------------------------------------------------------
# Progress and certificates
# ---------------------------------------------------------------------------

PROGRESS_UPDATES = Counter(
    "progress_updates_total",
    "Progress records written",
)

CERTIFICATES_ISSUED = Counter(
    "certificates_issued_total",
    "Certificates newly issued",
    ["type"],  # virtual|complete
)

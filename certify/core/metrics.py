"""Prometheus metric inventory for certify-service.

Every metric the service exports is declared here; the modules that own
the behavior import and increment them at the point of action.

HTTP metrics are recorded by MetricsMiddleware for every request.  The
engine metrics below answer the operational questions specific to
certificate issuance:

  - How many certificates were issued, and how many requests folded into
    "already certified" or "not eligible"?
  - Are secondary (public) writes failing, and did the rollback hold?
  - Are there orphaned primary records waiting for manual cleanup?
  - Is the number allocator ever seeing collisions or falling back?
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# HTTP metrics
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
# Engine metrics
# ---------------------------------------------------------------------------

ISSUANCE_OUTCOMES = Counter(
    "certificate_issuance_total",
    "Certificate issuance attempts by entity kind and outcome",
    ["kind", "outcome"],  # issued|already_certified|not_eligible|failed
)

PARTIAL_WRITE_FAILURES = Counter(
    "certificate_partial_write_failures_total",
    "Secondary certificate writes that failed after the primary succeeded",
    ["rolled_back"],  # "true" or "false"
)

ORPHANED_CERTIFICATES = Counter(
    "certificate_orphans_total",
    "Primary certificate records left behind by a failed rollback",
)

NUMBER_COLLISIONS = Counter(
    "certificate_number_collisions_total",
    "Generated certificate numbers rejected because they already existed",
)

NUMBER_FALLBACKS = Counter(
    "certificate_number_fallbacks_total",
    "Allocations that exhausted retries and used the timestamp suffix",
)

AUTO_ISSUE_EVENTS = Counter(
    "auto_issue_events_total",
    "Auto-issue trigger invocations by outcome",
    ["outcome"],  # suppressed|not_eligible|issued|already_certified|unavailable
)

PROGRESS_WRITES = Counter(
    "progress_writes_total",
    "Lesson progress writes by source",
    ["source"],  # video_tick|video_end|reading|quiz|complete
)

"""Prometheus collectors exposed on ``/metrics``."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

DELTA_REQUESTS = Counter(
    "deltagov_delta_requests_total",
    "Delta lookups by outcome",
    ["outcome"],
)

DELTA_COMPUTE_SECONDS = Histogram(
    "deltagov_delta_compute_seconds",
    "Wall time spent tokenizing, diffing and assembling one delta",
    buckets=(0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

HTTP_REQUESTS = Counter(
    "deltagov_http_requests_total",
    "HTTP requests by route template and status code",
    ["method", "route", "status"],
)

HTTP_REQUEST_SECONDS = Histogram(
    "deltagov_http_request_seconds",
    "HTTP request latency by route template",
    ["method", "route"],
)

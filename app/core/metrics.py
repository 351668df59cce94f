"""Prometheus metrics for monitoring."""

from prometheus_client import Counter, Histogram

operations_total = Counter(
    "search_operations_total",
    "Operations completed, by operation type and outcome",
    ["operation", "status"],
)
operation_duration_seconds = Histogram(
    "search_operation_duration_seconds",
    "Operation duration in seconds",
    ["operation"],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.0, 5.0, 10.0],
)
fallbacks_total = Counter(
    "search_fallbacks_total",
    "Primary failures absorbed by a fallback, by service",
    ["service"],
)
service_failures_total = Counter(
    "search_service_failures_total",
    "Requests where both primary and fallback failed, by service",
    ["service"],
)
rate_limited_total = Counter(
    "search_rate_limited_total",
    "Requests rejected by a rate limiter",
    ["limiter"],
)
suggestion_cache_requests_total = Counter(
    "search_suggestion_cache_requests_total",
    "Suggestion cache lookups, by result",
    ["result"],
)

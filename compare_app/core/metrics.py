"""Prometheus counters for the arbitration flow."""

from prometheus_client import Counter

PROVIDER_CALLS = Counter(
    "compare_provider_calls_total",
    "Outbound generative provider calls by outcome",
    ["outcome"],
)

CACHE_LOOKUPS = Counter(
    "compare_cache_lookups_total",
    "Result cache lookups by result",
    ["result"],
)

RATE_LIMITED = Counter(
    "compare_rate_limited_total",
    "Requests rejected by the outbound rate limiter",
)

PERSISTENCE_FAILURES = Counter(
    "compare_persistence_failures_total",
    "Best-effort persistence writes that failed",
)

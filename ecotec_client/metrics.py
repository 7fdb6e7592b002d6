"""
Prometheus metrics for the data client.

Tracks gateway traffic, token refreshes, forced logouts and cache behaviour.
The host process exposes them with ``prometheus_client.start_http_server``
or its own exporter.
"""

from prometheus_client import Counter, Histogram

# Gateway metrics
gateway_requests_total = Counter(
    "ecotec_gateway_requests_total",
    "Total requests sent through the auth gateway",
    ["method", "status"],
)

gateway_request_duration_seconds = Histogram(
    "ecotec_gateway_request_duration_seconds",
    "Gateway request duration in seconds",
    ["method"],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

gateway_network_errors_total = Counter(
    "ecotec_gateway_network_errors_total",
    "Total transport failures seen by the auth gateway",
    ["error_type"],
)

# Auth metrics
token_refreshes_total = Counter(
    "ecotec_token_refreshes_total",
    "Total token refresh attempts",
    ["outcome"],
)

refresh_queue_waiters_total = Counter(
    "ecotec_refresh_queue_waiters_total",
    "Total callers that waited on an in-flight token refresh",
)

forced_logouts_total = Counter(
    "ecotec_forced_logouts_total",
    "Total forced logouts",
    ["reason"],
)

# Persistent cache metrics
persistent_cache_lookups_total = Counter(
    "ecotec_persistent_cache_lookups_total",
    "Persistent cache lookups",
    ["key", "result"],
)

persistent_cache_evictions_total = Counter(
    "ecotec_persistent_cache_evictions_total",
    "Entries removed from the persistent cache",
    ["reason"],
)

persistent_cache_dropped_writes_total = Counter(
    "ecotec_persistent_cache_dropped_writes_total",
    "Persistent cache writes dropped after eviction and retry",
    ["key"],
)

# Memory cache metrics
memory_cache_loads_total = Counter(
    "ecotec_memory_cache_loads_total",
    "Memory cache loads by entity and outcome",
    ["entity", "outcome"],
)

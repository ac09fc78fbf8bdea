"""Prometheus metrics for the cost-control layer."""

from __future__ import annotations

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, generate_latest

CACHE_HITS = Counter(
    "costguard_cache_hits_total", "Response cache hits by namespace.", ("namespace",)
)
CACHE_MISSES = Counter(
    "costguard_cache_misses_total", "Response cache misses by namespace.", ("namespace",)
)
CACHE_EVICTIONS = Counter(
    "costguard_cache_evictions_total",
    "Entries evicted to stay under the cache capacity.",
    ("namespace",),
)
CACHE_HIT_RATIO = Gauge(
    "costguard_cache_hit_ratio", "Response cache hit ratio by namespace.", ("namespace",)
)
CACHE_ENTRIES = Gauge(
    "costguard_cache_entries", "Entries currently held by the cache.", ("namespace",)
)
RATE_LIMIT_REJECTIONS = Counter(
    "costguard_rate_limit_rejections_total", "Requests denied by the sliding-window limiter."
)
DEDUP_HITS = Counter(
    "costguard_dedup_hits_total", "Requests answered from a recent identical request."
)
API_COST_USD = Counter(
    "costguard_api_cost_usd_total", "Estimated spend on the AI API in USD.", ("endpoint",)
)
API_TOKENS = Counter(
    "costguard_api_tokens_total", "Tokens billed by the AI API.", ("endpoint", "kind")
)


def render_metrics() -> tuple[bytes, str]:
    """Return the exposition payload and its content type for an HTTP layer."""
    return generate_latest(), CONTENT_TYPE_LATEST

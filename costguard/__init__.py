"""In-process response caching, rate limiting and deduplication for AI calls."""

from .cache import BoundedTTLCache, CacheEntry
from .config import ConfigurationError, CostGuardConfig
from .cost_monitor import CostMonitor, calculate_cost
from .dedup import DuplicateCheck, RequestDeduplicator
from .guard import CostGuard, GuardedResult, add_cache_metadata, estimate_cache_cost_savings
from .token_budget import EndpointTokenConfig, allocate_budget, calculate_optimal_tokens

__all__ = [
    "BoundedTTLCache",
    "CacheEntry",
    "ConfigurationError",
    "CostGuard",
    "CostGuardConfig",
    "CostMonitor",
    "DuplicateCheck",
    "EndpointTokenConfig",
    "GuardedResult",
    "RequestDeduplicator",
    "add_cache_metadata",
    "allocate_budget",
    "calculate_cost",
    "calculate_optimal_tokens",
    "estimate_cache_cost_savings",
]

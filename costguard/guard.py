"""Composition of the cache, limiter and deduplicator around a paid AI call.

A :class:`CostGuard` is constructed once at process start and injected into
request handlers. Its background sweep is started with ``await guard.start()``
(or ``async with guard``) and cancelled with ``await guard.stop()``.

Concurrent misses for the same key are not coalesced: two handlers that miss
at the same moment both run ``compute`` and the later ``set`` wins. Callers
that need single-flight behaviour must add it around ``guarded_call``.
"""

from __future__ import annotations

import asyncio
import datetime as dt
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from costguard.cache import BoundedTTLCache
from costguard.config import CostGuardConfig
from costguard.cost_monitor import AVERAGE_CALL_COST_USD, CostMonitor
from costguard.dedup import RequestDeduplicator
from costguard.metrics import RATE_LIMIT_REJECTIONS
from costguard.token_budget import calculate_optimal_tokens, log_token_allocation
from utils.errors import RateLimitExceeded
from utils.hashing import KEY_PREFIX, build_key, hash_content, response_cache_key
from utils.logging_setup import configure_logging, log_outcome
from utils.rate_limiter import RateLimiter, RateLimitResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GuardedResult:
    value: Any
    source: str
    cache_key: str
    rate_limit: RateLimitResult

    @property
    def cache_hit(self) -> bool:
        return self.source != "computed"


def estimate_cache_cost_savings(
    hits: int, average_call_cost: float = AVERAGE_CALL_COST_USD
) -> dict[str, float]:
    """Estimate USD saved by ``hits`` cache hits at a flat per-call cost."""
    return {"total": hits * average_call_cost, "per_hit": average_call_cost}


def add_cache_metadata(
    response: dict[str, Any],
    *,
    cache_hit: bool,
    request_hash: str,
    time_saved_ms: int | None = None,
) -> dict[str, Any]:
    """Return a copy of ``response`` with a ``_cache`` block describing the lookup."""
    metadata = {
        "cached_at": dt.datetime.now(dt.timezone.utc).isoformat(),
        "request_hash": request_hash,
        "cache_status": "hit" if cache_hit else "miss",
        "time_saved_ms": time_saved_ms if cache_hit else None,
        "cost_savings": f"${AVERAGE_CALL_COST_USD:.3f}" if cache_hit else None,
    }
    return {**response, "_cache": metadata}


async def run_sweep_loop(guard: CostGuard, interval_s: float) -> None:
    while True:
        try:
            await asyncio.sleep(interval_s)
        except asyncio.CancelledError:
            logger.info("guard: sweep loop cancelled")
            break
        try:
            guard.sweep()
        except Exception:
            logger.exception("guard: sweep failed, retrying in %ss", interval_s)


class CostGuard:
    """Own one cache, limiter and deduplicator built from a single config."""

    def __init__(
        self,
        config: CostGuardConfig | None = None,
        *,
        cost_monitor: CostMonitor | None = None,
    ) -> None:
        self.config = config or CostGuardConfig()
        self.cache = BoundedTTLCache(
            self.config.max_entries,
            self.config.default_ttl_seconds,
            enabled=self.config.enabled,
        )
        self.rate_limiter = RateLimiter(
            self.config.max_requests_per_window, self.config.window_seconds
        )
        self.deduplicator = RequestDeduplicator(
            self.config.deduplication_window_seconds,
            max_records=self.config.deduplication_max_records,
            enabled=self.config.enabled and self.config.deduplication_enabled,
        )
        self.cost_monitor = cost_monitor or CostMonitor()
        self._sweep_task: asyncio.Task[None] | None = None

    @classmethod
    def from_env(cls, service_name: str | None = None) -> CostGuard:
        """Configure JSON logging and build a guard from environment variables."""
        configure_logging(service_name)
        return cls(CostGuardConfig.from_env())

    # Request-handler protocol -------------------------------------------------

    def check_rate_limit(
        self,
        identifier: str,
        max_requests: int | None = None,
        window_ms: float | None = None,
    ) -> RateLimitResult:
        result = self.rate_limiter.check_and_record(identifier, max_requests, window_ms)
        if not result.allowed:
            RATE_LIMIT_REJECTIONS.inc()
            logger.warning(
                "guard: rate limited %s, retry in %ds", identifier, result.reset_in_seconds
            )
        return result

    def get_cached_response(
        self, text: str, endpoint: str, params: dict[str, Any] | None = None
    ) -> Any | None:
        key = response_cache_key(text, endpoint, params)
        cached = self.cache.get(key)
        if cached is not None:
            logger.info("guard: cache hit for %s (%s)", endpoint, hash_content(text))
        return cached

    def cache_response(
        self,
        text: str,
        endpoint: str,
        response: Any,
        ttl_seconds: float | None = None,
        params: dict[str, Any] | None = None,
    ) -> str:
        key = response_cache_key(text, endpoint, params)
        self.cache.set(key, response, ttl_seconds=ttl_seconds, tags=(endpoint, KEY_PREFIX))
        return key

    def invalidate(self, pattern: str) -> int:
        deleted = self.cache.delete_pattern(pattern)
        logger.info("guard: invalidated %d entries matching %s", deleted, pattern)
        return deleted

    def invalidate_endpoint(self, endpoint: str) -> int:
        return self.invalidate(build_key(endpoint, "*"))

    async def guarded_call(
        self,
        identifier: str,
        text: str,
        endpoint: str,
        compute: Callable[[int], Awaitable[Any]],
        *,
        params: dict[str, Any] | None = None,
        ttl_seconds: float | None = None,
    ) -> GuardedResult:
        """Run ``compute`` only if no recent or cached answer exists.

        Order: rate limit, per-identifier dedup, shared cache, then
        ``compute(max_tokens)`` with a budget sized to ``text``. Results are
        stored only after ``compute`` returns; its exceptions propagate and
        leave both stores untouched.

        Raises
        ------
        RateLimitExceeded
            When ``identifier`` is over its window budget.
        """
        limit = self.check_rate_limit(identifier)
        if not limit.allowed:
            raise RateLimitExceeded(identifier, limit)

        key = response_cache_key(text, endpoint, params)
        payload = {"endpoint": endpoint, "content": text.strip(), "params": params}
        start = time.perf_counter()

        duplicate = self.deduplicator.check_duplicate(identifier, payload)
        if duplicate.is_duplicate:
            self._log_hit(endpoint, text, start)
            return GuardedResult(duplicate.cached_result, "dedup", key, limit)

        cached = self.cache.get(key)
        if cached is not None:
            self._log_hit(endpoint, text, start)
            return GuardedResult(cached, "cache", key, limit)

        max_tokens = calculate_optimal_tokens(len(text), endpoint)
        log_token_allocation(endpoint, len(text), max_tokens)
        result = await compute(max_tokens)
        self.cache.set(key, result, ttl_seconds=ttl_seconds, tags=(endpoint, KEY_PREFIX))
        self.deduplicator.record_result(identifier, payload, result)
        log_outcome(
            logger,
            "guard: computed %s for %s",
            endpoint,
            identifier,
            has_data=result is not None,
            extra={"endpoint": endpoint, "max_tokens": max_tokens, "cache_key": key},
        )
        return GuardedResult(result, "computed", key, limit)

    def _log_hit(self, endpoint: str, text: str, start: float) -> None:
        self.cost_monitor.log_request(
            endpoint,
            cache_hit=True,
            content_length=len(text),
            response_time_ms=int((time.perf_counter() - start) * 1000),
        )

    # Lifecycle ----------------------------------------------------------------

    def sweep(self) -> dict[str, int]:
        """Run one active-expiry pass over every store."""
        counts = {
            "cache_expired": self.cache.purge_expired(),
            "dedup_expired": self.deduplicator.purge_expired(),
            "idle_identifiers": self.rate_limiter.purge_idle(),
        }
        if any(counts.values()):
            log_outcome(logger, "guard: sweep %s", counts, extra=counts)
        return counts

    @property
    def running(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()

    async def start(self) -> None:
        if self.running:
            return
        self._sweep_task = asyncio.create_task(
            run_sweep_loop(self, self.config.cleanup_interval_seconds)
        )
        logger.info(
            "guard: started max_entries=%d ttl=%ss sweep=%ss limit=%d/%ss dedup=%ss enabled=%s",
            self.config.max_entries,
            self.config.default_ttl_seconds,
            self.config.cleanup_interval_seconds,
            self.config.max_requests_per_window,
            self.config.window_seconds,
            self.config.deduplication_window_seconds,
            self.config.enabled,
        )

    async def stop(self) -> None:
        task = self._sweep_task
        if task is None:
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        self._sweep_task = None

    async def __aenter__(self) -> CostGuard:
        await self.start()
        return self

    async def __aexit__(self, *_exc_info: object) -> None:
        await self.stop()

    def get_stats(self) -> dict[str, Any]:
        cache_stats = self.cache.get_stats()
        return {
            "cache": cache_stats,
            "rate_limiter": self.rate_limiter.get_stats(),
            "deduplicator": self.deduplicator.get_stats(),
            "estimated_cost_savings": estimate_cache_cost_savings(cache_stats["hits"]),
        }

"""Per-call cost tracking for the paid AI API."""

from __future__ import annotations

import datetime as dt
import logging
import threading
from collections import deque
from dataclasses import dataclass, field

from costguard.metrics import API_COST_USD, API_TOKENS

logger = logging.getLogger(__name__)

# USD per million tokens.
PRICING = {
    "input": 3.0,
    "output": 15.0,
    "cache_creation": 3.75,
    "cache_read": 0.30,
}
AVERAGE_CALL_COST_USD = 0.02


def calculate_cost(
    input_tokens: int,
    output_tokens: int,
    cache_creation_tokens: int = 0,
    cache_read_tokens: int = 0,
) -> float:
    """Return the USD cost of one call from its token usage."""
    return (
        input_tokens * PRICING["input"]
        + output_tokens * PRICING["output"]
        + cache_creation_tokens * PRICING["cache_creation"]
        + cache_read_tokens * PRICING["cache_read"]
    ) / 1_000_000


@dataclass(frozen=True)
class APIRequestLog:
    timestamp: dt.datetime
    endpoint: str
    input_tokens: int
    output_tokens: int
    total_cost: float
    cache_creation_tokens: int = 0
    cache_read_tokens: int = 0
    cache_hit: bool = False
    content_length: int | None = None
    response_time_ms: int | None = None
    error: bool = False


@dataclass
class EndpointSummary:
    requests: int = 0
    cost: float = 0.0
    avg_response_time_ms: float = 0.0


@dataclass
class DailyCostSummary:
    date: dt.date
    total_requests: int = 0
    total_cost: float = 0.0
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    cache_hit_rate: float = 0.0
    average_cost_per_request: float = 0.0
    cost_savings_from_cache: float = 0.0
    endpoints: dict[str, EndpointSummary] = field(default_factory=dict)


class CostMonitor:
    """Bounded in-memory log of AI calls with daily aggregation."""

    def __init__(self, max_logs: int = 10_000) -> None:
        self._logs: deque[APIRequestLog] = deque(maxlen=max_logs)
        self._lock = threading.Lock()

    def log_request(
        self,
        endpoint: str,
        *,
        input_tokens: int = 0,
        output_tokens: int = 0,
        cache_creation_tokens: int = 0,
        cache_read_tokens: int = 0,
        cache_hit: bool = False,
        content_length: int | None = None,
        response_time_ms: int | None = None,
        error: bool = False,
    ) -> APIRequestLog:
        total_cost = calculate_cost(
            input_tokens, output_tokens, cache_creation_tokens, cache_read_tokens
        )
        entry = APIRequestLog(
            timestamp=dt.datetime.now(dt.timezone.utc),
            endpoint=endpoint,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_cost=total_cost,
            cache_creation_tokens=cache_creation_tokens,
            cache_read_tokens=cache_read_tokens,
            cache_hit=cache_hit,
            content_length=content_length,
            response_time_ms=response_time_ms,
            error=error,
        )
        with self._lock:
            self._logs.append(entry)
        if total_cost:
            API_COST_USD.labels(endpoint=endpoint).inc(total_cost)
        for kind, count in (
            ("input", input_tokens),
            ("output", output_tokens),
            ("cache_creation", cache_creation_tokens),
            ("cache_read", cache_read_tokens),
        ):
            if count:
                API_TOKENS.labels(endpoint=endpoint, kind=kind).inc(count)
        logger.info(
            "cost_monitor: %s cost=$%.6f in=%d out=%d cache_hit=%s",
            endpoint,
            total_cost,
            input_tokens,
            output_tokens,
            cache_hit,
            extra={"endpoint": endpoint, "cost_usd": total_cost},
        )
        return entry

    def logs(self) -> list[APIRequestLog]:
        with self._lock:
            return list(self._logs)

    def daily_summary(self, day: dt.date | None = None) -> DailyCostSummary:
        """Aggregate the calls logged on ``day`` (UTC, default today)."""
        day = day or dt.datetime.now(dt.timezone.utc).date()
        entries = [entry for entry in self.logs() if entry.timestamp.date() == day]
        summary = DailyCostSummary(date=day)
        response_times: dict[str, list[int]] = {}
        for entry in entries:
            summary.total_requests += 1
            summary.total_cost += entry.total_cost
            summary.total_input_tokens += entry.input_tokens
            summary.total_output_tokens += entry.output_tokens
            if entry.cache_hit:
                summary.cache_hits += 1
            else:
                summary.cache_misses += 1
            endpoint = summary.endpoints.setdefault(entry.endpoint, EndpointSummary())
            endpoint.requests += 1
            endpoint.cost += entry.total_cost
            if entry.response_time_ms is not None:
                response_times.setdefault(entry.endpoint, []).append(entry.response_time_ms)
        for name, times in response_times.items():
            summary.endpoints[name].avg_response_time_ms = sum(times) / len(times)
        if summary.total_requests:
            summary.cache_hit_rate = summary.cache_hits / summary.total_requests
            summary.average_cost_per_request = summary.total_cost / summary.total_requests
        summary.cost_savings_from_cache = summary.cache_hits * AVERAGE_CALL_COST_USD
        return summary

    def clear(self) -> None:
        with self._lock:
            self._logs.clear()

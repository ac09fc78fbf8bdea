"""Runtime configuration for the cost-control layer."""

from __future__ import annotations

import os

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from utils.errors import ConfigurationError

__all__ = ["ConfigurationError", "CostGuardConfig"]


def _env_bool(name: str, default: bool = True) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() not in {"0", "false", "no", "off"}


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        return default


class CostGuardConfig(BaseModel):
    """Sizes, windows and switches for the cache, limiter and deduplicator.

    Construction validates every bound up front so a bad deployment fails at
    startup instead of on the first request.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_entries: int = Field(5000, gt=0, description="Maximum cached responses")
    default_ttl_seconds: float = Field(86400, gt=0, description="Default cache TTL")
    cleanup_interval_seconds: float = Field(
        600, gt=0, description="Interval between background expiry sweeps"
    )
    max_requests_per_window: int = Field(
        10, gt=0, description="Requests admitted per identifier per window"
    )
    window_seconds: float = Field(60, gt=0, description="Sliding rate-limit window")
    deduplication_window_seconds: float = Field(
        30, gt=0, description="How long a per-identifier result is reused"
    )
    deduplication_max_records: int = Field(10_000, gt=0)
    enabled: bool = Field(True, description="Global switch for cache and dedup")
    deduplication_enabled: bool = True

    def __init__(self, **data) -> None:
        try:
            super().__init__(**data)
        except ValidationError as exc:
            raise ConfigurationError(str(exc)) from exc

    @classmethod
    def from_env(cls) -> CostGuardConfig:
        """Build a config from ``API_*`` and ``*_WINDOW_MS`` environment variables."""
        return cls(
            max_entries=_env_int("API_CACHE_MAX_SIZE", 5000),
            default_ttl_seconds=_env_int("API_CACHE_TTL", 86400),
            cleanup_interval_seconds=_env_int("API_CACHE_CLEANUP_INTERVAL_S", 600),
            max_requests_per_window=_env_int("API_RATE_LIMIT_MAX_REQUESTS", 10),
            window_seconds=_env_int("API_RATE_LIMIT_WINDOW_MS", 60_000) / 1000.0,
            deduplication_window_seconds=_env_int("DEDUPLICATION_WINDOW_MS", 30_000) / 1000.0,
            enabled=_env_bool("ENABLE_API_RESPONSE_CACHE", True),
            deduplication_enabled=_env_bool("ENABLE_REQUEST_DEDUPLICATION", True),
        )

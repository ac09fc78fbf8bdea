"""Exceptions shared by the cost-control components."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from utils.rate_limiter import RateLimitResult


class ConfigurationError(ValueError):
    """Raised at construction time when sizes, windows or TTLs are invalid."""


class RateLimitExceeded(RuntimeError):
    """Raised by the guarded pipeline when an identifier is over its budget."""

    def __init__(self, identifier: str, result: RateLimitResult) -> None:
        super().__init__(
            f"rate limit exceeded for {identifier!r}; retry in {result.reset_in_seconds}s"
        )
        self.identifier = identifier
        self.result = result

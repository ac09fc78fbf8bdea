"""Right-size the output token allowance of an AI call from its input length.

Short articles get a small allowance and long ones the full one, following a
two-segment linear ramp: ``min`` to the midpoint value below
``scaling_midpoint``, midpoint to ``max`` up to ``scaling_max``, then flat.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from utils.errors import ConfigurationError

logger = logging.getLogger(__name__)

FALLBACK_MIN_TOKENS = 300
FALLBACK_MAX_TOKENS = 1000
OUTPUT_USD_PER_MILLION = 15.0


@dataclass(frozen=True)
class EndpointTokenConfig:
    min_tokens: int
    max_tokens: int
    scaling_midpoint: int
    scaling_max: int

    def __post_init__(self) -> None:
        if self.min_tokens <= 0 or self.max_tokens < self.min_tokens:
            raise ConfigurationError("token bounds must satisfy 0 < min_tokens <= max_tokens")
        if self.scaling_midpoint <= 0 or self.scaling_max <= self.scaling_midpoint:
            raise ConfigurationError("scaling points must satisfy 0 < midpoint < max")


ENDPOINT_CONFIGS: dict[str, EndpointTokenConfig] = {
    "/api/analyze-article-full": EndpointTokenConfig(
        min_tokens=1500, max_tokens=4000, scaling_midpoint=1500, scaling_max=3000
    ),
    "/api/analyze-article": EndpointTokenConfig(
        min_tokens=500, max_tokens=1000, scaling_midpoint=1000, scaling_max=2000
    ),
    "/api/generate-hashtags": EndpointTokenConfig(
        min_tokens=300, max_tokens=500, scaling_midpoint=800, scaling_max=1500
    ),
}


@dataclass(frozen=True)
class TokenSavings:
    fixed_tokens: int
    dynamic_tokens: int
    tokens_saved: int
    percent_saved: float
    cost_savings_usd: float


def allocate_budget(content_length: int, config: EndpointTokenConfig | None) -> int:
    """Return the token allowance for ``content_length`` characters.

    Without a config the allowance is half the length, clamped to
    ``[FALLBACK_MIN_TOKENS, FALLBACK_MAX_TOKENS]``.
    """
    length = max(content_length, 0)
    if config is None:
        return min(max(round(length * 0.5), FALLBACK_MIN_TOKENS), FALLBACK_MAX_TOKENS)

    token_range = config.max_tokens - config.min_tokens
    if length < config.scaling_midpoint:
        tokens = config.min_tokens + token_range * 0.5 * (length / config.scaling_midpoint)
    elif length < config.scaling_max:
        ratio = (length - config.scaling_midpoint) / (config.scaling_max - config.scaling_midpoint)
        tokens = config.min_tokens + token_range * 0.5 + token_range * 0.5 * ratio
    else:
        return config.max_tokens
    return min(max(round(tokens), config.min_tokens), config.max_tokens)


def get_endpoint_config(endpoint: str) -> EndpointTokenConfig | None:
    return ENDPOINT_CONFIGS.get(endpoint)


def calculate_optimal_tokens(content_length: int, endpoint: str) -> int:
    """Allocate tokens for a known endpoint, falling back for unknown ones."""
    config = get_endpoint_config(endpoint)
    if config is None:
        logger.warning("token_budget: unknown endpoint %s, using fallback allocation", endpoint)
    return allocate_budget(content_length, config)


def estimate_token_savings(content_length: int, endpoint: str) -> TokenSavings:
    """Compare the dynamic allowance against always requesting ``max_tokens``."""
    config = get_endpoint_config(endpoint)
    if config is None:
        return TokenSavings(0, 0, 0, 0.0, 0.0)
    dynamic_tokens = allocate_budget(content_length, config)
    tokens_saved = config.max_tokens - dynamic_tokens
    return TokenSavings(
        fixed_tokens=config.max_tokens,
        dynamic_tokens=dynamic_tokens,
        tokens_saved=tokens_saved,
        percent_saved=tokens_saved / config.max_tokens * 100,
        cost_savings_usd=tokens_saved / 1_000_000 * OUTPUT_USD_PER_MILLION,
    )


def log_token_allocation(endpoint: str, content_length: int, allocated_tokens: int) -> None:
    savings = estimate_token_savings(content_length, endpoint)
    logger.info(
        "token_budget: %s length=%d allocated=%d fixed=%d saved=%d (%.1f%%) usd=%.6f",
        endpoint,
        content_length,
        allocated_tokens,
        savings.fixed_tokens,
        savings.tokens_saved,
        savings.percent_saved,
        savings.cost_savings_usd,
    )

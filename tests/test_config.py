from __future__ import annotations

import pytest

from costguard.config import ConfigurationError, CostGuardConfig


def test_defaults_match_documented_values() -> None:
    config = CostGuardConfig()
    assert config.max_entries == 5000
    assert config.default_ttl_seconds == 86400
    assert config.window_seconds == 60
    assert config.deduplication_window_seconds == 30
    assert config.enabled is True


def test_from_env_converts_milliseconds(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("API_CACHE_MAX_SIZE", "20")
    monkeypatch.setenv("API_CACHE_TTL", "120")
    monkeypatch.setenv("API_RATE_LIMIT_MAX_REQUESTS", "3")
    monkeypatch.setenv("API_RATE_LIMIT_WINDOW_MS", "1500")
    monkeypatch.setenv("DEDUPLICATION_WINDOW_MS", "5000")
    monkeypatch.setenv("ENABLE_API_RESPONSE_CACHE", "false")
    monkeypatch.delenv("ENABLE_REQUEST_DEDUPLICATION", raising=False)

    config = CostGuardConfig.from_env()

    assert config.max_entries == 20
    assert config.default_ttl_seconds == 120
    assert config.max_requests_per_window == 3
    assert config.window_seconds == 1.5
    assert config.deduplication_window_seconds == 5.0
    assert config.enabled is False
    assert config.deduplication_enabled is True


def test_from_env_ignores_unparseable_numbers(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("API_CACHE_MAX_SIZE", "lots")
    assert CostGuardConfig.from_env().max_entries == 5000


@pytest.mark.parametrize(
    "overrides",
    [
        {"max_entries": 0},
        {"default_ttl_seconds": -1},
        {"window_seconds": 0},
        {"max_requests_per_window": 0},
        {"deduplication_window_seconds": 0},
        {"cleanup_interval_seconds": 0},
        {"unknown_option": 1},
    ],
)
def test_invalid_values_fail_at_construction(overrides: dict[str, object]) -> None:
    with pytest.raises(ConfigurationError):
        CostGuardConfig(**overrides)


def test_from_env_rejects_non_positive_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("API_RATE_LIMIT_WINDOW_MS", "0")
    with pytest.raises(ConfigurationError):
        CostGuardConfig.from_env()


def test_config_is_frozen() -> None:
    config = CostGuardConfig()
    with pytest.raises(Exception):
        config.max_entries = 1  # type: ignore[misc]

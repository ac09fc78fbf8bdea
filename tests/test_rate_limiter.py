from __future__ import annotations

import threading

import pytest

from utils.errors import ConfigurationError
from utils.rate_limiter import RateLimiter


def test_allows_within_limit_and_blocks_after(clock) -> None:
    limiter = RateLimiter(max_requests=2, window_seconds=10)
    assert limiter.check_and_record("client-a").allowed is True
    assert limiter.check_and_record("client-a").allowed is True
    assert limiter.check_and_record("client-a").allowed is False

    clock.advance(11.0)
    assert limiter.check_and_record("client-a").allowed is True


def test_independent_keys_do_not_share_budget(clock) -> None:
    limiter = RateLimiter(max_requests=1, window_seconds=60)
    limiter.check_and_record("client-a")
    assert limiter.check_and_record("client-a").allowed is False
    assert limiter.check_and_record("client-b").allowed is True


def test_check_and_record_sliding_window(clock) -> None:
    limiter = RateLimiter()
    results = [limiter.check_and_record("1.2.3.4", 3, 1000) for _ in range(3)]
    assert all(result.allowed for result in results)
    assert [result.remaining for result in results] == [2, 1, 0]

    clock.advance(0.1)
    denied = limiter.check_and_record("1.2.3.4", 3, 1000)
    assert denied.allowed is False
    assert denied.remaining == 0
    assert denied.reset_in_seconds == 1

    clock.advance(0.95)
    again = limiter.check_and_record("1.2.3.4", 3, 1000)
    assert again.allowed is True
    assert again.remaining == 2


def test_window_slides_instead_of_resetting(clock) -> None:
    limiter = RateLimiter(max_requests=2, window_seconds=10)
    assert limiter.check_and_record("ip").allowed
    clock.advance(6)
    assert limiter.check_and_record("ip").allowed
    clock.advance(5)
    # The first request aged out; the second still counts.
    result = limiter.check_and_record("ip")
    assert result.allowed is True
    assert result.remaining == 0
    denied = limiter.check_and_record("ip")
    assert denied.allowed is False
    assert denied.reset_in_seconds == 5


def test_denied_requests_are_not_recorded(clock) -> None:
    limiter = RateLimiter(max_requests=1, window_seconds=10)
    assert limiter.check_and_record("ip").allowed
    for _ in range(5):
        clock.advance(1)
        assert not limiter.check_and_record("ip").allowed
    clock.advance(5)
    assert limiter.check_and_record("ip").allowed


@pytest.mark.parametrize("max_requests", [0, -3])
def test_non_positive_limit_always_denies(clock, max_requests: int) -> None:
    limiter = RateLimiter()
    result = limiter.check_and_record("ip", max_requests, 1000)
    assert result.allowed is False
    assert result.remaining == 0
    assert limiter.get_stats()["tracked_identifiers"] == 0


def test_reset_clears_identifier(clock) -> None:
    limiter = RateLimiter(max_requests=1, window_seconds=60)
    limiter.check_and_record("ip")
    assert not limiter.check_and_record("ip").allowed
    limiter.reset("ip")
    assert limiter.check_and_record("ip").allowed


def test_purge_idle_drops_identifiers_after_two_windows(clock) -> None:
    limiter = RateLimiter(max_requests=5, window_seconds=10)
    limiter.check_and_record("old")
    clock.advance(15)
    limiter.check_and_record("recent")
    clock.advance(6)

    assert limiter.purge_idle() == 1
    assert limiter.get_stats()["identifiers"] == ["recent"]


@pytest.mark.parametrize(
    ("max_requests", "window_seconds"),
    [(0, 1), (-1, 1), (1, 0), (1, -5)],
)
def test_invalid_configuration_raises(max_requests: int, window_seconds: float) -> None:
    with pytest.raises(ConfigurationError):
        RateLimiter(max_requests=max_requests, window_seconds=window_seconds)


def test_invalid_window_override_raises() -> None:
    with pytest.raises(ValueError):
        RateLimiter().check_and_record("ip", 3, 0)


def test_purge_idle_respects_per_call_window(clock) -> None:
    limiter = RateLimiter(max_requests=5, window_seconds=60)
    assert limiter.check_and_record("ip", 1, 3_600_000).allowed
    assert not limiter.check_and_record("ip", 1, 3_600_000).allowed
    clock.advance(121)

    assert limiter.purge_idle() == 0
    assert not limiter.check_and_record("ip", 1, 3_600_000).allowed

    clock.advance(2 * 3600)
    assert limiter.purge_idle() == 1


def test_purge_idle_with_zero_cutoff_drops_everything(clock) -> None:
    limiter = RateLimiter(max_requests=5, window_seconds=60)
    limiter.check_and_record("ip")
    clock.advance(0.5)
    assert limiter.purge_idle(0) == 1
    assert limiter.get_stats()["tracked_identifiers"] == 0


def test_concurrent_calls_admit_exactly_the_limit() -> None:
    limiter = RateLimiter(max_requests=1000, window_seconds=60)
    allowed: list[bool] = []
    allowed_lock = threading.Lock()
    barrier = threading.Barrier(8)

    def worker() -> None:
        barrier.wait()
        local = [limiter.check_and_record("ip", 37, 600_000).allowed for _ in range(500)]
        with allowed_lock:
            allowed.extend(local)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(allowed) == 4000
    assert sum(allowed) == 37

"""
tests/test_rate_limiter.py — Unit tests for the sliding-window admission controller
"""
from __future__ import annotations

from types import SimpleNamespace

import pytest

from app.core.rate_limiter import (
    RateLimitConfig,
    SlidingWindowRateLimiter,
    UNKNOWN_CLIENT,
    get_client_identifier,
    rate_limit_headers,
)


def test_two_per_second_scenario(small_limiter, clock):
    """t=0, t=100 admitted; t=200 denied with ~1s hint; t=1100 admitted again."""
    start = clock.now

    first = small_limiter.check("ip1")
    assert first.allowed and first.remaining == 1

    clock.advance(100)
    second = small_limiter.check("ip1")
    assert second.allowed and second.remaining == 0

    clock.advance(100)
    third = small_limiter.check("ip1")
    assert not third.allowed
    assert third.remaining == 0
    assert third.retry_after == 1
    assert third.reset_time == int(start + 1000)

    clock.now = start + 1100
    fourth = small_limiter.check("ip1")
    assert fourth.allowed
    assert fourth.remaining == 1


def test_quota_exhaustion_gives_positive_retry_after(clock):
    rl = SlidingWindowRateLimiter(clock=clock)
    for _ in range(10):
        assert rl.check("caller").allowed
        clock.advance(10)
    denied = rl.check("caller")
    assert not denied.allowed
    assert denied.retry_after > 0
    assert denied.retry_after == 60


def test_quota_fully_resets_after_window(small_limiter, clock):
    small_limiter.check("ip1")
    small_limiter.check("ip1")
    assert not small_limiter.check("ip1").allowed

    clock.advance(1000)
    assert small_limiter.check("ip1").remaining == 1
    assert small_limiter.check("ip1").remaining == 0


def test_denied_request_is_not_recorded(small_limiter, clock):
    small_limiter.check("ip1")
    clock.advance(500)
    small_limiter.check("ip1")
    for _ in range(5):
        assert not small_limiter.check("ip1").allowed
    # Only the first request has left the window
    clock.advance(500)
    assert small_limiter.check("ip1").allowed


def test_identifiers_are_independent(small_limiter):
    small_limiter.check("ip1")
    small_limiter.check("ip1")
    assert not small_limiter.check("ip1").allowed
    assert small_limiter.check("ip2").allowed


def test_per_call_config_overrides_default(small_limiter):
    cfg = RateLimitConfig(max_requests=5, window_ms=1000)
    results = [small_limiter.check("ip1", cfg) for _ in range(5)]
    assert all(r.allowed for r in results)
    assert [r.remaining for r in results] == [4, 3, 2, 1, 0]


def test_status_does_not_consume_quota(small_limiter):
    small_limiter.check("ip1")
    status = small_limiter.status("ip1")
    assert status.requests == 1
    assert status.remaining == 1
    assert status.retry_after == 0
    assert small_limiter.status("ip1").requests == 1


def test_status_reports_retry_when_exhausted(small_limiter, clock):
    small_limiter.check("ip1")
    small_limiter.check("ip1")
    clock.advance(300)
    status = small_limiter.status("ip1")
    assert status.remaining == 0
    assert status.retry_after == 1


def test_reset_and_clear(small_limiter):
    small_limiter.check("ip1")
    small_limiter.check("ip1")
    small_limiter.reset("ip1")
    assert small_limiter.check("ip1").allowed

    small_limiter.check("ip2")
    small_limiter.clear()
    assert len(small_limiter) == 0


def test_sweep_drops_expired_identifiers(clock):
    rl = SlidingWindowRateLimiter(
        default_config=RateLimitConfig(max_requests=5, window_ms=1000),
        cleanup_threshold=3,
        clock=clock,
    )
    for ip in ("a", "b", "c"):
        rl.check(ip)
    assert len(rl) == 3

    clock.advance(2000)
    # Fourth identifier pushes the store over the threshold
    rl.check("d")
    assert len(rl) == 1
    assert rl.status("d").requests == 1


def test_sweep_not_triggered_below_threshold(clock):
    rl = SlidingWindowRateLimiter(cleanup_threshold=10, clock=clock)
    rl.check("a")
    clock.advance(120_000)
    rl.check("b")
    assert len(rl) == 2


def test_rate_limit_headers(small_limiter):
    small_limiter.check("ip1")
    small_limiter.check("ip1")
    denied = small_limiter.check("ip1")
    headers = rate_limit_headers(denied, 2)
    assert headers["X-RateLimit-Limit"] == "2"
    assert headers["X-RateLimit-Remaining"] == "0"
    assert headers["X-RateLimit-Reset"] == str(denied.reset_time)
    assert headers["Retry-After"] == str(denied.retry_after)


@pytest.mark.parametrize(
    "headers, host, expected",
    [
        ({"x-forwarded-for": "203.0.113.7, 10.0.0.1"}, "10.0.0.1", "203.0.113.7"),
        ({"x-forwarded-for": " 198.51.100.2 "}, None, "198.51.100.2"),
        ({}, "192.0.2.10", "192.0.2.10"),
        ({}, None, UNKNOWN_CLIENT),
    ],
)
def test_client_identifier(headers, host, expected):
    request = SimpleNamespace(
        headers=headers,
        client=SimpleNamespace(host=host) if host else None,
    )
    assert get_client_identifier(request) == expected

"""
Tests for the fixed-window rate limiter.

Usage:
    pytest backend/tests/test_rate_limit.py -v
"""

from cryptoquery.services.assistant import RateLimiter


def _limiter(clock, max_requests=20):
    return RateLimiter(max_requests=max_requests, window_seconds=60, clock=clock)


def test_allows_up_to_max_then_rejects(clock):
    limiter = _limiter(clock)

    results = [limiter.check("1.2.3.4") for _ in range(21)]

    assert results[:20] == [True] * 20
    assert results[20] is False


def test_rejection_does_not_mutate_window(clock):
    limiter = _limiter(clock, max_requests=2)
    limiter.check("ip")
    limiter.check("ip")

    for _ in range(5):
        assert limiter.check("ip") is False
    assert limiter.status("ip")["remaining"] == 0


def test_allows_again_once_window_elapses(clock):
    limiter = _limiter(clock, max_requests=3)
    for _ in range(3):
        limiter.check("ip")
    assert limiter.check("ip") is False

    clock.advance(60)
    assert limiter.check("ip") is True
    assert limiter.status("ip")["remaining"] == 2


def test_identities_are_counted_separately(clock):
    limiter = _limiter(clock, max_requests=1)

    assert limiter.check("a") is True
    assert limiter.check("b") is True
    assert limiter.check("a") is False


def test_fixed_window_allows_burst_across_boundary(clock):
    # Known limitation of a fixed window: 2 x max in a short span
    limiter = _limiter(clock, max_requests=5)
    limiter.check("ip")
    clock.advance(59)
    allowed_late = sum(limiter.check("ip") for _ in range(4))
    clock.advance(1)
    allowed_early = sum(limiter.check("ip") for _ in range(5))

    assert allowed_late + allowed_early == 9


def test_status_without_window_reports_full_quota(clock):
    limiter = _limiter(clock)

    assert limiter.status("new") == {"limit": 20, "remaining": 20, "reset_in_seconds": 0.0}
    assert len(limiter) == 0


def test_cleanup_drops_only_reset_windows(clock):
    limiter = _limiter(clock)
    limiter.check("old")
    clock.advance(30)
    limiter.check("recent")
    clock.advance(30)

    assert limiter.cleanup() == 1
    assert len(limiter) == 1
    assert limiter.status("recent")["remaining"] == 19

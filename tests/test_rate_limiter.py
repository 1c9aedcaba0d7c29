# tests/test_rate_limiter.py
"""
Tests for RateLimiter.

Verifies:
  - Request and token budgets within one window.
  - Lazy window reset.
  - Optimistic, non-refunding accounting.
  - Read-only status snapshots.
  - Concurrent admission safety.
"""

from __future__ import annotations

import asyncio

import pytest

from promptboost.exceptions import RateLimited
from promptboost.limiter.rate import RateLimiter


class FakeClock:
    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.mark.asyncio
class TestRateLimiter:
    async def test_admits_up_to_request_limit(self, clock):
        limiter = RateLimiter("openai", request_limit=3, token_limit=10_000, clock=clock)
        for _ in range(3):
            await limiter.acquire(10)

        with pytest.raises(RateLimited) as exc_info:
            await limiter.acquire(10)

        err = exc_info.value
        assert err.local is True
        assert err.provider == "openai"
        assert err.retry_after == pytest.approx(60.0)

    async def test_rejects_when_token_budget_exceeded(self, clock):
        limiter = RateLimiter("anthropic", request_limit=50, token_limit=100, clock=clock)
        await limiter.acquire(60)

        with pytest.raises(RateLimited):
            await limiter.acquire(41)

        # Exactly at the limit is still admitted.
        await limiter.acquire(40)
        assert limiter.state.tokens_used == 100

    async def test_rejected_call_does_not_consume_budget(self, clock):
        limiter = RateLimiter("openai", request_limit=5, token_limit=100, clock=clock)
        await limiter.acquire(90)
        with pytest.raises(RateLimited):
            await limiter.acquire(20)
        assert limiter.state.requests_used == 1
        assert limiter.state.tokens_used == 90

    async def test_window_resets_after_expiry(self, clock):
        limiter = RateLimiter("openai", request_limit=1, token_limit=100, clock=clock)
        await limiter.acquire(50)
        with pytest.raises(RateLimited):
            await limiter.acquire(1)

        clock.advance(60)
        await limiter.acquire(50)

        assert limiter.state.requests_used == 1
        assert limiter.state.window_start == clock.now

    async def test_retry_after_shrinks_as_window_ages(self, clock):
        limiter = RateLimiter("openai", request_limit=1, token_limit=100, clock=clock)
        await limiter.acquire()
        clock.advance(45)
        with pytest.raises(RateLimited) as exc_info:
            await limiter.acquire()
        assert exc_info.value.retry_after == pytest.approx(15.0)

    async def test_status_is_read_only(self, clock):
        limiter = RateLimiter("openai", request_limit=10, token_limit=1_000, clock=clock)
        await limiter.acquire(100)
        clock.advance(20)

        first = limiter.status()
        second = limiter.status()

        assert first == second
        assert first.requests_remaining == 9
        assert first.tokens_remaining == 900
        assert first.time_until_reset == pytest.approx(40.0)
        assert limiter.state.requests_used == 1

    async def test_status_after_expiry_reports_full_budget(self, clock):
        limiter = RateLimiter("openai", request_limit=10, token_limit=1_000, clock=clock)
        await limiter.acquire(100)
        clock.advance(61)

        status = limiter.status()

        assert status.requests_remaining == 10
        assert status.tokens_remaining == 1_000
        # status() never resets the window itself
        assert limiter.state.requests_used == 1

    async def test_concurrent_acquire_never_overcommits(self, clock):
        limiter = RateLimiter("openai", request_limit=5, token_limit=10_000, clock=clock)

        results = await asyncio.gather(
            *(limiter.acquire(10) for _ in range(10)), return_exceptions=True
        )

        admitted = [r for r in results if r is None]
        rejected = [r for r in results if isinstance(r, RateLimited)]
        assert len(admitted) == 5
        assert len(rejected) == 5
        assert limiter.state.requests_used == 5

    async def test_sync_remaining_only_tightens(self, clock):
        limiter = RateLimiter("openai", request_limit=60, token_limit=10_000, clock=clock)
        await limiter.acquire(100)

        await limiter.sync_remaining(requests_remaining=50, tokens_remaining=9_950)
        assert limiter.state.requests_used == 10
        assert limiter.state.tokens_used == 100

        await limiter.sync_remaining(requests_remaining=59)
        assert limiter.state.requests_used == 10

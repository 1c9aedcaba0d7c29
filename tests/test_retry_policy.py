# tests/test_retry_policy.py
"""
Tests for RetryPolicy and is_retryable.
"""

from __future__ import annotations

import asyncio

import httpx
import pytest

from promptboost.exceptions import (
    AuthenticationError,
    EmptyInput,
    EmptyResponse,
    OAuthError,
    ProviderError,
    ProviderRequestError,
    ProviderUnavailable,
    QuotaExceeded,
    RateLimited,
    RequestCancelled,
    TransientNetworkError,
)
from promptboost.retry.policy import RetryContext, RetryPolicy, is_retryable


class Flaky:
    """Coroutine factory failing with the scripted errors, then returning "ok"."""

    def __init__(self, *errors: BaseException) -> None:
        self.errors = list(errors)
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return "ok"


class TestIsRetryable:
    @pytest.mark.parametrize(
        "error",
        [
            TransientNetworkError("timeout"),
            RateLimited("slow down", status_code=429),
            RateLimited("local", local=True),
            EmptyResponse("nothing"),
            ProviderError("bad gateway", status_code=502),
            ProviderError("request timeout", status_code=408),
            httpx.ConnectError("refused"),
            httpx.ReadTimeout("slow"),
            asyncio.TimeoutError(),
        ],
    )
    def test_retryable(self, error):
        assert is_retryable(error) is True

    @pytest.mark.parametrize(
        "error",
        [
            AuthenticationError("bad key", status_code=401),
            EmptyInput("empty"),
            ProviderRequestError("bad request", status_code=400),
            QuotaExceeded("pay up", status_code=402),
            ProviderUnavailable("none"),
            OAuthError("denied"),
            RequestCancelled("cancelled"),
            ProviderError("not found", status_code=404),
            ValueError("bug"),
        ],
    )
    def test_fatal(self, error):
        assert is_retryable(error) is False


class TestComputeDelay:
    def test_exponential(self):
        policy = RetryPolicy(base_delay=1.0, max_delay=10.0)
        assert [policy.compute_delay(a) for a in range(5)] == [1.0, 2.0, 4.0, 8.0, 10.0]

    def test_retry_after_lifts_delay(self):
        policy = RetryPolicy(base_delay=1.0, max_delay=10.0)
        assert policy.compute_delay(0, retry_after=3.5) == 3.5
        assert policy.compute_delay(2, retry_after=0.5) == 4.0

    def test_retry_after_is_capped(self):
        policy = RetryPolicy(base_delay=1.0, max_delay=10.0)
        assert policy.compute_delay(0, retry_after=60.0) == 10.0

    def test_invalid_max_attempts(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)


@pytest.mark.asyncio
class TestExecute:
    async def test_success_first_try(self):
        fn = Flaky()
        ctx = RetryContext(max_attempts=3)
        assert await RetryPolicy(base_delay=0.0).execute(fn, context=ctx) == "ok"
        assert fn.calls == 1
        assert ctx.delays == []

    async def test_transient_errors_then_success(self):
        fn = Flaky(TransientNetworkError("a"), TransientNetworkError("b"))
        ctx = RetryContext(max_attempts=3)
        policy = RetryPolicy(max_attempts=3, base_delay=0.01, max_delay=1.0)

        assert await policy.execute(fn, context=ctx) == "ok"

        assert fn.calls == 3
        assert ctx.attempt == 3
        assert ctx.delays == [0.01, 0.02]

    async def test_fatal_error_not_retried(self):
        error = AuthenticationError("bad key", status_code=401)
        fn = Flaky(error)

        with pytest.raises(AuthenticationError) as exc_info:
            await RetryPolicy(base_delay=0.0).execute(fn)

        assert exc_info.value is error
        assert fn.calls == 1
        assert error.attempts == 1
        assert error.retry_count == 0

    async def test_exhaustion_reraises_last_error(self):
        last = TransientNetworkError("c")
        fn = Flaky(TransientNetworkError("a"), TransientNetworkError("b"), last)

        with pytest.raises(TransientNetworkError) as exc_info:
            await RetryPolicy(max_attempts=3, base_delay=0.0).execute(fn)

        assert exc_info.value is last
        assert last.attempts == 3
        assert last.retry_count == 2
        assert fn.calls == 3

    async def test_on_retry_callback(self):
        seen = []
        fn = Flaky(EmptyResponse("nothing"))
        await RetryPolicy(base_delay=0.0).execute(
            fn, on_retry=lambda attempt, exc, delay: seen.append((attempt, type(exc), delay))
        )
        assert seen == [(1, EmptyResponse, 0.0)]

    async def test_server_retry_after_respected(self):
        fn = Flaky(RateLimited("slow down", status_code=429, retry_after=0.03))
        ctx = RetryContext(max_attempts=3)
        await RetryPolicy(base_delay=0.01, max_delay=1.0).execute(fn, context=ctx)
        assert ctx.delays == [0.03]

    async def test_cancel_event_interrupts_backoff(self):
        fn = Flaky(TransientNetworkError("a"), TransientNetworkError("b"))
        cancel = asyncio.Event()
        policy = RetryPolicy(max_attempts=3, base_delay=5.0, max_delay=5.0)

        task = asyncio.create_task(policy.execute(fn, cancel_event=cancel))
        await asyncio.sleep(0.02)
        cancel.set()

        with pytest.raises(RequestCancelled) as exc_info:
            await asyncio.wait_for(task, timeout=1.0)
        assert fn.calls == 1
        assert exc_info.value.attempts == 1

    async def test_task_cancellation_propagates(self):
        fn = Flaky(TransientNetworkError("a"))
        policy = RetryPolicy(max_attempts=3, base_delay=5.0, max_delay=5.0)

        task = asyncio.create_task(policy.execute(fn))
        await asyncio.sleep(0.02)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert fn.calls == 1

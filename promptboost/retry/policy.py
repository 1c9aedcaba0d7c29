# promptboost/retry/policy.py
"""
Retry policy with exponential backoff around one logical call.

Classification
--------------
is_retryable() is a pure function over the exception:
  - retryable: network failures, timeouts, rate limits (local or HTTP 429),
    5xx-class responses and empty provider responses;
  - fatal: authentication and validation errors, other 4xx responses, OAuth
    failures, unavailable providers and cancellations.

Backoff
-------
delay = base_delay * 2**attempt, capped at max_delay, where *attempt* is the
0-based index of the attempt that just failed. A server-supplied retry_after
hint lifts the delay to at least that value (still capped).

On the final failed attempt the original exception is re-raised, not
wrapped, with ``attempts`` and ``retry_count`` filled in.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, TypeVar

import httpx

from ..constants import (
    RETRY_BASE_DELAY_SECONDS,
    RETRY_MAX_ATTEMPTS,
    RETRY_MAX_DELAY_SECONDS,
    RETRYABLE_STATUS_CODES,
)
from ..exceptions import (
    AuthenticationError,
    EmptyResponse,
    OAuthError,
    PromptBoostError,
    ProviderRequestError,
    ProviderUnavailable,
    RateLimited,
    RequestCancelled,
    TransientNetworkError,
    ValidationError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_FATAL = (
    AuthenticationError,
    ValidationError,
    ProviderRequestError,
    ProviderUnavailable,
    OAuthError,
    RequestCancelled,
)


@dataclass
class RetryContext:
    """State of one logical call. Never persisted."""

    max_attempts: int
    attempt: int = 0
    last_error: BaseException | None = None
    delays: list[float] = field(default_factory=list)


def is_retryable(error: BaseException) -> bool:
    """Return True if *error* is worth another attempt after a backoff."""
    if isinstance(error, (TransientNetworkError, RateLimited, EmptyResponse)):
        return True
    if isinstance(error, _FATAL):
        return False
    if isinstance(error, PromptBoostError):
        return error.status_code in RETRYABLE_STATUS_CODES
    return isinstance(error, (httpx.TimeoutException, httpx.TransportError, asyncio.TimeoutError))


class RetryPolicy:
    """
    Drives up to *max_attempts* attempts of one call with exponential backoff.

    Parameters
    ----------
    max_attempts:
        Total attempts, first try included.
    base_delay:
        Backoff base in seconds.
    max_delay:
        Upper bound for a single backoff sleep.
    """

    def __init__(
        self,
        max_attempts: int = RETRY_MAX_ATTEMPTS,
        base_delay: float = RETRY_BASE_DELAY_SECONDS,
        max_delay: float = RETRY_MAX_DELAY_SECONDS,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay

    def compute_delay(self, attempt: int, retry_after: float | None = None) -> float:
        """Backoff before the retry that follows the failed 0-based *attempt*."""
        delay = self.base_delay * (2 ** attempt)
        if retry_after is not None:
            delay = max(delay, retry_after)
        return min(delay, self.max_delay)

    async def execute(
        self,
        fn: Callable[[], Awaitable[T]],
        *,
        cancel_event: asyncio.Event | None = None,
        context: RetryContext | None = None,
        on_retry: Callable[[int, BaseException, float], None] | None = None,
    ) -> T:
        """
        Call *fn* until it succeeds, fails fatally or attempts run out.

        Parameters
        ----------
        fn:
            Zero-argument coroutine factory performing one attempt.
        cancel_event:
            When set, the next backoff sleep ends early and RequestCancelled
            is raised instead of retrying.
        context:
            Optional RetryContext to record into; a fresh one is used otherwise.
        on_retry:
            Called with (attempt, error, delay) before each backoff sleep.
        """
        ctx = context if context is not None else RetryContext(max_attempts=self.max_attempts)
        ctx.max_attempts = self.max_attempts

        while True:
            if cancel_event is not None and cancel_event.is_set():
                raise self._annotate(RequestCancelled("Request cancelled"), ctx)

            ctx.attempt += 1
            try:
                return await fn()
            except Exception as exc:
                ctx.last_error = exc
                if not is_retryable(exc) or ctx.attempt >= ctx.max_attempts:
                    self._annotate(exc, ctx)
                    raise

                delay = self.compute_delay(
                    ctx.attempt - 1, retry_after=getattr(exc, "retry_after", None)
                )
                ctx.delays.append(delay)
                logger.warning(
                    "Retrying after %s (attempt %d/%d) in %.2fs: %s",
                    type(exc).__name__,
                    ctx.attempt,
                    ctx.max_attempts,
                    delay,
                    exc,
                )
                if on_retry is not None:
                    on_retry(ctx.attempt, exc, delay)

            await self._sleep(delay, cancel_event, ctx)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _sleep(
        self,
        delay: float,
        cancel_event: asyncio.Event | None,
        ctx: RetryContext,
    ) -> None:
        """Backoff sleep that wakes early if *cancel_event* is set."""
        if cancel_event is None:
            await asyncio.sleep(delay)
            return
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return
        raise self._annotate(RequestCancelled("Request cancelled during retry backoff"), ctx)

    @staticmethod
    def _annotate(exc: BaseException, ctx: RetryContext) -> BaseException:
        if isinstance(exc, PromptBoostError):
            exc.attempts = ctx.attempt
            exc.retry_count = max(0, ctx.attempt - 1)
        return exc

# promptboost/limiter/rate.py
"""
Per-provider-instance rate limiter.

State machine
-------------
IDLE           → no call admitted in the current window.
ADMITTED       → at least one call admitted; counters are non-zero.
WINDOW EXPIRED → ``now >= window_start + window_seconds``. Detected lazily on
                 the next acquire(): counters reset and the window restarts
                 at ``now`` (back to IDLE before the admission check).

Accounting is optimistic: counters are incremented on admission, before the
network call, and a failed call never refunds its budget. Providers count a
rejected draft request against the quota too, so the local view stays on the
conservative side.

This is a local admission check. It never talks to the provider; server-side
429 responses are surfaced separately by the adapters.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Callable

from ..constants import DEFAULT_REQUESTS_PER_MINUTE, DEFAULT_TOKENS_PER_MINUTE, WINDOW_SECONDS
from ..exceptions import RateLimited
from ..models import RateLimitStatus


@dataclass
class RateState:
    window_start: float
    requests_used: int = 0
    tokens_used: int = 0
    request_limit: int = DEFAULT_REQUESTS_PER_MINUTE
    token_limit: int = DEFAULT_TOKENS_PER_MINUTE


class RateLimiter:
    """
    Coroutine-safe sliding-window request/token budget.

    Parameters
    ----------
    provider:
        Provider id, used in error messages.
    request_limit:
        Requests admitted per window.
    token_limit:
        Estimated tokens admitted per window.
    window_seconds:
        Window duration.
    clock:
        Returns the current time in epoch seconds. Injected by tests.
    """

    def __init__(
        self,
        provider: str,
        request_limit: int = DEFAULT_REQUESTS_PER_MINUTE,
        token_limit: int = DEFAULT_TOKENS_PER_MINUTE,
        window_seconds: float = WINDOW_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.provider = provider
        self._window = window_seconds
        self._clock = clock
        self._state = RateState(
            window_start=clock(),
            request_limit=request_limit,
            token_limit=token_limit,
        )
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _reset_if_expired(self, now: float) -> None:
        """Must be called while holding self._lock."""
        if now >= self._state.window_start + self._window:
            self._state.window_start = now
            self._state.requests_used = 0
            self._state.tokens_used = 0

    def _reset_time(self) -> float:
        return self._state.window_start + self._window

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def acquire(self, estimated_tokens: int = 0) -> None:
        """
        Admit one call costing *estimated_tokens*, or raise RateLimited.

        The check and the increment happen under one lock so concurrent
        callers cannot both take the last slot.
        """
        async with self._lock:
            now = self._clock()
            self._reset_if_expired(now)
            state = self._state
            if (
                state.requests_used >= state.request_limit
                or state.tokens_used + estimated_tokens > state.token_limit
            ):
                retry_after = max(0.0, self._reset_time() - now)
                raise RateLimited(
                    f"Rate limit exceeded for {self.provider}: "
                    f"{state.requests_used}/{state.request_limit} requests, "
                    f"{state.tokens_used}/{state.token_limit} tokens in window. "
                    f"Resets in {retry_after:.1f}s.",
                    provider=self.provider,
                    retry_after=retry_after,
                    local=True,
                )
            state.requests_used += 1
            state.tokens_used += estimated_tokens

    def status(self) -> RateLimitStatus:
        """Return remaining budget and reset time. Does not mutate state."""
        now = self._clock()
        state = self._state
        reset_time = self._reset_time()
        if now >= reset_time:
            return RateLimitStatus(
                requests_remaining=state.request_limit,
                tokens_remaining=state.token_limit,
                reset_time=now + self._window,
                time_until_reset=float(self._window),
            )
        return RateLimitStatus(
            requests_remaining=max(0, state.request_limit - state.requests_used),
            tokens_remaining=max(0, state.token_limit - state.tokens_used),
            reset_time=reset_time,
            time_until_reset=max(0.0, reset_time - now),
        )

    async def sync_remaining(
        self,
        requests_remaining: int | None = None,
        tokens_remaining: int | None = None,
    ) -> None:
        """
        Fold provider-reported remaining budget into the local counters.

        Only ever tightens the local view; a server reporting more headroom
        than the local limit does not hand back optimistically spent budget.
        """
        async with self._lock:
            self._reset_if_expired(self._clock())
            state = self._state
            if requests_remaining is not None:
                used = max(0, state.request_limit - requests_remaining)
                state.requests_used = max(state.requests_used, used)
            if tokens_remaining is not None:
                used = max(0, state.token_limit - tokens_remaining)
                state.tokens_used = max(state.tokens_used, used)

    @property
    def state(self) -> RateState:
        return self._state

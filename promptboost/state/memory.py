# promptboost/state/memory.py
"""
In-process, in-memory flow-state store.

Uses asyncio.Lock for safe concurrent access within a single event loop.
All state is lost when the process exits — appropriate for single-process
hosts and development/testing.

Entries saved with a TTL are treated as absent once the TTL has elapsed.
"""

from __future__ import annotations

import asyncio
import time

from ..models import OAuthFlowState
from .base import AbstractFlowStore


class InMemoryFlowStore(AbstractFlowStore):
    """Single-slot flow-state store (default, zero deps)."""

    def __init__(self) -> None:
        self._state: OAuthFlowState | None = None
        self._expires_at: float | None = None
        self._lock = asyncio.Lock()

    async def load(self) -> OAuthFlowState | None:
        async with self._lock:
            self._drop_expired()
            return self._state

    async def save(self, state: OAuthFlowState, ttl_seconds: float | None = None) -> None:
        async with self._lock:
            self._state = state
            self._expires_at = time.time() + ttl_seconds if ttl_seconds is not None else None

    async def clear(
        self,
        provider: str | None = None,
        code_verifier: str | None = None,
    ) -> bool:
        async with self._lock:
            self._drop_expired()
            if self._state is None or not self._matches(self._state, provider, code_verifier):
                return False
            self._state = None
            self._expires_at = None
            return True

    def _drop_expired(self) -> None:
        """Must be called while holding self._lock."""
        if self._expires_at is not None and time.time() >= self._expires_at:
            self._state = None
            self._expires_at = None

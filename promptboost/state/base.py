# promptboost/state/base.py
"""
Abstract interface that every OAuth flow-state store must implement.

The store holds a single synchronized entry: the current OAuthFlowState.
There is at most one live entry at any time; saving a new flow overwrites
whatever was there. Only the AuthenticationManager reads or writes it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from ..models import OAuthFlowState


class AbstractFlowStore(ABC):
    """Interface contract for all flow-state store implementations."""

    @abstractmethod
    async def load(self) -> OAuthFlowState | None:
        """Return the live flow state, or None if no flow is in flight."""

    @abstractmethod
    async def save(self, state: OAuthFlowState, ttl_seconds: float | None = None) -> None:
        """
        Persist *state* as the single live flow, replacing any previous one.

        Parameters
        ----------
        state:
            The flow to persist.
        ttl_seconds:
            Optional lifetime after which the store may drop the entry on its own.
        """

    @abstractmethod
    async def clear(
        self,
        provider: str | None = None,
        code_verifier: str | None = None,
    ) -> bool:
        """
        Delete the live flow state.

        When *provider* and/or *code_verifier* are given, the entry is only
        deleted if it matches them, so a finishing flow cannot remove the state
        of a newer flow that replaced it. Returns True if an entry was deleted.
        """

    async def close(self) -> None:
        """Release any resources held by this store (e.g. Redis connections)."""

    @staticmethod
    def _matches(
        state: OAuthFlowState,
        provider: str | None,
        code_verifier: str | None,
    ) -> bool:
        if provider is not None and state.provider != provider:
            return False
        if code_verifier is not None and state.code_verifier != code_verifier:
            return False
        return True

# promptboost/exceptions.py
"""
Custom exceptions for the PromptBoost core.

All public exceptions inherit from PromptBoostError so callers can catch
the whole family with a single except clause if preferred.

Every error carries enough context (provider id, attempt count, HTTP status,
underlying message) to render a user-facing message without re-deriving
state. The retry layer fills in ``attempts`` and ``retry_count`` before an
error reaches the caller.
"""

from __future__ import annotations


class PromptBoostError(Exception):
    """
    Base exception for all core errors.

    Attributes
    ----------
    provider:
        Identifier of the provider involved, if any.
    status_code:
        HTTP status reported by the provider, if the error came from a response.
    attempts:
        Number of attempts made for the logical call (set by the retry layer).
    retry_count:
        Number of retries performed, i.e. ``attempts - 1``.
    """

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        status_code: int | None = None,
    ) -> None:
        self.message = message
        self.provider = provider
        self.status_code = status_code
        self.attempts = 0
        self.retry_count = 0
        super().__init__(message)


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------


class ValidationError(PromptBoostError):
    """Raised when the caller's input is rejected before any network activity."""


class EmptyInput(ValidationError):
    """Raised for empty or whitespace-only text."""


class InputTooLong(ValidationError):
    """Raised when the text exceeds the configured length ceiling."""

    def __init__(self, length: int, limit: int) -> None:
        self.length = length
        self.limit = limit
        super().__init__(f"Input is {length} characters; the maximum is {limit}.")


# ---------------------------------------------------------------------------
# Provider errors
# ---------------------------------------------------------------------------


class ProviderError(PromptBoostError):
    """Base class for errors raised by a provider adapter."""


class AuthenticationError(ProviderError):
    """Bad or missing credential. Never retried."""


class RateLimited(ProviderError):
    """
    Raised when a call is rejected for rate-limit reasons.

    Either the local admission check refused the call, or the server replied
    with HTTP 429. Retryable.

    Attributes
    ----------
    retry_after:
        Seconds until the budget is expected to reset, when known.
    local:
        True when the rejection came from the local admission check.
    """

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        status_code: int | None = None,
        retry_after: float | None = None,
        local: bool = False,
    ) -> None:
        self.retry_after = retry_after
        self.local = local
        super().__init__(message, provider=provider, status_code=status_code)


class TransientNetworkError(ProviderError):
    """Timeout, connection failure or 5xx-class response. Retryable."""


class EmptyResponse(ProviderError):
    """The provider returned nothing usable. Retryable."""


class ProviderRequestError(ProviderError):
    """The provider rejected the request (4xx other than auth/rate-limit). Fatal."""


class QuotaExceeded(ProviderRequestError):
    """Billing or usage quota exhausted (HTTP 402). Fatal."""


class ProviderUnavailable(PromptBoostError):
    """Raised when the registry could not resolve the provider or any fallback."""


class ProviderRegistrationError(PromptBoostError):
    """Raised when a provider cannot be registered (duplicate id, missing dependency)."""


# ---------------------------------------------------------------------------
# Authentication flow
# ---------------------------------------------------------------------------


class OAuthError(PromptBoostError):
    """Any failure in the PKCE authorization flow. Flow state is cleaned up first."""


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


class RequestCancelled(PromptBoostError):
    """The caller abandoned the request while it was waiting to retry."""


class RequestTimeout(RequestCancelled):
    """The caller-supplied deadline elapsed before the request completed."""

# promptboost/providers/base.py
"""
BaseProvider — abstract contract every provider adapter must implement.

An adapter wraps one third-party text-generation backend and exposes a
uniform interface to the orchestrator. The orchestrator never talks to a
provider's HTTP API or SDK directly; it always goes through an adapter.

Each adapter owns:
  - its ProviderDescriptor (id, capabilities, static model catalog),
  - the authenticated state for the config it was created with,
  - a RateLimiter instance (one per provider instance),
  - translation of transport/SDK failures into the typed errors of
    promptboost.exceptions.

Adding a new provider requires only subclassing BaseProvider, declaring a
descriptor and implementing _verify_credentials() and _complete().
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Mapping
from typing import Any, ClassVar

import httpx

from ..constants import (
    API_KEY_MAX_LENGTH,
    API_KEY_MIN_LENGTH,
    DEFAULT_REQUESTS_PER_MINUTE,
    DEFAULT_TOKENS_PER_MINUTE,
    PROBE_MAX_TOKENS,
    PROBE_PROMPT,
    PROVIDER_RATE_LIMITS,
    REQUEST_TIMEOUT_SECONDS,
    USER_AGENT,
)
from ..exceptions import (
    AuthenticationError,
    PromptBoostError,
    ProviderError,
    ProviderRequestError,
    QuotaExceeded,
    RateLimited,
    TransientNetworkError,
)
from ..limiter.rate import RateLimiter
from ..models import (
    CallOptions,
    Capability,
    ConfigValidation,
    ConnectionTestResult,
    ModelInfo,
    ProviderConfig,
    ProviderDescriptor,
)

logger = logging.getLogger(__name__)

# Response headers carrying the provider's own view of the remaining budget.
_REMAINING_REQUEST_HEADERS = (
    "x-ratelimit-remaining-requests",
    "anthropic-ratelimit-requests-remaining",
)
_REMAINING_TOKEN_HEADERS = (
    "x-ratelimit-remaining-tokens",
    "anthropic-ratelimit-tokens-remaining",
)


# ---------------------------------------------------------------------------
# HTTP error mapping shared by every adapter
# ---------------------------------------------------------------------------


def extract_error_message(response: httpx.Response, default: str | None = None) -> str:
    """
    Pull a human-readable message out of an error response.

    Looks at ``error.message``, then ``error`` (when it is a string), then
    ``message``; falls back to *default* or ``HTTP <status>: <reason>``.
    """
    fallback = default or f"HTTP {response.status_code}: {response.reason_phrase}"
    try:
        data = response.json()
    except ValueError:
        return fallback
    if not isinstance(data, dict):
        return fallback

    error = data.get("error")
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    if isinstance(error, str) and error:
        description = data.get("error_description")
        return f"{error}: {description}" if description else error
    if data.get("message"):
        return str(data["message"])
    return fallback


def parse_retry_after(headers: Mapping[str, str]) -> float | None:
    """Seconds from a ``Retry-After`` header; HTTP-date values are ignored."""
    value = headers.get("retry-after")
    if value is None:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


def error_from_status(
    status_code: int,
    message: str,
    *,
    provider: str,
    headers: Mapping[str, str] | None = None,
) -> ProviderError:
    """Map an HTTP error status onto the typed error hierarchy."""
    if status_code in (401, 403):
        return AuthenticationError(message, provider=provider, status_code=status_code)
    if status_code == 402:
        return QuotaExceeded(message, provider=provider, status_code=status_code)
    if status_code == 429:
        return RateLimited(
            message,
            provider=provider,
            status_code=status_code,
            retry_after=parse_retry_after(headers or {}),
        )
    if status_code == 408 or status_code >= 500:
        return TransientNetworkError(message, provider=provider, status_code=status_code)
    return ProviderRequestError(message, provider=provider, status_code=status_code)


def _int_header(headers: Mapping[str, str], names: tuple[str, ...]) -> int | None:
    for name in names:
        value = headers.get(name)
        if value is None:
            continue
        try:
            return int(float(value))
        except ValueError:
            continue
    return None


# ---------------------------------------------------------------------------
# BaseProvider
# ---------------------------------------------------------------------------


class BaseProvider(ABC):
    """
    Abstract base class for all provider adapters.

    Attributes
    ----------
    descriptor:
        Class-level static description (id, capabilities, models).
    open_catalog:
        True when the provider accepts model ids outside the static catalog;
        an unknown model is then a validation warning instead of an error.
    config:
        The ProviderConfig this instance was created with.
    is_authenticated:
        Whether authenticate() has succeeded for the current config.
    last_error:
        Message of the most recent authentication failure.
    rate_limiter:
        Local admission budget for this instance.
    """

    descriptor: ClassVar[ProviderDescriptor]
    open_catalog: ClassVar[bool] = False

    def __init__(
        self,
        config: ProviderConfig | None = None,
        *,
        rate_limiter: RateLimiter | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
    ) -> None:
        self.config = config if config is not None else ProviderConfig()
        self.is_authenticated = False
        self.last_error: str | None = None

        if rate_limiter is None:
            rpm, tpm = PROVIDER_RATE_LIMITS.get(
                self.id, (DEFAULT_REQUESTS_PER_MINUTE, DEFAULT_TOKENS_PER_MINUTE)
            )
            rate_limiter = RateLimiter(self.id, request_limit=rpm, token_limit=tpm)
        self.rate_limiter = rate_limiter

        self._http = http_client
        self._owns_http = http_client is None
        self._timeout = timeout
        self._authenticated_hash: str | None = None
        self._models: list[ModelInfo] = list(self.descriptor.models)

    # ------------------------------------------------------------------
    # Descriptor shortcuts
    # ------------------------------------------------------------------

    @property
    def id(self) -> str:
        return self.descriptor.id

    @property
    def display_name(self) -> str:
        return self.descriptor.display_name

    def supports(self, capability: Capability | str) -> bool:
        return Capability(capability) in self.descriptor.capabilities

    # ------------------------------------------------------------------
    # Adapter hooks
    # ------------------------------------------------------------------

    @abstractmethod
    async def _verify_credentials(self, config: ProviderConfig) -> None:
        """
        Confirm *config* is accepted by the provider.

        Raises
        ------
        AuthenticationError, or any other typed ProviderError.
        """

    @abstractmethod
    async def _complete(self, prompt: str, options: CallOptions) -> str:
        """
        Send one non-streaming generation request and return the raw text.

        Raises
        ------
        A typed ProviderError; never retries.
        """

    async def _stream(self, prompt: str, options: CallOptions) -> AsyncIterator[str]:
        """
        Yield text chunks as they arrive.

        Only called for providers declaring the streaming capability. The
        same error semantics as _complete() apply while iterating.
        """
        raise NotImplementedError("Subclasses with streaming support must implement _stream()")
        yield  # pragma: no cover

    async def _guarded_stream(self, prompt: str, options: CallOptions) -> AsyncIterator[str]:
        try:
            async for chunk in self._stream(prompt, options):
                yield chunk
        except AuthenticationError as exc:
            self._record_auth_failure(exc)
            raise

    async def _fetch_models(self) -> list[ModelInfo]:
        """Live model catalog. An empty list means "keep the static one"."""
        return []

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def validate_config(self, config: ProviderConfig | None = None) -> ConfigValidation:
        """Check *config* without any I/O."""
        config = config if config is not None else self.config
        result = ConfigValidation()

        api_key = config.api_key.strip()
        if not api_key:
            result.add_error("API key is required")
        elif not API_KEY_MIN_LENGTH <= len(api_key) <= API_KEY_MAX_LENGTH:
            result.add_error(
                f"API key must be between {API_KEY_MIN_LENGTH} and "
                f"{API_KEY_MAX_LENGTH} characters"
            )

        if config.model and self._models and config.model not in {m.id for m in self._models}:
            message = f"Unknown model for {self.display_name}: {config.model}"
            if self.open_catalog:
                result.warnings.append(message)
            else:
                result.add_error(message)

        if config.endpoint and not config.endpoint.startswith(("http://", "https://")):
            result.add_error("Endpoint must be an http(s) URL")

        return result

    async def authenticate(self, config: ProviderConfig | None = None) -> bool:
        """
        Validate the credential in *config* (or the instance config).

        A second call with the same config after a success returns
        immediately. A missing key fails before any network call.
        """
        config = config if config is not None else self.config

        if not config.api_key.strip():
            error = AuthenticationError(
                f"API key is required for {self.display_name}", provider=self.id
            )
            self._record_auth_failure(error)
            raise error

        fingerprint = config.stable_hash()
        if self.is_authenticated and fingerprint == self._authenticated_hash:
            return True

        try:
            await self._verify_credentials(config)
        except PromptBoostError as exc:
            self._record_auth_failure(exc)
            raise

        self.config = config
        self.is_authenticated = True
        self._authenticated_hash = fingerprint
        self.last_error = None
        logger.info("Authenticated with %s", self.id)
        return True

    def reset_authentication(self) -> None:
        self.is_authenticated = False
        self._authenticated_hash = None

    async def get_models(self) -> list[ModelInfo]:
        """
        Return the model catalog.

        Live catalog when authenticated and the fetch succeeds, otherwise the
        static list. Never raises.
        """
        if not self.is_authenticated or not self.supports(Capability.MODEL_LISTING):
            return list(self._models)
        try:
            live = await self._fetch_models()
        except Exception as exc:
            logger.warning("Failed to fetch live models for %s, using static list: %s", self.id, exc)
            return list(self._models)
        if live:
            self._models = live
        return list(self._models)

    async def call_api(
        self, prompt: str, options: CallOptions | None = None
    ) -> str | AsyncIterator[str]:
        """
        Perform exactly one generation request. No retry.

        Returns the generated text, or an async iterator of text chunks when
        ``options.stream`` is set.
        """
        options = options if options is not None else CallOptions()
        if not self.is_authenticated:
            raise AuthenticationError(
                f"{self.display_name} is not authenticated", provider=self.id
            )
        if options.stream:
            if not self.supports(Capability.STREAMING):
                raise ProviderRequestError(
                    f"{self.display_name} does not support streaming", provider=self.id
                )
            return self._guarded_stream(prompt, options)

        logger.debug("Calling %s (model=%s)", self.id, self._model_for(options))
        try:
            return await self._complete(prompt, options)
        except AuthenticationError as exc:
            self._record_auth_failure(exc)
            raise

    async def test_connection(self, config: ProviderConfig | None = None) -> ConnectionTestResult:
        """
        Validate, authenticate and send one minimal probe.

        Provider errors are reported in the result, never raised.
        """
        config = config if config is not None else self.config
        validation = self.validate_config(config)
        if not validation.is_valid:
            return ConnectionTestResult(
                success=False,
                detail="Invalid configuration",
                errors=validation.errors,
            )

        started = time.perf_counter()
        try:
            await self.authenticate(config)
            await self.rate_limiter.acquire(PROBE_MAX_TOKENS)
            await self.call_api(
                PROBE_PROMPT,
                CallOptions(model=config.model, max_tokens=PROBE_MAX_TOKENS, temperature=0.1),
            )
        except PromptBoostError as exc:
            return ConnectionTestResult(
                success=False,
                detail=exc.message,
                response_time_ms=(time.perf_counter() - started) * 1000,
                errors=[exc.message],
            )
        return ConnectionTestResult(
            success=True,
            detail=f"Connected to {self.display_name}",
            response_time_ms=(time.perf_counter() - started) * 1000,
        )

    def metadata(self) -> dict[str, Any]:
        """Descriptor fields plus the live state of this instance."""
        return {
            "id": self.id,
            "display_name": self.display_name,
            "description": self.descriptor.description,
            "capabilities": sorted(c.value for c in self.descriptor.capabilities),
            "default_model": self.descriptor.default_model,
            "is_authenticated": self.is_authenticated,
            "last_error": self.last_error,
            "rate_limit": self.rate_limiter.status().model_dump(),
        }

    async def close(self) -> None:
        """Release the HTTP client if this adapter created it."""
        if self._http is not None and self._owns_http:
            await self._http.aclose()
            self._http = None

    # ------------------------------------------------------------------
    # Helpers for subclasses
    # ------------------------------------------------------------------

    def _model_for(self, options: CallOptions) -> str:
        return options.model or self.config.model or self.descriptor.default_model

    def _base_url(self, config: ProviderConfig, default: str) -> str:
        return (config.endpoint or default).rstrip("/")

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(
                timeout=self._timeout,
                headers={"User-Agent": USER_AGENT},
            )
        return self._http

    async def _send(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        params: dict[str, str] | None = None,
        json: Any = None,
    ) -> httpx.Response:
        """
        Send one request and return the successful response.

        Transport failures and error statuses are raised as typed errors;
        rate-limit headers of a successful response update the limiter.
        """
        try:
            response = await self._client().request(
                method, url, headers=headers, params=params, json=json
            )
        except httpx.TimeoutException as exc:
            raise TransientNetworkError(
                f"Request to {self.display_name} timed out", provider=self.id
            ) from exc
        except httpx.TransportError as exc:
            raise TransientNetworkError(
                f"Network error talking to {self.display_name}: {exc}", provider=self.id
            ) from exc

        if response.is_error:
            raise error_from_status(
                response.status_code,
                extract_error_message(response),
                provider=self.id,
                headers=response.headers,
            )
        await self._sync_rate_headers(response.headers)
        return response

    async def _sync_rate_headers(self, headers: Mapping[str, str]) -> None:
        requests_remaining = _int_header(headers, _REMAINING_REQUEST_HEADERS)
        tokens_remaining = _int_header(headers, _REMAINING_TOKEN_HEADERS)
        if requests_remaining is None and tokens_remaining is None:
            return
        await self.rate_limiter.sync_remaining(
            requests_remaining=requests_remaining,
            tokens_remaining=tokens_remaining,
        )

    @staticmethod
    def _json(response: httpx.Response, provider: str) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError as exc:
            raise ProviderRequestError(
                "Provider returned invalid JSON", provider=provider, status_code=response.status_code
            ) from exc
        if not isinstance(data, dict):
            raise ProviderRequestError(
                "Provider returned an unexpected response", provider=provider
            )
        return data

    def _record_auth_failure(self, error: PromptBoostError) -> None:
        self.is_authenticated = False
        self._authenticated_hash = None
        self.last_error = error.message
        logger.warning("Authentication with %s failed: %s", self.id, error.message)

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"{self.__class__.__name__}("
            f"id={self.id!r}, model={self.config.model or self.descriptor.default_model!r}, "
            f"authenticated={self.is_authenticated})"
        )

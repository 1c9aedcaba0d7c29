# promptboost/orchestrator.py
"""
Orchestrator — the primary class the caller interacts with.

Runs the full pipeline for one optimization request:
  1. Validate the input text (no network activity before this passes).
  2. Resolve the provider through the registry, with fallback.
  3. Authenticate the provider if it is not authenticated yet (fatal on
     failure, never retried).
  4. For each attempt: rate-limiter admission, then one call_api().
  5. Retry transient failures through the RetryPolicy; propagate the last
     error, annotated with provider and attempt count, on exhaustion.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

from .auth.manager import AuthenticationManager
from .config import CoreConfig
from .constants import DEFAULT_PROVIDER
from .engine.estimator import estimate_tokens
from .exceptions import (
    EmptyInput,
    EmptyResponse,
    InputTooLong,
    PromptBoostError,
    ProviderUnavailable,
    RequestTimeout,
)
from .models import (
    CallOptions,
    ConnectionTestResult,
    ModelInfo,
    OptimizeSettings,
    ProviderConfig,
    RateLimitStatus,
    RegistrationResult,
)
from .providers.base import BaseProvider
from .providers.registry import ProviderRegistry
from .retry.policy import RetryPolicy
from .state.base import AbstractFlowStore

logger = logging.getLogger(__name__)


class Orchestrator:
    """
    Entry point for optimizing text through a configured provider.

    Parameters
    ----------
    config:
        Core configuration. Use one of the factory class methods
        (from_dict, from_yaml, from_env) for convenient construction.
    registry:
        Pre-built registry. When omitted, a registry is created and every
        built-in provider is registered; the outcome is kept in
        ``registration_results``.
    auth:
        Pre-built AuthenticationManager.
    retry_policy:
        Pre-built RetryPolicy; built from ``config.retry`` when omitted.
    estimator:
        ``text -> token count`` used for rate-limit admission.
    store:
        OAuth flow-state store for the default AuthenticationManager. A
        RedisFlowStore is used when ``config.redis_url`` is set.
    """

    def __init__(
        self,
        config: CoreConfig | None = None,
        *,
        registry: ProviderRegistry | None = None,
        auth: AuthenticationManager | None = None,
        retry_policy: RetryPolicy | None = None,
        estimator: Callable[[str], int] = estimate_tokens,
        store: AbstractFlowStore | None = None,
    ) -> None:
        self._config = config if config is not None else CoreConfig()
        self.registration_results: list[RegistrationResult] = []

        if registry is None:
            registry = ProviderRegistry(
                rate_limits=self._config.rate_limits,
                window_seconds=self._config.window_seconds,
                request_timeout=self._config.request_timeout_seconds,
            )
            self.registration_results = registry.register_builtin_providers()
            self._apply_provider_chain(registry)
        self._registry = registry

        if auth is None:
            if store is None and self._config.redis_url:
                from .state.redis import RedisFlowStore

                store = RedisFlowStore(self._config.redis_url)
            auth = AuthenticationManager(
                registry=registry,
                store=store,
                timeout=self._config.oauth_timeout_seconds,
            )
        self._auth = auth

        self._retry = retry_policy or RetryPolicy(
            max_attempts=self._config.retry.max_attempts,
            base_delay=self._config.retry.base_delay,
            max_delay=self._config.retry.max_delay,
        )
        self._estimate = estimator

    # ------------------------------------------------------------------
    # Factory methods
    # ------------------------------------------------------------------

    @classmethod
    def from_config(cls, config: CoreConfig, **kwargs: Any) -> "Orchestrator":
        return cls(config, **kwargs)

    @classmethod
    def from_dict(cls, data: dict[str, Any], **kwargs: Any) -> "Orchestrator":
        """Construct from a plain Python dictionary."""
        return cls(CoreConfig.from_dict(data), **kwargs)

    @classmethod
    def from_yaml(cls, path: str, **kwargs: Any) -> "Orchestrator":
        """Construct from a YAML config file."""
        return cls(CoreConfig.from_yaml(path), **kwargs)

    @classmethod
    def from_env(cls, **kwargs: Any) -> "Orchestrator":
        """Construct from environment variables."""
        return cls(CoreConfig.from_env(), **kwargs)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def config(self) -> CoreConfig:
        return self._config

    @property
    def registry(self) -> ProviderRegistry:
        return self._registry

    @property
    def auth(self) -> AuthenticationManager:
        return self._auth

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    async def call_llm_api(
        self,
        text: str,
        settings: OptimizeSettings,
        *,
        cancel_event: asyncio.Event | None = None,
        timeout: float | None = None,
    ) -> str:
        """
        Optimize *text* with the provider described by *settings*.

        Parameters
        ----------
        text:
            The caller's text; substituted for ``{text}`` in the template.
        settings:
            Provider selection, credentials and generation options.
        cancel_event:
            Setting it abandons the request at the next backoff.
        timeout:
            Upper bound on the whole call, retries included.

        Returns
        -------
        str
            The optimized text.

        Raises
        ------
        ValidationError, ProviderUnavailable, AuthenticationError,
        RequestCancelled / RequestTimeout, or the last provider error once
        retries are exhausted.
        """
        self._validate_input(text)

        if timeout is None:
            return await self._run(text, settings, cancel_event)
        try:
            return await asyncio.wait_for(self._run(text, settings, cancel_event), timeout)
        except asyncio.TimeoutError as exc:
            raise RequestTimeout(
                f"Request did not complete within {timeout}s", provider=settings.provider
            ) from exc

    async def test_provider(self, settings: OptimizeSettings) -> ConnectionTestResult:
        """Validate, authenticate and probe the provider in *settings*. Never raises."""
        provider_id = self._provider_id(settings)
        config = settings.provider_config()
        provider = await self._registry.get_provider(provider_id, config)
        if provider is None:
            message = f"Provider '{provider_id}' is not available"
            return ConnectionTestResult(success=False, detail=message, errors=[message])
        return await provider.test_connection(config)

    async def get_provider_models(
        self, provider_id: str, config: ProviderConfig | None = None
    ) -> list[ModelInfo]:
        """Model catalog for *provider_id*; live when the credential works."""
        provider = await self._require_provider(provider_id, config)
        if config is not None and config.api_key and not provider.is_authenticated:
            try:
                await self._auth.authenticate_provider(provider, config)
            except PromptBoostError as exc:
                logger.warning("Using static model list for %s: %s", provider_id, exc.message)
        return await provider.get_models()

    async def rate_limit_status(
        self, provider_id: str, config: ProviderConfig | None = None
    ) -> RateLimitStatus:
        provider = await self._require_provider(provider_id, config)
        return provider.rate_limiter.status()

    async def close(self) -> None:
        """Release all resources (HTTP clients, Redis connections, etc.)."""
        await self._registry.close_all()
        await self._auth.close()

    async def __aenter__(self) -> "Orchestrator":
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def _validate_input(self, text: str) -> None:
        if not text or not text.strip():
            raise EmptyInput("Text to optimize is empty")
        limit = self._config.max_input_length
        if len(text) > limit:
            raise InputTooLong(len(text), limit)

    async def _run(
        self,
        text: str,
        settings: OptimizeSettings,
        cancel_event: asyncio.Event | None,
    ) -> str:
        requested = self._provider_id(settings)
        config = settings.provider_config()

        provider = await self._registry.get_provider_with_fallback(requested, config)
        if provider is None:
            raise ProviderUnavailable(
                f"Provider '{requested}' is not available and no fallback succeeded",
                provider=requested,
            )

        if not provider.is_authenticated:
            await self._auth.authenticate_provider(provider, config)

        prompt = settings.render(text)
        options = CallOptions(
            # A model id only makes sense for the provider it was chosen for.
            model=settings.model if provider.id == requested else None,
            max_tokens=settings.max_tokens,
            temperature=settings.temperature,
        )
        cost = self._estimate(prompt) + settings.max_tokens

        async def attempt() -> str:
            await provider.rate_limiter.acquire(cost)
            result = await provider.call_api(prompt, options)
            if not isinstance(result, str) or not result.strip():
                raise EmptyResponse(
                    f"{provider.display_name} returned an empty response", provider=provider.id
                )
            return result

        try:
            result = await self._retry.execute(attempt, cancel_event=cancel_event)
        except PromptBoostError as exc:
            if exc.provider is None:
                exc.provider = provider.id
            logger.warning(
                "Call to %s failed after %d attempt(s): %s",
                provider.id,
                exc.attempts,
                exc.message,
            )
            raise

        logger.debug("Call to %s succeeded", provider.id)
        return result.strip()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _provider_id(self, settings: OptimizeSettings) -> str:
        return settings.provider or self._registry.default_provider or DEFAULT_PROVIDER

    async def _require_provider(
        self, provider_id: str, config: ProviderConfig | None
    ) -> BaseProvider:
        provider = await self._registry.get_provider(provider_id, config)
        if provider is None:
            raise ProviderUnavailable(
                f"Provider '{provider_id}' is not available", provider=provider_id
            )
        return provider

    def _apply_provider_chain(self, registry: ProviderRegistry) -> None:
        default = self._config.default_provider
        if default is not None:
            if registry.has_provider(default):
                registry.set_default_provider(default)
            else:
                logger.warning("Default provider %s is not registered", default)

        fallbacks = []
        for provider_id in self._config.fallback_providers:
            if registry.has_provider(provider_id):
                fallbacks.append(provider_id)
            else:
                logger.warning("Ignoring unregistered fallback provider %s", provider_id)
        registry.set_fallback_providers(fallbacks)

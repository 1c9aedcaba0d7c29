# promptboost/providers/registry.py
"""
ProviderRegistry — the single source of truth for available providers.

The registry holds two things:
  - factories, keyed by provider id, each with an immutable descriptor;
  - live provider instances, cached by ``(provider id, config hash)`` so two
    callers with the same configuration share one instance (and one rate
    limiter), while a changed API key gets a fresh one.

Built-in providers are a closed map of id → adapter class. Registering them
is isolated per provider: a missing optional dependency fails that provider
only and is reported in the returned RegistrationResult list.

Instance creation is guarded by an asyncio.Lock so concurrent coroutines
asking for the same (id, config) never build two instances.
"""

from __future__ import annotations

import asyncio
import importlib.util
import logging
import time
from typing import Any, Callable

import httpx

from ..config import RateLimitConfig
from ..constants import (
    DEFAULT_REQUESTS_PER_MINUTE,
    DEFAULT_TOKENS_PER_MINUTE,
    PROVIDER_RATE_LIMITS,
    REQUEST_TIMEOUT_SECONDS,
    WINDOW_SECONDS,
)
from ..exceptions import ProviderRegistrationError
from ..limiter.rate import RateLimiter
from ..models import ConnectionTestResult, ProviderConfig, ProviderDescriptor, RegistrationResult
from .anthropic import AnthropicProvider
from .base import BaseProvider
from .cohere import CohereProvider
from .gemini import GeminiProvider
from .openai import OpenAIProvider
from .openrouter import OpenRouterProvider

logger = logging.getLogger(__name__)

ProviderFactory = Callable[..., BaseProvider]
"""Called as ``factory(config, rate_limiter=..., http_client=..., timeout=...)``."""

# Map provider id → adapter class
_BUILTIN_PROVIDERS: dict[str, type[BaseProvider]] = {
    "openai": OpenAIProvider,
    "anthropic": AnthropicProvider,
    "cohere": CohereProvider,
    "openrouter": OpenRouterProvider,
    "gemini": GeminiProvider,
}


def _module_available(name: str) -> bool:
    try:
        return importlib.util.find_spec(name) is not None
    except (ImportError, ValueError):
        return False


class ProviderRegistry:
    """
    Holds provider factories and the instances created from them.

    Parameters
    ----------
    rate_limits:
        Per-provider overrides of the built-in rate-limit defaults.
    window_seconds:
        Rate-limit window handed to every new instance's limiter.
    http_client:
        Shared httpx client passed to every adapter; each adapter creates its
        own when omitted.
    request_timeout:
        Per-request timeout handed to every adapter, in seconds.
    clock:
        Time source for the rate limiters. Injected by tests.
    """

    def __init__(
        self,
        *,
        rate_limits: dict[str, RateLimitConfig] | None = None,
        window_seconds: float = WINDOW_SECONDS,
        http_client: httpx.AsyncClient | None = None,
        request_timeout: float = REQUEST_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._factories: dict[str, ProviderFactory] = {}
        self._descriptors: dict[str, ProviderDescriptor] = {}
        self._instances: dict[tuple[str, str], BaseProvider] = {}
        self._default: str | None = None
        self._fallbacks: list[str] = []
        self._rate_limits = dict(rate_limits or {})
        self._window_seconds = window_seconds
        self._http_client = http_client
        self._request_timeout = request_timeout
        self._clock = clock
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(
        self,
        provider_id: str,
        factory: ProviderFactory,
        descriptor: ProviderDescriptor | None = None,
    ) -> None:
        """
        Register *factory* under *provider_id*.

        The descriptor defaults to ``factory.descriptor`` (set on every
        BaseProvider subclass).

        Raises
        ------
        ProviderRegistrationError
            Duplicate id, descriptor mismatch or a missing required module.
        """
        descriptor = descriptor if descriptor is not None else getattr(factory, "descriptor", None)
        if descriptor is None:
            raise ProviderRegistrationError(
                f"No descriptor supplied for provider '{provider_id}'", provider=provider_id
            )
        if descriptor.id != provider_id:
            raise ProviderRegistrationError(
                f"Descriptor id '{descriptor.id}' does not match '{provider_id}'",
                provider=provider_id,
            )
        if provider_id in self._factories:
            raise ProviderRegistrationError(
                f"Provider '{provider_id}' is already registered", provider=provider_id
            )
        missing = [name for name in descriptor.requires if not _module_available(name)]
        if missing:
            raise ProviderRegistrationError(
                f"Provider '{provider_id}' needs missing package(s): {', '.join(missing)}",
                provider=provider_id,
            )

        self._factories[provider_id] = factory
        self._descriptors[provider_id] = descriptor
        logger.info("Registered provider %s", provider_id)

    def register_builtin_providers(self) -> list[RegistrationResult]:
        """Register every built-in adapter; failures are isolated and reported."""
        results: list[RegistrationResult] = []
        for provider_id, adapter_cls in _BUILTIN_PROVIDERS.items():
            try:
                self.register(provider_id, adapter_cls, adapter_cls.descriptor)
            except ProviderRegistrationError as exc:
                logger.error("Failed to register provider %s: %s", provider_id, exc.message)
                results.append(RegistrationResult(provider=provider_id, ok=False, error=exc.message))
            else:
                results.append(RegistrationResult(provider=provider_id, ok=True))
        return results

    async def unregister(self, provider_id: str) -> bool:
        """Remove a provider, its cached instances, and default/fallback references."""
        if provider_id not in self._factories:
            return False
        del self._factories[provider_id]
        del self._descriptors[provider_id]
        async with self._lock:
            stale = [key for key in self._instances if key[0] == provider_id]
            instances = [self._instances.pop(key) for key in stale]
        for instance in instances:
            await instance.close()
        if self._default == provider_id:
            self._default = None
        self._fallbacks = [p for p in self._fallbacks if p != provider_id]
        logger.info("Unregistered provider %s", provider_id)
        return True

    # ------------------------------------------------------------------
    # Default and fallback chain
    # ------------------------------------------------------------------

    @property
    def default_provider(self) -> str | None:
        return self._default

    @property
    def fallback_providers(self) -> list[str]:
        return list(self._fallbacks)

    def set_default_provider(self, provider_id: str) -> None:
        self._require_known(provider_id)
        self._default = provider_id

    def set_fallback_providers(self, provider_ids: list[str]) -> None:
        for provider_id in provider_ids:
            self._require_known(provider_id)
        self._fallbacks = list(provider_ids)

    # ------------------------------------------------------------------
    # Instances
    # ------------------------------------------------------------------

    async def get_provider(
        self, provider_id: str, config: ProviderConfig | None = None
    ) -> BaseProvider | None:
        """
        Return the cached instance for (*provider_id*, *config*), creating it
        on first use. Unknown ids and factory failures return None.
        """
        factory = self._factories.get(provider_id)
        if factory is None:
            logger.warning("Provider %s is not registered", provider_id)
            return None

        config = config if config is not None else ProviderConfig()
        key = (provider_id, config.stable_hash())
        async with self._lock:
            instance = self._instances.get(key)
            if instance is None:
                try:
                    instance = factory(
                        config,
                        rate_limiter=self._limiter_for(provider_id),
                        http_client=self._http_client,
                        timeout=self._request_timeout,
                    )
                except Exception as exc:
                    logger.error("Failed to create provider %s: %s", provider_id, exc)
                    return None
                self._instances[key] = instance
                logger.debug("Created provider instance %s", provider_id)
        return instance

    async def get_provider_with_fallback(
        self, provider_id: str | None, config: ProviderConfig | None = None
    ) -> BaseProvider | None:
        """
        Resolve *provider_id*, then each fallback in declared order, then the
        default provider. Returns None when every candidate fails.
        """
        tried: set[str] = set()
        for candidate in (provider_id, *self._fallbacks, self._default):
            if candidate is None or candidate in tried:
                continue
            tried.add(candidate)
            provider = await self.get_provider(candidate, config)
            if provider is not None:
                if provider_id is not None and candidate != provider_id:
                    logger.warning("Provider %s unavailable, falling back to %s", provider_id, candidate)
                return provider
        return None

    # ------------------------------------------------------------------
    # Querying
    # ------------------------------------------------------------------

    def descriptor(self, provider_id: str) -> ProviderDescriptor | None:
        return self._descriptors.get(provider_id)

    def provider_ids(self) -> list[str]:
        return list(self._factories)

    def has_provider(self, provider_id: str) -> bool:
        return provider_id in self._factories

    def stats(self) -> dict[str, Any]:
        instances = list(self._instances.values())
        return {
            "registered": len(self._factories),
            "instances": len(instances),
            "authenticated": sum(1 for p in instances if p.is_authenticated),
            "default_provider": self._default,
            "fallback_providers": list(self._fallbacks),
        }

    async def test_all_providers(
        self, configs: dict[str, ProviderConfig]
    ) -> dict[str, ConnectionTestResult]:
        """Run test_connection() for every configured provider concurrently."""

        async def _test(provider_id: str, config: ProviderConfig) -> ConnectionTestResult:
            provider = await self.get_provider(provider_id, config)
            if provider is None:
                return ConnectionTestResult(
                    success=False,
                    detail=f"Provider '{provider_id}' is not available",
                    errors=[f"Provider '{provider_id}' is not available"],
                )
            return await provider.test_connection(config)

        ids = list(configs)
        results = await asyncio.gather(*(_test(pid, configs[pid]) for pid in ids))
        return dict(zip(ids, results))

    async def close_all(self) -> None:
        """Call close() on every cached instance and drop the cache."""
        async with self._lock:
            instances = list(self._instances.values())
            self._instances.clear()
        for provider in instances:
            await provider.close()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_known(self, provider_id: str) -> None:
        if provider_id not in self._factories:
            raise ProviderRegistrationError(
                f"Unknown provider '{provider_id}'. Registered: {list(self._factories)}",
                provider=provider_id,
            )

    def _limiter_for(self, provider_id: str) -> RateLimiter:
        override = self._rate_limits.get(provider_id)
        if override is not None:
            rpm, tpm = override.requests_per_minute, override.tokens_per_minute
        else:
            rpm, tpm = PROVIDER_RATE_LIMITS.get(
                provider_id, (DEFAULT_REQUESTS_PER_MINUTE, DEFAULT_TOKENS_PER_MINUTE)
            )
        return RateLimiter(
            provider_id,
            request_limit=rpm,
            token_limit=tpm,
            window_seconds=self._window_seconds,
            clock=self._clock,
        )

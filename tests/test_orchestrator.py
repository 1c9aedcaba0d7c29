# tests/test_orchestrator.py
"""
Integration tests for Orchestrator.call_llm_api.

Uses MockProvider adapters so no real API calls are made. Tests cover:
  - Successful optimization through the prompt template.
  - Input validation before any network activity.
  - Authentication failures (fatal, never retried).
  - Retry on transient errors and empty responses.
  - Local rate-limit admission.
  - Fallback resolution and ProviderUnavailable.
  - Cancellation and overall timeout.
"""

from __future__ import annotations

import asyncio

import pytest

from promptboost import (
    AuthenticationError,
    CoreConfig,
    EmptyInput,
    EmptyResponse,
    InputTooLong,
    Orchestrator,
    OptimizeSettings,
    ProviderUnavailable,
    RateLimited,
    RequestCancelled,
    RequestTimeout,
    TransientNetworkError,
)
from promptboost.config import RateLimitConfig
from promptboost.models import ProviderConfig
from promptboost.providers.registry import ProviderRegistry


def _word_count(text: str) -> int:
    return len(text.split())


def _orchestrator(registry, retry, config=None):
    return Orchestrator(
        config or CoreConfig(),
        registry=registry,
        retry_policy=retry,
        estimator=_word_count,
    )


@pytest.mark.asyncio
class TestCallLLMAPI:
    async def test_returns_optimized_text(self, registry, mock_factory, fast_retry, settings):
        factory = mock_factory("openai", ["  A sharper prompt.  "])
        registry.register("openai", factory)
        orchestrator = _orchestrator(registry, fast_retry)

        result = await orchestrator.call_llm_api("make it better", settings)

        assert result == "A sharper prompt."
        assert factory.calls == 1
        assert factory.instances[0].prompts == ["Improve this prompt: make it better"]

    async def test_generation_options_are_forwarded(self, registry, mock_factory, fast_retry, api_key):
        factory = mock_factory("openai")
        registry.register("openai", factory)
        orchestrator = _orchestrator(registry, fast_retry)
        settings = OptimizeSettings(
            provider="openai", api_key=api_key, model="openai-model", max_tokens=42, temperature=0.2
        )

        await orchestrator.call_llm_api("hello", settings)

        options = factory.instances[0].options[0]
        assert options.model == "openai-model"
        assert options.max_tokens == 42
        assert options.temperature == 0.2

    async def test_missing_api_key_fails_without_network(self, registry, mock_factory, fast_retry):
        factory = mock_factory("openai")
        registry.register("openai", factory)
        orchestrator = _orchestrator(registry, fast_retry)

        with pytest.raises(AuthenticationError):
            await orchestrator.call_llm_api("hello", OptimizeSettings(provider="openai"))

        assert factory.verify_calls == 0
        assert factory.calls == 0
        assert factory.instances[0].last_error is not None

    @pytest.mark.parametrize("text", ["", "   ", "\n\t"])
    async def test_empty_input_rejected(self, registry, mock_factory, fast_retry, settings, text):
        factory = mock_factory("openai")
        registry.register("openai", factory)
        orchestrator = _orchestrator(registry, fast_retry)

        with pytest.raises(EmptyInput):
            await orchestrator.call_llm_api(text, settings)
        assert factory.instances == []

    async def test_input_too_long_rejected_before_any_call(
        self, registry, mock_factory, fast_retry, settings
    ):
        factory = mock_factory("openai")
        registry.register("openai", factory)
        orchestrator = _orchestrator(registry, fast_retry)

        with pytest.raises(InputTooLong) as exc_info:
            await orchestrator.call_llm_api("x" * 10_001, settings)

        assert exc_info.value.length == 10_001
        assert exc_info.value.limit == 10_000
        assert factory.calls == 0
        assert factory.instances == []

    async def test_input_at_limit_is_accepted(self, registry, mock_factory, fast_retry, settings):
        registry.register("openai", mock_factory("openai"))
        orchestrator = _orchestrator(registry, fast_retry)
        assert await orchestrator.call_llm_api("x" * 10_000, settings) == "optimized text"

    async def test_server_errors_retried_until_success(
        self, registry, mock_factory, fast_retry, settings
    ):
        factory = mock_factory(
            "openai",
            [
                TransientNetworkError("boom", status_code=500),
                TransientNetworkError("boom", status_code=500),
                "finally",
            ],
        )
        registry.register("openai", factory)
        orchestrator = _orchestrator(registry, fast_retry)

        result = await orchestrator.call_llm_api("hello", settings)

        assert result == "finally"
        assert factory.calls == 3
        assert len(fast_retry.delays) == 2
        assert fast_retry.delays == sorted(fast_retry.delays)

    async def test_unauthorized_is_not_retried(self, registry, mock_factory, fast_retry, settings):
        factory = mock_factory(
            "openai", [AuthenticationError("Invalid API key", status_code=401)]
        )
        registry.register("openai", factory)
        orchestrator = _orchestrator(registry, fast_retry)

        with pytest.raises(AuthenticationError) as exc_info:
            await orchestrator.call_llm_api("hello", settings)

        assert factory.calls == 1
        assert exc_info.value.attempts == 1
        assert exc_info.value.retry_count == 0
        assert exc_info.value.provider == "openai"

    async def test_revoked_key_forces_reauthentication(
        self, registry, mock_factory, fast_retry, settings
    ):
        factory = mock_factory("openai", [AuthenticationError("Key revoked", status_code=401)])
        registry.register("openai", factory)
        orchestrator = _orchestrator(registry, fast_retry)

        with pytest.raises(AuthenticationError):
            await orchestrator.call_llm_api("hello", settings)

        provider = factory.instances[0]
        assert provider.is_authenticated is False
        assert provider.last_error == "Key revoked"
        assert factory.verify_calls == 1

        result = await orchestrator.call_llm_api("hello", settings)

        assert result == "optimized text"
        assert factory.verify_calls == 2
        assert provider.is_authenticated is True

    async def test_exhausted_retries_propagate_last_error(
        self, registry, mock_factory, fast_retry, settings
    ):
        errors = [TransientNetworkError(f"boom {i}", status_code=503) for i in range(3)]
        factory = mock_factory("openai", list(errors))
        registry.register("openai", factory)
        orchestrator = _orchestrator(registry, fast_retry)

        with pytest.raises(TransientNetworkError) as exc_info:
            await orchestrator.call_llm_api("hello", settings)

        assert exc_info.value is errors[-1]
        assert exc_info.value.attempts == 3
        assert exc_info.value.retry_count == 2
        assert exc_info.value.provider == "openai"

    async def test_failed_authentication_is_fatal(self, registry, mock_factory, fast_retry, settings):
        factory = mock_factory(
            "openai", verify_error=AuthenticationError("Invalid API key", status_code=401)
        )
        registry.register("openai", factory)
        orchestrator = _orchestrator(registry, fast_retry)

        with pytest.raises(AuthenticationError):
            await orchestrator.call_llm_api("hello", settings)

        assert factory.verify_calls == 1
        assert factory.calls == 0

    async def test_authenticates_once_per_instance(self, registry, mock_factory, fast_retry, settings):
        factory = mock_factory("openai")
        registry.register("openai", factory)
        orchestrator = _orchestrator(registry, fast_retry)

        await orchestrator.call_llm_api("one", settings)
        await orchestrator.call_llm_api("two", settings)

        assert factory.verify_calls == 1
        assert factory.calls == 2
        assert len(factory.instances) == 1

    async def test_empty_response_is_retried(self, registry, mock_factory, fast_retry, settings):
        factory = mock_factory("openai", ["", "   ", "usable"])
        registry.register("openai", factory)
        orchestrator = _orchestrator(registry, fast_retry)

        assert await orchestrator.call_llm_api("hello", settings) == "usable"
        assert factory.calls == 3

    async def test_empty_responses_exhaust_to_empty_response(
        self, registry, mock_factory, fast_retry, settings
    ):
        factory = mock_factory("openai", default="")
        registry.register("openai", factory)
        orchestrator = _orchestrator(registry, fast_retry)

        with pytest.raises(EmptyResponse):
            await orchestrator.call_llm_api("hello", settings)
        assert factory.calls == 3

    async def test_local_rate_limit_blocks_calls(self, mock_factory, fast_retry, settings):
        registry = ProviderRegistry(
            rate_limits={"openai": RateLimitConfig(requests_per_minute=1, tokens_per_minute=10_000)}
        )
        factory = mock_factory("openai")
        registry.register("openai", factory)
        orchestrator = _orchestrator(registry, fast_retry)

        await orchestrator.call_llm_api("hello", settings)
        with pytest.raises(RateLimited) as exc_info:
            await orchestrator.call_llm_api("hello again", settings)

        assert exc_info.value.local is True
        assert exc_info.value.attempts == 3
        assert factory.calls == 1

    async def test_token_budget_includes_max_tokens(self, mock_factory, fast_retry, api_key):
        registry = ProviderRegistry(
            rate_limits={"openai": RateLimitConfig(requests_per_minute=60, tokens_per_minute=150)}
        )
        factory = mock_factory("openai")
        registry.register("openai", factory)
        orchestrator = _orchestrator(registry, fast_retry)
        settings = OptimizeSettings(provider="openai", api_key=api_key, max_tokens=200)

        with pytest.raises(RateLimited):
            await orchestrator.call_llm_api("short", settings)
        assert factory.calls == 0

    async def test_falls_back_to_next_provider(self, registry, mock_factory, fast_retry, settings):
        anthropic = mock_factory("anthropic", ["from anthropic"])
        registry.register("anthropic", anthropic)
        registry.set_fallback_providers(["anthropic"])
        orchestrator = _orchestrator(registry, fast_retry)

        result = await orchestrator.call_llm_api(
            "hello", settings.model_copy(update={"model": "gpt-4"})
        )

        assert result == "from anthropic"
        assert anthropic.calls == 1
        # The requested model id belongs to the requested provider only.
        assert anthropic.instances[0].options[0].model is None

    async def test_default_provider_used_when_none_requested(
        self, registry, mock_factory, fast_retry, api_key
    ):
        cohere = mock_factory("cohere", ["from cohere"])
        registry.register("cohere", cohere)
        registry.set_default_provider("cohere")
        orchestrator = _orchestrator(registry, fast_retry)

        result = await orchestrator.call_llm_api("hello", OptimizeSettings(api_key=api_key))
        assert result == "from cohere"

    async def test_unavailable_provider_raises(self, registry, fast_retry, settings):
        orchestrator = _orchestrator(registry, fast_retry)
        with pytest.raises(ProviderUnavailable) as exc_info:
            await orchestrator.call_llm_api("hello", settings)
        assert exc_info.value.provider == "openai"

    async def test_cancel_event_set_before_call(self, registry, mock_factory, fast_retry, settings):
        factory = mock_factory("openai")
        registry.register("openai", factory)
        orchestrator = _orchestrator(registry, fast_retry)
        cancel = asyncio.Event()
        cancel.set()

        with pytest.raises(RequestCancelled):
            await orchestrator.call_llm_api("hello", settings, cancel_event=cancel)
        assert factory.calls == 0

    async def test_cancel_event_during_backoff(self, registry, mock_factory, settings):
        from promptboost.retry.policy import RetryPolicy

        factory = mock_factory("openai", default="")
        registry.register("openai", factory)
        orchestrator = _orchestrator(registry, RetryPolicy(max_attempts=3, base_delay=5.0, max_delay=5.0))
        cancel = asyncio.Event()

        task = asyncio.create_task(
            orchestrator.call_llm_api("hello", settings, cancel_event=cancel)
        )
        await asyncio.sleep(0.05)
        cancel.set()

        with pytest.raises(RequestCancelled):
            await asyncio.wait_for(task, timeout=1.0)
        assert factory.calls == 1

    async def test_timeout_bounds_the_whole_call(self, registry, mock_factory, fast_retry, settings):
        registry.register("openai", mock_factory("openai", delay=1.0))
        orchestrator = _orchestrator(registry, fast_retry)

        with pytest.raises(RequestTimeout):
            await orchestrator.call_llm_api("hello", settings, timeout=0.05)

    async def test_concurrent_calls_are_independent(
        self, registry, mock_factory, fast_retry, settings
    ):
        factory = mock_factory("openai")
        registry.register("openai", factory)
        orchestrator = _orchestrator(registry, fast_retry)

        results = await asyncio.gather(
            *(orchestrator.call_llm_api(f"text {i}", settings) for i in range(10))
        )

        assert results == ["optimized text"] * 10
        assert len(factory.instances) == 1
        status = await orchestrator.rate_limit_status("openai", settings.provider_config())
        assert status.requests_remaining == 60 - 10


@pytest.mark.asyncio
class TestOrchestratorHelpers:
    async def test_test_provider_success(self, registry, mock_factory, fast_retry, settings):
        registry.register("openai", mock_factory("openai"))
        orchestrator = _orchestrator(registry, fast_retry)

        result = await orchestrator.test_provider(settings)

        assert result.success is True
        assert result.response_time_ms is not None

    async def test_test_provider_reports_failure(self, registry, mock_factory, fast_retry, settings):
        registry.register(
            "openai",
            mock_factory("openai", verify_error=AuthenticationError("Invalid API key")),
        )
        orchestrator = _orchestrator(registry, fast_retry)

        result = await orchestrator.test_provider(settings)

        assert result.success is False
        assert "Invalid API key" in result.errors

    async def test_test_provider_unknown(self, registry, fast_retry, settings):
        orchestrator = _orchestrator(registry, fast_retry)
        result = await orchestrator.test_provider(settings)
        assert result.success is False

    async def test_models_fall_back_to_static_list(self, registry, mock_factory, fast_retry):
        registry.register("openai", mock_factory("openai"))
        orchestrator = _orchestrator(registry, fast_retry)

        catalog = await orchestrator.get_provider_models("openai")
        assert [m.id for m in catalog] == ["openai-model"]

    async def test_models_unknown_provider(self, registry, fast_retry):
        orchestrator = _orchestrator(registry, fast_retry)
        with pytest.raises(ProviderUnavailable):
            await orchestrator.get_provider_models("nope", ProviderConfig())

    async def test_context_manager_closes_instances(self, registry, mock_factory, fast_retry, settings):
        factory = mock_factory("openai")
        registry.register("openai", factory)
        async with _orchestrator(registry, fast_retry) as orchestrator:
            await orchestrator.call_llm_api("hello", settings)
        assert registry.stats()["instances"] == 0


class TestConstruction:
    def test_default_construction_registers_builtins(self):
        orchestrator = Orchestrator()
        ids = {r.provider for r in orchestrator.registration_results}
        assert ids == {"openai", "anthropic", "cohere", "openrouter", "gemini"}
        assert orchestrator.registry.has_provider("cohere")

    def test_provider_chain_from_config(self):
        orchestrator = Orchestrator.from_dict(
            {"default_provider": "cohere", "fallback_providers": ["gemini", "unknown"]}
        )
        assert orchestrator.registry.default_provider == "cohere"
        assert orchestrator.registry.fallback_providers == ["gemini"]

    def test_retry_policy_built_from_config(self):
        orchestrator = Orchestrator(CoreConfig.from_dict({"retry": {"max_attempts": 5}}))
        assert orchestrator._retry.max_attempts == 5

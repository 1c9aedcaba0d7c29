# tests/conftest.py
"""
Shared pytest fixtures for promptboost tests.

MockProvider is an in-memory BaseProvider whose responses are scripted by
the MockFactory that created it, so no real API calls are made.
"""

from __future__ import annotations

import asyncio
from typing import Any

import pytest
import pytest_asyncio

from promptboost.config import CoreConfig
from promptboost.models import (
    CallOptions,
    Capability,
    ModelInfo,
    OptimizeSettings,
    ProviderConfig,
    ProviderDescriptor,
)
from promptboost.providers.base import BaseProvider
from promptboost.providers.registry import ProviderRegistry
from promptboost.retry.policy import RetryPolicy
from promptboost.state.memory import InMemoryFlowStore

TEST_API_KEY = "sk-test-key-1234567890"


class MockProvider(BaseProvider):
    """In-memory mock provider for testing."""

    def __init__(
        self,
        config: ProviderConfig | None = None,
        *,
        factory: "MockFactory",
        **kwargs: Any,
    ) -> None:
        self.descriptor = factory.descriptor
        self.factory = factory
        self.verify_calls = 0
        self.calls = 0
        self.prompts: list[str] = []
        self.options: list[CallOptions] = []
        super().__init__(config, **kwargs)

    async def _verify_credentials(self, config: ProviderConfig) -> None:
        self.verify_calls += 1
        self.factory.verify_calls += 1
        if self.factory.verify_error is not None:
            raise self.factory.verify_error

    async def _complete(self, prompt: str, options: CallOptions) -> str:
        self.calls += 1
        self.factory.calls += 1
        self.prompts.append(prompt)
        self.options.append(options)
        if self.factory.delay:
            await asyncio.sleep(self.factory.delay)
        item = self.factory.responses.pop(0) if self.factory.responses else self.factory.default
        if isinstance(item, BaseException):
            raise item
        return item

    async def _stream(self, prompt: str, options: CallOptions):
        for word in self.factory.default.split():
            yield word


class MockFactory:
    """Registry factory producing MockProvider instances with a shared script."""

    def __init__(
        self,
        provider_id: str,
        responses: list[Any] | None = None,
        *,
        default: str = "optimized text",
        verify_error: Exception | None = None,
        delay: float = 0.0,
        capabilities: frozenset[Capability] | None = None,
    ) -> None:
        self.descriptor = ProviderDescriptor(
            id=provider_id,
            display_name=provider_id.title(),
            capabilities=capabilities
            if capabilities is not None
            else frozenset({Capability.CHAT_COMPLETION}),
            default_model=f"{provider_id}-model",
            models=(ModelInfo(id=f"{provider_id}-model", name=f"{provider_id.title()} Model"),),
        )
        self.responses = list(responses or [])
        self.default = default
        self.verify_error = verify_error
        self.delay = delay
        self.calls = 0
        self.verify_calls = 0
        self.instances: list[MockProvider] = []

    def __call__(self, config: ProviderConfig, **kwargs: Any) -> MockProvider:
        provider = MockProvider(config, factory=self, **kwargs)
        self.instances.append(provider)
        return provider


class RecordingRetryPolicy(RetryPolicy):
    """RetryPolicy that remembers every backoff delay it computed."""

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.delays: list[float] = []

    def compute_delay(self, attempt: int, retry_after: float | None = None) -> float:
        delay = super().compute_delay(attempt, retry_after)
        self.delays.append(delay)
        return delay


@pytest.fixture
def api_key():
    return TEST_API_KEY


@pytest.fixture
def mock_factory():
    return MockFactory


@pytest.fixture
def settings():
    return OptimizeSettings(
        provider="openai",
        api_key=TEST_API_KEY,
        prompt_template="Improve this prompt: {text}",
        max_tokens=100,
    )


@pytest.fixture
def fast_retry():
    return RecordingRetryPolicy(max_attempts=3, base_delay=0.01, max_delay=0.05)


@pytest.fixture
def core_config():
    return CoreConfig()


@pytest.fixture
def registry():
    return ProviderRegistry()


@pytest_asyncio.fixture
async def memory_store():
    return InMemoryFlowStore()

# promptboost/providers/anthropic.py
"""
Anthropic provider adapter.

Wraps an AsyncAnthropic client. Supports BYOC (pass an existing client)
or creates its own client from the api_key in ProviderConfig.

Notes on the request envelope
-----------------------------
The prompt is sent as a single user message through the Messages API; the
``anthropic-version`` header is set by the SDK. Only text content blocks
are read back from the response.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

import httpx

from ..constants import ANTHROPIC_BASE_URL, DEFAULT_ANTHROPIC_MODEL
from ..exceptions import EmptyResponse, ProviderError, ProviderRequestError, TransientNetworkError
from ..models import CallOptions, Capability, ModelInfo, ProviderConfig, ProviderDescriptor
from .base import BaseProvider, error_from_status, extract_error_message

_MODELS = (
    ModelInfo(id="claude-3-opus-20240229", name="Claude 3 Opus", max_tokens=200_000, input_cost=0.015, output_cost=0.075),
    ModelInfo(id="claude-3-sonnet-20240229", name="Claude 3 Sonnet", max_tokens=200_000, input_cost=0.003, output_cost=0.015),
    ModelInfo(id="claude-3-haiku-20240307", name="Claude 3 Haiku", max_tokens=200_000, input_cost=0.00025, output_cost=0.00125),
    ModelInfo(id="claude-2.1", name="Claude 2.1", max_tokens=200_000, input_cost=0.008, output_cost=0.024),
    ModelInfo(id="claude-2.0", name="Claude 2.0", max_tokens=100_000, input_cost=0.008, output_cost=0.024),
    ModelInfo(id="claude-instant-1.2", name="Claude Instant 1.2", max_tokens=100_000, input_cost=0.0008, output_cost=0.0024),
)


class AnthropicProvider(BaseProvider):
    """Adapter wrapping anthropic.AsyncAnthropic."""

    descriptor = ProviderDescriptor(
        id="anthropic",
        display_name="Anthropic",
        description="Claude models through the Anthropic Messages API",
        capabilities=frozenset(
            {
                Capability.CHAT_COMPLETION,
                Capability.STREAMING,
                Capability.MODEL_LISTING,
                Capability.LONG_CONTEXT,
            }
        ),
        default_model=DEFAULT_ANTHROPIC_MODEL,
        models=_MODELS,
        requires=("anthropic",),
    )

    def __init__(
        self,
        config: ProviderConfig | None = None,
        *,
        client: Any = None,  # BYOC
        **kwargs: Any,
    ) -> None:
        super().__init__(config, **kwargs)
        self._sdk_client = client
        self._byoc = client is not None
        self._sdk_key: tuple[str, str | None] | None = None

    def _client_for(self, config: ProviderConfig) -> Any:
        if self._byoc:
            return self._sdk_client
        key = (config.api_key, config.endpoint)
        if self._sdk_client is None or self._sdk_key != key:
            try:
                import anthropic  # type: ignore[import]
            except ImportError as exc:
                raise ImportError(
                    "anthropic package is required for AnthropicProvider. "
                    "Install it with: pip install anthropic"
                ) from exc
            http_client = self._http or httpx.AsyncClient(
                limits=httpx.Limits(max_connections=100, max_keepalive_connections=20)
            )
            self._http = http_client
            self._sdk_client = anthropic.AsyncAnthropic(
                api_key=config.api_key,
                base_url=config.endpoint or ANTHROPIC_BASE_URL,
                max_retries=0,
                timeout=self._timeout,
                http_client=http_client,
            )
            self._sdk_key = key
        return self._sdk_client

    def _translate(self, exc: Exception) -> ProviderError:
        import anthropic  # type: ignore[import]

        if isinstance(exc, anthropic.APITimeoutError):
            return TransientNetworkError(f"Request to {self.display_name} timed out", provider=self.id)
        if isinstance(exc, anthropic.APIConnectionError):
            return TransientNetworkError(
                f"Network error talking to {self.display_name}: {exc}", provider=self.id
            )
        if isinstance(exc, anthropic.APIStatusError):
            return error_from_status(
                exc.status_code,
                extract_error_message(exc.response, default=exc.message),
                provider=self.id,
                headers=exc.response.headers,
            )
        return ProviderRequestError(str(exc), provider=self.id)

    def _request_kwargs(self, prompt: str, options: CallOptions) -> dict[str, Any]:
        return {
            "model": self._model_for(options),
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": options.max_tokens,
            "temperature": options.temperature,
        }

    async def _verify_credentials(self, config: ProviderConfig) -> None:
        import anthropic  # type: ignore[import]

        try:
            await self._client_for(config).models.list()
        except anthropic.APIError as exc:
            raise self._translate(exc) from exc

    async def _complete(self, prompt: str, options: CallOptions) -> str:
        import anthropic  # type: ignore[import]

        client = self._client_for(self.config)
        try:
            raw = await client.messages.with_raw_response.create(
                **self._request_kwargs(prompt, options)
            )
        except anthropic.APIError as exc:
            raise self._translate(exc) from exc

        await self._sync_rate_headers(raw.headers)
        response = raw.parse()
        texts = [block.text for block in response.content if getattr(block, "type", None) == "text"]
        if not texts:
            raise EmptyResponse("Anthropic returned no text content", provider=self.id)
        return texts[0]

    async def _stream(self, prompt: str, options: CallOptions) -> AsyncIterator[str]:
        import anthropic  # type: ignore[import]

        client = self._client_for(self.config)
        try:
            async with client.messages.stream(**self._request_kwargs(prompt, options)) as stream:
                async for text in stream.text_stream:
                    yield text
        except anthropic.APIError as exc:
            raise self._translate(exc) from exc

    async def _fetch_models(self) -> list[ModelInfo]:
        import anthropic  # type: ignore[import]

        try:
            page = await self._client_for(self.config).models.list()
        except anthropic.APIError as exc:
            raise self._translate(exc) from exc

        static = {m.id: m for m in _MODELS}
        return [
            static.get(model.id) or ModelInfo(id=model.id, name=model.display_name or model.id)
            for model in page.data
        ]

    async def close(self) -> None:
        if not self._byoc:
            self._sdk_client = None
            self._sdk_key = None
        await super().close()

# promptboost/providers/openai.py
"""
OpenAI provider adapter.

Wraps an AsyncOpenAI client. The adapter either:
  a) creates its own client from the api_key in ProviderConfig, or
  b) uses a pre-configured AsyncOpenAI passed as ``client=`` (BYOC mode).

The SDK client is created with max_retries=0; the RetryPolicy wrapped around
call_api() owns retries.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

import httpx

from ..constants import DEFAULT_OPENAI_MODEL, OPENAI_BASE_URL
from ..exceptions import EmptyResponse, ProviderError, ProviderRequestError, TransientNetworkError
from ..models import CallOptions, Capability, ModelInfo, ProviderConfig, ProviderDescriptor
from .base import BaseProvider, error_from_status, extract_error_message

_MODELS = (
    ModelInfo(id="gpt-4", name="GPT-4", max_tokens=8192, input_cost=0.03, output_cost=0.06),
    ModelInfo(id="gpt-4-turbo", name="GPT-4 Turbo", max_tokens=128_000, input_cost=0.01, output_cost=0.03),
    ModelInfo(id="gpt-4-turbo-preview", name="GPT-4 Turbo Preview", max_tokens=128_000, input_cost=0.01, output_cost=0.03),
    ModelInfo(id="gpt-3.5-turbo", name="GPT-3.5 Turbo", max_tokens=16_385, input_cost=0.0005, output_cost=0.0015),
    ModelInfo(id="gpt-3.5-turbo-16k", name="GPT-3.5 Turbo 16K", max_tokens=16_385, input_cost=0.003, output_cost=0.004),
    ModelInfo(id="gpt-3.5-turbo-instruct", name="GPT-3.5 Turbo Instruct", max_tokens=4096, input_cost=0.0015, output_cost=0.002),
)


class OpenAIProvider(BaseProvider):
    """Adapter wrapping openai.AsyncOpenAI."""

    descriptor = ProviderDescriptor(
        id="openai",
        display_name="OpenAI",
        description="GPT models through the OpenAI API",
        capabilities=frozenset(
            {Capability.CHAT_COMPLETION, Capability.STREAMING, Capability.MODEL_LISTING}
        ),
        default_model=DEFAULT_OPENAI_MODEL,
        models=_MODELS,
        requires=("openai",),
    )

    def __init__(
        self,
        config: ProviderConfig | None = None,
        *,
        client: Any = None,  # pre-configured AsyncOpenAI — BYOC
        **kwargs: Any,
    ) -> None:
        super().__init__(config, **kwargs)
        self._sdk_client = client
        self._byoc = client is not None
        self._sdk_key: tuple[str, str | None] | None = None

    # ------------------------------------------------------------------
    # SDK plumbing
    # ------------------------------------------------------------------

    def _client_for(self, config: ProviderConfig) -> Any:
        if self._byoc:
            return self._sdk_client
        key = (config.api_key, config.endpoint)
        if self._sdk_client is None or self._sdk_key != key:
            try:
                import openai  # type: ignore[import]
            except ImportError as exc:
                raise ImportError(
                    "openai package is required for OpenAIProvider. "
                    "Install it with: pip install openai"
                ) from exc
            http_client = self._http or httpx.AsyncClient(
                limits=httpx.Limits(max_connections=100, max_keepalive_connections=20)
            )
            self._http = http_client
            self._sdk_client = openai.AsyncOpenAI(
                api_key=config.api_key,
                base_url=config.endpoint or OPENAI_BASE_URL,
                organization=config.extra.get("organization"),
                max_retries=0,
                timeout=self._timeout,
                http_client=http_client,
            )
            self._sdk_key = key
        return self._sdk_client

    def _translate(self, exc: Exception) -> ProviderError:
        import openai  # type: ignore[import]

        if isinstance(exc, openai.APITimeoutError):
            return TransientNetworkError(f"Request to {self.display_name} timed out", provider=self.id)
        if isinstance(exc, openai.APIConnectionError):
            return TransientNetworkError(
                f"Network error talking to {self.display_name}: {exc}", provider=self.id
            )
        if isinstance(exc, openai.APIStatusError):
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

    # ------------------------------------------------------------------
    # Adapter hooks
    # ------------------------------------------------------------------

    async def _verify_credentials(self, config: ProviderConfig) -> None:
        import openai  # type: ignore[import]

        try:
            await self._client_for(config).models.list()
        except openai.APIError as exc:
            raise self._translate(exc) from exc

    async def _complete(self, prompt: str, options: CallOptions) -> str:
        import openai  # type: ignore[import]

        client = self._client_for(self.config)
        try:
            raw = await client.chat.completions.with_raw_response.create(
                **self._request_kwargs(prompt, options)
            )
        except openai.APIError as exc:
            raise self._translate(exc) from exc

        await self._sync_rate_headers(raw.headers)
        response = raw.parse()
        if not response.choices:
            raise EmptyResponse("OpenAI returned no choices", provider=self.id)
        return response.choices[0].message.content or ""

    async def _stream(self, prompt: str, options: CallOptions) -> AsyncIterator[str]:
        import openai  # type: ignore[import]

        client = self._client_for(self.config)
        try:
            stream = await client.chat.completions.create(
                stream=True, **self._request_kwargs(prompt, options)
            )
            async for chunk in stream:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta.content
                if delta:
                    yield delta
        except openai.APIError as exc:
            raise self._translate(exc) from exc

    async def _fetch_models(self) -> list[ModelInfo]:
        import openai  # type: ignore[import]

        try:
            page = await self._client_for(self.config).models.list()
        except openai.APIError as exc:
            raise self._translate(exc) from exc

        static = {m.id: m for m in _MODELS}
        return [
            static.get(model.id) or ModelInfo(id=model.id, name=model.id)
            for model in page.data
            if model.id.startswith("gpt")
        ]

    async def close(self) -> None:
        if not self._byoc:
            self._sdk_client = None
            self._sdk_key = None
        await super().close()

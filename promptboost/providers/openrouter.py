# promptboost/providers/openrouter.py
"""
OpenRouter provider adapter.

OpenRouter fronts many upstream models behind one OpenAI-compatible chat
endpoint, so its catalog is open: any ``vendor/model`` id is accepted and an
id missing from the static list only produces a validation warning.

Every request carries the ``HTTP-Referer`` and ``X-Title`` attribution
headers. Keys can be obtained through the OAuth PKCE flow declared in the
descriptor (see promptboost.auth.manager).

Streaming
---------
``stream=True`` requests are read as server-sent events: each
``data: {...}`` line carries a ``choices[0].delta.content`` fragment and the
stream ends with ``data: [DONE]``. Lines starting with ``:`` are keep-alive
comments.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx

from ..constants import (
    APP_NAME,
    APP_URL,
    DEFAULT_OPENROUTER_MODEL,
    OPENROUTER_AUTH_URL,
    OPENROUTER_BASE_URL,
    OPENROUTER_TOKEN_URL,
)
from ..exceptions import EmptyResponse, TransientNetworkError
from ..models import (
    CallOptions,
    Capability,
    ModelInfo,
    OAuthEndpoints,
    ProviderConfig,
    ProviderDescriptor,
)
from .base import BaseProvider, error_from_status, extract_error_message

logger = logging.getLogger(__name__)

_MODELS = tuple(
    ModelInfo(id=model_id, name=model_id)
    for model_id in (
        "openai/gpt-4",
        "openai/gpt-4-turbo",
        "openai/gpt-3.5-turbo",
        "anthropic/claude-3-opus",
        "anthropic/claude-3-sonnet",
        "anthropic/claude-3-haiku",
        "google/gemini-pro",
        "meta-llama/llama-2-70b-chat",
        "mistralai/mixtral-8x7b-instruct",
    )
)


class OpenRouterProvider(BaseProvider):
    """Adapter for the OpenRouter chat completions API."""

    descriptor = ProviderDescriptor(
        id="openrouter",
        display_name="OpenRouter",
        description="Access to multiple AI models through OpenRouter's unified API",
        capabilities=frozenset(
            {
                Capability.CHAT_COMPLETION,
                Capability.STREAMING,
                Capability.MODEL_LISTING,
                Capability.OAUTH,
            }
        ),
        default_model=DEFAULT_OPENROUTER_MODEL,
        models=_MODELS,
        oauth=OAuthEndpoints(
            authorize_url=OPENROUTER_AUTH_URL,
            token_url=OPENROUTER_TOKEN_URL,
            redirect_param="callback_url",
        ),
    )
    open_catalog = True

    def _headers(self, config: ProviderConfig) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {config.api_key}",
            "HTTP-Referer": config.extra.get("app_url", APP_URL),
            "X-Title": config.extra.get("app_name", APP_NAME),
        }

    def _payload(self, prompt: str, options: CallOptions) -> dict[str, Any]:
        return {
            "model": self._model_for(options),
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": options.max_tokens,
            "temperature": options.temperature,
        }

    async def _verify_credentials(self, config: ProviderConfig) -> None:
        response = await self._send(
            "GET",
            f"{self._base_url(config, OPENROUTER_BASE_URL)}/models",
            headers=self._headers(config),
        )
        self._remember_catalog(self._json(response, self.id))

    async def _complete(self, prompt: str, options: CallOptions) -> str:
        response = await self._send(
            "POST",
            f"{self._base_url(self.config, OPENROUTER_BASE_URL)}/chat/completions",
            headers=self._headers(self.config),
            json=self._payload(prompt, options),
        )
        choices = self._json(response, self.id).get("choices") or []
        if not choices:
            raise EmptyResponse("OpenRouter returned no choices", provider=self.id)
        return (choices[0].get("message") or {}).get("content") or ""

    async def _stream(self, prompt: str, options: CallOptions) -> AsyncIterator[str]:
        url = f"{self._base_url(self.config, OPENROUTER_BASE_URL)}/chat/completions"
        payload = {**self._payload(prompt, options), "stream": True}
        try:
            async with self._client().stream(
                "POST", url, headers=self._headers(self.config), json=payload
            ) as response:
                if response.is_error:
                    await response.aread()
                    raise error_from_status(
                        response.status_code,
                        extract_error_message(response),
                        provider=self.id,
                        headers=response.headers,
                    )
                await self._sync_rate_headers(response.headers)
                async for line in response.aiter_lines():
                    if not line.startswith("data:"):
                        continue
                    data = line[len("data:"):].strip()
                    if data == "[DONE]":
                        break
                    try:
                        chunk = json.loads(data)
                    except ValueError:
                        logger.debug("Skipping malformed SSE chunk from %s", self.id)
                        continue
                    choices = chunk.get("choices") or []
                    if not choices:
                        continue
                    delta = (choices[0].get("delta") or {}).get("content")
                    if delta:
                        yield delta
        except httpx.TimeoutException as exc:
            raise TransientNetworkError(
                f"Request to {self.display_name} timed out", provider=self.id
            ) from exc
        except httpx.TransportError as exc:
            raise TransientNetworkError(
                f"Network error talking to {self.display_name}: {exc}", provider=self.id
            ) from exc

    async def _fetch_models(self) -> list[ModelInfo]:
        response = await self._send(
            "GET",
            f"{self._base_url(self.config, OPENROUTER_BASE_URL)}/models",
            headers=self._headers(self.config),
        )
        return self._parse_catalog(self._json(response, self.id))

    def _remember_catalog(self, data: dict[str, Any]) -> None:
        live = self._parse_catalog(data)
        if live:
            self._models = live

    @staticmethod
    def _parse_catalog(data: dict[str, Any]) -> list[ModelInfo]:
        models: list[ModelInfo] = []
        for entry in data.get("data") or []:
            pricing = entry.get("pricing") or {}
            models.append(
                ModelInfo(
                    id=entry["id"],
                    name=entry.get("name") or entry["id"],
                    max_tokens=entry.get("context_length") or 4096,
                    # OpenRouter prices per token; ModelInfo is per 1K tokens.
                    input_cost=float(pricing.get("prompt") or 0) * 1000,
                    output_cost=float(pricing.get("completion") or 0) * 1000,
                    description=entry.get("description") or "",
                )
            )
        return models

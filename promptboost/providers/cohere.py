# promptboost/providers/cohere.py
"""
Cohere provider adapter.

Talks to Cohere's REST API directly over httpx:
  - credentials are checked with ``POST /check-api-key``,
  - generation uses ``POST /generate`` and reads ``generations[0].text``,
  - the live catalog is ``GET /models`` filtered to generation-capable models.
"""

from __future__ import annotations

from typing import Any

from ..constants import COHERE_BASE_URL, DEFAULT_COHERE_MODEL
from ..exceptions import AuthenticationError, EmptyResponse
from ..models import CallOptions, Capability, ModelInfo, ProviderConfig, ProviderDescriptor
from .base import BaseProvider

_MODELS = (
    ModelInfo(
        id="command-r-plus",
        name="Command R+",
        max_tokens=128_000,
        input_cost=0.003,
        output_cost=0.015,
        description="Most powerful model for complex reasoning and long-form generation",
    ),
    ModelInfo(
        id="command-r",
        name="Command R",
        max_tokens=128_000,
        input_cost=0.0005,
        output_cost=0.0015,
        description="Balanced model for general-purpose tasks",
    ),
    ModelInfo(
        id="command",
        name="Command",
        max_tokens=4096,
        input_cost=0.0015,
        output_cost=0.002,
        description="Fast and efficient model for everyday tasks",
    ),
    ModelInfo(
        id="command-light",
        name="Command Light",
        max_tokens=4096,
        input_cost=0.0003,
        output_cost=0.0006,
        description="Lightweight model for simple tasks",
    ),
)


class CohereProvider(BaseProvider):
    """Adapter for the Cohere generate API."""

    descriptor = ProviderDescriptor(
        id="cohere",
        display_name="Cohere",
        description="Cohere's language models for text generation and understanding",
        capabilities=frozenset(
            {Capability.CHAT_COMPLETION, Capability.MODEL_LISTING, Capability.LONG_CONTEXT}
        ),
        default_model=DEFAULT_COHERE_MODEL,
        models=_MODELS,
    )

    def _headers(self, config: ProviderConfig) -> dict[str, str]:
        return {"Authorization": f"Bearer {config.api_key}"}

    async def _verify_credentials(self, config: ProviderConfig) -> None:
        response = await self._send(
            "POST",
            f"{self._base_url(config, COHERE_BASE_URL)}/check-api-key",
            headers=self._headers(config),
        )
        if not self._json(response, self.id).get("valid"):
            raise AuthenticationError("Invalid API key", provider=self.id)

    async def _complete(self, prompt: str, options: CallOptions) -> str:
        payload: dict[str, Any] = {
            "model": self._model_for(options),
            "prompt": prompt,
            "max_tokens": options.max_tokens,
            "temperature": options.temperature,
        }
        response = await self._send(
            "POST",
            f"{self._base_url(self.config, COHERE_BASE_URL)}/generate",
            headers=self._headers(self.config),
            json=payload,
        )
        generations = self._json(response, self.id).get("generations") or []
        if not generations:
            raise EmptyResponse("Cohere returned no generations", provider=self.id)
        return generations[0].get("text") or ""

    async def _fetch_models(self) -> list[ModelInfo]:
        response = await self._send(
            "GET",
            f"{self._base_url(self.config, COHERE_BASE_URL)}/models",
            headers=self._headers(self.config),
        )
        static = {m.id: m for m in _MODELS}
        live: list[ModelInfo] = []
        for entry in self._json(response, self.id).get("models") or []:
            if "generate" not in (entry.get("endpoints") or []):
                continue
            name = entry["name"]
            known = static.get(name)
            live.append(
                ModelInfo(
                    id=name,
                    name=known.name if known else name.capitalize(),
                    max_tokens=entry.get("context_length") or (known.max_tokens if known else 4096),
                    input_cost=known.input_cost if known else 0.0,
                    output_cost=known.output_cost if known else 0.0,
                    description=known.description if known else "",
                )
            )
        return live

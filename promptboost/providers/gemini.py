# promptboost/providers/gemini.py
"""
Google Gemini provider adapter.

Talks to the Generative Language REST API over httpx. The API key travels
as the ``key`` query parameter rather than a header, so request URLs are
never logged.

Request envelope
----------------
The prompt becomes a single ``contents[0].parts[0].text`` entry; generation
options map onto ``generationConfig``. The text is read back from
``candidates[0].content.parts[0].text``.
"""

from __future__ import annotations

from typing import Any

from ..constants import DEFAULT_GEMINI_MODEL, GEMINI_BASE_URL
from ..exceptions import AuthenticationError, EmptyResponse, ProviderRequestError
from ..models import CallOptions, Capability, ModelInfo, ProviderConfig, ProviderDescriptor
from .base import BaseProvider

_MODELS = (
    ModelInfo(
        id="gemini-1.5-pro",
        name="Gemini 1.5 Pro",
        max_tokens=2_097_152,
        input_cost=0.00125,
        output_cost=0.005,
        description="Most capable model for complex reasoning tasks",
    ),
    ModelInfo(
        id="gemini-1.5-flash",
        name="Gemini 1.5 Flash",
        max_tokens=1_048_576,
        input_cost=0.000075,
        output_cost=0.0003,
        description="Fast and efficient model for everyday tasks",
    ),
    ModelInfo(
        id="gemini-pro",
        name="Gemini Pro",
        max_tokens=32_768,
        input_cost=0.0005,
        output_cost=0.0015,
        description="Best model for text-only tasks",
    ),
)


class GeminiProvider(BaseProvider):
    """Adapter for the Gemini generateContent API."""

    descriptor = ProviderDescriptor(
        id="gemini",
        display_name="Google Gemini",
        description="Gemini models through the Generative Language API",
        capabilities=frozenset(
            {
                Capability.CHAT_COMPLETION,
                Capability.MODEL_LISTING,
                Capability.LONG_CONTEXT,
                Capability.MULTIMODAL,
            }
        ),
        default_model=DEFAULT_GEMINI_MODEL,
        models=_MODELS,
    )

    async def _verify_credentials(self, config: ProviderConfig) -> None:
        # Gemini answers an invalid key with 400 INVALID_ARGUMENT.
        try:
            await self._send(
                "GET",
                f"{self._base_url(config, GEMINI_BASE_URL)}/models",
                params={"key": config.api_key},
            )
        except ProviderRequestError as exc:
            if exc.status_code != 400:
                raise
            raise AuthenticationError(
                exc.message, provider=self.id, status_code=exc.status_code
            ) from exc

    async def _complete(self, prompt: str, options: CallOptions) -> str:
        model = self._model_for(options)
        payload: dict[str, Any] = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": options.temperature,
                "maxOutputTokens": options.max_tokens,
            },
        }
        response = await self._send(
            "POST",
            f"{self._base_url(self.config, GEMINI_BASE_URL)}/models/{model}:generateContent",
            params={"key": self.config.api_key},
            json=payload,
        )
        data = self._json(response, self.id)
        try:
            return data["candidates"][0]["content"]["parts"][0]["text"] or ""
        except (KeyError, IndexError, TypeError):
            reason = (data.get("promptFeedback") or {}).get("blockReason")
            detail = f" (blocked: {reason})" if reason else ""
            raise EmptyResponse(f"Gemini returned no candidates{detail}", provider=self.id)

    async def _fetch_models(self) -> list[ModelInfo]:
        response = await self._send(
            "GET",
            f"{self._base_url(self.config, GEMINI_BASE_URL)}/models",
            params={"key": self.config.api_key},
        )
        static = {m.id: m for m in _MODELS}
        live: list[ModelInfo] = []
        for entry in self._json(response, self.id).get("models") or []:
            if "generateContent" not in (entry.get("supportedGenerationMethods") or []):
                continue
            model_id = entry["name"].removeprefix("models/")
            known = static.get(model_id)
            live.append(
                ModelInfo(
                    id=model_id,
                    name=entry.get("displayName") or model_id,
                    max_tokens=entry.get("inputTokenLimit") or 4096,
                    input_cost=known.input_cost if known else 0.0,
                    output_cost=known.output_cost if known else 0.0,
                    description=entry.get("description") or "",
                )
            )
        return live

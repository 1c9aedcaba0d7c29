# promptboost/models.py
"""
Pydantic v2 data models used throughout the PromptBoost core.

These are part of the public API surface — changes here require a major
version bump once the library reaches 1.0.
"""

from __future__ import annotations

import hashlib
import json
import time
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .constants import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_TEMPERATURE,
    MAX_TOKENS_MAX,
    MAX_TOKENS_MIN,
    OAUTH_DEFAULT_REDIRECT_URI,
    TEXT_MARKER,
)


class Capability(str, Enum):
    """Features a provider may advertise in its descriptor."""

    CHAT_COMPLETION = "chat_completion"
    STREAMING = "streaming"
    MODEL_LISTING = "model_listing"
    OAUTH = "oauth"
    LONG_CONTEXT = "long_context"
    MULTIMODAL = "multimodal"


class ModelInfo(BaseModel):
    """One entry of a provider's model catalog. Costs are per 1K tokens."""

    id: str
    name: str
    max_tokens: int = 4096
    input_cost: float = 0.0
    output_cost: float = 0.0
    description: str = ""


class OAuthEndpoints(BaseModel):
    """Where a provider's PKCE authorization flow sends the user and the code."""

    model_config = ConfigDict(frozen=True)

    authorize_url: str
    token_url: str
    redirect_param: str = Field(
        default="redirect_uri",
        description="Query parameter carrying the callback URL on the authorization URL.",
    )
    redirect_uri: str = OAUTH_DEFAULT_REDIRECT_URI


class ProviderDescriptor(BaseModel):
    """
    Static description of a provider backend.

    Immutable once registered; owned by the ProviderRegistry.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Unique identifier, e.g. 'openai', 'openrouter'.")
    display_name: str
    description: str = ""
    capabilities: frozenset[Capability] = Field(default_factory=frozenset)
    default_model: str
    models: tuple[ModelInfo, ...] = ()
    requires: tuple[str, ...] = Field(
        default=(),
        description="Importable modules the adapter needs; checked at registration.",
    )
    oauth: OAuthEndpoints | None = None

    def model_ids(self) -> list[str]:
        return [m.id for m in self.models]


class ProviderConfig(BaseModel):
    """
    Caller-supplied configuration for a single provider.

    Validated before use and never persisted by the core.
    """

    api_key: str = Field(default="", description="Provider API key or OAuth-issued key.")
    endpoint: str | None = Field(default=None, description="Override for the provider base URL.")
    model: str | None = Field(default=None, description="Model id; provider default when unset.")
    extra: dict[str, str] = Field(default_factory=dict)

    def stable_hash(self) -> str:
        """SHA-256 over the canonical JSON form of the provider-facing fields."""
        payload = {
            "api_key": self.api_key,
            "endpoint": self.endpoint,
            "model": self.model,
            "extra": self.extra,
        }
        canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class OptimizeSettings(ProviderConfig):
    """
    Settings passed to Orchestrator.call_llm_api().

    Extends ProviderConfig with the provider selection and the prompt
    template. The template must contain the ``{text}`` marker exactly once.
    """

    provider: str | None = Field(
        default=None,
        description="Provider id. Falls back to the registry default, then 'openai'.",
    )
    prompt_template: str = Field(default=TEXT_MARKER)
    max_tokens: int = Field(default=DEFAULT_MAX_TOKENS, ge=MAX_TOKENS_MIN, le=MAX_TOKENS_MAX)
    temperature: float = Field(default=DEFAULT_TEMPERATURE, ge=0.0, le=2.0)

    @field_validator("prompt_template")
    @classmethod
    def validate_template(cls, v: str) -> str:
        count = v.count(TEXT_MARKER)
        if count != 1:
            raise ValueError(
                f"prompt_template must contain the {TEXT_MARKER} marker exactly once, found {count}"
            )
        return v

    def render(self, text: str) -> str:
        """Substitute *text* into the prompt template."""
        return self.prompt_template.replace(TEXT_MARKER, text)

    def provider_config(self) -> ProviderConfig:
        """Project back to the plain provider configuration (the cache-key fields)."""
        return ProviderConfig(
            api_key=self.api_key,
            endpoint=self.endpoint,
            model=self.model,
            extra=dict(self.extra),
        )


class CallOptions(BaseModel):
    """Per-call generation options handed to Provider.call_api()."""

    model: str | None = None
    max_tokens: int = Field(default=DEFAULT_MAX_TOKENS, ge=MAX_TOKENS_MIN)
    temperature: float = Field(default=DEFAULT_TEMPERATURE, ge=0.0, le=2.0)
    stream: bool = False


class ConfigValidation(BaseModel):
    """Result of Provider.validate_config()."""

    is_valid: bool = True
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    def add_error(self, message: str) -> None:
        self.errors.append(message)
        self.is_valid = False


class ConnectionTestResult(BaseModel):
    """Result of Provider.test_connection(), used for "test my key" actions."""

    success: bool
    detail: str = ""
    response_time_ms: float | None = None
    errors: list[str] = Field(default_factory=list)


class RateLimitStatus(BaseModel):
    """Read-only snapshot of a provider instance's rate-limit budget."""

    requests_remaining: int
    tokens_remaining: int
    reset_time: float = Field(..., description="Epoch seconds at which the window resets.")
    time_until_reset: float


class OAuthFlowState(BaseModel):
    """
    Transient state of one authorization round trip.

    Stored only while the flow is in flight; deleted on success, error or
    timeout.
    """

    provider: str
    code_verifier: str
    created_at: float = Field(default_factory=time.time)


class AuthorizationRequest(BaseModel):
    """Returned by AuthenticationManager.start_flow()."""

    provider: str
    url: str
    code_challenge: str
    redirect_uri: str


class OAuthCredential(BaseModel):
    """Credential issued by a successful code exchange."""

    provider: str
    token: str
    user_id: str | None = None


class RegistrationResult(BaseModel):
    """Outcome of registering one built-in provider."""

    provider: str
    ok: bool
    error: str | None = None

# promptboost/config.py
"""
CoreConfig and related sub-configs.

Supports construction from:
  - Python dict   → CoreConfig.from_dict(data)
  - YAML file     → CoreConfig.from_yaml("promptboost.yaml")
  - Environment   → CoreConfig.from_env()
"""

from __future__ import annotations

import os
import re
from typing import Any

from pydantic import BaseModel, Field, model_validator

from .constants import (
    DEFAULT_REQUESTS_PER_MINUTE,
    DEFAULT_TOKENS_PER_MINUTE,
    MAX_INPUT_LENGTH,
    OAUTH_TIMEOUT_SECONDS,
    PROVIDER_RATE_LIMITS,
    REQUEST_TIMEOUT_SECONDS,
    RETRY_BASE_DELAY_SECONDS,
    RETRY_MAX_ATTEMPTS,
    RETRY_MAX_DELAY_SECONDS,
    WINDOW_SECONDS,
)


class RetryConfig(BaseModel):
    """Configuration for the retry/backoff policy."""

    max_attempts: int = Field(
        default=RETRY_MAX_ATTEMPTS,
        gt=0,
        description="Total attempts for one logical call, first try included.",
    )
    base_delay: float = Field(
        default=RETRY_BASE_DELAY_SECONDS,
        ge=0.0,
        description="Backoff base in seconds; delay = base * 2**attempt.",
    )
    max_delay: float = Field(default=RETRY_MAX_DELAY_SECONDS, ge=0.0)

    @model_validator(mode="after")
    def check_delays(self) -> "RetryConfig":
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must be >= base_delay")
        return self


class RateLimitConfig(BaseModel):
    """Local admission budget for one provider."""

    requests_per_minute: int = Field(default=DEFAULT_REQUESTS_PER_MINUTE, gt=0)
    tokens_per_minute: int = Field(default=DEFAULT_TOKENS_PER_MINUTE, gt=0)


class CoreConfig(BaseModel):
    """
    Top-level configuration for the PromptBoost core.

    Instantiate directly or use one of the factory class methods:
      CoreConfig.from_dict(data)
      CoreConfig.from_yaml(path)
      CoreConfig.from_env()
    """

    max_input_length: int = Field(
        default=MAX_INPUT_LENGTH,
        gt=0,
        description="Character ceiling for text passed to call_llm_api().",
    )
    retry: RetryConfig = Field(default_factory=RetryConfig)
    rate_limits: dict[str, RateLimitConfig] = Field(
        default_factory=dict,
        description="Per-provider overrides of the built-in rate-limit defaults.",
    )
    window_seconds: int = Field(
        default=WINDOW_SECONDS,
        gt=0,
        description="Rate-limit accounting window in seconds.",
    )
    default_provider: str | None = None
    fallback_providers: list[str] = Field(default_factory=list)
    oauth_timeout_seconds: float = Field(default=OAUTH_TIMEOUT_SECONDS, gt=0)
    request_timeout_seconds: float = Field(default=REQUEST_TIMEOUT_SECONDS, gt=0)
    redis_url: str | None = Field(
        default=None,
        description="Redis connection URL. If set, OAuth flow state is kept in Redis.",
    )

    def rate_limit_for(self, provider: str) -> RateLimitConfig:
        """Return the configured or built-in rate limit for *provider*."""
        if provider in self.rate_limits:
            return self.rate_limits[provider]
        rpm, tpm = PROVIDER_RATE_LIMITS.get(
            provider, (DEFAULT_REQUESTS_PER_MINUTE, DEFAULT_TOKENS_PER_MINUTE)
        )
        return RateLimitConfig(requests_per_minute=rpm, tokens_per_minute=tpm)

    # ------------------------------------------------------------------
    # Factory methods
    # ------------------------------------------------------------------

    @classmethod
    def from_dict(cls, data: dict[str, Any], **kwargs: Any) -> "CoreConfig":
        """Build config from a plain Python dictionary."""
        merged = {**data, **kwargs}
        return cls.model_validate(merged)

    @classmethod
    def from_yaml(cls, path: str, **kwargs: Any) -> "CoreConfig":
        """
        Build config from a YAML file.

        Environment variable interpolation is supported:
          redis_url: "${REDIS_URL}"
        """
        import yaml

        with open(path) as f:
            raw = f.read()

        def _replace(match: re.Match) -> str:  # type: ignore[type-arg]
            var = match.group(1)
            value = os.environ.get(var)
            if value is None:
                raise EnvironmentError(
                    f"Environment variable '{var}' referenced in '{path}' is not set."
                )
            return value

        raw = re.sub(r"\$\{([^}]+)\}", _replace, raw)
        data = yaml.safe_load(raw) or {}
        return cls.from_dict(data, **kwargs)

    @classmethod
    def from_env(cls, **kwargs: Any) -> "CoreConfig":
        """
        Build config from environment variables.

          PROMPTBOOST_DEFAULT_PROVIDER   → default_provider
          PROMPTBOOST_FALLBACK_PROVIDERS → fallback_providers (comma separated)
          PROMPTBOOST_MAX_INPUT_LENGTH   → max_input_length
          PROMPTBOOST_MAX_ATTEMPTS       → retry.max_attempts
          PROMPTBOOST_OAUTH_TIMEOUT      → oauth_timeout_seconds
          PROMPTBOOST_REDIS_URL          → redis_url
        """
        data: dict[str, Any] = {}

        default_provider = os.environ.get("PROMPTBOOST_DEFAULT_PROVIDER")
        if default_provider:
            data["default_provider"] = default_provider

        fallbacks = os.environ.get("PROMPTBOOST_FALLBACK_PROVIDERS")
        if fallbacks:
            data["fallback_providers"] = [p.strip() for p in fallbacks.split(",") if p.strip()]

        max_len = os.environ.get("PROMPTBOOST_MAX_INPUT_LENGTH")
        if max_len:
            data["max_input_length"] = int(max_len)

        max_attempts = os.environ.get("PROMPTBOOST_MAX_ATTEMPTS")
        if max_attempts:
            data["retry"] = {"max_attempts": int(max_attempts)}

        oauth_timeout = os.environ.get("PROMPTBOOST_OAUTH_TIMEOUT")
        if oauth_timeout:
            data["oauth_timeout_seconds"] = float(oauth_timeout)

        redis_url = os.environ.get("PROMPTBOOST_REDIS_URL")
        if redis_url:
            data["redis_url"] = redis_url

        data.update(kwargs)
        return cls.from_dict(data)

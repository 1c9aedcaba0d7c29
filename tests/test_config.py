# tests/test_config.py
"""
Tests for CoreConfig construction and validation.
"""

from __future__ import annotations

import pydantic
import pytest

from promptboost.config import CoreConfig, RetryConfig
from promptboost.models import OptimizeSettings


class TestCoreConfig:
    def test_defaults(self):
        config = CoreConfig()
        assert config.max_input_length == 10_000
        assert config.retry.max_attempts == 3
        assert config.window_seconds == 60
        assert config.oauth_timeout_seconds == 60.0
        assert config.default_provider is None

    def test_rate_limit_for_builtin_and_override(self):
        config = CoreConfig.from_dict(
            {"rate_limits": {"cohere": {"requests_per_minute": 5, "tokens_per_minute": 500}}}
        )
        assert config.rate_limit_for("anthropic").requests_per_minute == 50
        assert config.rate_limit_for("cohere").tokens_per_minute == 500
        assert config.rate_limit_for("unknown").requests_per_minute == 60

    def test_retry_delays_validated(self):
        with pytest.raises(pydantic.ValidationError):
            RetryConfig(base_delay=5.0, max_delay=1.0)
        with pytest.raises(pydantic.ValidationError):
            RetryConfig(max_attempts=0)

    def test_from_yaml_interpolates_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TEST_REDIS_URL", "redis://localhost:6379/1")
        path = tmp_path / "promptboost.yaml"
        path.write_text(
            "default_provider: anthropic\n"
            "fallback_providers: [openai, cohere]\n"
            "redis_url: \"${TEST_REDIS_URL}\"\n"
            "retry:\n"
            "  max_attempts: 4\n"
        )

        config = CoreConfig.from_yaml(str(path))

        assert config.default_provider == "anthropic"
        assert config.fallback_providers == ["openai", "cohere"]
        assert config.redis_url == "redis://localhost:6379/1"
        assert config.retry.max_attempts == 4

    def test_from_yaml_missing_env_var(self, tmp_path, monkeypatch):
        monkeypatch.delenv("PROMPTBOOST_UNSET_VAR", raising=False)
        path = tmp_path / "promptboost.yaml"
        path.write_text('redis_url: "${PROMPTBOOST_UNSET_VAR}"\n')
        with pytest.raises(EnvironmentError):
            CoreConfig.from_yaml(str(path))

    def test_from_empty_yaml(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert CoreConfig.from_yaml(str(path)) == CoreConfig()

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("PROMPTBOOST_DEFAULT_PROVIDER", "gemini")
        monkeypatch.setenv("PROMPTBOOST_FALLBACK_PROVIDERS", "openai, cohere,")
        monkeypatch.setenv("PROMPTBOOST_MAX_ATTEMPTS", "2")
        monkeypatch.setenv("PROMPTBOOST_OAUTH_TIMEOUT", "30")

        config = CoreConfig.from_env(max_input_length=500)

        assert config.default_provider == "gemini"
        assert config.fallback_providers == ["openai", "cohere"]
        assert config.retry.max_attempts == 2
        assert config.oauth_timeout_seconds == 30.0
        assert config.max_input_length == 500


class TestOptimizeSettings:
    def test_template_needs_marker_once(self):
        with pytest.raises(pydantic.ValidationError):
            OptimizeSettings(prompt_template="no marker")
        with pytest.raises(pydantic.ValidationError):
            OptimizeSettings(prompt_template="{text} and {text}")

    def test_render(self):
        settings = OptimizeSettings(prompt_template="Rewrite: {text}!")
        assert settings.render("hello") == "Rewrite: hello!"

    @pytest.mark.parametrize("max_tokens", [0, 8_001])
    def test_max_tokens_bounds(self, max_tokens):
        with pytest.raises(pydantic.ValidationError):
            OptimizeSettings(max_tokens=max_tokens)

    def test_provider_config_projection_drops_call_fields(self):
        settings = OptimizeSettings(provider="openai", api_key="sk-test-key-1234567890", max_tokens=10)
        config = settings.provider_config()
        assert config.api_key == "sk-test-key-1234567890"
        assert config.stable_hash() == settings.provider_config().stable_hash()
        assert not hasattr(config, "max_tokens")

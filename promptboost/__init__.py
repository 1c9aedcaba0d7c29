# promptboost/__init__.py
"""
promptboost — provider abstraction, resilience and authentication core.

Public API surface:
  Orchestrator          — main class; call call_llm_api(text, settings)
  CoreConfig            — top-level configuration model
  RetryConfig           — retry/backoff tuning
  RateLimitConfig       — per-provider local rate-limit budget
  OptimizeSettings      — settings passed to call_llm_api()
  ProviderConfig        — per-provider credentials and endpoint
  ProviderRegistry      — pluggable provider registry
  BaseProvider          — subclass to add a provider
  AuthenticationManager — credential checks and the OAuth PKCE flow
  RetryPolicy           — exponential backoff around one logical call
  RateLimiter           — per-instance request/token budget
  PromptBoostError      — base of every error raised by the core
"""

from .orchestrator import Orchestrator
from .config import CoreConfig, RateLimitConfig, RetryConfig
from .models import (
    CallOptions,
    Capability,
    ConnectionTestResult,
    ModelInfo,
    OAuthCredential,
    OptimizeSettings,
    ProviderConfig,
    ProviderDescriptor,
    RateLimitStatus,
)
from .providers import BaseProvider, ProviderRegistry
from .auth import AuthenticationManager, FlowStage
from .retry import RetryPolicy, is_retryable
from .limiter import RateLimiter
from .exceptions import (
    AuthenticationError,
    EmptyInput,
    EmptyResponse,
    InputTooLong,
    OAuthError,
    PromptBoostError,
    ProviderError,
    ProviderRegistrationError,
    ProviderRequestError,
    ProviderUnavailable,
    QuotaExceeded,
    RateLimited,
    RequestCancelled,
    RequestTimeout,
    TransientNetworkError,
    ValidationError,
)

__all__ = [
    "Orchestrator",
    "CoreConfig",
    "RateLimitConfig",
    "RetryConfig",
    "CallOptions",
    "Capability",
    "ConnectionTestResult",
    "ModelInfo",
    "OAuthCredential",
    "OptimizeSettings",
    "ProviderConfig",
    "ProviderDescriptor",
    "RateLimitStatus",
    "BaseProvider",
    "ProviderRegistry",
    "AuthenticationManager",
    "FlowStage",
    "RetryPolicy",
    "is_retryable",
    "RateLimiter",
    "AuthenticationError",
    "EmptyInput",
    "EmptyResponse",
    "InputTooLong",
    "OAuthError",
    "PromptBoostError",
    "ProviderError",
    "ProviderRegistrationError",
    "ProviderRequestError",
    "ProviderUnavailable",
    "QuotaExceeded",
    "RateLimited",
    "RequestCancelled",
    "RequestTimeout",
    "TransientNetworkError",
    "ValidationError",
]

__version__ = "2.0.0"

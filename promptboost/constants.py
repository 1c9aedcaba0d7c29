# promptboost/constants.py
"""
Default constants for the PromptBoost core.
All tunable values are centralised here so they can be overridden via CoreConfig
without touching internal logic.
"""

# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------
MAX_INPUT_LENGTH: int = 10_000
"""Character ceiling for the text handed to call_llm_api()."""

TEXT_MARKER: str = "{text}"
"""Substitution marker replaced by the caller's text in the prompt template."""

API_KEY_MIN_LENGTH: int = 10
API_KEY_MAX_LENGTH: int = 200

MAX_TOKENS_MIN: int = 1
MAX_TOKENS_MAX: int = 8_000
DEFAULT_MAX_TOKENS: int = 1_000
DEFAULT_TEMPERATURE: float = 0.7

# ---------------------------------------------------------------------------
# Retry policy
# ---------------------------------------------------------------------------
RETRY_MAX_ATTEMPTS: int = 3
"""Total attempts for one logical call (first try included)."""

RETRY_BASE_DELAY_SECONDS: float = 1.0
RETRY_MAX_DELAY_SECONDS: float = 10.0

RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})

# ---------------------------------------------------------------------------
# Rate limiting (local admission check)
# ---------------------------------------------------------------------------
WINDOW_SECONDS: int = 60
"""Duration of the rate-limit accounting window in seconds."""

DEFAULT_REQUESTS_PER_MINUTE: int = 60
DEFAULT_TOKENS_PER_MINUTE: int = 10_000

PROVIDER_RATE_LIMITS: dict[str, tuple[int, int]] = {
    "openai": (60, 10_000),
    "anthropic": (50, 8_000),
    "gemini": (60, 12_000),
}
"""provider id → (requests per minute, tokens per minute)."""

# ---------------------------------------------------------------------------
# Timeouts
# ---------------------------------------------------------------------------
REQUEST_TIMEOUT_SECONDS: float = 30.0
OAUTH_TIMEOUT_SECONDS: float = 60.0
"""Upper bound on the interactive authorization redirect."""

PROBE_PROMPT: str = "Hello, this is a test message."
PROBE_MAX_TOKENS: int = 50

# ---------------------------------------------------------------------------
# Provider endpoints
# ---------------------------------------------------------------------------
OPENAI_BASE_URL: str = "https://api.openai.com/v1"
ANTHROPIC_BASE_URL: str = "https://api.anthropic.com"
ANTHROPIC_VERSION: str = "2023-06-01"
COHERE_BASE_URL: str = "https://api.cohere.ai/v1"
GEMINI_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta"
OPENROUTER_BASE_URL: str = "https://openrouter.ai/api/v1"
OPENROUTER_AUTH_URL: str = "https://openrouter.ai/auth"
OPENROUTER_TOKEN_URL: str = "https://openrouter.ai/api/v1/auth/keys"
OAUTH_DEFAULT_REDIRECT_URI: str = "http://localhost:3000/oauth/callback"

APP_NAME: str = "PromptBoost"
APP_URL: str = "http://localhost:3000"
"""Sent as HTTP-Referer to OpenRouter; override with ProviderConfig.extra["app_url"]."""
USER_AGENT: str = "PromptBoost/2.0.0"

# ---------------------------------------------------------------------------
# Default model strings
# ---------------------------------------------------------------------------
DEFAULT_OPENAI_MODEL: str = "gpt-3.5-turbo"
DEFAULT_ANTHROPIC_MODEL: str = "claude-3-sonnet-20240229"
DEFAULT_COHERE_MODEL: str = "command"
DEFAULT_GEMINI_MODEL: str = "gemini-pro"
DEFAULT_OPENROUTER_MODEL: str = "openai/gpt-3.5-turbo"

DEFAULT_PROVIDER: str = "openai"

# ---------------------------------------------------------------------------
# Redis key layout
# ---------------------------------------------------------------------------
REDIS_PREFIX: str = "promptboost"
REDIS_OAUTH_STATE_KEY: str = REDIS_PREFIX + ":oauth_state"

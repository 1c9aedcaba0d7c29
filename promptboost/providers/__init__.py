# promptboost/providers/__init__.py
from .base import BaseProvider
from .registry import ProviderRegistry
from .openai import OpenAIProvider
from .anthropic import AnthropicProvider
from .cohere import CohereProvider
from .openrouter import OpenRouterProvider
from .gemini import GeminiProvider

__all__ = [
    "BaseProvider",
    "ProviderRegistry",
    "OpenAIProvider",
    "AnthropicProvider",
    "CohereProvider",
    "OpenRouterProvider",
    "GeminiProvider",
]

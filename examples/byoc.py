# examples/byoc.py
"""
BYOC — Bring Your Own Client.

The developer keeps their existing, fully configured SDK client. The
registry wraps it in the OpenAI adapter, so retries, rate limiting and
error mapping still apply.

Run with:
  OPENAI_API_KEY=sk-... python examples/byoc.py
"""

import asyncio
import functools
import os

import openai

from promptboost import Orchestrator, OptimizeSettings, ProviderRegistry
from promptboost.providers import OpenAIProvider


async def main():
    # Developer's existing client; the SDK's own retry loop stays off.
    openai_client = openai.AsyncOpenAI(
        api_key=os.environ["OPENAI_API_KEY"],
        timeout=30,
        max_retries=0,
    )

    registry = ProviderRegistry()
    registry.register(
        "openai",
        functools.partial(OpenAIProvider, client=openai_client),
        OpenAIProvider.descriptor,
    )

    settings = OptimizeSettings(
        provider="openai",
        api_key=os.environ["OPENAI_API_KEY"],
        prompt_template="Make this prompt more precise: {text}",
    )

    async with Orchestrator(registry=registry) as orchestrator:
        print(await orchestrator.call_llm_api("explain recursion", settings))


if __name__ == "__main__":
    asyncio.run(main())

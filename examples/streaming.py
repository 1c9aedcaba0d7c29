# examples/streaming.py
"""
Streaming a completion straight from a provider adapter.

call_api() with stream=True returns an async iterator of text chunks.
Streaming calls are not retried.

Run with:
  OPENROUTER_API_KEY=sk-or-... python examples/streaming.py
"""

import asyncio
import os

from promptboost import CallOptions, ProviderConfig, ProviderRegistry


async def main():
    registry = ProviderRegistry()
    registry.register_builtin_providers()

    config = ProviderConfig(
        api_key=os.environ["OPENROUTER_API_KEY"],
        model="anthropic/claude-3-haiku",
    )
    provider = await registry.get_provider("openrouter", config)
    await provider.authenticate()

    try:
        print("Streaming response:\n")
        await provider.rate_limiter.acquire(500)
        stream = await provider.call_api(
            "Suggest three ways to make a vague prompt more specific.",
            CallOptions(max_tokens=400, stream=True),
        )
        async for chunk in stream:
            print(chunk, end="", flush=True)
        print("\n\nDone.")
    finally:
        await registry.close_all()


if __name__ == "__main__":
    asyncio.run(main())

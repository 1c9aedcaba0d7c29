# examples/quickstart.py
"""
Quickstart — optimize a prompt through the Orchestrator.

Run with:
  OPENAI_API_KEY=sk-... python examples/quickstart.py
"""

import asyncio
import logging
import os

from promptboost import Orchestrator, OptimizeSettings, PromptBoostError


async def main():
    logging.basicConfig(level=logging.INFO)

    orchestrator = Orchestrator.from_dict({
        "default_provider": "openai",
        "fallback_providers": ["anthropic"],
        "retry": {"max_attempts": 3, "base_delay": 1.0, "max_delay": 10.0},
    })

    settings = OptimizeSettings(
        provider="openai",
        api_key=os.environ["OPENAI_API_KEY"],
        model="gpt-3.5-turbo",
        prompt_template="Rewrite this prompt so it is clear and specific:\n\n{text}",
        max_tokens=300,
        temperature=0.3,
    )

    async with orchestrator:
        try:
            improved = await orchestrator.call_llm_api(
                "write something about dogs", settings, timeout=60
            )
        except PromptBoostError as exc:
            print(f"Failed after {exc.attempts} attempt(s): {exc.message}")
            return

        print(f"Improved prompt:\n{improved}")

        status = await orchestrator.rate_limit_status("openai", settings.provider_config())
        print(
            f"\nopenai: {status.requests_remaining} requests and "
            f"{status.tokens_remaining} tokens left, window resets in "
            f"{status.time_until_reset:.0f}s"
        )


if __name__ == "__main__":
    asyncio.run(main())

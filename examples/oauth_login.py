# examples/oauth_login.py
"""
Obtain an OpenRouter key through the OAuth PKCE flow.

The launcher prints the authorization URL and waits for the redirect URL
to be pasted back; a desktop or web host would open a browser window and
capture the redirect itself.

Run with:
  python examples/oauth_login.py
"""

import asyncio

from promptboost import OAuthError, Orchestrator


async def launcher(url: str) -> str:
    print(f"Open this URL and approve access:\n\n  {url}\n")
    return await asyncio.to_thread(input, "Paste the URL you were redirected to: ")


async def main():
    async with Orchestrator.from_dict({"oauth_timeout_seconds": 300}) as orchestrator:
        try:
            credential = await orchestrator.auth.authorize("openrouter", launcher)
        except OAuthError as exc:
            print(f"Authorization failed: {exc.message}")
            return
        print(f"Got key for {credential.provider}: {credential.token[:12]}...")


if __name__ == "__main__":
    asyncio.run(main())

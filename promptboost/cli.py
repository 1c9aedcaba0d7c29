# promptboost/cli.py
"""
CLI entry point for promptboost.

Available commands:
  promptboost providers [--config promptboost.yaml]
  promptboost models PROVIDER [--api-key KEY]
  promptboost test PROVIDER --api-key KEY [--model MODEL]
  promptboost optimize TEXT --provider ID --api-key KEY [--template T]
  promptboost login PROVIDER [--redirect-uri URI] [--no-browser]

API keys may also come from the PROMPTBOOST_API_KEY environment variable.
"""

from __future__ import annotations

import asyncio
import webbrowser
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from .constants import TEXT_MARKER
from .exceptions import PromptBoostError
from .models import OptimizeSettings, ProviderConfig
from .orchestrator import Orchestrator

app = typer.Typer(
    name="promptboost",
    help="Optimize text through pluggable LLM providers.",
    add_completion=False,
)
console = Console()

_CONFIG_OPTION = typer.Option(None, "--config", "-c", help="Path to promptboost.yaml")
_API_KEY_OPTION = typer.Option(
    "", "--api-key", "-k", envvar="PROMPTBOOST_API_KEY", help="Provider API key"
)


def _load_orchestrator(config_path: Optional[str]) -> Orchestrator:
    if config_path:
        return Orchestrator.from_yaml(config_path)
    return Orchestrator.from_env()


def _fail(exc: PromptBoostError) -> None:
    console.print(f"[red]✗ {type(exc).__name__}:[/red] {exc.message}")
    raise typer.Exit(1)


@app.command()
def providers(config: Optional[str] = _CONFIG_OPTION) -> None:
    """List built-in providers and whether they registered."""

    async def _run() -> Table:
        async with _load_orchestrator(config) as orchestrator:
            table = Table(title="PromptBoost — Providers", show_lines=True)
            table.add_column("Provider", style="bold cyan", no_wrap=True)
            table.add_column("Name")
            table.add_column("Default model")
            table.add_column("Capabilities")
            table.add_column("Status")
            for result in orchestrator.registration_results:
                descriptor = orchestrator.registry.descriptor(result.provider)
                status = "[green]ready ✓[/green]" if result.ok else f"[red]{result.error}[/red]"
                table.add_row(
                    result.provider,
                    descriptor.display_name if descriptor else "",
                    descriptor.default_model if descriptor else "",
                    ", ".join(sorted(c.value for c in descriptor.capabilities)) if descriptor else "",
                    status,
                )
            return table

    console.print(asyncio.run(_run()))


@app.command()
def models(
    provider: str = typer.Argument(..., help="Provider id, e.g. openai"),
    api_key: str = _API_KEY_OPTION,
    config: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Show a provider's model catalog (live when the key works)."""

    async def _run() -> Table:
        async with _load_orchestrator(config) as orchestrator:
            catalog = await orchestrator.get_provider_models(
                provider, ProviderConfig(api_key=api_key)
            )
        table = Table(title=f"{provider} models")
        table.add_column("Model", style="bold cyan")
        table.add_column("Name")
        table.add_column("Context", justify="right")
        table.add_column("$/1K in", justify="right")
        table.add_column("$/1K out", justify="right")
        for model in catalog:
            table.add_row(
                model.id,
                model.name,
                f"{model.max_tokens:,}",
                f"{model.input_cost:g}",
                f"{model.output_cost:g}",
            )
        return table

    try:
        console.print(asyncio.run(_run()))
    except PromptBoostError as exc:
        _fail(exc)


@app.command()
def test(
    provider: str = typer.Argument(..., help="Provider id, e.g. openai"),
    api_key: str = _API_KEY_OPTION,
    model: Optional[str] = typer.Option(None, "--model", "-m"),
    config: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Validate a key and send one minimal probe request."""

    async def _run():
        async with _load_orchestrator(config) as orchestrator:
            return await orchestrator.test_provider(
                OptimizeSettings(provider=provider, api_key=api_key, model=model)
            )

    result = asyncio.run(_run())
    if result.success:
        console.print(f"[green]✓ {result.detail}[/green] ({result.response_time_ms:.0f}ms)")
        return
    console.print(f"[red]✗ {result.detail}[/red]")
    for error in result.errors:
        console.print(f"  - {error}")
    raise typer.Exit(1)


@app.command()
def optimize(
    text: str = typer.Argument(..., help="Text to optimize"),
    provider: Optional[str] = typer.Option(None, "--provider", "-p"),
    api_key: str = _API_KEY_OPTION,
    model: Optional[str] = typer.Option(None, "--model", "-m"),
    template: str = typer.Option(
        TEXT_MARKER, "--template", "-t", help=f"Prompt template containing {TEXT_MARKER}"
    ),
    max_tokens: int = typer.Option(1000, "--max-tokens"),
    temperature: float = typer.Option(0.7, "--temperature"),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Overall deadline in seconds"),
    config: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Send TEXT through the prompt template and print the result."""
    settings = OptimizeSettings(
        provider=provider,
        api_key=api_key,
        model=model,
        prompt_template=template,
        max_tokens=max_tokens,
        temperature=temperature,
    )

    async def _run() -> str:
        async with _load_orchestrator(config) as orchestrator:
            return await orchestrator.call_llm_api(text, settings, timeout=timeout)

    try:
        console.print(asyncio.run(_run()))
    except PromptBoostError as exc:
        _fail(exc)


@app.command()
def login(
    provider: str = typer.Argument("openrouter", help="Provider id with OAuth support"),
    redirect_uri: Optional[str] = typer.Option(None, "--redirect-uri"),
    open_browser: bool = typer.Option(True, "--browser/--no-browser"),
    config: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Obtain an API key through the OAuth PKCE flow."""

    async def _launch(url: str) -> str:
        console.print(f"Open this URL to authorize:\n[bold]{url}[/bold]")
        if open_browser:
            webbrowser.open(url)
        return await asyncio.to_thread(typer.prompt, "Paste the URL you were redirected to")

    async def _run():
        async with _load_orchestrator(config) as orchestrator:
            return await orchestrator.auth.authorize(
                provider, _launch, redirect_uri=redirect_uri
            )

    try:
        credential = asyncio.run(_run())
    except PromptBoostError as exc:
        _fail(exc)
    console.print(f"[green]✓ Authorized with {provider}[/green]")
    console.print(f"API key: {credential.token}")

"""Command-line access to the completion client."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from typing import Any

import click
from rich.console import Console
from rich.table import Table

from open_completions.config import ServiceConfig, apply_env, load_config
from open_completions.errors import ApiError, ConfigError
from open_completions.events import EventBus
from open_completions.llm.client import AsyncCompletionsClient
from open_completions.types import ClientEvent, EventType

console = Console()
err_console = Console(stderr=True)


def _build_config(config_path: str | None, variant: str | None) -> ServiceConfig:
    try:
        config, config_file = load_config(config_path)
    except (FileNotFoundError, ConfigError) as e:
        raise click.BadParameter(str(e), param_hint="--config") from e
    if config_file:
        err_console.print(f"[dim]Config: {config_file}[/dim]")
    try:
        config = apply_env(config)
    except ConfigError as e:
        raise click.UsageError(str(e)) from e
    if variant:
        config = config.model_copy(update={"variant": variant})
    return config


def _retry_notice(event: ClientEvent) -> None:
    d = event.data
    err_console.print(
        f"[yellow]retry {d['retry']}/{d['max_retries']} after status {d['status']}"
        f" (waiting {d['delay_ms']}ms)[/yellow]"
    )


def _request_body(variant: str, prompt: str) -> dict[str, Any]:
    if variant == "responses":
        return {"input": prompt}
    return {"messages": [{"role": "user", "content": prompt}]}


def _event_text(event: Any, variant: str) -> str:
    """Pull the incremental text out of a streamed event, if any."""
    if not isinstance(event, dict):
        return ""
    if variant == "responses":
        delta = event.get("delta")
        return delta if isinstance(delta, str) else ""
    choices = event.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return ""
    delta = choices[0].get("delta")
    if not isinstance(delta, dict):
        return ""
    content = delta.get("content")
    return content if isinstance(content, str) else ""


def _run(coro: Any) -> Any:
    try:
        return asyncio.run(coro)
    except ConfigError as e:
        err_console.print(f"[red]Configuration error:[/red] {e}")
        sys.exit(2)
    except ApiError as e:
        err_console.print(f"[red]Request failed after {e.attempts} attempt(s):[/red] {e}")
        if isinstance(e.data, (dict, list)):
            err_console.print_json(data=e.data)
        elif e.data:
            err_console.print(str(e.data), markup=False)
        sys.exit(1)


@click.group()
@click.option("--config", "-c", "config_path", default=None,
              help="Path to open_completions.yaml")
@click.option("--variant", type=click.Choice(["chat", "responses"]), default=None,
              help="API variant (overrides config)")
@click.option("--verbose", "-v", is_flag=True, help="Verbose logging")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, variant: str | None, verbose: bool):
    """Talk to an OpenAI-style completion API."""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING)
    ctx.obj = _build_config(config_path, variant)


@main.command()
@click.argument("model")
@click.argument("prompt")
@click.pass_obj
def chat(config: ServiceConfig, model: str, prompt: str):
    """Send PROMPT to MODEL and print the full JSON response."""

    async def _go() -> Any:
        bus = EventBus()
        bus.subscribe(EventType.REQUEST_RETRY, _retry_notice)
        async with AsyncCompletionsClient(config, events=bus) as client:
            return await client.generate_content(model, _request_body(config.variant, prompt))

    console.print_json(data=_run(_go()))


@main.command()
@click.argument("model")
@click.argument("prompt")
@click.option("--raw", is_flag=True, help="Print every event as JSON")
@click.pass_obj
def stream(config: ServiceConfig, model: str, prompt: str, raw: bool):
    """Stream a completion for PROMPT from MODEL."""

    async def _go() -> int:
        bus = EventBus()
        bus.subscribe(EventType.REQUEST_RETRY, _retry_notice)
        count = 0
        async with AsyncCompletionsClient(config, events=bus) as client:
            async for event in client.generate_content_stream(
                model, _request_body(config.variant, prompt),
            ):
                count += 1
                if raw:
                    console.print(json.dumps(event, ensure_ascii=False), highlight=False, markup=False)
                else:
                    console.print(_event_text(event, config.variant), end="", highlight=False, markup=False)
        return count

    count = _run(_go())
    if not raw:
        console.print()
    err_console.print(f"[dim]{count} events[/dim]")


@main.command()
@click.pass_obj
def models(config: ServiceConfig):
    """List models available to the configured key."""

    async def _go() -> Any:
        async with AsyncCompletionsClient(config) as client:
            return await client.list_models()

    data = _run(_go())
    entries = data.get("data") if isinstance(data, dict) else None
    if not isinstance(entries, list):
        console.print_json(data=data)
        return
    table = Table(title="Models")
    table.add_column("id")
    table.add_column("owned_by", style="dim")
    for entry in entries:
        if isinstance(entry, dict):
            table.add_row(str(entry.get("id", "")), str(entry.get("owned_by", "")))
        else:
            table.add_row(str(entry), "")
    console.print(table)


if __name__ == "__main__":
    main()

"""Parley CLI: run the server, the worker, or a single turn in-process."""

from __future__ import annotations

import asyncio
import json

import typer
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

from parley.agent.types import AgentStreamEvent
from parley.config import get_config
from parley.logging import setup_logging

app = typer.Typer(
    name="parley",
    help="Parley: conversational agent gateway",
    no_args_is_help=True,
    add_completion=False,
)

console = Console()


def render_event(event: AgentStreamEvent, raw: bool = False) -> None:
    """Print one agent event to the console."""
    if raw:
        console.print_json(json.dumps(event.to_wire(), ensure_ascii=False))
        return

    if event.type == "text" and event.content:
        console.print(Markdown(event.content))
    elif event.type == "tool_start":
        args = json.dumps(event.tool_args or {}, ensure_ascii=False)
        console.print(f"[cyan]-> {event.tool_name}[/cyan] [dim]{args}[/dim]")
    elif event.type == "tool_result":
        result = event.tool_result or ""
        if len(result) > 200:
            result = result[:200] + "..."
        console.print(f"[cyan]<- {event.tool_name}[/cyan] [dim]{result}[/dim]")
    elif event.type == "error":
        console.print(f"[red]Error:[/red] {event.error}")
    elif event.type == "done" and event.usage:
        console.print(f"[dim]tokens: {event.usage.total_tokens}[/dim]")


async def _run_turn(message: str, channel: str, peer_id: str, raw: bool) -> bool:
    from parley.runtime import build_runtime

    runtime = await build_runtime(get_config())
    failed = False
    try:
        async for event in runtime.agent.run(channel, peer_id, message):
            if event.type == "error":
                failed = True
            render_event(event, raw=raw)
    finally:
        await runtime.close()
    return not failed


@app.command()
def chat(
    message: str = typer.Argument(..., help="Message to send to the agent"),
    channel: str = typer.Option("cli", "--channel", "-c"),
    peer_id: str = typer.Option("local", "--peer", "-p", help="Peer id; selects the session"),
    raw: bool = typer.Option(False, "--raw", help="Print raw wire events as JSON"),
) -> None:
    """Run one conversation turn in-process against the configured provider."""
    config = get_config()
    setup_logging(level="WARNING", fmt=config.log_format, process="cli")
    ok = asyncio.run(_run_turn(message, channel, peer_id, raw))
    if not ok:
        raise typer.Exit(1)


@app.command()
def tools() -> None:
    """List the tools the agent can call."""
    from parley.agent.tools import ToolRegistry
    from parley.extensions.loader import PluginLoader
    from parley.tools.builtin import register_builtin_tools

    config = get_config()
    setup_logging(level="WARNING", fmt=config.log_format, process="cli")
    registry = ToolRegistry()
    register_builtin_tools(registry, config)
    asyncio.run(PluginLoader(config.plugins_dir, registry).load_all())

    table = Table(title="Tools", border_style="blue")
    table.add_column("Name", style="cyan")
    table.add_column("Description")
    for tool in registry.list_tools():
        table.add_row(tool["name"], tool["description"])

    console.print()
    console.print(table)
    console.print()


@app.command()
def serve(
    host: str = typer.Option("", "--host", help="Bind host (default from config)"),
    port: int = typer.Option(0, "--port", help="Bind port (default from config)"),
    reload: bool = typer.Option(False, "--reload"),
) -> None:
    """Start the Parley API server."""
    import uvicorn

    config = get_config()
    console.print(Panel("Starting Parley server...", border_style="blue"))
    uvicorn.run(
        "parley.main:app",
        host=host or config.host,
        port=port or config.port,
        reload=reload,
        log_level="warning",
    )


@app.command()
def worker() -> None:
    """Start the queue worker."""
    from arq import run_worker

    from parley.queue.worker import WorkerSettings

    config = get_config()
    setup_logging(level=config.log_level, fmt=config.log_format, process="worker")
    console.print(Panel(f"Starting Parley worker on {config.queue.queue_name}", border_style="blue"))
    run_worker(WorkerSettings)  # type: ignore[arg-type]


@app.command()
def version() -> None:
    """Show Parley version."""
    console.print("Parley v0.1.0")


def main() -> None:
    """Entrypoint."""
    app()


if __name__ == "__main__":
    main()

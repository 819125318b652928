"""CLI entry point for apiexplorer -- LLM-assisted API combination explorer."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from .catalogue import Catalogue, category_color, fetch_model_catalogue, load_catalogue, paginate
from .config import ExplorerConfig
from .models import ChatMessage, Role

app = typer.Typer(
    name="apiexplorer",
    help="Explore public APIs and let an LLM suggest what to build with them.",
    add_completion=False,
)

console = Console()


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )


def _load_config() -> ExplorerConfig:
    return ExplorerConfig.from_env(Path.cwd())


def _load_catalogue(cfg: ExplorerConfig, path: Path | None = None) -> Catalogue:
    source = path or cfg.catalogue_path
    try:
        return load_catalogue(source)
    except (OSError, ValueError) as exc:
        console.print(f"[red]Error:[/red] could not load catalogue {source or ''}: {exc}")
        raise typer.Exit(code=1)


def _render_message(controller, message: ChatMessage) -> str:
    """Rich markup for one transcript entry, with references highlighted."""
    from .references import ReferenceSegment

    if message.role is not Role.assistant:
        return escape(message.content)
    parts = []
    for seg in controller.render(message):
        if not isinstance(seg, ReferenceSegment):
            parts.append(escape(seg.text))
        elif seg.clickable:
            parts.append(f"[bold cyan]{escape(seg.label)}[/bold cyan]")
        else:
            parts.append(f"[dim]{escape(seg.label)}[/dim]")
    return "".join(parts)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    _configure_logging(verbose)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address."),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port number."),
    timeout: Optional[float] = typer.Option(None, "--timeout", "-t", help="Provider chain timeout budget in seconds."),
) -> None:
    """Run the proxy server (recommendations, mockups, fetch relay)."""
    cfg = _load_config()
    updates: dict = {}
    if host is not None:
        updates["host"] = host
    if port is not None:
        updates["port"] = port
    if timeout is not None:
        updates["timeout_budget"] = timeout
    if updates:
        cfg = cfg.model_copy(update=updates)

    if not cfg.primary_api_key and not cfg.fallback_api_key:
        console.print(
            "[yellow]Warning:[/yellow] neither GROQ_API_KEY nor OPENROUTER_API_KEY is set; "
            "generation requests will fail."
        )

    from .web.server import start_server

    console.print(f"[bold cyan]Serving[/bold cyan] http://{cfg.host}:{cfg.port}")
    console.print(f"  Allowed origins: {', '.join(cfg.allowed_origins)}")
    start_server(cfg)


@app.command()
def chat(
    server: Optional[str] = typer.Option(
        None, "--server", "-s", help="Proxy server URL. Calls providers directly when omitted."
    ),
    add: list[str] = typer.Option([], "--add", "-a", help="Catalogue entry to start the workspace with."),
    no_cache: bool = typer.Option(False, "--no-cache", help="Don't restore or save the transcript."),
) -> None:
    """Interactive session: build a workspace and ask for ideas.

    Type a message to chat.  Commands: /add NAME, /remove NAME, /clear,
    /workspace, /mockup IDEA, /quit.
    """
    from .controller import ConversationController, HttpTransport, InProcessTransport
    from .llm import build_provider_chain
    from .storage import LocalStore, TranscriptCache

    cfg = _load_config()
    catalogue = _load_catalogue(cfg)

    if server:
        transport = HttpTransport(server)
    else:
        chain = build_provider_chain(cfg)
        if not chain.providers:
            console.print("[red]Error:[/red] no LLM provider configured. Set GROQ_API_KEY or OPENROUTER_API_KEY.")
            raise typer.Exit(code=1)
        transport = InProcessTransport(
            chain, default_system_prompt=cfg.default_system_prompt, max_tokens=cfg.max_tokens
        )

    cache = None if no_cache else TranscriptCache(LocalStore(cfg.state_dir / "state.json"))
    controller = ConversationController(transport, catalogue, cache=cache)

    shown = 0

    def show_new() -> None:
        nonlocal shown
        for message in controller.messages[shown:]:
            if message.role is Role.thinking:
                continue
            colour = "green" if message.role is Role.user else "magenta"
            console.print(f"[bold {colour}]{message.role.value}>[/bold {colour}] {_render_message(controller, message)}")
        shown = len([m for m in controller.messages if m.role is not Role.thinking])
        if controller.error:
            console.print(f"[red]{escape(controller.error)}[/red]")

    async def add_entry(name: str) -> None:
        nonlocal shown
        entry = catalogue.get(name)
        if entry is None:
            matches = catalogue.filter(name)
            entry = matches[0] if matches else None
        if entry is None:
            console.print(f"[yellow]No catalogue entry matches[/yellow] {escape(name)}")
            return
        if entry.name in controller.workspace:
            console.print(f"[dim]{escape(entry.name)} is already in the workspace.[/dim]")
            return
        shown = 0
        with console.status("Thinking..."):
            await controller.add_node(entry)

    async def session() -> None:
        nonlocal shown
        for name in add:
            await add_entry(name)
        show_new()
        while True:
            try:
                line = console.input("[bold]you> [/bold]").strip()
            except (EOFError, KeyboardInterrupt):
                break
            if not line:
                continue
            command, _, arg = line.partition(" ")
            arg = arg.strip()
            if command in ("/quit", "/exit"):
                break
            if command == "/add":
                await add_entry(arg)
            elif command == "/remove":
                shown = 0
                with console.status("Thinking..."):
                    if not await controller.remove_node(arg):
                        console.print(f"[yellow]Not in workspace:[/yellow] {escape(arg)}")
            elif command == "/clear":
                shown = 0
                await controller.clear_workspace()
                console.print("[dim]Workspace cleared.[/dim]")
            elif command == "/workspace":
                names = controller.workspace.names
                console.print(", ".join(names) if names else "[dim](empty)[/dim]")
                continue
            elif command == "/mockup":
                with console.status("Generating web application..."):
                    await controller.generate_mockup(arg, controller.workspace.names)
            else:
                with console.status("Thinking..."):
                    await controller.submit_user_message(line)
            show_new()
        controller.close()

    asyncio.run(session())


@app.command()
def suggest(
    text: str = typer.Argument(..., help="Free text describing what you want to build."),
    active: list[str] = typer.Option([], "--active", "-a", help="Entry already in the workspace."),
    limit: int = typer.Option(5, "--limit", "-n", help="Maximum suggestions."),
) -> None:
    """Rank catalogue entries against TEXT."""
    from .ranking import rank_suggestions

    cfg = _load_config()
    catalogue = _load_catalogue(cfg)
    nodes = [e.to_node() for e in (catalogue.get(n) for n in active) if e is not None]

    ranked = rank_suggestions(text, catalogue, nodes, limit=limit)
    if not ranked:
        console.print("[yellow]No matching APIs.[/yellow]")
        return

    table = Table(title=f"Suggestions for {text!r}")
    table.add_column("Score", justify="right")
    table.add_column("Name", style="bold")
    table.add_column("Category")
    table.add_column("Description")
    for s in ranked:
        table.add_row(str(s.score), s.entry.name, s.entry.category, s.entry.description)
    console.print(table)


@app.command("catalogue")
def catalogue_cmd(
    search: str = typer.Option("", "--search", "-q", help="Text to match in name, description or category."),
    category: str = typer.Option("", "--category", "-c", help="Category or category group."),
    page: int = typer.Option(1, "--page", help="1-based page number."),
    per_page: int = typer.Option(24, "--per-page", help="Entries per page."),
    seed: Optional[int] = typer.Option(None, "--shuffle", help="Shuffle with this seed."),
    models: bool = typer.Option(False, "--models", help="List Hugging Face models instead (needs HUGGING_FACE_TOKEN)."),
    path: Optional[Path] = typer.Option(None, "--file", "-f", help="Catalogue JSON file."),
) -> None:
    """List catalogue entries."""
    cfg = _load_config()
    if models:
        try:
            catalogue = fetch_model_catalogue(cfg.huggingface_token)
        except (ValueError, RuntimeError, OSError) as exc:
            console.print(f"[red]Error:[/red] {exc}")
            raise typer.Exit(code=1)
    else:
        catalogue = _load_catalogue(cfg, path)
    if seed is not None:
        catalogue = catalogue.shuffled(seed)

    result = paginate(catalogue.filter(search, category), page=page, per_page=per_page)
    table = Table(title=f"Page {result.page}/{result.total_pages} ({result.total} entries)")
    table.add_column("Name", style="bold")
    table.add_column("Category")
    table.add_column("URL", overflow="fold")
    for entry in result.entries:
        colour = category_color(entry.category)
        table.add_row(entry.name, f"[{colour}]{escape(entry.category)}[/]", entry.url)
    console.print(table)


if __name__ == "__main__":
    app()

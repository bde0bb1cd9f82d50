"""threadbot CLI — Typer-based command-line interface."""

from __future__ import annotations

import asyncio
import sys

import typer
from loguru import logger
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from threadbot import __version__
from threadbot.core.errors import ThreadbotError

app = typer.Typer(
    name="threadbot",
    help="threadbot - checkpointed LangGraph agent with retrieval",
    no_args_is_help=True,
)

console = Console()


def setup_logging(level: str = "INFO") -> None:
    """Single stderr sink at ``level``."""
    logger.remove()
    logger.add(sys.stderr, level=level.upper())


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"threadbot v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=_version_callback, is_eager=True
    ),
    log_level: str = typer.Option("WARNING", "--log-level", help="Log level"),
) -> None:
    """threadbot - checkpointed LangGraph agent with retrieval."""
    setup_logging(log_level)


def _fail(error: ThreadbotError) -> None:
    console.print(f"[red]{error.code}:[/red] {error.message}")
    raise typer.Exit(code=1)


def _config():
    from threadbot.core.config.loader import load_config

    try:
        return load_config()
    except ThreadbotError as e:
        _fail(e)


# ════════════════════════════════════════════════════════════
# run — start API server
# ════════════════════════════════════════════════════════════


@app.command()
def run(
    port: int = typer.Option(8000, "--port", "-p", help="Port number"),
    host: str = typer.Option("0.0.0.0", "--host", "-h", help="Host address"),
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload"),
) -> None:
    """Start the API server (uvicorn)."""
    import uvicorn

    console.print(f"[green]Starting threadbot API on {host}:{port}[/green]")
    uvicorn.run("threadbot.api.app:app", host=host, port=port, reload=reload)


# ════════════════════════════════════════════════════════════
# chat — terminal chat
# ════════════════════════════════════════════════════════════


@app.command()
def chat(
    message: str | None = typer.Option(None, "--message", "-m", help="Single message to send"),
    thread: str | None = typer.Option(None, "--thread", "-t", help="Thread ID to resume"),
) -> None:
    """Chat with the assistant from the terminal."""
    from threadbot.agent.runner import create_runner

    try:
        runner = create_runner(_config())
    except ThreadbotError as e:
        _fail(e)

    if message:
        try:
            response, thread_id = asyncio.run(runner.process(message, thread))
        except ThreadbotError as e:
            _fail(e)
        console.print(f"\n[bold cyan]threadbot:[/bold cyan] {escape(response)}\n")
        console.print(f"[dim]thread: {thread_id}[/dim]")
        return

    console.print("[bold]threadbot interactive mode[/bold] (type 'exit' or 'quit' to leave)\n")

    async def _interactive() -> None:
        tid = thread
        while True:
            try:
                user_input = console.input("[bold blue]You:[/bold blue] ")
            except (KeyboardInterrupt, EOFError):
                console.print("\nBye!")
                break

            text = user_input.strip()
            if not text:
                continue
            if text.lower() in ("exit", "quit"):
                console.print("Bye!")
                break

            try:
                response, tid = await runner.process(text, tid)
            except ThreadbotError as e:
                # thread stays usable from its last checkpoint
                console.print(f"[red]{e.code}:[/red] {e.message}\n")
                continue
            console.print(f"\n[bold cyan]threadbot:[/bold cyan] {escape(response)}\n")

    asyncio.run(_interactive())


# ════════════════════════════════════════════════════════════
# ingest — load documents into the vector store
# ════════════════════════════════════════════════════════════


@app.command()
def ingest(
    path: str = typer.Argument(help="JSON file with an array of records"),
    replace: bool = typer.Option(False, "--replace", help="Clear the store first"),
) -> None:
    """Embed records and upsert them into the vector store."""
    from threadbot.core.providers import make_embedding_provider
    from threadbot.rag.indexer import ingest_records, load_records
    from threadbot.rag.vector_store import FaissVectorStore

    config = _config()
    try:
        embedder = make_embedding_provider(config)
        records = load_records(path)
    except ThreadbotError as e:
        _fail(e)
    except (OSError, ValueError) as e:
        console.print(f"[red]Cannot read {path}:[/red] {e}")
        raise typer.Exit(code=1)

    store = FaissVectorStore(config.rag.index_path)
    if replace:
        store.clear()

    try:
        written = asyncio.run(ingest_records(records, embedder, store, config.rag))
    except ThreadbotError as e:
        _fail(e)
    console.print(f"[green]Ingested {written} documents[/green] (total {store.count})")


# ════════════════════════════════════════════════════════════
# status — config + store info
# ════════════════════════════════════════════════════════════


@app.command()
def status() -> None:
    """Show configuration and store status."""
    from threadbot.memory.checkpoint import SQLiteCheckpointStore
    from threadbot.rag.vector_store import FaissVectorStore

    config = _config()
    checkpoints = SQLiteCheckpointStore(str(config.db_path), timeout_s=config.database.timeout_s)
    threads = asyncio.run(checkpoints.list_threads(limit=10_000))
    store = FaissVectorStore(config.rag.index_path)

    table = Table(title="threadbot status")
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Version", __version__)
    table.add_row("Model", config.agent.model)
    table.add_row("Embeddings", f"{config.rag.embedding_backend}:{config.rag.embedding_model}")
    table.add_row("Recursion limit", str(config.agent.recursion_limit))
    table.add_row("DB Path", config.database.path)
    table.add_row("Threads", str(len(threads)))
    table.add_row("Documents", str(store.count))

    console.print(table)


# ════════════════════════════════════════════════════════════
# threads — checkpoint management (sub-command group)
# ════════════════════════════════════════════════════════════

threads_app = typer.Typer(help="Manage persisted threads")
app.add_typer(threads_app, name="threads")


def _checkpoints():
    from threadbot.memory.checkpoint import SQLiteCheckpointStore

    config = _config()
    return SQLiteCheckpointStore(str(config.db_path), timeout_s=config.database.timeout_s)


@threads_app.command("list")
def threads_list(
    limit: int = typer.Option(20, "--limit", "-n", help="Max threads to show"),
) -> None:
    """List most recently updated threads."""
    rows = asyncio.run(_checkpoints().list_threads(limit=limit))
    if not rows:
        console.print("[dim]No threads found.[/dim]")
        return

    table = Table(title="Threads")
    table.add_column("Thread ID", style="cyan")
    table.add_column("Messages", style="green")
    table.add_column("Updated", style="dim")
    for row in rows:
        table.add_row(row["thread_id"], str(row["message_count"]), str(row["updated_at"] or "-"))
    console.print(table)


@threads_app.command("show")
def threads_show(
    thread_id: str = typer.Argument(help="Thread ID"),
) -> None:
    """Print a thread's messages."""
    thread = asyncio.run(_checkpoints().load(thread_id))
    if thread is None:
        console.print(f"[red]Thread not found:[/red] {thread_id}")
        raise typer.Exit(code=1)

    for msg in thread.messages:
        if msg.role == "tool":
            style = "red" if msg.is_error else "yellow"
            console.print(
                f"[{style}]tool {escape(msg.tool_call_id or '')}:[/{style}] {escape(msg.content[:200])}"
            )
        elif msg.tool_calls:
            calls = ", ".join(f"{tc.name}({tc.arguments})" for tc in msg.tool_calls)
            console.print(f"[cyan]agent → {escape(calls)}[/cyan]")
        else:
            color = "blue" if msg.role == "user" else "cyan"
            console.print(f"[bold {color}]{msg.role}:[/bold {color}] {escape(msg.content)}")


@threads_app.command("delete")
def threads_delete(
    thread_id: str = typer.Argument(help="Thread ID to delete"),
) -> None:
    """Delete a thread's checkpoint."""
    if asyncio.run(_checkpoints().delete(thread_id)):
        console.print(f"[green]Deleted thread:[/green] {thread_id}")
    else:
        console.print(f"[red]Thread not found:[/red] {thread_id}")

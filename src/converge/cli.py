"""Command line interface for Converge."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import List, NoReturn, Optional

import typer
from rich.console import Console
from rich.table import Table

from converge.chat.orchestrator import ChatSession
from converge.config import AppConfig
from converge.errors import ConvergeError
from converge.services import build_services

console = Console()
app = typer.Typer(help="Converge - chat with your notes and find related ones")

TOKEN_STYLES = {"ok": "dim", "warning": "yellow", "danger": "bold red"}


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _require_vault(vault: Path) -> None:
    if not vault.is_dir():
        raise typer.BadParameter(f"Vault folder not found: {vault}")


def _fail(exc: Exception) -> NoReturn:
    console.print(f"[red]Error: {exc}[/red]")
    raise typer.Exit(code=1)


VaultArgument = typer.Argument(..., help="Folder holding the Markdown notes.", resolve_path=True)
ApiKeyOption = typer.Option("", "--api-key", envvar="CONVERGE_API_KEY", help="API key")
IndexOption = typer.Option(None, "--index", help="Index file path")
VerboseOption = typer.Option(False, "--verbose", "-v", help="Verbose logging")


@app.command()
def index(
    vault: Path = VaultArgument,
    api_key: str = ApiKeyOption,
    index_path: Optional[Path] = IndexOption,
    embedding_model: str = typer.Option(AppConfig().embedding_model, help="Embedding model name"),
    embedding_endpoint: str = typer.Option(AppConfig().embedding_endpoint, help="Embedding endpoint URL"),
    chunk_size: int = typer.Option(AppConfig().chunk_size, help="Chunk size in tokens"),
    overlap: int = typer.Option(AppConfig().chunk_overlap, help="Chunk overlap in tokens"),
    verbose: bool = VerboseOption,
) -> None:
    """Rebuild the semantic index of a vault."""
    _setup_logging(verbose)
    _require_vault(vault)
    config = AppConfig(
        vault_path=vault,
        index_path=index_path,
        api_key=api_key,
        embedding_model=embedding_model,
        embedding_endpoint=embedding_endpoint,
        chunk_size=chunk_size,
        chunk_overlap=overlap,
    )
    services = build_services(config, load_index=False)
    console.print(f"Indexing [bold]{services.vault.root}[/bold]...")

    async def _run():
        try:
            return await services.index.rebuild()
        finally:
            await services.aclose()

    try:
        stats = asyncio.run(_run())
    except ConvergeError as exc:
        _fail(exc)

    console.print(
        f"Notes: {stats.documents}, chunks: {stats.chunks}, "
        f"failed chunks: {stats.failed_chunks}, skipped notes: {stats.skipped_documents}"
    )
    if not stats.persisted:
        console.print("[yellow]Index could not be saved; it will be lost on exit.[/yellow]")


@app.command()
def search(
    vault: Path = VaultArgument,
    query: str = typer.Argument(..., help="Query text"),
    api_key: str = ApiKeyOption,
    index_path: Optional[Path] = IndexOption,
    embedding_model: str = typer.Option(AppConfig().embedding_model, help="Embedding model name"),
    top_k: int = typer.Option(AppConfig().top_k, help="Number of results to display"),
    verbose: bool = VerboseOption,
) -> None:
    """Find the chunks closest to a query."""
    _setup_logging(verbose)
    _require_vault(vault)
    config = AppConfig(
        vault_path=vault, index_path=index_path, api_key=api_key, embedding_model=embedding_model
    )
    services = build_services(config)
    if not services.index.index.chunks:
        console.print("[yellow]Index is empty. Run 'converge index' first.[/yellow]")
        return

    async def _run():
        try:
            return await services.index.search(query, top_k)
        finally:
            await services.aclose()

    try:
        results = asyncio.run(_run())
    except ConvergeError as exc:
        _fail(exc)

    if not results:
        console.print("[yellow]No matches found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Score")
    table.add_column("Note")
    table.add_column("Lines")
    table.add_column("Snippet")

    for result in results:
        chunk = result.chunk
        snippet = chunk.text.replace("\n", " ")
        table.add_row(
            f"{result.score:.4f}",
            chunk.document_ref,
            f"{chunk.start_line + 1}-{chunk.end_line + 1}",
            snippet[:180],
        )

    console.print(table)


@app.command()
def related(
    vault: Path = VaultArgument,
    note: str = typer.Argument(..., help="Vault-relative path of the reference note"),
    api_key: str = ApiKeyOption,
    index_path: Optional[Path] = IndexOption,
    embedding_model: str = typer.Option(AppConfig().embedding_model, help="Embedding model name"),
    threshold: float = typer.Option(
        AppConfig().similarity_threshold, min=0.0, max=1.0, help="Similarity threshold"
    ),
    add: List[str] = typer.Option([], "--add", help="Extra notes to include by hand"),
    hub: bool = typer.Option(False, "--hub", help="Write a hub note linking the results"),
    verbose: bool = VerboseOption,
) -> None:
    """List notes related to NOTE."""
    _setup_logging(verbose)
    _require_vault(vault)
    config = AppConfig(
        vault_path=vault,
        index_path=index_path,
        api_key=api_key,
        embedding_model=embedding_model,
        similarity_threshold=threshold,
    )
    services = build_services(config)
    session = services.discovery_session()

    async def _run():
        try:
            return await session.discover(note)
        finally:
            await services.aclose()

    try:
        asyncio.run(_run())
        for extra in add:
            session.add_manual(extra)
    except (ConvergeError, OSError, ValueError) as exc:
        _fail(exc)

    visible = session.visible()
    if not visible:
        console.print(f"[yellow]No notes above {threshold:.2f}.[/yellow]")
    else:
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Score")
        table.add_column("Note")
        table.add_column("Best match")
        for result in visible:
            best = result.matching_chunks[0].text.replace("\n", " ") if result.matching_chunks else ""
            table.add_row(f"{result.score:.4f}", result.document_ref, best[:120])
        console.print(table)

    if hub:
        try:
            hub_ref = session.create_hub()
        except (ConvergeError, OSError, ValueError) as exc:
            _fail(exc)
        console.print(f"Hub note written to [bold]{hub_ref}[/bold]")


def _print_usage(session: ChatSession) -> None:
    usage = session.token_usage()
    console.print(usage.describe(), style=TOKEN_STYLES[usage.level])


@app.command()
def chat(
    vault: Path = VaultArgument,
    api_key: str = ApiKeyOption,
    index_path: Optional[Path] = IndexOption,
    model: str = typer.Option(AppConfig().chat_model, help="Chat model name"),
    endpoint: str = typer.Option(AppConfig().chat_endpoint, help="Chat completions endpoint URL"),
    context: List[str] = typer.Option([], "--context", "-c", help="Notes to add as context"),
    user_name: str = typer.Option("", help="Name the assistant should address you by"),
    no_search: bool = typer.Option(False, "--no-search", help="Disable semantic search"),
    max_tokens: int = typer.Option(AppConfig().max_tokens, help="Token budget shown per turn"),
    verbose: bool = VerboseOption,
) -> None:
    """Chat with your notes. Type /exit to quit, /clear to reset, /context NOTE to add a note."""
    _setup_logging(verbose)
    _require_vault(vault)
    config = AppConfig(
        vault_path=vault,
        index_path=index_path,
        api_key=api_key,
        chat_model=model,
        chat_endpoint=endpoint,
        user_name=user_name,
        semantic_search=not no_search,
        max_tokens=max_tokens,
    )
    services = build_services(config)
    session = services.chat_session()
    for ref in context:
        try:
            session.add_context(ref)
        except FileNotFoundError as exc:
            _fail(exc)

    greeting = f"Hi {user_name}!" if user_name else "Welcome!"
    console.print(f"[bold]{greeting}[/bold] Ask anything about your notes.")
    _print_usage(session)

    async def _loop() -> None:
        try:
            while True:
                text = console.input("[bold cyan]You[/bold cyan]: ")
                command = text.strip()
                if command in ("/exit", "/quit"):
                    return
                if command == "/clear":
                    session.clear()
                    console.print("[dim]Chat cleared.[/dim]")
                    continue
                if command.startswith("/context "):
                    try:
                        session.add_context(command.split(" ", 1)[1].strip())
                    except FileNotFoundError as exc:
                        console.print(f"[red]{exc}[/red]")
                    _print_usage(session)
                    continue
                if not command:
                    continue

                console.print("[bold green]Converge[/bold green]: ", end="")
                try:
                    async for delta in session.stream(command):
                        console.print(delta, end="", markup=False, highlight=False)
                    console.print()
                except ConvergeError as exc:
                    console.print()
                    console.print(f"[red]Error: {exc}[/red]")
                _print_usage(session)
        finally:
            await services.aclose()

    try:
        asyncio.run(_loop())
    except (EOFError, KeyboardInterrupt):
        console.print()


@app.command()
def web(
    vault: Path = VaultArgument,
    api_key: str = ApiKeyOption,
    index_path: Optional[Path] = IndexOption,
    host: str = typer.Option("127.0.0.1", help="Host interface"),
    port: int = typer.Option(8000, help="Server port"),
) -> None:
    """Start the HTTP API."""
    try:
        import uvicorn
    except ImportError as exc:  # pragma: no cover
        raise typer.BadParameter(
            "uvicorn is not installed. Install the web extras with \"python -m pip install '.[web]'\""
        ) from exc

    from converge.web.app import app as web_app, configure

    _require_vault(vault)
    configure(AppConfig(vault_path=vault, index_path=index_path, api_key=api_key))
    console.print(f"Starting API on http://{host}:{port} (vault: {vault})")
    uvicorn.run(
        web_app,
        host=host,
        port=port,
        reload=False,
        log_level="info",
    )

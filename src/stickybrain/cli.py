"""Command line interface for StickyBrain."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import typer
from rich.console import Console
from rich.table import Table

from stickybrain.config import AppConfig
from stickybrain.embedding.encoder import build_embedding_service
from stickybrain.host.service import Host
from stickybrain.host.worker import prepare_index, run_request
from stickybrain.index.base import similarity_from_distance
from stickybrain.index.factory import open_vector_index
from stickybrain.index.indexer import Indexer
from stickybrain.index.memory import InMemoryVectorIndex
from stickybrain.protocol import (
    ErrorMessage,
    IncrementalUpdateMessage,
    Message,
    PipelineResult,
    ResultMessage,
    RunMessage,
)

console = Console()
app = typer.Typer(help="StickyBrain - related notes and research while you write")


def _setup_logging(verbose: bool) -> int:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")
    return level


def _print_result(result: PipelineResult) -> None:
    if result.snippets:
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Similarity")
        table.add_column("Note")
        table.add_column("Snippet")
        for snippet in result.snippets:
            table.add_row(
                f"{snippet.similarity:.3f}", snippet.title, snippet.content.replace("\n", " ")[:180]
            )
        console.print(table)
    else:
        console.print("[yellow]No related notes.[/yellow]")

    if result.summary:
        console.print(f"[bold]Summary:[/bold] {result.summary}")
    if result.web_search_prompt:
        console.print(f"[bold]Searched:[/bold] {result.web_search_prompt.replace(chr(10), ' | ')}")
    for page in result.web_search_results or []:
        marker = "*" if page.selected_for_scraping else "-"
        console.print(f" {marker} {page.title} [dim]{page.url}[/dim]")
        if page.page_summary:
            console.print(f"   {page.page_summary}")
        elif page.scraping_error:
            console.print(f"   [red]{page.scraping_error}[/red]")
    if result.synthesis:
        console.print(f"[bold green]{result.synthesis}[/bold green]")


def _print_message(message: Message, pending: PipelineResult | None) -> None:
    if isinstance(message, IncrementalUpdateMessage):
        update = message.update
        if update.summary:
            console.print(f"[cyan]{len(update.snippets)} related notes:[/cyan] {update.summary}")
        elif update.web_search_results is not None:
            console.print(f"[cyan]{len(update.web_search_results)} web results[/cyan]")
    elif isinstance(message, ResultMessage):
        _print_result(message.result)
    elif isinstance(message, ErrorMessage):
        console.print(f"[red]Pipeline error:[/red] {message.message}")


@app.command()
def index(
    corpus: Optional[Path] = typer.Argument(None, help="Notes directory to index.", resolve_path=True),
    chroma_host: Optional[str] = typer.Option(None, help="Chroma server host"),
    chroma_port: Optional[int] = typer.Option(None, help="Chroma server port"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Rebuild the vector index from a notes directory."""
    _setup_logging(verbose)
    config = AppConfig.from_env(corpus_dir=corpus, chroma_host=chroma_host, chroma_port=chroma_port)
    corpus_dir = Path(config.corpus_dir)
    if not corpus_dir.exists():
        raise typer.BadParameter(f"Notes directory not found: {corpus_dir}")

    embedder = build_embedding_service(config)
    vector_index = open_vector_index(config)
    if isinstance(vector_index, InMemoryVectorIndex):
        console.print("[yellow]No Chroma server available; the index will not outlive this command.[/yellow]")

    console.print(f"Indexing [bold]{corpus_dir}[/bold]...")
    stats = Indexer(embedder, vector_index).rebuild(corpus_dir)
    console.print(f"Notes: {stats.notes}, records: {stats.records}, failed: {stats.failed}")


@app.command()
def search(
    query: str = typer.Argument(..., help="Query text"),
    top_k: int = typer.Option(10, help="Number of results to display"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Show the notes nearest to a piece of text."""
    _setup_logging(verbose)
    config = AppConfig.from_env()
    embedder = build_embedding_service(config)
    vector_index, _ = prepare_index(config, embedder)

    hits = vector_index.query(embedder.embed_query(query), top_k)
    if not hits:
        console.print("[yellow]No matches found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Similarity")
    table.add_column("Note")
    table.add_column("Kind")
    table.add_column("Snippet")
    for hit in hits:
        kind = "title" if hit.metadata.is_title_record else f"para {hit.metadata.paragraph_index}"
        snippet = hit.metadata.content.replace("\n", " ")
        table.add_row(
            f"{similarity_from_distance(hit.distance):.3f}", hit.metadata.title, kind, snippet[:180]
        )
    console.print(table)


@app.command()
def run(
    text: str = typer.Argument(..., help="Paragraph to run through the pipeline"),
    source: str = typer.Option("", help="Note the paragraph came from (excluded from results)"),
    goals: Optional[str] = typer.Option(None, help="Goals text; defaults to the saved goals"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Run the pipeline once in this process and print the result."""
    _setup_logging(verbose)
    config = AppConfig.from_env()
    request = RunMessage(
        paragraph=text,
        source_path=source,
        user_goals=goals if goals is not None else config.load_goals(),
    )

    def emit(payload: Dict[str, Any]) -> None:
        message = IncrementalUpdateMessage.model_validate(payload)
        _print_message(message, None)

    result = asyncio.run(run_request(config, request, emit=emit))
    _print_result(result)


@app.command()
def watch(
    directory: Optional[Path] = typer.Argument(None, help="Notes directory to watch", resolve_path=True),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Watch notes and print related notes whenever a thought is finished."""
    level = _setup_logging(verbose)
    config = AppConfig.from_env(watch_dir=directory)
    if not Path(config.watch_dir).exists():
        raise typer.BadParameter(f"Notes directory not found: {config.watch_dir}")

    service = Host(config, log_level=level)
    service.channel.subscribe(_print_message)
    console.print(f"Watching [bold]{config.watch_dir}[/bold] (Ctrl+C to stop)")
    try:
        asyncio.run(service.run_forever())
    except KeyboardInterrupt:
        console.print("Stopped.")


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="Host interface"),
    port: int = typer.Option(8765, help="Server port"),
    directory: Optional[Path] = typer.Option(None, "--dir", help="Notes directory to watch", resolve_path=True),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Watch notes and serve results over HTTP."""
    try:
        import uvicorn
    except ImportError as exc:  # pragma: no cover - optional extra
        raise typer.BadParameter(
            "uvicorn is not installed. Install the web extras with \"python -m pip install '.[web]'\""
        ) from exc

    from stickybrain.web.app import create_app

    level = _setup_logging(verbose)
    config = AppConfig.from_env(watch_dir=directory)
    service = Host(config, log_level=level)

    console.print(f"Starting StickyBrain on http://{host}:{port} (watching {config.watch_dir})")
    uvicorn.run(create_app(service), host=host, port=port, reload=False, log_level="info")

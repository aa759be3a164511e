"""Command line interface for SlideLens."""

from __future__ import annotations

import asyncio
import json
import logging
import re
from dataclasses import asdict
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn
from rich.table import Table

from slidelens.config import AppConfig
from slidelens.embedding.gemini import GeminiEmbeddingProvider
from slidelens.errors import SlideLensError
from slidelens.index.indexer import Indexer
from slidelens.index.search import Searcher
from slidelens.index.storage import SQLiteVectorStore
from slidelens.watch import watch_directory

console = Console()
app = typer.Typer(help="SlideLens - local semantic search for Markdown slide decks")

_SLIDE_REF_RE = re.compile(r"^(.+?)\s*#(\d+)$")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _ensure_db_parent(db_path: Path) -> None:
    db_path.parent.mkdir(parents=True, exist_ok=True)


def _fail(message: str) -> None:
    console.print(f"[red]Error: {message}[/red]")
    raise typer.Exit(code=1)


def _open_store(config: AppConfig, *, must_exist: bool = False) -> SQLiteVectorStore:
    resolved_db = config.resolve_db_path(Path.cwd())
    if must_exist and not resolved_db.exists():
        _fail(f"Database not found: {resolved_db}")
    _ensure_db_parent(resolved_db)
    try:
        return SQLiteVectorStore(resolved_db, dimension=config.dimension)
    except SlideLensError as exc:
        _fail(str(exc))


def format_bytes(size: int) -> str:
    if size == 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    value = float(size)
    unit = 0
    while value >= 1024 and unit < len(units) - 1:
        value /= 1024
        unit += 1
    return f"{round(value, 2):g} {units[unit]}"


def parse_slide_reference(reference: str) -> tuple[str, int]:
    """Split ``"deck.md #3"`` into the path fragment and 1-based number."""
    match = _SLIDE_REF_RE.match(reference.strip())
    if not match:
        raise typer.BadParameter("Use: get <file> #<slide-number>")
    return match.group(1).strip(), int(match.group(2))


@app.command()
def index(
    inputs: Optional[List[Path]] = typer.Argument(
        None, help="Markdown files or directories (defaults to --dir).", resolve_path=True
    ),
    docs_dir: Optional[Path] = typer.Option(
        None, "--dir", "-d", help="Root directory documents are stored relative to"
    ),
    db: Optional[Path] = typer.Option(None, "--db", help="SQLite database path"),
    rebuild: bool = typer.Option(False, "--rebuild", "-r", help="Re-index unchanged files too"),
    with_images: bool = typer.Option(
        False, "--with-images", "-i", help="Describe slide images with Gemini Vision"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Index slides from Markdown files."""
    _setup_logging(verbose)
    config = AppConfig.from_env(db_path=db, docs_dir=docs_dir)
    base_dir = Path(config.docs_dir).resolve()
    paths = list(inputs) if inputs else [base_dir]

    try:
        provider = GeminiEmbeddingProvider(config)
    except SlideLensError as exc:
        _fail(str(exc))

    store = _open_store(config)
    indexer = Indexer(provider, store)
    console.print(f"Indexing into [bold]{config.resolve_db_path(Path.cwd())}[/bold]...")

    try:
        with Progress(
            TextColumn("{task.description}"), BarColumn(), MofNCompleteColumn(), console=console
        ) as progress:
            tasks: dict[str, int] = {}

            def report(phase: str, completed: int, total: int) -> None:
                if phase not in tasks:
                    tasks[phase] = progress.add_task(f"Processing {phase}", total=total)
                progress.update(tasks[phase], completed=completed)

            stats = asyncio.run(
                indexer.index(
                    paths,
                    base_dir=base_dir,
                    rebuild=rebuild,
                    with_images=with_images,
                    progress=report,
                )
            )
    except SlideLensError as exc:
        _fail(str(exc))
    finally:
        store.close()

    if stats.empty:
        console.print(f"[yellow]{stats.empty} file(s) had no slides.[/yellow]")
    console.print(
        f"Inserted: {stats.inserted}, updated: {stats.updated}, "
        f"skipped: {stats.skipped}, failed: {stats.failed}"
    )
    console.print(f"Total slides: {stats.slides}")
    if with_images:
        console.print(f"Total images: {stats.images}")


@app.command()
def search(
    query: str = typer.Argument(..., help="Query text"),
    db: Optional[Path] = typer.Option(None, "--db", help="SQLite database path"),
    limit: int = typer.Option(10, "--limit", "-l", help="Maximum number of results"),
    threshold: float = typer.Option(0.0, "--threshold", "-t", help="Minimum similarity (0-1)"),
    output_format: str = typer.Option("table", "--format", "-o", help="Output format (table|json)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Search for similar slides."""
    _setup_logging(verbose)
    config = AppConfig.from_env(db_path=db)
    try:
        provider = GeminiEmbeddingProvider(config)
    except SlideLensError as exc:
        _fail(str(exc))

    store = _open_store(config, must_exist=True)
    try:
        searcher = Searcher(provider, store)
        results = asyncio.run(searcher.search(query, limit=limit, threshold=threshold))
    except SlideLensError as exc:
        _fail(str(exc))
    finally:
        store.close()

    if not results:
        console.print("[yellow]No matching slides found.[/yellow]")
        return

    if output_format == "json":
        console.print_json(json.dumps([asdict(result) for result in results], ensure_ascii=False))
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Score")
    table.add_column("Document")
    table.add_column("Slide")
    table.add_column("Snippet")

    for result in results:
        snippet = result.text_only.replace("\n", " ")
        heading = f"[bold]{result.heading}[/bold] " if result.heading else ""
        table.add_row(
            f"{result.similarity:.4f}",
            result.document_path,
            f"#{result.slide_index + 1}",
            heading + snippet[:180],
        )

    console.print(table)
    console.print(f"Found {len(results)} matching slide(s)")


@app.command()
def get(
    reference: str = typer.Argument(..., help='Slide reference, e.g. "slides/deck.md #3"'),
    db: Optional[Path] = typer.Option(None, "--db", help="SQLite database path"),
) -> None:
    """Print a slide's Markdown by file path and slide number."""
    fragment, number = parse_slide_reference(reference)
    if number < 1:
        _fail("Slide number must be 1 or greater")

    config = AppConfig.from_env(db_path=db)
    store = _open_store(config, must_exist=True)
    try:
        slide = store.get_slide(fragment, number - 1)
        if slide is None:
            suggestions = [
                document.path
                for document in store.list_documents()
                if fragment in document.path or document.path in fragment
            ]
    finally:
        store.close()

    if slide is None:
        console.print(f"[red]Error: Slide not found: {fragment} #{number}[/red]")
        if suggestions:
            console.print("[yellow]Did you mean:[/yellow]")
            for path in suggestions:
                console.print(f"  {path}")
        raise typer.Exit(code=1)

    console.print(slide.content, markup=False, highlight=False)


@app.command()
def stats(
    db: Optional[Path] = typer.Option(None, "--db", help="SQLite database path"),
) -> None:
    """Show database statistics."""
    config = AppConfig.from_env(db_path=db)
    store = _open_store(config, must_exist=True)
    try:
        current = store.stats()
    finally:
        store.close()

    table = Table(title="Database Statistics", show_header=False)
    table.add_column("Metric", style="bold")
    table.add_column("Value")
    table.add_row("Total Files", str(current.document_count))
    table.add_row("Total Slides", str(current.slide_count))
    table.add_row("Total Embeddings", str(current.vector_count))
    table.add_row("Database Size", format_bytes(current.storage_size_bytes))
    console.print(table)


@app.command()
def delete(
    path: str = typer.Argument(..., help="Stored document path to remove"),
    db: Optional[Path] = typer.Option(None, "--db", help="SQLite database path"),
) -> None:
    """Remove a document and its slides from the index."""
    config = AppConfig.from_env(db_path=db)
    store = _open_store(config, must_exist=True)
    try:
        removed = store.delete_document(path)
    finally:
        store.close()

    if not removed:
        console.print(f"[yellow]Document not found: {path}[/yellow]")
        raise typer.Exit(code=1)
    console.print(f"Removed {path}")


@app.command()
def prune(
    docs_dir: Optional[Path] = typer.Option(None, "--dir", "-d", help="Document root directory"),
    db: Optional[Path] = typer.Option(None, "--db", help="SQLite database path"),
) -> None:
    """Remove documents that no longer exist on disk."""
    config = AppConfig.from_env(db_path=db, docs_dir=docs_dir)
    resolved_db = config.resolve_db_path(Path.cwd())
    if not resolved_db.exists():
        console.print("[yellow]Database not found, nothing to prune.[/yellow]")
        return

    store = _open_store(config)
    try:
        removed = store.remove_missing_documents(Path(config.docs_dir))
    finally:
        store.close()
    console.print(f"Removed {removed} orphaned documents.")


@app.command()
def watch(
    docs_dir: Optional[Path] = typer.Option(None, "--dir", "-d", help="Directory to watch"),
    db: Optional[Path] = typer.Option(None, "--db", help="SQLite database path"),
    with_images: bool = typer.Option(
        False, "--with-images", "-i", help="Describe slide images with Gemini Vision"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Watch for file changes and re-index automatically."""
    _setup_logging(verbose)
    config = AppConfig.from_env(db_path=db, docs_dir=docs_dir)
    try:
        provider = GeminiEmbeddingProvider(config)
    except SlideLensError as exc:
        _fail(str(exc))

    watch_dir = Path(config.docs_dir).resolve()
    store = _open_store(config)
    console.print(f"Directory: [bold]{watch_dir}[/bold]")
    console.print(f"Database:  [bold]{config.resolve_db_path(Path.cwd())}[/bold]")
    console.print(f"Images:    [bold]{'Yes' if with_images else 'No'}[/bold]")
    console.print("[yellow]Watching for changes... (Ctrl+C to stop)[/yellow]")

    def report(event, status: str) -> None:
        event_type, path = event
        console.print(f"[cyan][{event_type}][/cyan] {path.relative_to(watch_dir)}: {status}")

    try:
        watch_directory(Indexer(provider, store), watch_dir, with_images=with_images, on_event=report)
    except KeyboardInterrupt:
        console.print("[yellow]Stopping watch mode...[/yellow]")
    finally:
        store.close()

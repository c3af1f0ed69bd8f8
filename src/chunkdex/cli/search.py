"""chunkdex search: rank database chunks against a free-text query.

The ranker decides how many results are relevant (knee-point cutoff); this
command only filters them by work and caps how many are displayed.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape
from rich.panel import Panel

from chunkdex.cli.errors import err_config, err_invalid_db, err_no_api_key, err_no_db, err_search_failed
from chunkdex.config import ConfigError, load_config
from chunkdex.db.database import ChunkDatabase, DimensionMismatchError, SerializationError
from chunkdex.db.models import ChunkWithScore, Work
from chunkdex.ingest.embedder import Embedder, EmbeddingConfig
from chunkdex.rag.llm_client import EmbeddingError, provider_of
from chunkdex.rag.retriever import search

console = Console()

_DEFAULT_DB = Path("chunks.json")


def search_cmd(
    query: Annotated[str, typer.Argument(help="Question or topic to search for.")],
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to the chunk database JSON file."),
    ] = _DEFAULT_DB,
    work: Annotated[
        list[str] | None,
        typer.Option("--work", "-w", help="Only show results from this work (repeatable)."),
    ] = None,
    limit: Annotated[
        int | None,
        typer.Option("--limit", "-n", min=1, help="Maximum results to display (default: search.display_limit)."),
    ] = None,
    config_dir: Annotated[
        Path | None,
        typer.Option("--config-dir", hidden=True, help="Directory holding chunkdex.yaml (for testing)."),
    ] = None,
) -> None:
    """Search the chunk database for QUERY."""
    try:
        cfg = load_config(project_dir=config_dir)
        works = _parse_works(work or [])
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)

    if not db.exists():
        console.print(err_no_db(str(db)))
        raise typer.Exit(1)

    try:
        database = ChunkDatabase.load(db)
    except SerializationError as exc:
        console.print(err_invalid_db(str(db), str(exc)))
        raise typer.Exit(1)

    # Queries must be embedded with the model the database was built with.
    model = database.metadata.embedding_model
    embedder = Embedder(EmbeddingConfig(model=model, num_retries=cfg.embedding.num_retries))

    try:
        results = search(database, embedder, query)
    except EnvironmentError:
        console.print(err_no_api_key(provider_of(model)))
        raise typer.Exit(1)
    except (DimensionMismatchError, EmbeddingError) as exc:
        console.print(err_search_failed(str(exc)))
        raise typer.Exit(1)

    shown = filter_results(results, works, limit or cfg.search.display_limit)
    if not shown:
        console.print("[yellow]No matching results.[/]")
        return

    for item in shown:
        _print_result(item)


def filter_results(
    results: list[ChunkWithScore], works: set[Work] | None, limit: int
) -> list[ChunkWithScore]:
    """Keep results from *works* (all when None/empty), at most *limit*, in rank order.

    The limit applies before the work filter, so a narrow filter can show
    fewer than *limit* results.
    """
    top = results[:limit]
    if not works:
        return top
    return [r for r in top if r.chunk.work in works]


def _parse_works(values: list[str]) -> set[Work]:
    works: set[Work] = set()
    for value in values:
        try:
            works.add(Work(value))
        except ValueError as exc:
            known = ", ".join(repr(w.value) for w in Work)
            raise ConfigError(f"Unknown work {value!r}; expected one of {known}") from exc
    return works


def _print_result(item: ChunkWithScore) -> None:
    chunk = item.chunk
    heading = " › ".join(chunk.heading_path) or chunk.title
    console.print(
        Panel(
            Markdown(chunk.markdown_text),
            title=f"[bold]{escape(heading)}[/]",
            subtitle=f"From: {escape(chunk.work.value)} · Similarity score: {item.score:.2f}",
            expand=True,
        )
    )

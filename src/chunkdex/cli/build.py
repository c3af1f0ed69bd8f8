"""chunkdex build: chunk every manifest input, embed, and write the database.

Inputs are processed strictly in manifest order, so the chunk order (and row
order of the embedding matrix) is deterministic. The build aborts on the first
fatal error and writes nothing; the output file must not already exist.

Usage:
  chunkdex build corpus.yaml
  chunkdex build corpus.yaml --dry-run
  chunkdex build corpus.yaml --yes
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn

from chunkdex.cli.errors import err_build_failed, err_manifest, err_no_api_key
from chunkdex.config import ChunkdexConfig, ConfigError, ManifestInput, load_config, load_manifest
from chunkdex.db.database import ChunkDatabase, DimensionMismatchError
from chunkdex.db.models import FinalizedChunk
from chunkdex.ingest.base import BaseChunker
from chunkdex.ingest.embedder import EMBED_TASK, Embedder, EmbeddingConfig
from chunkdex.ingest.markdown import MarkdownChunker
from chunkdex.ingest.markdown_parser import ParseError
from chunkdex.ingest.plaintext import PlainTextChunker
from chunkdex.rag.llm_client import EmbeddingError, TokenCounter, provider_of, validate_api_key

console = Console()


def build_cmd(
    manifest: Annotated[
        Path,
        typer.Argument(help="Build manifest (YAML or JSON) listing inputs and the output path."),
    ],
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="Chunk the inputs and report counts without embedding or writing."),
    ] = False,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip the confirmation prompt before embedding."),
    ] = False,
    model: Annotated[
        str | None,
        typer.Option("--model", help="Embedding model (provider/model). Overrides chunkdex.yaml."),
    ] = None,
    config_dir: Annotated[
        Path | None,
        typer.Option("--config-dir", hidden=True, help="Directory holding chunkdex.yaml (for testing)."),
    ] = None,
) -> None:
    """Build a chunk database from the documents listed in MANIFEST."""
    try:
        cfg = load_config(project_dir=config_dir)
        plan = load_manifest(manifest)
    except ConfigError as exc:
        console.print(err_manifest(str(exc)))
        raise typer.Exit(1)

    if model:
        cfg.embedding.model = model

    counter = TokenCounter(cfg.tokenizer.model)

    # ---- Chunk (manifest order) ----
    all_chunks: list[FinalizedChunk] = []
    for item in plan.inputs:
        console.print(f"\n[bold]→ {item.file}[/]  [dim]({item.type}, {item.work.value})[/]")
        try:
            chunks = _chunk_input(item, cfg, counter)
        except (OSError, ParseError, ValueError) as exc:
            console.print(err_build_failed(f"{item.file}: {exc}"))
            raise typer.Exit(1)
        console.print(f"  [green]✓[/] {len(chunks)} chunks")
        all_chunks.extend(chunks)

    console.print(f"\nTotal chunks: [bold]{len(all_chunks)}[/]")

    if not all_chunks:
        console.print(err_build_failed("no chunks produced (all inputs empty)"))
        raise typer.Exit(1)

    if dry_run:
        total_tokens = sum(c.total_tokens for c in all_chunks)
        console.print(f"  [dim]{total_tokens:,} tokens · dry run, nothing written[/]")
        return

    if not yes:
        if not typer.confirm(f"  Embed {len(all_chunks)} chunks with {cfg.embedding.model}?", default=True):
            console.print("  [dim]Cancelled.[/]")
            raise typer.Exit(0)

    try:
        validate_api_key(cfg.embedding.model)
    except EnvironmentError:
        console.print(err_no_api_key(provider_of(cfg.embedding.model)))
        raise typer.Exit(1)

    # ---- Embed ----
    embedder = Embedder(
        EmbeddingConfig(
            model=cfg.embedding.model,
            batch_size=cfg.embedding.batch_size,
            num_retries=cfg.embedding.num_retries,
        )
    )
    try:
        db = _embed_with_progress(all_chunks, embedder)
    except (DimensionMismatchError, EmbeddingError) as exc:
        console.print(err_build_failed(str(exc)))
        raise typer.Exit(1)

    # ---- Write ----
    try:
        db.save(plan.output)
    except ConfigError as exc:
        console.print(err_build_failed(str(exc)))
        raise typer.Exit(1)

    console.print(
        f"[green]✓[/] Wrote {len(db)} chunks "
        f"({db.metadata.dimension}-d, {db.metadata.embedding_model}) to {plan.output}"
    )


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def make_chunker(kind: str, cfg: ChunkdexConfig, counter: TokenCounter) -> BaseChunker:
    """Return the chunker for manifest input type *kind*."""
    if kind == "markdown":
        md = cfg.chunking.markdown
        return MarkdownChunker(
            max_tokens=md.max_tokens,
            target_tokens=md.target_tokens,
            overlap_tokens=md.overlap_tokens,
            count_tokens=counter,
        )
    if kind == "text":
        tx = cfg.chunking.text
        return PlainTextChunker(
            max_tokens=tx.max_tokens, overlap_tokens=tx.overlap_tokens, count_tokens=counter
        )
    raise ValueError(f"Unsupported input type: {kind!r}")


def _chunk_input(item: ManifestInput, cfg: ChunkdexConfig, counter: TokenCounter) -> list[FinalizedChunk]:
    content = item.file.read_text(encoding="utf-8")
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        transient=True,
        console=console,
    ) as prog:
        prog.add_task(f"Chunking ({item.type})…", total=None)
        return make_chunker(item.type, cfg, counter).chunk(content, item.work, item.title)


def _embed_with_progress(chunks: list[FinalizedChunk], embedder: Embedder) -> ChunkDatabase:
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        transient=True,
        console=console,
    ) as prog:
        task = prog.add_task("Embedding…", total=len(chunks))

        def _on_progress() -> None:
            state = embedder.progress.get_snapshot().tasks.get(EMBED_TASK)
            if state is not None:
                prog.update(task, completed=state.completed, total=state.total)

        unsubscribe = embedder.progress.subscribe(_on_progress)
        try:
            return ChunkDatabase.build(chunks, embedder, batch_size=embedder.batch_size)
        finally:
            unsubscribe()

"""chunkdex status: summary of a chunk database file."""

from __future__ import annotations

from collections import Counter
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from chunkdex.cli.errors import err_invalid_db
from chunkdex.db.database import ChunkDatabase, SerializationError

console = Console()

_DEFAULT_DB = Path("chunks.json")


def status_cmd(
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to the chunk database JSON file."),
    ] = _DEFAULT_DB,
) -> None:
    """Show database metadata, chunk counts per work, and token statistics."""
    if not db.exists():
        console.print(
            Panel(
                "[yellow]No database found.[/]\n"
                "  Run:  chunkdex build <manifest.yaml>",
                title="[bold]Chunk Database[/]",
                expand=False,
            )
        )
        return

    try:
        database = ChunkDatabase.load(db)
    except SerializationError as exc:
        console.print(err_invalid_db(str(db), str(exc)))
        raise typer.Exit(1)

    _show_database_panel(db, database)
    _show_works_table(database)


# ---------------------------------------------------------------------------
# Panel renderers
# ---------------------------------------------------------------------------


def _show_database_panel(path: Path, database: ChunkDatabase) -> None:
    size_mb = path.stat().st_size / (1024 * 1024)
    meta = database.metadata
    tokens = [c.total_tokens for c in database.chunks]
    lines = [
        f"File:       {path} ({size_mb:.1f} MB)",
        f"Model:      [bold]{meta.embedding_model}[/]",
        f"Dimension:  {meta.dimension}",
        f"Created:    {meta.created_at}",
        f"Chunks:     [bold]{len(database):,}[/]",
    ]
    if tokens:
        lines.append(
            f"Tokens:     min {min(tokens)} · mean {sum(tokens) / len(tokens):.0f} · max {max(tokens)}"
        )
    console.print(Panel("\n".join(lines), title="[bold]Chunk Database[/]", expand=False))


def _show_works_table(database: ChunkDatabase) -> None:
    per_work = Counter(c.work.value for c in database.chunks)
    titles: dict[str, set[str]] = {}
    for c in database.chunks:
        titles.setdefault(c.work.value, set()).add(c.title)

    table = Table(title="Works")
    table.add_column("Work")
    table.add_column("Documents", justify="right")
    table.add_column("Chunks", justify="right")
    for work, count in sorted(per_work.items()):
        table.add_row(work, str(len(titles[work])), f"{count:,}")
    console.print(table)

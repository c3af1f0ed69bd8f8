"""chunkdex CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from chunkdex.cli.build import build_cmd
from chunkdex.cli.search import search_cmd
from chunkdex.cli.status import status_cmd


def _version() -> str:
    try:
        return importlib.metadata.version("chunkdex")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"chunkdex {_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="chunkdex",
    help=(
        "chunkdex: context-preserving chunking and semantic search for long documents.\n\n"
        "  chunkdex build   Chunk + embed the inputs of a manifest into a JSON database.\n"
        "  chunkdex search  Rank database chunks against a query."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
) -> None:
    """chunkdex: context-preserving chunking and semantic search."""


app.command("build")(build_cmd)
app.command("search")(search_cmd)
app.command("status")(status_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed chunkdex version."""
    typer.echo(f"chunkdex {_version()}")


if __name__ == "__main__":
    app()

"""chunkdex rich error messages: actionable feedback.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from chunkdex.cli.errors import err_no_db
    console.print(err_no_db("db.json"))
    raise typer.Exit(1)
"""

from __future__ import annotations

from rich.markup import escape

from chunkdex.rag.llm_client import env_var_for


def err_no_api_key(provider: str) -> str:
    """No API key for *provider*.

    Example:
        No API key for 'openai'. Set:  export OPENAI_API_KEY=sk-...
    """
    env_var = env_var_for(provider)
    return (
        f"[red]Error:[/] No API key for '{provider}'.\n"
        f"  Set:  export {env_var}=sk-..."
    )


def err_no_db(db_path: str) -> str:
    """No database file at *db_path*."""
    return (
        f"[red]Error:[/] No chunk database found at '{escape(db_path)}'.\n"
        "  Run:  chunkdex build <manifest.yaml>"
    )


def err_invalid_db(db_path: str, detail: str) -> str:
    """Database file exists but fails validation."""
    return (
        f"[red]Error:[/] Chunk database '{escape(db_path)}' is invalid.\n"
        f"  {escape(detail)}\n"
        "  Rebuild it:  chunkdex build <manifest.yaml>"
    )


def err_manifest(detail: str) -> str:
    """Manifest or config is invalid."""
    return (
        f"[red]Error:[/] {escape(detail)}\n"
        "  Fix the manifest and re-run:  chunkdex build <manifest.yaml>"
    )


def err_config(detail: str) -> str:
    """Config file or command option is invalid."""
    return (
        f"[red]Error:[/] {escape(detail)}\n"
        "  Fix chunkdex.yaml or the command options and re-run."
    )


def err_build_failed(detail: str) -> str:
    """A fatal error aborted the corpus build."""
    return (
        f"[red]Error:[/] Build aborted: {escape(detail)}\n"
        "  Nothing was written."
    )


def err_search_failed(detail: str) -> str:
    """Query could not be ranked."""
    return f"[red]Search result error:[/] {escape(detail)}"

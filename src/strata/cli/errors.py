"""Strata rich error messages.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from strata.cli.errors import err_no_db
    console.print(err_no_db(".strata.db"))
    raise typer.Exit(1)
"""

from __future__ import annotations

from strata.errors import (
    CommitError,
    EmbeddingError,
    LockError,
    ProviderError,
    StrataError,
)


def err_no_db(db_path: str = ".strata.db") -> str:
    """No database at *db_path*."""
    return (
        f"[red]Error:[/] No database found at '{db_path}'.\n"
        "  Run:  strata index <repository-or-directory>"
    )


def err_config(message: str) -> str:
    """Configuration file could not be loaded."""
    return (
        f"[red]Error:[/] Invalid configuration.\n"
        f"  {message}\n"
        "  Fix strata.yaml (or ~/.strata/config.yaml) and retry."
    )


def err_unknown_source_type(source_type: str, known: list[str]) -> str:
    """--type names no registered provider."""
    return (
        f"[red]Error:[/] Unknown source type '{source_type}'.\n"
        f"  Use one of:  {', '.join(known)}"
    )


def err_dimension_mismatch(message: str) -> str:
    """Vec table width differs from the configured embedding dimensions."""
    return (
        f"[red]Error:[/] {message}\n"
        "  Set embedding.dimensions in strata.yaml to match, "
        "or index into a new database with --db."
    )


def err_index_failed(exc: StrataError) -> str:
    """Map a pipeline error to a message with a next step."""
    if isinstance(exc, ProviderError):
        hint = "Check the repository URL or path, and GIT_TOKEN for private repositories."
    elif isinstance(exc, EmbeddingError):
        hint = "Check the embedding model, its API key environment variable, and network access."
    elif isinstance(exc, LockError):
        hint = "Another index run holds this source. Wait for it to finish, or raise indexing.lock_timeout."
    elif isinstance(exc, CommitError):
        hint = "Nothing was written. Retry; if it persists, check disk space and database permissions."
    else:
        hint = "Re-run with --log-level DEBUG for details."
    return f"[red]Error:[/] {exc}\n  {hint}"

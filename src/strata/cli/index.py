"""strata index — index one version of a source into .strata.db."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn

from strata.cli.errors import (
    err_config,
    err_dimension_mismatch,
    err_index_failed,
    err_unknown_source_type,
)
from strata.config import ConfigError, StrataConfig, load_config
from strata.db.connection import Database
from strata.db.schema import initialize
from strata.errors import StrataError
from strata.graph.importance import ImportanceService, ScoreWeights
from strata.index.commit import IndexResult
from strata.index.lock import FileLockManager
from strata.index.orchestrator import Indexer
from strata.index.preparation import Preparer
from strata.ingest import ChunkerRegistry
from strata.ingest.embedder import LiteLLMEmbedder
from strata.log import configure_logging
from strata.providers import PROVIDERS, GitHistoryProvider, IndexParams, create_provider

console = Console()


def index_cmd(
    identifier: Annotated[
        str,
        typer.Argument(help="Repository URL, local repository path, or directory."),
    ],
    product: Annotated[
        str,
        typer.Option("--product", "-p", help="Product the source belongs to."),
    ] = "default",
    source_type: Annotated[
        str,
        typer.Option("--type", "-t", help="Source type: git or local."),
    ] = "git",
    ref: Annotated[
        str | None,
        typer.Option("--ref", help="Branch, tag or commit to index (git only)."),
    ] = None,
    force_init: Annotated[
        bool,
        typer.Option("--force-init", help="Ignore previous state and re-index every file."),
    ] = False,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to .strata.db (created if missing)."),
    ] = None,
    log_level: Annotated[
        str | None,
        typer.Option("--log-level", help="DEBUG, INFO, WARNING or ERROR."),
    ] = None,
) -> None:
    """Index a source: fetch, diff, chunk, embed, and commit one snapshot."""
    try:
        cfg = load_config()
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)

    configure_logging(log_level or cfg.logging.level)

    try:
        provider = create_provider(source_type, cfg.indexing)
    except ValueError:
        console.print(err_unknown_source_type(source_type, sorted(PROVIDERS)))
        raise typer.Exit(1)

    db_path = db or Path(cfg.database.path)
    conn = Database(db_path, busy_timeout=cfg.database.busy_timeout).connect()
    params = IndexParams(
        product_name=product, identifier=identifier, ref=ref, force_init=force_init
    )
    try:
        initialize(conn)
        indexer = build_indexer(conn, cfg)
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            transient=True,
            console=console,
        ) as prog:
            prog.add_task(f"Indexing {identifier}…", total=None)
            result = indexer.index_source(provider, params)
    except StrataError as exc:
        console.print(err_index_failed(exc))
        raise typer.Exit(1)
    except ValueError as exc:
        console.print(err_dimension_mismatch(str(exc)))
        raise typer.Exit(1)
    finally:
        conn.close()

    _print_result(result)


def build_indexer(conn: sqlite3.Connection, cfg: StrataConfig) -> Indexer:
    """Wire the pipeline stages from configuration."""
    embedder = LiteLLMEmbedder(cfg.embedding.model, cfg.embedding.dimensions, retry=cfg.retry)
    preparer = Preparer(
        ChunkerRegistry(cfg.chunkers),
        embedder,
        batch_size=cfg.embedding.batch_size,
        workers=cfg.indexing.workers,
    )
    importance = ImportanceService(
        conn,
        weights=ScoreWeights.from_config(cfg.importance.weights),
        history=GitHistoryProvider(),
        edit_frequency_days=cfg.importance.edit_frequency_days,
    )
    locks = FileLockManager(cfg.indexing.lock_dir, timeout=cfg.indexing.lock_timeout)
    return Indexer(conn, preparer, locks, importance=importance)


def _print_result(result: IndexResult) -> None:
    if result.already_indexed:
        console.print(
            f"[dim]↷ {result.version_identifier[:12]} already indexed "
            f"(snapshot {result.snapshot_id})[/]"
        )
        return
    console.print(
        f"[green]✓[/] Snapshot {result.snapshot_id} at {result.version_identifier[:12]}\n"
        f"  {result.processed_files} files indexed, {result.total_chunks} chunks  |  "
        f"{result.unchanged_files} unchanged, {result.deleted_files} deleted, "
        f"{result.skipped_files} skipped, {result.ignored_files} ignored  "
        f"[dim]({result.duration:.1f}s)[/]"
    )

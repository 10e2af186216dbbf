"""strata status command.

Shows database stats and, per source, its snapshot history and live size.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from strata.cli.errors import err_config, err_no_db
from strata.config import ConfigError, load_config
from strata.db.connection import Database
from strata.db.repository import Repository
from strata.db.schema import initialize

console = Console()


def status_cmd(
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to .strata.db."),
    ] = None,
) -> None:
    """Show indexed sources, their latest snapshot, and live file/chunk counts."""
    try:
        cfg = load_config()
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)

    db_path = db or Path(cfg.database.path)
    if not db_path.exists():
        console.print(err_no_db(str(db_path)))
        raise typer.Exit(1)

    conn = Database(db_path, busy_timeout=cfg.database.busy_timeout).connect()
    try:
        initialize(conn)
        _show_database_panel(db_path, conn)
        _show_sources_table(Repository(conn))
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# Renderers
# ---------------------------------------------------------------------------


def _show_database_panel(db_path: Path, conn: sqlite3.Connection) -> None:
    size_mb = db_path.stat().st_size / (1024 * 1024)
    total_chunks = conn.execute("SELECT COUNT(*) FROM chunks").fetchone()[0]
    lines = [
        f"Database:  {db_path} ({size_mb:.1f} MB)",
        f"Chunks:    [bold]{total_chunks:,}[/] (all snapshots)",
    ]
    for table, count in _vec_tables(conn):
        lines.append(f"  [dim]{table}[/] ({count:,} vectors)")
    console.print(Panel("\n".join(lines), title="[bold]Strata[/]", expand=False))


def _show_sources_table(repo: Repository) -> None:
    sources = repo.list_sources()
    if not sources:
        console.print("[dim]No sources indexed yet.[/]")
        return

    table = Table(title="Sources", show_lines=False)
    table.add_column("Product", style="bold")
    table.add_column("Source")
    table.add_column("Type", style="dim")
    table.add_column("Snapshots", justify="right")
    table.add_column("Latest")
    table.add_column("Indexed at", style="dim")
    table.add_column("Files", justify="right")
    table.add_column("Chunks", justify="right")

    for product_name, source in sources:
        snapshots = repo.list_snapshots(source.id)
        latest = repo.latest_indexed_snapshot(source.id)
        table.add_row(
            product_name,
            source.name,
            source.source_type,
            str(len(snapshots)),
            latest.version_identifier[:12] if latest else "[yellow]none[/]",
            (latest.indexed_at or "")[:16] if latest else "",
            f"{len(repo.list_live_files(source.id)):,}",
            f"{repo.count_live_chunks(source.id):,}",
        )

    console.print(table)


def _vec_tables(conn: sqlite3.Connection) -> list[tuple[str, int]]:
    rows = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name LIKE 'vec_chunks_%' "
        "AND sql LIKE 'CREATE VIRTUAL TABLE%' ORDER BY name"
    ).fetchall()
    return [
        (name, conn.execute(f"SELECT COUNT(*) FROM [{name}]").fetchone()[0])  # noqa: S608
        for (name,) in rows
    ]

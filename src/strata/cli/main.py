"""Strata CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from strata.cli.index import index_cmd
from strata.cli.status import status_cmd


def _installed_version() -> str:
    try:
        return importlib.metadata.version("strata")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"strata {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="strata",
    help=(
        "Strata — incremental code-knowledge indexer.\n\n"
        "  strata index   Snapshot a repository or directory: chunk, embed, score.\n"
        "  strata status  Show indexed sources and their latest snapshots."
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
    """Strata — incremental code-knowledge indexer."""


app.command("index")(index_cmd)
app.command("status")(status_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed Strata version."""
    typer.echo(f"strata {_installed_version()}")


if __name__ == "__main__":
    app()

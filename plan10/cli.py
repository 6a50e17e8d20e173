"""Typer application entry-point."""

from __future__ import annotations

from typing import Optional

import typer

from plan10 import __version__
from plan10.commands import client, config, monitor, status
from plan10.commands.context import CliContext, reported_errors
from plan10.services.config_store import resolve_config_path
from plan10.utils.logging import setup_logging

app = typer.Typer(
    name="plan10",
    help="Plan 10 - deploy and manage MacBook servers over SSH.",
    no_args_is_help=True,
)

app.add_typer(client.app, name="client")
app.add_typer(config.app, name="config")
app.add_typer(monitor.app, name="monitor")
app.command("status")(status.status)


def _version(value: bool) -> None:
    if value:
        typer.echo(f"plan10 {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    config_file: Optional[str] = typer.Option(
        None, "--config", "-c", envvar="PLAN10_CONFIG", help="Path to config.toml.",
    ),
    verbose: int = typer.Option(
        0, "--verbose", "-v", count=True, help="More output; repeat for debug logs.",
    ),
    version: bool = typer.Option(
        False, "--version", callback=_version, is_eager=True, help="Show the version and exit.",
    ),
):
    """Load the config once and hand it to every subcommand."""
    if verbose >= 2:
        setup_logging("debug")
    elif verbose == 1:
        setup_logging("info")
    else:
        setup_logging("warning")

    with reported_errors():
        ctx.obj = CliContext.load(resolve_config_path(config_file), verbose=verbose > 0)


def main() -> None:
    app()

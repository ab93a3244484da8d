from __future__ import annotations

import os

import typer

from relay import __version__
from relay.cli.commands.publish_cmd import publish
from relay.cli.commands.release_cmd import release
from relay.cli.commands.targets_cmd import targets
from relay.cli.context import LOG_LEVEL_ENV
from relay.core.context import DRY_RUN_ENV

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
    help="Prepare release branches and publish build artifacts.",
)


app.command()(release)
app.command()(publish)
app.command()(targets)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(__version__)
        raise typer.Exit(code=0)


@app.callback()
def _main(  # pyright: ignore[reportUnusedFunction]
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Log mutating operations instead of performing them."
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Print debug output."),
) -> None:
    if dry_run:
        os.environ[DRY_RUN_ENV] = "1"
    if verbose:
        os.environ[LOG_LEVEL_ENV] = "debug"


def main() -> None:
    app()

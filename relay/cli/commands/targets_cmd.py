from __future__ import annotations

import typer

from relay.targets import get_all_target_names


def targets() -> None:
    """List the available publishing targets."""
    for name in get_all_target_names():
        typer.echo(name)

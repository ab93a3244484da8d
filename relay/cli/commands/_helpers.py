"""Shared helpers for CLI commands."""

from __future__ import annotations

from typing import NoReturn

import typer

from relay.core.errors import ReleaseError, exit_code_for
from relay.output.console import ConsoleProtocol, Style


def exit_with_error(console: ConsoleProtocol, error: ReleaseError) -> NoReturn:
    """Report ``error`` and exit with the code its kind maps to."""
    console.error(error.message)
    if error.hint:
        console.print(f"hint: {error.hint}", Style.DIM)
    raise typer.Exit(code=int(exit_code_for(error)))

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

import typer

from relay.core.config import CONFIG_FILE_NAME, ProjectConfig, find_config_file, load_config
from relay.core.context import RunContext, dry_run_from_env
from relay.core.errors import ErrorCode
from relay.core.result import Err
from relay.output.console import ConsoleProtocol, RichConsole

LOG_LEVEL_ENV = "RELAY_LOG_LEVEL"


@dataclass(frozen=True, slots=True)
class CLIContext:
    root: Path
    project: ProjectConfig
    run: RunContext

    @property
    def console(self) -> ConsoleProtocol:
        return self.run.console


def is_verbose(environ: Mapping[str, str]) -> bool:
    return environ.get(LOG_LEVEL_ENV, "").strip().lower() == "debug"


def build_run_context(environ: Mapping[str, str] | None = None) -> RunContext:
    env = os.environ if environ is None else environ
    return RunContext(console=RichConsole(verbose=is_verbose(env)), dry_run=dry_run_from_env(env))


def build_context(cwd: Path | None = None) -> CLIContext:
    """Locate and load ``.relay.toml``; exit with CONFIG_ERROR if that fails."""
    start = Path.cwd() if cwd is None else cwd
    config_path = find_config_file(start)
    if config_path is None:
        typer.echo(f"error: {CONFIG_FILE_NAME} not found in {start} or its parents", err=True)
        raise typer.Exit(code=int(ErrorCode.CONFIG_ERROR))

    loaded = load_config(config_path)
    if isinstance(loaded, Err):
        typer.echo(f"error: {loaded.error.message}", err=True)
        raise typer.Exit(code=int(ErrorCode.CONFIG_ERROR))

    run = build_run_context()
    run.console.debug(f"Configuration: {config_path}")
    return CLIContext(root=config_path.parent, project=loaded.value, run=run)

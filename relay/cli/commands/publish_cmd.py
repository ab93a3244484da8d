from __future__ import annotations

import asyncio

import typer

from relay.cli.commands._helpers import exit_with_error
from relay.cli.context import CLIContext, build_context
from relay.core.errors import ReleaseError
from relay.core.result import Err, Result
from relay.github.client import GithubClient
from relay.services.publish import PublishOptions, PublishReport, publish_main
from relay.stores.zeus import ZeusClient
from relay.targets import get_all_target_names, get_target_by_name


async def run_publish(
    ctx: CLIContext, github: GithubClient, options: PublishOptions
) -> Result[PublishReport, ReleaseError]:
    return await publish_main(
        options,
        ctx.run,
        project=ctx.project,
        github=github,
        store_client=ZeusClient.from_env(),
    )


def publish(
    version: str = typer.Argument(..., metavar="NEW_VERSION", help="Version to publish"),
    target: list[str] = typer.Option(
        [], "--target", "-t", help="Publish to this target only (repeatable)"
    ),
    keep_branch: bool = typer.Option(
        False, "--keep-branch", help="Do not remove the release branch after merging"
    ),
    keep_downloads: bool = typer.Option(
        False, "--keep-downloads", help="Keep the downloaded artifacts"
    ),
    no_merge: bool = typer.Option(
        False, "--no-merge", help="Do not merge the release branch after publishing"
    ),
    no_status_check: bool = typer.Option(
        False, "--no-status-check", help="Do not wait for the CI build of the revision"
    ),
) -> None:
    """Publish the artifacts of a prepared release branch."""
    ctx = build_context()

    for name in target:
        if get_target_by_name(name) is None:
            exit_with_error(
                ctx.console,
                ReleaseError(
                    kind="invalid_input",
                    message=f'Unknown target: "{name}"',
                    hint=f"Available targets: {', '.join(get_all_target_names())}",
                ),
            )

    github = GithubClient.from_env()
    if isinstance(github, Err):
        exit_with_error(ctx.console, github.error)

    options = PublishOptions(
        new_version=version,
        keep_branch=keep_branch,
        keep_downloads=keep_downloads,
        no_merge=no_merge,
        no_status_check=no_status_check,
        targets=tuple(target),
    )
    result = asyncio.run(run_publish(ctx, github.value, options))
    if isinstance(result, Err):
        exit_with_error(ctx.console, result.error)

from __future__ import annotations

import asyncio

import typer

from relay.cli.commands._helpers import exit_with_error
from relay.cli.commands.publish_cmd import run_publish
from relay.cli.context import build_context
from relay.core.errors import ReleaseError
from relay.core.result import Err, Ok, Result
from relay.git.repository import Repository
from relay.github.client import GithubClient
from relay.services.publish import PublishOptions
from relay.services.release import ReleaseOptions, run_release
from relay.services.version import check_version_or_part


def release(
    version: str = typer.Argument(
        ..., metavar="NEW_VERSION", help="The version to release (major/minor/patch are reserved)"
    ),
    no_push: bool = typer.Option(False, "--no-push", help="Do not push the release branch"),
    no_git_checks: bool = typer.Option(
        False, "--no-git-checks", help="Ignore local git changes and unsynchronized remotes"
    ),
    no_changelog: bool = typer.Option(
        False, "--no-changelog", help="Do not check for changelog entries"
    ),
    publish: bool = typer.Option(False, "--publish", help='Run "publish" right after "release"'),
) -> None:
    """Prepare a new release branch."""
    checked = check_version_or_part(version)
    if isinstance(checked, Err):
        typer.echo(f"error: {checked.error.message}", err=True)
        raise typer.Exit(code=1)

    ctx = build_context()
    console = ctx.console

    # Only needed when the default branch is not configured, or to publish.
    github: GithubClient | None = None
    client = GithubClient.from_env()
    if isinstance(client, Ok):
        github = client.value
    elif publish:
        exit_with_error(console, client.error)

    async def publish_runner(new_version: str) -> Result[object, ReleaseError]:
        assert github is not None
        return await run_publish(ctx, github, PublishOptions(new_version=new_version))

    result = asyncio.run(
        run_release(
            ReleaseOptions(
                new_version=checked.value,
                no_push=no_push,
                no_git_checks=no_git_checks,
                no_changelog=no_changelog,
                publish=publish,
            ),
            ctx.run,
            root=ctx.root,
            project=ctx.project,
            git=Repository(ctx.root),
            github=github,
            publish=publish_runner,
        )
    )
    if isinstance(result, Err):
        exit_with_error(console, result.error)

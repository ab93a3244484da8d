"""Publish pipeline.

Resolves the release branch head, waits for CI, fans out to every target
concurrently, then merges the release branch back into the default branch.
A failing target never stops its siblings; the run fails afterwards if any
target failed, and the branch is then left alone for a retry.
"""

from __future__ import annotations

import asyncio
import os
import shutil
import tempfile
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from pathlib import Path

from relay.core.config import ProjectConfig, TargetConfig
from relay.core.context import RunContext
from relay.core.errors import ReleaseError
from relay.core.result import Err, Ok, Result
from relay.github.client import GithubClient
from relay.output.console import Style
from relay.services.release import release_branch_name
from relay.services.version import check_version_or_part
from relay.stores.store import ArtifactStore, ArtifactStoreClient
from relay.targets import get_target_by_name
from relay.targets.base import BaseTarget, TargetOutcome

STATUS_POLL_INTERVAL_SECONDS = 30

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class PublishOptions:
    new_version: str
    keep_branch: bool = False
    keep_downloads: bool = False
    no_merge: bool = False
    no_status_check: bool = False
    # Empty means every target configured in .relay.toml.
    targets: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class TargetReport:
    name: str
    outcome: TargetOutcome | None = None
    error: ReleaseError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True, slots=True)
class PublishReport:
    version: str
    revision: str
    targets: tuple[TargetReport, ...]


async def resolve_revision(
    project: ProjectConfig, github: GithubClient, branch: str
) -> Result[str, ReleaseError]:
    head = await github.get_branch_head(project.github.owner, project.github.repo, branch)
    if isinstance(head, Err):
        if head.error.kind == "not_found":
            return Err(
                ReleaseError(
                    kind="precondition",
                    message=f"Release branch does not exist: {branch}",
                    hint="Run `relay release <version>` first.",
                )
            )
    return head


async def wait_for_revision(
    ctx: RunContext,
    store: ArtifactStore,
    revision: str,
    *,
    sleep: Sleep = asyncio.sleep,
) -> Result[None, ReleaseError]:
    """Block until CI for ``revision`` finished; a failed build is fatal."""
    console = ctx.console
    while True:
        info = await store.get_revision_info(revision)
        if isinstance(info, Err):
            return info
        rev = info.value
        if rev.is_built_successfully:
            console.info(f"Revision {revision} has been built successfully.")
            return Ok(None)
        if rev.is_failed:
            return Err(
                ReleaseError(
                    kind="precondition",
                    message=f"Build for revision {revision} has failed ({rev.result})",
                    hint="Fix the build, push again and rerun `relay publish`.",
                )
            )

        console.info(
            f"Revision {revision} is still being built ({rev.status}), "
            f"checking again in {STATUS_POLL_INTERVAL_SECONDS} seconds..."
        )
        if not ctx.should_perform():
            ctx.skip("Not waiting for the build to finish")
            return Ok(None)
        await sleep(STATUS_POLL_INTERVAL_SECONDS)


def select_target_configs(
    project: ProjectConfig, requested: tuple[str, ...]
) -> Result[tuple[TargetConfig, ...], ReleaseError]:
    if not requested:
        return Ok(project.targets)

    configured = {t.name: t for t in project.targets}
    selected: list[TargetConfig] = []
    for name in requested:
        config = configured.get(name)
        if config is None:
            return Err(
                ReleaseError(
                    kind="configuration",
                    message=f'Target "{name}" is not configured',
                    hint="Add a [[targets]] entry to .relay.toml.",
                )
            )
        selected.append(config)
    return Ok(tuple(selected))


def build_targets(
    configs: tuple[TargetConfig, ...],
    store: ArtifactStore,
    ctx: RunContext,
    *,
    project: ProjectConfig,
    github: GithubClient | None,
    environ: Mapping[str, str],
) -> Result[list[BaseTarget], ReleaseError]:
    """Construct every target; all construction errors are reported together."""
    targets: list[BaseTarget] = []
    errors: list[ReleaseError] = []
    for config in configs:
        cls = get_target_by_name(config.name)
        if cls is None:
            errors.append(
                ReleaseError(kind="configuration", message=f'Unknown target: "{config.name}"')
            )
            continue
        created = cls.create(config, store, ctx, project=project, environ=environ, github=github)
        if isinstance(created, Err):
            errors.append(created.error)
            continue
        targets.append(created.value)

    for e in errors:
        ctx.console.error(e.pretty())
    if errors:
        if len(errors) == 1:
            return Err(errors[0])
        return Err(
            ReleaseError(
                kind="configuration",
                message=f"{len(errors)} targets could not be initialized",
            )
        )
    return Ok(targets)


async def _publish_target(target: BaseTarget, version: str, revision: str) -> TargetReport:
    try:
        result = await target.publish(version, revision)
    except Exception as e:
        # An exception fails this target only.
        return TargetReport(
            name=target.name,
            error=ReleaseError(kind="transport", message=f"{target.name}: {e!r}"),
        )
    if isinstance(result, Err):
        return TargetReport(name=target.name, error=result.error)
    return TargetReport(name=target.name, outcome=result.value)


async def publish_to_targets(
    targets: list[BaseTarget], version: str, revision: str
) -> tuple[TargetReport, ...]:
    reports = await asyncio.gather(*(_publish_target(t, version, revision) for t in targets))
    return tuple(reports)


async def handle_release_branch(
    ctx: RunContext,
    project: ProjectConfig,
    github: GithubClient,
    branch: str,
    *,
    keep_branch: bool,
) -> Result[None, ReleaseError]:
    """Merge ``branch`` into the default branch, then delete it."""
    owner, repo = project.github.owner, project.github.repo
    console = ctx.console

    base = project.default_branch
    if base is None:
        resolved = await github.get_default_branch(owner, repo)
        if isinstance(resolved, Err):
            return resolved
        base = resolved.value

    console.info(f'Merging the release branch "{branch}" into "{base}"...')
    if not ctx.should_perform():
        ctx.skip("Not merging the release branch")
    else:
        merged = await github.merge_branch(owner, repo, head=branch, base=base)
        if isinstance(merged, Err):
            if merged.error.kind == "conflict":
                return Err(
                    ReleaseError(
                        kind="conflict",
                        message=f'Cannot merge "{branch}" into "{base}": merge conflict',
                        hint=f"Merge {branch} into {base} manually and delete the branch.",
                    )
                )
            return merged
        if merged.value is None:
            console.info(f'"{base}" already contains "{branch}", nothing to merge.')
        else:
            console.success(f"Merged {branch} into {base} ({merged.value[:12]})")

    if keep_branch:
        console.info(f'Not deleting the release branch "{branch}".')
        return Ok(None)

    if not ctx.should_perform():
        ctx.skip("Not deleting the release branch")
        return Ok(None)

    deleted = await github.delete_branch(owner, repo, branch)
    if isinstance(deleted, Err):
        return deleted
    console.info(f'Deleted the release branch "{branch}".')
    return Ok(None)


def _print_summary(ctx: RunContext, reports: tuple[TargetReport, ...]) -> None:
    console = ctx.console
    console.header("Publish summary")
    for report in reports:
        if report.error is not None:
            console.error(f"{report.name}: {report.error.pretty()}")
        elif report.outcome == "skipped":
            console.warning(f"{report.name}: skipped")
        else:
            console.print(f"{report.name}: published", Style.SUCCESS)


async def publish_main(
    options: PublishOptions,
    ctx: RunContext,
    *,
    project: ProjectConfig,
    github: GithubClient,
    store_client: ArtifactStoreClient,
    environ: Mapping[str, str] | None = None,
    sleep: Sleep = asyncio.sleep,
) -> Result[PublishReport, ReleaseError]:
    """Publish the artifacts of ``release/<version>`` to the configured targets."""
    console = ctx.console
    checked = check_version_or_part(options.new_version)
    if isinstance(checked, Err):
        return checked
    version = checked.value
    branch = release_branch_name(version)

    console.info(f'Publishing version "{version}" from branch "{branch}"')
    revision = await resolve_revision(project, github, branch)
    if isinstance(revision, Err):
        return revision
    console.debug(f"Revision to publish: {revision.value}")

    download_dir = Path(tempfile.mkdtemp(prefix="relay-"))
    try:
        return await _publish_revision(
            options,
            ctx,
            project=project,
            github=github,
            store=ArtifactStore(
                store_client, project.github.owner, project.github.repo, download_dir
            ),
            version=version,
            revision=revision.value,
            branch=branch,
            environ=os.environ if environ is None else environ,
            sleep=sleep,
        )
    finally:
        if options.keep_downloads:
            console.info(f"Downloaded artifacts are kept in {download_dir}")
        else:
            shutil.rmtree(download_dir, ignore_errors=True)


async def _publish_revision(
    options: PublishOptions,
    ctx: RunContext,
    *,
    project: ProjectConfig,
    github: GithubClient,
    store: ArtifactStore,
    version: str,
    revision: str,
    branch: str,
    environ: Mapping[str, str],
    sleep: Sleep,
) -> Result[PublishReport, ReleaseError]:
    console = ctx.console
    if options.no_status_check:
        console.warning("Not checking the status of the revision")
    else:
        waited = await wait_for_revision(ctx, store, revision, sleep=sleep)
        if isinstance(waited, Err):
            return waited

    listing = await store.list_artifacts(revision)
    if isinstance(listing, Err) and listing.error.kind != "not_found":
        return listing
    if isinstance(listing, Err) or not listing.value:
        return Err(
            ReleaseError(
                kind="precondition",
                message=f"No artifacts found for revision {revision}",
                hint="Check that CI uploaded the build outputs to the artifact store.",
            )
        )
    console.info(f"Found {len(listing.value)} artifact(s) for revision {revision}")
    for artifact in listing.value:
        console.debug(f"  {artifact.name}")

    configs = select_target_configs(project, options.targets)
    if isinstance(configs, Err):
        return configs
    if not configs.value:
        console.warning("No targets configured, nothing to publish")

    targets = build_targets(
        configs.value, store, ctx, project=project, github=github, environ=environ
    )
    if isinstance(targets, Err):
        return targets

    reports = await publish_to_targets(targets.value, version, revision)
    _print_summary(ctx, reports)
    failed = [r for r in reports if r.error is not None]
    if failed:
        first = failed[0].error
        assert first is not None
        return Err(
            ReleaseError(
                kind=first.kind,
                message=f"Publishing failed for: {', '.join(r.name for r in failed)}",
                hint=first.pretty(),
            )
        )

    if options.no_merge:
        console.info("Not merging the release branch.")
    else:
        handled = await handle_release_branch(
            ctx, project, github, branch, keep_branch=options.keep_branch
        )
        if isinstance(handled, Err):
            return handled

    console.success(f"Version {version} has been published!")
    return Ok(PublishReport(version=version, revision=revision, targets=reports))

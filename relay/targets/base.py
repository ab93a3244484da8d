"""Publishing target base class.

A target is one destination artifacts get published to. Targets are built
through ``create``, which validates settings and credentials before any
network I/O, and share the run's ``ArtifactStore`` so each artifact is
downloaded once no matter how many targets need it.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Awaitable, Iterable, Mapping
from pathlib import Path
from typing import ClassVar, Literal, Self

from relay.core.config import ProjectConfig, TargetConfig
from relay.core.context import RunContext
from relay.core.errors import ReleaseError
from relay.core.result import Err, Ok, Result
from relay.github.client import GithubClient
from relay.output.console import ConsoleProtocol, scoped
from relay.platform.process import ProcessError
from relay.stores.filters import parse_filter_options
from relay.stores.model import Artifact, FilterOptions
from relay.stores.store import ArtifactStore

TargetOutcome = Literal["published", "skipped"]


class BaseTarget:
    name: ClassVar[str] = "base"

    def __init__(
        self,
        config: TargetConfig,
        store: ArtifactStore,
        ctx: RunContext,
        *,
        project: ProjectConfig,
        filter_options: FilterOptions | None = None,
    ) -> None:
        self.config = config
        self.store = store
        self.ctx = ctx
        self.project = project
        self.filter_options = filter_options or FilterOptions()
        self.console: ConsoleProtocol = scoped(ctx.console, f"[{self.name}]")

    @classmethod
    def create(
        cls,
        config: TargetConfig,
        store: ArtifactStore,
        ctx: RunContext,
        *,
        project: ProjectConfig,
        environ: Mapping[str, str] | None = None,
        github: GithubClient | None = None,
    ) -> Result[Self, ReleaseError]:
        """Build the target, failing fast on bad settings or missing credentials."""
        filters = parse_filter_options(config.options)
        if isinstance(filters, Err):
            return filters
        return cls._create(
            config,
            store,
            ctx,
            project=project,
            environ=os.environ if environ is None else environ,
            github=github,
            filter_options=filters.value,
        )

    @classmethod
    def _create(
        cls,
        config: TargetConfig,
        store: ArtifactStore,
        ctx: RunContext,
        *,
        project: ProjectConfig,
        environ: Mapping[str, str],
        github: GithubClient | None,
        filter_options: FilterOptions,
    ) -> Result[Self, ReleaseError]:
        return Ok(cls(config, store, ctx, project=project, filter_options=filter_options))

    async def publish(self, version: str, revision: str) -> Result[TargetOutcome, ReleaseError]:
        raise NotImplementedError

    async def get_artifacts_for_revision(
        self, revision: str, default_filter: FilterOptions | None = None
    ) -> Result[tuple[Artifact, ...], ReleaseError]:
        """Store listing narrowed by this target's filters over ``default_filter``.

        The target's own ``include_files`` / ``exclude_files`` win over the
        default for the same key.
        """
        options = self.filter_options.merged_over(default_filter)
        return await self.store.filter_artifacts(revision, options)

    def skip_empty(self, revision: str) -> Result[TargetOutcome, ReleaseError]:
        self.console.warning(f"No matching artifacts found for revision {revision}, skipping")
        return Ok("skipped")


def missing_env(target: str, *names: str) -> ReleaseError:
    return ReleaseError(
        kind="configuration",
        message=f"Cannot publish to {target}: missing credentials",
        hint=f"Set {' and '.join(names)} in the environment.",
    )


def tool_error(e: ProcessError, what: str) -> ReleaseError:
    detail = e.stderr.strip() or e.stdout.strip()
    return ReleaseError(kind="transport", message=f"{what}: {e}", hint=detail or None)


class PackageTarget(BaseTarget):
    """Targets that push every matching file through a command-line tool."""

    default_filter: ClassVar[FilterOptions] = FilterOptions()
    # Display name used in log lines, e.g. "PyPI".
    registry: ClassVar[str] = ""

    async def upload(self, path: Path) -> Result[None, ReleaseError]:
        raise NotImplementedError

    async def publish(self, version: str, revision: str) -> Result[TargetOutcome, ReleaseError]:
        self.console.debug("Fetching artifact list...")
        packages = await self.get_artifacts_for_revision(revision, self.default_filter)
        if isinstance(packages, Err):
            return packages
        if not packages.value:
            return self.skip_empty(revision)

        failed = await gather_errors(self._publish_one(a) for a in packages.value)
        if failed:
            return Err(failed[0])

        self.console.success(f"{self.registry} release of {version} completed")
        return Ok("published")

    async def _publish_one(self, artifact: Artifact) -> Result[None, ReleaseError]:
        path = await self.store.download_artifact(artifact)
        if isinstance(path, Err):
            return path
        if not self.ctx.should_perform():
            self.ctx.skip(f"Not uploading {artifact.name} to {self.registry}")
            return Ok(None)
        self.console.info(f'Uploading "{artifact.name}"')
        return await self.upload(path.value)


async def gather_errors(
    jobs: Iterable[Awaitable[Result[object, ReleaseError]]],
) -> list[ReleaseError]:
    """Run ``jobs`` concurrently, wait for all, return the errors in order."""
    results = await asyncio.gather(*jobs)
    return [r.error for r in results if isinstance(r, Err)]

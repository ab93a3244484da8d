from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import Self

from relay.core.config import ProjectConfig, TargetConfig
from relay.core.context import RunContext
from relay.core.errors import ReleaseError
from relay.core.result import Err, Ok, Result
from relay.github.client import GithubClient, GithubRelease
from relay.services.changes import find_changeset
from relay.services.version import parse_version, version_to_tag
from relay.stores.model import Artifact, FilterOptions
from relay.stores.store import ArtifactStore
from relay.targets.base import BaseTarget, TargetOutcome, gather_errors

DEFAULT_CONTENT_TYPE = "application/octet-stream"


class GithubTarget(BaseTarget):
    """Attach artifacts to the GitHub release of the version's tag.

    The release is looked up by tag and created on first use, with its notes
    taken from the changelog at the released revision.
    """

    name = "github"

    def __init__(
        self,
        config: TargetConfig,
        store: ArtifactStore,
        ctx: RunContext,
        *,
        project: ProjectConfig,
        github: GithubClient,
        filter_options: FilterOptions | None = None,
    ) -> None:
        super().__init__(config, store, ctx, project=project, filter_options=filter_options)
        self.github = github
        self.owner = project.github.owner
        self.repo = project.github.repo
        self.changelog = config.get("changelog") or project.changelog
        self._releases: dict[str, asyncio.Task[Result[GithubRelease, ReleaseError]]] = {}

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
        if github is None:
            client = GithubClient.from_env(environ)
            if isinstance(client, Err):
                return client
            github = client.value
        return Ok(
            cls(
                config,
                store,
                ctx,
                project=project,
                github=github,
                filter_options=filter_options,
            )
        )

    async def get_or_create_release(
        self, tag: str, revision: str
    ) -> Result[GithubRelease, ReleaseError]:
        """Release for ``tag``, created at most once per target instance.

        An existing release is reused as is; its target commit is not checked.
        """
        task = self._releases.get(tag)
        if task is None:
            task = asyncio.ensure_future(self._get_or_create_release(tag, revision))
            self._releases[tag] = task
        return await asyncio.shield(task)

    async def _get_or_create_release(
        self, tag: str, revision: str
    ) -> Result[GithubRelease, ReleaseError]:
        existing = await self.github.get_release_by_tag(self.owner, self.repo, tag)
        if isinstance(existing, Ok):
            self.console.debug(f"Found existing release for {tag}")
            return existing
        if existing.error.kind != "not_found":
            return existing

        changelog = await self.github.get_file(self.owner, self.repo, self.changelog, revision)
        if isinstance(changelog, Err):
            return changelog
        changeset = find_changeset(changelog.value, tag) if changelog.value else None
        if changeset is None:
            self.console.debug(f"No changelog entry for {tag} in {self.changelog}")
        else:
            self.console.debug(f"Changes extracted from changelog:\n{changeset.body}")

        parsed = parse_version(tag.removeprefix(self.project.tag_prefix))
        if not self.ctx.should_perform():
            self.ctx.skip(f"Not creating a release for {tag}")
            return Ok(GithubRelease(id=0, tag_name=tag, upload_url=""))

        self.console.info(f"Creating release {tag} at {revision}")
        return await self.github.create_release(
            self.owner,
            self.repo,
            tag=tag,
            target_commitish=revision,
            name=changeset.name if changeset is not None else tag,
            body=changeset.body if changeset is not None else "",
            prerelease=parsed is not None and parsed.is_prerelease,
        )

    async def publish(self, version: str, revision: str) -> Result[TargetOutcome, ReleaseError]:
        self.console.info(f"Publishing version {version}...")
        self.console.debug(f"Revision: {revision}")

        artifacts = await self.get_artifacts_for_revision(revision)
        if isinstance(artifacts, Err):
            return artifacts
        if not artifacts.value:
            return self.skip_empty(revision)

        tag = version_to_tag(version, self.project.tag_prefix)
        release = await self.get_or_create_release(tag, revision)
        if isinstance(release, Err):
            return release

        failed = await gather_errors(self._upload(release.value, a) for a in artifacts.value)
        if failed:
            return Err(failed[0])

        self.console.success(f"Uploaded {len(artifacts.value)} asset(s) to {tag}")
        return Ok("published")

    async def _upload(
        self, release: GithubRelease, artifact: Artifact
    ) -> Result[None, ReleaseError]:
        path = await self.store.download_artifact(artifact)
        if isinstance(path, Err):
            return path

        size = path.value.stat().st_size
        if not self.ctx.should_perform():
            self.ctx.skip(f'Not uploading asset "{artifact.name}" ({size} bytes)')
            return Ok(None)

        self.console.debug(
            f'Uploading asset "{artifact.name}" ({size} bytes) to '
            f"{self.owner}/{self.repo}:{release.tag_name}"
        )
        return await self.github.upload_asset(
            release,
            name=artifact.name,
            path=path.value,
            content_type=artifact.type or DEFAULT_CONTENT_TYPE,
        )

"""Caching artifact store.

``ArtifactStore`` sits between the targets and the artifact store service.
Listings are cached per revision and downloads per ``download_url`` for the
lifetime of the instance. Concurrent callers share a single in-flight task:
the task is registered before the first ``await``, so the event loop
serializes the check-and-insert without a lock.

Usage:
    store = ArtifactStore(ZeusClient.from_env(), "acme", "widget", download_dir)
    wheels = FilterOptions(include_names=re.compile(r"\\.whl$"))
    artifacts = await store.filter_artifacts(sha, wheels)
    path = await store.download_artifact(artifact)
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from pathlib import Path
from typing import Protocol

from relay.core.errors import ReleaseError
from relay.core.result import Err, Ok, Result
from relay.stores.model import Artifact, FilterOptions, RevisionInfo

__all__ = ["ArtifactStore", "ArtifactStoreClient"]


class ArtifactStoreClient(Protocol):
    """Backend service the store caches."""

    async def list_artifacts_for_revision(
        self, owner: str, repo: str, revision: str
    ) -> Result[list[Artifact], ReleaseError]: ...

    async def download_artifact(
        self, artifact: Artifact, directory: Path
    ) -> Result[Path, ReleaseError]: ...

    async def get_revision(
        self, owner: str, repo: str, revision: str
    ) -> Result[RevisionInfo, ReleaseError]: ...


class ArtifactStore:
    def __init__(
        self,
        client: ArtifactStoreClient,
        repo_owner: str,
        repo_name: str,
        download_directory: Path,
    ) -> None:
        self.client = client
        self.repo_owner = repo_owner
        self.repo_name = repo_name
        self.download_directory = download_directory
        self._download_cache: dict[str, asyncio.Task[Result[Path, ReleaseError]]] = {}
        self._listing_cache: dict[str, asyncio.Task[Result[list[Artifact], ReleaseError]]] = {}

    async def download_artifact(self, artifact: Artifact) -> Result[Path, ReleaseError]:
        """Download ``artifact`` once; later and concurrent calls share the result.

        Failures are cached as well: a failed download is not retried.
        """
        task = self._download_cache.get(artifact.download_url)
        if task is None:
            task = asyncio.ensure_future(
                self.client.download_artifact(artifact, self.download_directory)
            )
            self._download_cache[artifact.download_url] = task
        return await asyncio.shield(task)

    async def download_artifacts(
        self, artifacts: Sequence[Artifact]
    ) -> Result[list[Path], ReleaseError]:
        results = await asyncio.gather(*(self.download_artifact(a) for a in artifacts))
        paths: list[Path] = []
        for result in results:
            if isinstance(result, Err):
                return result
            paths.append(result.value)
        return Ok(paths)

    async def list_artifacts(self, revision: str) -> Result[tuple[Artifact, ...], ReleaseError]:
        """Full, unfiltered listing of ``revision``.

        Returns:
            Err with kind ``not_found`` if the service does not know the revision.
        """
        task = self._listing_cache.get(revision)
        if task is None:
            task = asyncio.ensure_future(
                self.client.list_artifacts_for_revision(self.repo_owner, self.repo_name, revision)
            )
            self._listing_cache[revision] = task
        result = await asyncio.shield(task)
        if isinstance(result, Ok):
            return Ok(tuple(result.value))
        return result

    async def filter_artifacts(
        self, revision: str, filter_options: FilterOptions | None = None
    ) -> Result[tuple[Artifact, ...], ReleaseError]:
        """Listing of ``revision`` narrowed by include, then exclude patterns."""
        listing = await self.list_artifacts(revision)
        if isinstance(listing, Err) or filter_options is None:
            return listing
        return Ok(tuple(a for a in listing.value if filter_options.matches(a)))

    async def get_revision_info(self, revision: str) -> Result[RevisionInfo, ReleaseError]:
        """Current CI status of ``revision``; never cached."""
        return await self.client.get_revision(self.repo_owner, self.repo_name, revision)

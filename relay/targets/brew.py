"""Homebrew formula target.

Renders a formula template and commits it to a tap repository through the
GitHub contents API. Template placeholders:

- ``{{version}}``: the released version
- ``{{revision}}``: the released commit SHA
- ``{{checksums.<artifact name>}}``: sha256 hex digest of that artifact
"""

from __future__ import annotations

import asyncio
import hashlib
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Self

from relay.core.config import ProjectConfig, TargetConfig
from relay.core.context import RunContext
from relay.core.errors import ReleaseError
from relay.core.result import Err, Ok, Result
from relay.github.client import GithubClient
from relay.stores.model import Artifact, FilterOptions
from relay.stores.store import ArtifactStore
from relay.targets.base import BaseTarget, TargetOutcome

DEFAULT_FORMULA_DIR = "Formula"

_PLACEHOLDER_RE = re.compile(r"\{\{\s*([^{}\s]+)\s*\}\}")


def tap_repository(tap: str) -> tuple[str, str] | None:
    """Split ``owner/name`` into the tap's GitHub owner and repository.

    Homebrew maps tap ``acme/tools`` to repository ``acme/homebrew-tools``.
    """
    owner, sep, name = tap.partition("/")
    if not sep or not owner or not name or "/" in name:
        return None
    if not name.startswith("homebrew-"):
        name = f"homebrew-{name}"
    return owner, name


def render_formula(
    template: str, *, version: str, revision: str, checksums: Mapping[str, str]
) -> Result[str, ReleaseError]:
    missing: list[str] = []

    def replace(m: re.Match[str]) -> str:
        key = m.group(1)
        if key == "version":
            return version
        if key == "revision":
            return revision
        if key.startswith("checksums."):
            digest = checksums.get(key.removeprefix("checksums."))
            if digest is not None:
                return digest
        missing.append(key)
        return m.group(0)

    rendered = _PLACEHOLDER_RE.sub(replace, template)
    if missing:
        return Err(
            ReleaseError(
                kind="configuration",
                message=f"brew: unknown template variable(s): {', '.join(missing)}",
            )
        )
    return Ok(rendered)


def _sha256(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as fh:
        for chunk in iter(lambda: fh.read(1024 * 1024), b""):
            digest.update(chunk)
    return digest.hexdigest()


class BrewTarget(BaseTarget):
    name = "brew"

    def __init__(
        self,
        config: TargetConfig,
        store: ArtifactStore,
        ctx: RunContext,
        *,
        project: ProjectConfig,
        github: GithubClient,
        tap_owner: str,
        tap_repo: str,
        template: str,
        filter_options: FilterOptions | None = None,
    ) -> None:
        super().__init__(config, store, ctx, project=project, filter_options=filter_options)
        self.github = github
        self.tap_owner = tap_owner
        self.tap_repo = tap_repo
        self.template = template
        self.formula = config.get("formula") or project.github.repo
        self.formula_dir = (config.get("path") or DEFAULT_FORMULA_DIR).strip("/")

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
        tap = config.get("tap")
        template = config.options.get("template")
        if tap is None or not isinstance(template, str) or not template.strip():
            return Err(
                ReleaseError(
                    kind="configuration",
                    message="brew: 'tap' and 'template' settings are required",
                )
            )
        repository = tap_repository(tap)
        if repository is None:
            return Err(
                ReleaseError(
                    kind="configuration",
                    message=f'brew: invalid tap "{tap}"',
                    hint="Use the form owner/name.",
                )
            )

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
                tap_owner=repository[0],
                tap_repo=repository[1],
                template=template,
                filter_options=filter_options,
            )
        )

    @property
    def formula_path(self) -> str:
        return f"{self.formula_dir}/{self.formula}.rb" if self.formula_dir else f"{self.formula}.rb"

    async def checksums(
        self, artifacts: tuple[Artifact, ...]
    ) -> Result[dict[str, str], ReleaseError]:
        paths = await self.store.download_artifacts(artifacts)
        if isinstance(paths, Err):
            return paths
        digests = await asyncio.gather(*(asyncio.to_thread(_sha256, p) for p in paths.value))
        return Ok({a.name: d for a, d in zip(artifacts, digests, strict=True)})

    async def publish(self, version: str, revision: str) -> Result[TargetOutcome, ReleaseError]:
        artifacts = await self.get_artifacts_for_revision(revision)
        if isinstance(artifacts, Err):
            return artifacts
        if not artifacts.value:
            return self.skip_empty(revision)

        checksums = await self.checksums(artifacts.value)
        if isinstance(checksums, Err):
            return checksums

        formula = render_formula(
            self.template, version=version, revision=revision, checksums=checksums.value
        )
        if isinstance(formula, Err):
            return formula

        tap = f"{self.tap_owner}/{self.tap_repo}"
        self.console.debug(f"Formula for {version}:\n{formula.value}")
        if not self.ctx.should_perform():
            self.ctx.skip(f"Not updating {self.formula_path} in {tap}")
            return Ok("published")

        self.console.info(f"Updating {self.formula_path} in {tap}")
        result = await self.github.put_file(
            self.tap_owner,
            self.tap_repo,
            self.formula_path,
            content=formula.value,
            message=f"release: {self.formula} {version}",
        )
        if isinstance(result, Err):
            return result

        self.console.success(f"Formula {self.formula} updated to {version}")
        return Ok("published")

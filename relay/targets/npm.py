from __future__ import annotations

import os
import re
import tempfile
from collections.abc import Mapping
from pathlib import Path
from typing import Self

from relay.core.config import ProjectConfig, TargetConfig
from relay.core.context import RunContext
from relay.core.errors import ReleaseError
from relay.core.result import Err, Ok, Result
from relay.github.client import GithubClient
from relay.platform.process import run as run_process
from relay.stores.model import FilterOptions
from relay.stores.store import ArtifactStore
from relay.targets.base import PackageTarget, missing_env, tool_error

NPM_ACCESS_LEVELS = ("public", "restricted")

# npm expands ${NPM_TOKEN} from the environment when reading the file.
_NPMRC = "//registry.npmjs.org/:_authToken=${NPM_TOKEN}\n"


class NpmTarget(PackageTarget):
    """Publish ``.tgz`` tarballs with ``npm publish``.

    The token never reaches the command line: a throwaway npmrc refers to
    ``NPM_TOKEN`` and is passed with ``--userconfig``.
    """

    name = "npm"
    registry = "npm"
    default_filter = FilterOptions(include_names=re.compile(r"\.tgz$"))

    def __init__(
        self,
        config: TargetConfig,
        store: ArtifactStore,
        ctx: RunContext,
        *,
        project: ProjectConfig,
        token: str,
        filter_options: FilterOptions | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(config, store, ctx, project=project, filter_options=filter_options)
        self.token = token
        self.environ = dict(os.environ if environ is None else environ)
        self.npm_bin = self.environ.get("NPM_BIN", "").strip() or "npm"
        self.access = config.get("access")

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
        token = environ.get("NPM_TOKEN", "").strip()
        if not token:
            return Err(missing_env("npm", "NPM_TOKEN"))

        access = config.get("access")
        if access is not None and access not in NPM_ACCESS_LEVELS:
            return Err(
                ReleaseError(
                    kind="configuration",
                    message=f'npm: invalid access level "{access}"',
                    hint=f"Use one of: {', '.join(NPM_ACCESS_LEVELS)}",
                )
            )

        return Ok(
            cls(
                config,
                store,
                ctx,
                project=project,
                token=token,
                filter_options=filter_options,
                environ=environ,
            )
        )

    def publish_command(self, path: Path, npmrc: Path) -> list[str]:
        cmd = [self.npm_bin, "publish", str(path), "--userconfig", str(npmrc)]
        if self.access is not None:
            cmd += ["--access", self.access]
        return cmd

    async def upload(self, path: Path) -> Result[None, ReleaseError]:
        with tempfile.TemporaryDirectory(prefix="relay-npm-") as tmp:
            npmrc = Path(tmp) / ".npmrc"
            npmrc.write_text(_NPMRC, encoding="utf-8")
            result = await run_process(
                self.publish_command(path, npmrc),
                cwd=path.parent,
                env={**self.environ, "NPM_TOKEN": self.token},
            )
        if isinstance(result, Err):
            return Err(tool_error(result.error, f"npm publish failed for {path.name}"))
        return Ok(None)

from __future__ import annotations

import os
import re
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

_TWINE_TIMEOUT_SECONDS = 10 * 60.0


class PypiTarget(PackageTarget):
    """Upload wheels and source archives with ``twine``.

    Credentials come from ``TWINE_USERNAME`` / ``TWINE_PASSWORD``; twine reads
    them from the environment itself.
    """

    name = "pypi"
    registry = "PyPI"
    default_filter = FilterOptions(include_names=re.compile(r"(\.whl|\.gz|\.zip)$"))

    def __init__(
        self,
        config: TargetConfig,
        store: ArtifactStore,
        ctx: RunContext,
        *,
        project: ProjectConfig,
        filter_options: FilterOptions | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(config, store, ctx, project=project, filter_options=filter_options)
        self.environ = dict(os.environ if environ is None else environ)
        self.twine_bin = self.environ.get("TWINE_BIN", "").strip() or "twine"

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
        if not environ.get("TWINE_USERNAME") or not environ.get("TWINE_PASSWORD"):
            return Err(missing_env("PyPI", "TWINE_USERNAME", "TWINE_PASSWORD"))
        return Ok(
            cls(
                config,
                store,
                ctx,
                project=project,
                filter_options=filter_options,
                environ=environ,
            )
        )

    async def upload(self, path: Path) -> Result[None, ReleaseError]:
        result = await run_process(
            [self.twine_bin, "upload", str(path)],
            cwd=path.parent,
            env=self.environ,
            timeout=_TWINE_TIMEOUT_SECONDS,
        )
        if isinstance(result, Err):
            return Err(tool_error(result.error, f"twine upload failed for {path.name}"))
        return Ok(None)

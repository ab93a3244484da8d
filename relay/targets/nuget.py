from __future__ import annotations

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

DEFAULT_NUGET_SOURCE = "https://api.nuget.org/v3/index.json"


class NugetTarget(PackageTarget):
    """Push ``.nupkg`` packages with ``dotnet nuget push``."""

    name = "nuget"
    registry = "NuGet"
    default_filter = FilterOptions(include_names=re.compile(r"\.nupkg$"))

    def __init__(
        self,
        config: TargetConfig,
        store: ArtifactStore,
        ctx: RunContext,
        *,
        project: ProjectConfig,
        api_token: str,
        filter_options: FilterOptions | None = None,
        dotnet_bin: str = "dotnet",
    ) -> None:
        super().__init__(config, store, ctx, project=project, filter_options=filter_options)
        self.api_token = api_token
        self.dotnet_bin = dotnet_bin
        self.source = config.get("source") or DEFAULT_NUGET_SOURCE

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
        token = environ.get("NUGET_API_TOKEN", "").strip()
        if not token:
            return Err(missing_env("NuGet", "NUGET_API_TOKEN"))
        return Ok(
            cls(
                config,
                store,
                ctx,
                project=project,
                api_token=token,
                filter_options=filter_options,
                dotnet_bin=environ.get("DOTNET_BIN", "").strip() or "dotnet",
            )
        )

    async def upload(self, path: Path) -> Result[None, ReleaseError]:
        cmd = [
            self.dotnet_bin,
            "nuget",
            "push",
            str(path),
            "--api-key",
            self.api_token,
            "--source",
            self.source,
        ]
        result = await run_process(cmd, cwd=path.parent)
        if isinstance(result, Err):
            return Err(tool_error(result.error, f"dotnet nuget push failed for {path.name}"))
        return Ok(None)

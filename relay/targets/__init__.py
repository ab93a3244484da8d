"""Publishing targets and the name -> class registry."""

from __future__ import annotations

from typing import Literal, cast

from relay.targets.base import BaseTarget, TargetOutcome
from relay.targets.brew import BrewTarget
from relay.targets.github import GithubTarget
from relay.targets.npm import NpmTarget
from relay.targets.nuget import NugetTarget
from relay.targets.pypi import PypiTarget

TargetName = Literal["brew", "github", "npm", "nuget", "pypi"]

TARGET_MAP: dict[TargetName, type[BaseTarget]] = {
    "brew": BrewTarget,
    "github": GithubTarget,
    "npm": NpmTarget,
    "nuget": NugetTarget,
    "pypi": PypiTarget,
}


def get_all_target_names() -> list[str]:
    return list(TARGET_MAP)


def get_target_by_name(name: str) -> type[BaseTarget] | None:
    """Target class for ``name``, or None if there is no such target."""
    return TARGET_MAP.get(cast(TargetName, name))


__all__ = [
    "TARGET_MAP",
    "BaseTarget",
    "TargetName",
    "TargetOutcome",
    "get_all_target_names",
    "get_target_by_name",
]

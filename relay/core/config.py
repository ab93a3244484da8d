"""Typed project configuration.

The project configuration lives in ``.relay.toml`` next to the repository
root. It is parsed with ``tomllib`` into frozen dataclasses; structural
problems surface as ``ConfigError`` values.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal, cast

from .result import Err, Ok, Result
from .structured import StrDict, as_str_dict, get_list, get_str, get_table

__all__ = [
    "CONFIG_FILE_NAME",
    "DEFAULT_CHANGELOG_PATH",
    "ChangelogPolicy",
    "ConfigError",
    "GithubConfig",
    "ProjectConfig",
    "TargetConfig",
    "find_config_file",
    "load_config",
]

CONFIG_FILE_NAME = ".relay.toml"
DEFAULT_CHANGELOG_PATH = "CHANGELOG.md"

ChangelogPolicy = Literal["none", "simple"]
CHANGELOG_POLICIES: tuple[ChangelogPolicy, ...] = ("none", "simple")


@dataclass(frozen=True, slots=True)
class ConfigError:
    """Error when config cannot be loaded or parsed."""

    message: str
    path: Path | None = None


@dataclass(frozen=True, slots=True)
class GithubConfig:
    owner: str
    repo: str

    @property
    def slug(self) -> str:
        return f"{self.owner}/{self.repo}"


@dataclass(frozen=True, slots=True)
class TargetConfig:
    """One ``[[targets]]`` entry.

    ``options`` keeps the raw table (including ``name``); every target kind
    reads the keys it understands from it.
    """

    name: str
    options: StrDict = field(default_factory=dict)

    def get(self, key: str) -> str | None:
        return get_str(self.options, key)


@dataclass(frozen=True, slots=True)
class ProjectConfig:
    github: GithubConfig
    changelog: str = DEFAULT_CHANGELOG_PATH
    changelog_policy: ChangelogPolicy = "none"
    # None runs the default bump script; "" disables the hook.
    pre_release_command: str | None = None
    default_branch: str | None = None
    tag_prefix: str = ""
    targets: tuple[TargetConfig, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> ProjectConfig:
        """Create ProjectConfig from parsed TOML.

        Raises:
            ValueError: Required keys are missing or have invalid values.
        """
        github: StrDict = get_table(data, "github") or {}
        owner = get_str(github, "owner")
        repo = get_str(github, "repo")
        if owner is None or repo is None:
            raise ValueError("[github] owner and repo are required")

        policy = get_str(data, "changelog_policy") or "none"
        if policy not in CHANGELOG_POLICIES:
            raise ValueError(f'invalid changelog_policy: "{policy}"')

        command_obj = data.get("pre_release_command")
        command = command_obj.strip() if isinstance(command_obj, str) else None

        targets: list[TargetConfig] = []
        for index, item in enumerate(get_list(data, "targets") or []):
            table = as_str_dict(item)
            name = get_str(table, "name") if table is not None else None
            if table is None or name is None:
                raise ValueError(f"targets[{index}]: a table with a name is required")
            targets.append(TargetConfig(name=name, options=table))

        return cls(
            github=GithubConfig(owner=owner, repo=repo),
            changelog=get_str(data, "changelog") or DEFAULT_CHANGELOG_PATH,
            changelog_policy=cast(ChangelogPolicy, policy),
            pre_release_command=command,
            default_branch=get_str(data, "default_branch"),
            tag_prefix=get_str(data, "tag_prefix") or "",
            targets=tuple(targets),
        )


def find_config_file(start: Path) -> Path | None:
    """Walk up from ``start`` looking for ``.relay.toml``."""
    current = start.resolve()
    for directory in (current, *current.parents):
        candidate = directory / CONFIG_FILE_NAME
        if candidate.is_file():
            return candidate
    return None


def _parse_toml(path: Path) -> Result[StrDict, ConfigError]:
    import tomllib

    try:
        content = path.read_bytes()
        data_obj: object = tomllib.loads(content.decode("utf-8"))
        data = as_str_dict(data_obj)
        if data is None:
            return Err(ConfigError("Config root must be a TOML table", path=path))
        return Ok(data)
    except FileNotFoundError:
        return Err(ConfigError(f"Config file not found: {path}", path=path))
    except PermissionError:
        return Err(ConfigError(f"Permission denied reading: {path}", path=path))
    except tomllib.TOMLDecodeError as e:
        return Err(ConfigError(f"Invalid TOML syntax: {e}", path=path))
    except UnicodeDecodeError as e:
        return Err(ConfigError(f"Error reading config: {e}", path=path))


def load_config(path: Path) -> Result[ProjectConfig, ConfigError]:
    """Load and parse the project configuration.

    Args:
        path: Path to ``.relay.toml``

    Returns:
        Ok(ProjectConfig) on success, Err(ConfigError) on failure
    """
    result = _parse_toml(path)
    if isinstance(result, Err):
        return result

    try:
        return Ok(ProjectConfig.from_dict(result.value))
    except (KeyError, TypeError, ValueError) as e:
        return Err(ConfigError(f"Invalid config structure: {e}", path=path))

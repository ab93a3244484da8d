"""Tests for the command-line package targets (pypi, npm, nuget)."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from relay.core.config import GithubConfig, ProjectConfig, TargetConfig
from relay.core.context import RunContext
from relay.core.errors import ReleaseError
from relay.core.result import Err, Ok, Result
from relay.output.console import MockConsole
from relay.platform.process import ProcessError
from relay.stores.model import Artifact, RevisionInfo
from relay.stores.store import ArtifactStore
from relay.targets import npm as npm_mod
from relay.targets import nuget as nuget_mod
from relay.targets import pypi as pypi_mod
from relay.targets.npm import NpmTarget
from relay.targets.nuget import NugetTarget
from relay.targets.pypi import PypiTarget

SHA = "b" * 40
PROJECT = ProjectConfig(github=GithubConfig(owner="acme", repo="widget"))

ARTIFACTS = [
    Artifact(name="pkg-1.0.0.whl", download_url="/dl/whl"),
    Artifact(name="pkg-1.0.0.tar.gz", download_url="/dl/sdist"),
    Artifact(name="pkg-1.0.0.tgz", download_url="/dl/tgz"),
    Artifact(name="Pkg.1.0.0.nupkg", download_url="/dl/nupkg"),
    Artifact(name="readme.txt", download_url="/dl/readme"),
]


class FakeStoreClient:
    async def list_artifacts_for_revision(
        self, owner: str, repo: str, revision: str
    ) -> Result[list[Artifact], ReleaseError]:
        return Ok(list(ARTIFACTS))

    async def download_artifact(
        self, artifact: Artifact, directory: Path
    ) -> Result[Path, ReleaseError]:
        path = directory / artifact.name
        path.write_bytes(b"package")
        return Ok(path)

    async def get_revision(
        self, owner: str, repo: str, revision: str
    ) -> Result[RevisionInfo, ReleaseError]:
        return Ok(RevisionInfo(status="finished", result="passed"))


class Recorder:
    """Replacement for ``run_process`` that records every invocation."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.calls: list[dict[str, object]] = []

    async def __call__(
        self,
        cmd: list[str],
        cwd: Path,
        env: dict[str, str] | None = None,
        *,
        timeout: float | None = None,
    ) -> Result[str, ProcessError]:
        npmrc = None
        if "--userconfig" in cmd:
            npmrc = Path(cmd[cmd.index("--userconfig") + 1]).read_text(encoding="utf-8")
        self.calls.append({"cmd": cmd, "cwd": cwd, "env": env, "npmrc": npmrc})
        if self.fail:
            return Err(
                ProcessError(command=tuple(cmd), returncode=1, stdout="", stderr="403 Forbidden")
            )
        return Ok("")

    @property
    def files(self) -> list[str]:
        names: list[str] = []
        for call in self.calls:
            cmd = call["cmd"]
            assert isinstance(cmd, list)
            names.extend(Path(arg).name for arg in cmd if Path(arg).suffix)
        return sorted(n for n in names if n.startswith(("pkg", "Pkg")))


def _ctx(dry_run: bool = False) -> RunContext:
    return RunContext(console=MockConsole(), dry_run=dry_run)


def _store(tmp_path: Path) -> ArtifactStore:
    return ArtifactStore(FakeStoreClient(), "acme", "widget", tmp_path)


def _config(name: str, **options: object) -> TargetConfig:
    return TargetConfig(name=name, options={"name": name, **options})


# =============================================================================
# PyPI
# =============================================================================


PYPI_ENV = {"TWINE_USERNAME": "__token__", "TWINE_PASSWORD": "pypi-secret", "PATH": "/usr/bin"}


class TestPypi:
    def test_requires_credentials(self, tmp_path: Path) -> None:
        result = PypiTarget.create(
            _config("pypi"), _store(tmp_path), _ctx(), project=PROJECT, environ={}
        )
        assert isinstance(result, Err)
        assert result.error.kind == "configuration"
        assert result.error.hint is not None
        assert "TWINE_PASSWORD" in result.error.hint

    def test_uploads_wheel_and_sdist(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        recorder = Recorder()
        monkeypatch.setattr(pypi_mod, "run_process", recorder)
        created = PypiTarget.create(
            _config("pypi"), _store(tmp_path), _ctx(), project=PROJECT, environ=PYPI_ENV
        )
        assert isinstance(created, Ok)

        result = asyncio.run(created.value.publish("1.0.0", SHA))

        assert result == Ok("published")
        assert recorder.files == ["pkg-1.0.0.tar.gz", "pkg-1.0.0.whl"]
        for call in recorder.calls:
            cmd = call["cmd"]
            assert isinstance(cmd, list)
            assert cmd[:2] == ["twine", "upload"]
            assert call["cwd"] == tmp_path
            env = call["env"]
            assert isinstance(env, dict)
            assert env["TWINE_PASSWORD"] == "pypi-secret"

    def test_own_filter_wins(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        recorder = Recorder()
        monkeypatch.setattr(pypi_mod, "run_process", recorder)
        created = PypiTarget.create(
            _config("pypi", include_files=r"\.whl$"),
            _store(tmp_path),
            _ctx(),
            project=PROJECT,
            environ=PYPI_ENV,
        )
        assert isinstance(created, Ok)

        asyncio.run(created.value.publish("1.0.0", SHA))

        assert recorder.files == ["pkg-1.0.0.whl"]

    def test_dry_run(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        recorder = Recorder()
        monkeypatch.setattr(pypi_mod, "run_process", recorder)
        ctx = _ctx(dry_run=True)
        created = PypiTarget.create(
            _config("pypi"), _store(tmp_path), ctx, project=PROJECT, environ=PYPI_ENV
        )
        assert isinstance(created, Ok)

        result = asyncio.run(created.value.publish("1.0.0", SHA))

        assert result == Ok("published")
        assert recorder.calls == []
        console = ctx.console
        assert isinstance(console, MockConsole)
        assert console.find("[dry-run] Not uploading pkg-1.0.0.whl to PyPI")

    def test_tool_failure_is_transport_error(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(pypi_mod, "run_process", Recorder(fail=True))
        created = PypiTarget.create(
            _config("pypi"), _store(tmp_path), _ctx(), project=PROJECT, environ=PYPI_ENV
        )
        assert isinstance(created, Ok)

        result = asyncio.run(created.value.publish("1.0.0", SHA))

        assert isinstance(result, Err)
        assert result.error.kind == "transport"
        assert result.error.hint == "403 Forbidden"


# =============================================================================
# npm
# =============================================================================


class TestNpm:
    def test_requires_token(self, tmp_path: Path) -> None:
        result = NpmTarget.create(
            _config("npm"), _store(tmp_path), _ctx(), project=PROJECT, environ={}
        )
        assert isinstance(result, Err)
        assert result.error.kind == "configuration"

    def test_rejects_unknown_access(self, tmp_path: Path) -> None:
        result = NpmTarget.create(
            _config("npm", access="private"),
            _store(tmp_path),
            _ctx(),
            project=PROJECT,
            environ={"NPM_TOKEN": "t"},
        )
        assert isinstance(result, Err)
        assert "private" in result.error.message

    def test_publishes_tarball(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        recorder = Recorder()
        monkeypatch.setattr(npm_mod, "run_process", recorder)
        created = NpmTarget.create(
            _config("npm", access="public"),
            _store(tmp_path),
            _ctx(),
            project=PROJECT,
            environ={"NPM_TOKEN": "npm-secret"},
        )
        assert isinstance(created, Ok)

        result = asyncio.run(created.value.publish("1.0.0", SHA))

        assert result == Ok("published")
        assert len(recorder.calls) == 1
        call = recorder.calls[0]
        cmd = call["cmd"]
        assert isinstance(cmd, list)
        assert cmd[:3] == ["npm", "publish", str(tmp_path / "pkg-1.0.0.tgz")]
        assert cmd[-2:] == ["--access", "public"]
        assert "npm-secret" not in cmd
        assert call["npmrc"] == "//registry.npmjs.org/:_authToken=${NPM_TOKEN}\n"
        env = call["env"]
        assert isinstance(env, dict)
        assert env["NPM_TOKEN"] == "npm-secret"

    def test_command_without_access(self, tmp_path: Path) -> None:
        created = NpmTarget.create(
            _config("npm"), _store(tmp_path), _ctx(), project=PROJECT, environ={"NPM_TOKEN": "t"}
        )
        assert isinstance(created, Ok)
        cmd = created.value.publish_command(Path("/tmp/a.tgz"), Path("/tmp/.npmrc"))
        assert cmd == ["npm", "publish", "/tmp/a.tgz", "--userconfig", "/tmp/.npmrc"]


# =============================================================================
# NuGet
# =============================================================================


class TestNuget:
    def test_requires_token(self, tmp_path: Path) -> None:
        result = NugetTarget.create(
            _config("nuget"), _store(tmp_path), _ctx(), project=PROJECT, environ={}
        )
        assert isinstance(result, Err)
        assert result.error.hint is not None
        assert "NUGET_API_TOKEN" in result.error.hint

    def test_pushes_package(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        recorder = Recorder()
        monkeypatch.setattr(nuget_mod, "run_process", recorder)
        created = NugetTarget.create(
            _config("nuget"),
            _store(tmp_path),
            _ctx(),
            project=PROJECT,
            environ={"NUGET_API_TOKEN": "nuget-secret"},
        )
        assert isinstance(created, Ok)

        result = asyncio.run(created.value.publish("1.0.0", SHA))

        assert result == Ok("published")
        assert recorder.calls[0]["cmd"] == [
            "dotnet",
            "nuget",
            "push",
            str(tmp_path / "Pkg.1.0.0.nupkg"),
            "--api-key",
            "nuget-secret",
            "--source",
            "https://api.nuget.org/v3/index.json",
        ]

    def test_custom_source(self, tmp_path: Path) -> None:
        created = NugetTarget.create(
            _config("nuget", source="https://nuget.example.com/v3/index.json"),
            _store(tmp_path),
            _ctx(),
            project=PROJECT,
            environ={"NUGET_API_TOKEN": "t", "DOTNET_BIN": "/opt/dotnet"},
        )
        assert isinstance(created, Ok)
        assert created.value.source == "https://nuget.example.com/v3/index.json"
        assert created.value.dotnet_bin == "/opt/dotnet"

"""Tests for targets/github.py."""

from __future__ import annotations

import asyncio
from pathlib import Path

from relay.core.config import GithubConfig, ProjectConfig, TargetConfig
from relay.core.context import RunContext
from relay.core.errors import ReleaseError
from relay.core.result import Err, Ok, Result
from relay.github.client import GithubRelease
from relay.output.console import MockConsole
from relay.stores.model import Artifact, RevisionInfo
from relay.stores.store import ArtifactStore
from relay.targets.github import GithubTarget

SHA = "a" * 40
CHANGELOG = "# Changelog\n\n## 1.0.0\n\nFixed bug X.\n\n## 0.9.0\n\n- Initial release\n"


class FakeStoreClient:
    def __init__(self, artifacts: list[Artifact]) -> None:
        self.artifacts = artifacts
        self.downloads: list[str] = []

    async def list_artifacts_for_revision(
        self, owner: str, repo: str, revision: str
    ) -> Result[list[Artifact], ReleaseError]:
        return Ok(list(self.artifacts))

    async def download_artifact(
        self, artifact: Artifact, directory: Path
    ) -> Result[Path, ReleaseError]:
        self.downloads.append(artifact.name)
        path = directory / artifact.name
        path.write_bytes(b"x" * 10)
        return Ok(path)

    async def get_revision(
        self, owner: str, repo: str, revision: str
    ) -> Result[RevisionInfo, ReleaseError]:
        return Ok(RevisionInfo(status="finished", result="passed"))


class FakeGithub:
    """Stateful stand-in for GithubClient: created releases become visible."""

    def __init__(self, changelog: str | None = CHANGELOG) -> None:
        self.changelog = changelog
        self.releases: dict[str, GithubRelease] = {}
        self.lookups: list[str] = []
        self.created: list[dict[str, object]] = []
        self.uploads: list[tuple[str, str]] = []

    async def get_release_by_tag(
        self, owner: str, repo: str, tag: str
    ) -> Result[GithubRelease, ReleaseError]:
        self.lookups.append(tag)
        await asyncio.sleep(0)
        release = self.releases.get(tag)
        if release is None:
            return Err(ReleaseError(kind="not_found", message=f"no release for {tag}"))
        return Ok(release)

    async def get_file(
        self, owner: str, repo: str, path: str, ref: str
    ) -> Result[str | None, ReleaseError]:
        return Ok(self.changelog)

    async def create_release(
        self,
        owner: str,
        repo: str,
        *,
        tag: str,
        target_commitish: str,
        name: str,
        body: str = "",
        draft: bool = False,
        prerelease: bool = False,
    ) -> Result[GithubRelease, ReleaseError]:
        self.created.append(
            {
                "tag": tag,
                "target_commitish": target_commitish,
                "name": name,
                "body": body,
                "prerelease": prerelease,
            }
        )
        release = GithubRelease(
            id=len(self.created),
            tag_name=tag,
            upload_url=f"https://uploads.example.com/{tag}/assets{{?name,label}}",
        )
        self.releases[tag] = release
        return Ok(release)

    async def upload_asset(
        self, release: GithubRelease, *, name: str, path: Path, content_type: str
    ) -> Result[None, ReleaseError]:
        self.uploads.append((name, content_type))
        return Ok(None)


def _project(tag_prefix: str = "") -> ProjectConfig:
    return ProjectConfig(github=GithubConfig(owner="acme", repo="widget"), tag_prefix=tag_prefix)


def _target(
    tmp_path: Path,
    github: FakeGithub,
    artifacts: list[Artifact],
    *,
    dry_run: bool = False,
    project: ProjectConfig | None = None,
    options: dict[str, object] | None = None,
) -> tuple[GithubTarget, MockConsole]:
    console = MockConsole()
    ctx = RunContext(console=console, dry_run=dry_run)
    store = ArtifactStore(FakeStoreClient(artifacts), "acme", "widget", tmp_path)
    config = TargetConfig(name="github", options={"name": "github", **(options or {})})
    created = GithubTarget.create(
        config,
        store,
        ctx,
        project=project or _project(),
        environ={},
        github=github,  # type: ignore[arg-type]
    )
    assert isinstance(created, Ok)
    return created.value, console


ARTIFACTS = [
    Artifact(name="widget-1.0.0.tar.gz", download_url="/dl/1", type="application/gzip"),
    Artifact(name="widget-1.0.0.whl", download_url="/dl/2"),
]


# =============================================================================
# Release lookup / creation
# =============================================================================


class TestGetOrCreateRelease:
    def test_creates_release_with_changelog_notes(self, tmp_path: Path) -> None:
        github = FakeGithub()
        target, _ = _target(tmp_path, github, ARTIFACTS)

        result = asyncio.run(target.get_or_create_release("1.0.0", SHA))

        assert isinstance(result, Ok)
        assert result.value.tag_name == "1.0.0"
        assert github.created == [
            {
                "tag": "1.0.0",
                "target_commitish": SHA,
                "name": "1.0.0",
                "body": "Fixed bug X.",
                "prerelease": False,
            }
        ]

    def test_concurrent_calls_create_once(self, tmp_path: Path) -> None:
        github = FakeGithub()
        target, _ = _target(tmp_path, github, ARTIFACTS)

        async def scenario() -> list[Result[GithubRelease, ReleaseError]]:
            return list(
                await asyncio.gather(
                    target.get_or_create_release("1.0.0", SHA),
                    target.get_or_create_release("1.0.0", SHA),
                    target.get_or_create_release("1.0.0", SHA),
                )
            )

        results = asyncio.run(scenario())

        assert len(github.created) == 1
        assert len({r.value.id for r in results if isinstance(r, Ok)}) == 1

    def test_existing_release_reused(self, tmp_path: Path) -> None:
        github = FakeGithub()
        github.releases["1.0.0"] = GithubRelease(id=7, tag_name="1.0.0", upload_url="u")
        target, _ = _target(tmp_path, github, ARTIFACTS)

        result = asyncio.run(target.get_or_create_release("1.0.0", SHA))

        assert isinstance(result, Ok)
        assert result.value.id == 7
        assert github.created == []

    def test_missing_changelog_entry(self, tmp_path: Path) -> None:
        github = FakeGithub(changelog=None)
        target, _ = _target(tmp_path, github, ARTIFACTS)

        asyncio.run(target.get_or_create_release("1.0.0", SHA))

        assert github.created[0]["name"] == "1.0.0"
        assert github.created[0]["body"] == ""

    def test_prerelease_flag(self, tmp_path: Path) -> None:
        github = FakeGithub()
        target, _ = _target(tmp_path, github, ARTIFACTS)
        asyncio.run(target.get_or_create_release("2.0.0-rc.1", SHA))
        assert github.created[0]["prerelease"] is True

    def test_dry_run_does_not_create(self, tmp_path: Path) -> None:
        github = FakeGithub()
        target, console = _target(tmp_path, github, ARTIFACTS, dry_run=True)

        result = asyncio.run(target.get_or_create_release("1.0.0", SHA))

        assert isinstance(result, Ok)
        assert result.value.tag_name == "1.0.0"
        assert github.created == []
        assert console.find("[dry-run] Not creating a release for 1.0.0")


# =============================================================================
# Publish
# =============================================================================


class TestPublish:
    def test_uploads_every_artifact(self, tmp_path: Path) -> None:
        github = FakeGithub()
        target, _ = _target(tmp_path, github, ARTIFACTS)

        result = asyncio.run(target.publish("1.0.0", SHA))

        assert result == Ok("published")
        assert sorted(github.uploads) == [
            ("widget-1.0.0.tar.gz", "application/gzip"),
            ("widget-1.0.0.whl", "application/octet-stream"),
        ]

    def test_tag_prefix(self, tmp_path: Path) -> None:
        github = FakeGithub()
        target, _ = _target(tmp_path, github, ARTIFACTS, project=_project(tag_prefix="v"))

        asyncio.run(target.publish("1.0.0", SHA))

        assert github.created[0]["tag"] == "v1.0.0"
        assert github.created[0]["body"] == "Fixed bug X."

    def test_dry_run_makes_no_mutating_calls(self, tmp_path: Path) -> None:
        github = FakeGithub()
        target, _ = _target(tmp_path, github, ARTIFACTS, dry_run=True)

        result = asyncio.run(target.publish("1.0.0", SHA))

        assert result == Ok("published")
        assert github.created == []
        assert github.uploads == []

    def test_skips_when_nothing_matches(self, tmp_path: Path) -> None:
        github = FakeGithub()
        target, console = _target(
            tmp_path, github, ARTIFACTS, options={"include_files": r"\.dmg$"}
        )

        result = asyncio.run(target.publish("1.0.0", SHA))

        assert result == Ok("skipped")
        assert console.has_warning()
        assert github.lookups == []

    def test_exclude_filter(self, tmp_path: Path) -> None:
        github = FakeGithub()
        target, _ = _target(tmp_path, github, ARTIFACTS, options={"exclude_files": r"\.whl$"})

        asyncio.run(target.publish("1.0.0", SHA))

        assert [name for name, _ in github.uploads] == ["widget-1.0.0.tar.gz"]


def test_create_without_token(tmp_path: Path) -> None:
    ctx = RunContext(console=MockConsole())
    store = ArtifactStore(FakeStoreClient([]), "acme", "widget", tmp_path)

    result = GithubTarget.create(
        TargetConfig(name="github", options={"name": "github"}),
        store,
        ctx,
        project=_project(),
        environ={},
    )

    assert isinstance(result, Err)
    assert result.error.kind == "configuration"

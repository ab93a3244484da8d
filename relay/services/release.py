"""Release branch preparation.

``run_release`` walks a strictly forward state machine:

    init -> changelog_checked -> git_state_validated -> branch_created
         -> pre_release_run -> committed -> pushed -> (done | publishing -> done)

Every mutating step consults ``RunContext.should_perform()`` first; under
dry-run the step logs what it would do and the run still reaches the same
terminal state.
"""

from __future__ import annotations

import asyncio
import os
import shlex
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Literal

from relay.core.config import CHANGELOG_POLICIES, ProjectConfig
from relay.core.context import RunContext
from relay.core.errors import ReleaseError
from relay.core.result import Err, Ok, Result
from relay.git.repository import GitClient, GitError
from relay.github.client import GithubClient
from relay.platform.process import run_live
from relay.services.changes import find_changeset
from relay.services.fsm import run_state_machine

SLEEP_BEFORE_PUBLISH_SECONDS = 30
DEFAULT_BUMP_VERSION_PATH = "scripts/bump-version.sh"
NEW_VERSION_ENV = "RELAY_NEW_VERSION"
OLD_VERSION_ENV = "RELAY_OLD_VERSION"
RELEASE_REMOTE = "origin"

ReleaseState = Literal[
    "init",
    "changelog_checked",
    "git_state_validated",
    "branch_created",
    "pre_release_run",
    "committed",
    "pushed",
    "publishing",
    "done",
]

RELEASE_STATES: tuple[ReleaseState, ...] = (
    "init",
    "changelog_checked",
    "git_state_validated",
    "branch_created",
    "pre_release_run",
    "committed",
    "pushed",
    "publishing",
    "done",
)

PublishRunner = Callable[[str], Awaitable[Result[object, ReleaseError]]]
Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class ReleaseOptions:
    new_version: str
    no_push: bool = False
    no_git_checks: bool = False
    no_changelog: bool = False
    publish: bool = False


@dataclass(frozen=True, slots=True)
class ReleaseSession:
    version: str
    state: ReleaseState = "init"
    branch: str | None = None


def release_branch_name(version: str) -> str:
    return f"release/{version}"


def _git_failure(e: GitError, what: str) -> ReleaseError:
    return ReleaseError(kind="transport", message=f"{what}: {e.message}", hint=f"git {e.command}")


# =============================================================================
# Steps
# =============================================================================


def check_changelog(
    ctx: RunContext,
    *,
    root: Path,
    version: str,
    policy: str,
    changelog: str,
) -> Result[None, ReleaseError]:
    """Verify the changelog has an entry for ``version`` when the policy asks for it."""
    console = ctx.console
    if policy not in CHANGELOG_POLICIES:
        return Err(
            ReleaseError(kind="configuration", message=f'Invalid changelog policy: "{policy}"')
        )
    if policy == "none":
        console.info(f'Changelog policy is set to "{policy}", nothing to do.')
        return Ok(None)

    console.info("Checking the changelog...")
    console.debug(f'Changelog policy: "{policy}".')
    base = root.resolve()
    path = (base / changelog).resolve()
    if Path(changelog).is_absolute() or not path.is_relative_to(base):
        return Err(
            ReleaseError(kind="configuration", message=f'Invalid changelog path: "{changelog}"')
        )
    if not path.is_file():
        return Err(
            ReleaseError(kind="precondition", message=f'Changelog does not exist: "{changelog}"')
        )

    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        return Err(ReleaseError(kind="precondition", message=f"Cannot read changelog: {e}"))

    console.debug(f"Changelog path: {path}")
    changeset = find_changeset(text, version)
    if changeset is None or not changeset.body:
        return Err(
            ReleaseError(
                kind="precondition",
                message=f'No changelog entry found for version "{version}"',
                hint=f"Add a non-empty '## {version}' section to {changelog}.",
            )
        )
    console.debug(f'Changelog entry found:\n"""\n{changeset.body}\n"""')
    return Ok(None)


async def resolve_default_branch(
    project: ProjectConfig, github: GithubClient | None
) -> Result[str, ReleaseError]:
    if project.default_branch is not None:
        return Ok(project.default_branch)
    if github is None:
        return Err(
            ReleaseError(
                kind="configuration",
                message="Cannot determine the default branch",
                hint="Set default_branch in .relay.toml or export GITHUB_API_TOKEN.",
            )
        )
    return await github.get_default_branch(project.github.owner, project.github.repo)


async def check_git_state(
    ctx: RunContext, git: GitClient, default_branch: str
) -> Result[None, ReleaseError]:
    """Refuse to release from anything but a clean, pushed default branch."""
    ctx.console.info("Checking the local repository status...")
    if not await git.check_is_repo():
        return Err(ReleaseError(kind="precondition", message="Not a git repository!"))

    status = await git.status()
    if isinstance(status, Err):
        return Err(_git_failure(status.error, "Cannot read repository status"))
    st = status.value
    ctx.console.debug(
        f"Repository status: branch={st.branch} ahead={st.ahead} entries={len(st.entries)}"
    )

    if st.branch != default_branch:
        return Err(
            ReleaseError(
                kind="precondition",
                message=f"Please switch to your default branch ({default_branch}) first",
                hint=f"current branch: {st.branch}",
            )
        )
    if st.is_dirty:
        return Err(
            ReleaseError(
                kind="precondition",
                message="Your repository is in a dirty state. "
                "Please stash or commit the pending changes.",
            )
        )
    if st.ahead > 0:
        return Err(
            ReleaseError(
                kind="precondition",
                message="Your repository has unpushed changes: "
                f"the current branch is {st.ahead} commits ahead.",
            )
        )
    return Ok(None)


async def create_release_branch(
    ctx: RunContext, git: GitClient, version: str
) -> Result[str, ReleaseError]:
    branch = release_branch_name(version)
    head = await git.revparse(branch)
    if isinstance(head, Err):
        return Err(_git_failure(head.error, f"Cannot check branch {branch}"))
    if head.value:
        return Err(ReleaseError(kind="precondition", message=f"Branch already exists: {branch}"))

    if not ctx.should_perform():
        ctx.skip("Not creating a new release branch")
        return Ok(branch)

    created = await git.checkout_local_branch(branch)
    if isinstance(created, Err):
        return Err(_git_failure(created.error, f"Cannot create branch {branch}"))
    ctx.console.info(f"Created a new release branch: {branch}")
    return Ok(branch)


def pre_release_command_args(
    command: str | None, version: str
) -> Result[list[str] | None, ReleaseError]:
    """argv for the pre-release hook; None when it is explicitly disabled."""
    if command == "":
        return Ok(None)
    if command is None:
        args = ["bash", DEFAULT_BUMP_VERSION_PATH]
    else:
        try:
            args = shlex.split(command)
        except ValueError as e:
            return Err(
                ReleaseError(
                    kind="configuration",
                    message=f"Invalid pre_release_command: {e}",
                    hint=command,
                )
            )
    return Ok([*args, "", version])


async def run_pre_release_command(
    ctx: RunContext,
    *,
    root: Path,
    version: str,
    command: str | None,
    environ: Mapping[str, str] | None = None,
) -> Result[None, ReleaseError]:
    """Run the version bump hook as ``<command> "" <version>``."""
    args = pre_release_command_args(command, version)
    if isinstance(args, Err):
        return args
    if args.value is None:
        ctx.console.warning("Not running the pre-release command: no command specified")
        return Ok(None)

    if not ctx.should_perform():
        ctx.skip(f"Not running the pre-release command: {shlex.join(args.value)}")
        return Ok(None)

    ctx.console.info("Running the pre-release command...")
    env = dict(os.environ if environ is None else environ)
    env[NEW_VERSION_ENV] = version
    env[OLD_VERSION_ENV] = ""
    result = await run_live(args.value, cwd=root, env=env)
    if isinstance(result, Err):
        return Err(
            ReleaseError(
                kind="transport",
                message=f"Pre-release command failed: {result.error}",
                hint=shlex.join(args.value),
            )
        )
    return Ok(None)


async def commit_new_version(
    ctx: RunContext, git: GitClient, version: str
) -> Result[None, ReleaseError]:
    message = f"release: {version}"
    status = await git.status()
    if isinstance(status, Err):
        return Err(_git_failure(status.error, "Cannot read repository status"))

    st = status.value
    if not (st.created or st.modified or st.deleted or st.renamed or st.staged):
        if not ctx.should_perform():
            # The hook did not run, so there is nothing to look at.
            ctx.skip("Nothing to commit yet, the pre-release command was skipped")
            return Ok(None)
        return Err(
            ReleaseError(
                kind="precondition",
                message="Nothing to commit: has the pre-release command done its job?",
            )
        )

    ctx.console.info("Committing the release changes...")
    ctx.console.debug(f'Commit message: "{message}"')
    if not ctx.should_perform():
        ctx.skip("Not committing the changes.")
        return Ok(None)

    committed = await git.commit(message, all_files=True)
    if isinstance(committed, Err):
        return Err(_git_failure(committed.error, "Cannot commit the release changes"))
    return Ok(None)


async def push_release_branch(
    ctx: RunContext, git: GitClient, branch: str, *, push: bool = True
) -> Result[None, ReleaseError]:
    console = ctx.console
    if not push:
        console.info("Not pushing the release branch.")
        console.info(
            "You can push this branch later using the following command:\n"
            f'  $ git push -u {RELEASE_REMOTE} "{branch}"'
        )
        return Ok(None)

    console.info(f'Pushing the release branch "{branch}"...')
    if not ctx.should_perform():
        ctx.skip("Not pushing the release branch.")
        return Ok(None)

    pushed = await git.push(RELEASE_REMOTE, branch, set_upstream=True)
    if isinstance(pushed, Err):
        return Err(_git_failure(pushed.error, f"Cannot push {branch}"))
    return Ok(None)


async def exec_publish(
    ctx: RunContext,
    version: str,
    publish: PublishRunner,
    *,
    sleep: Sleep = asyncio.sleep,
) -> Result[None, ReleaseError]:
    """Hand off to the publish pipeline after the branch was pushed."""
    console = ctx.console
    console.info('Running the "publish" command...')
    console.info(f"Sleeping for {SLEEP_BEFORE_PUBLISH_SECONDS} seconds before publishing...")
    if ctx.should_perform():
        await sleep(SLEEP_BEFORE_PUBLISH_SECONDS)
    else:
        ctx.skip("Not wasting time on sleep")

    result = await publish(version)
    if isinstance(result, Err):
        console.error(result.error.pretty())
        console.error(
            'There was an error running "publish". '
            "Fix the issue and run the command manually:\n"
            f"  $ relay publish {version}"
        )
        return Err(
            ReleaseError(
                kind="publish_failed",
                message=f"Publishing {version} failed: {result.error.message}",
                hint=f"relay publish {version}",
            )
        )
    return Ok(None)


# =============================================================================
# Orchestration
# =============================================================================


async def run_release(
    options: ReleaseOptions,
    ctx: RunContext,
    *,
    root: Path,
    project: ProjectConfig,
    git: GitClient,
    github: GithubClient | None = None,
    publish: PublishRunner | None = None,
    sleep: Sleep = asyncio.sleep,
    environ: Mapping[str, str] | None = None,
) -> Result[ReleaseSession, ReleaseError]:
    """Prepare (and optionally publish) the release of ``options.new_version``."""
    console = ctx.console
    version = options.new_version
    if ctx.dry_run:
        ctx.skip("Dry-run mode is on!")

    async def changelog_step(s: ReleaseSession) -> Result[ReleaseSession, ReleaseError]:
        checked = check_changelog(
            ctx,
            root=root,
            version=version,
            policy="none" if options.no_changelog else project.changelog_policy,
            changelog=project.changelog,
        )
        if isinstance(checked, Err):
            return checked
        return Ok(replace(s, state="changelog_checked"))

    async def git_state_step(s: ReleaseSession) -> Result[ReleaseSession, ReleaseError]:
        if options.no_git_checks:
            console.warning("Not checking the status of the local repository")
            return Ok(replace(s, state="git_state_validated"))

        branch = await resolve_default_branch(project, github)
        if isinstance(branch, Err):
            return branch
        console.debug(f"Default branch for the repo: {branch.value}")
        checked = await check_git_state(ctx, git, branch.value)
        if isinstance(checked, Err):
            return checked
        return Ok(replace(s, state="git_state_validated"))

    async def branch_step(s: ReleaseSession) -> Result[ReleaseSession, ReleaseError]:
        console.info(f"Preparing to release the version: {version}")
        branch = await create_release_branch(ctx, git, version)
        if isinstance(branch, Err):
            return branch
        return Ok(replace(s, state="branch_created", branch=branch.value))

    async def hook_step(s: ReleaseSession) -> Result[ReleaseSession, ReleaseError]:
        ran = await run_pre_release_command(
            ctx,
            root=root,
            version=version,
            command=project.pre_release_command,
            environ=environ,
        )
        if isinstance(ran, Err):
            return ran
        return Ok(replace(s, state="pre_release_run"))

    async def commit_step(s: ReleaseSession) -> Result[ReleaseSession, ReleaseError]:
        committed = await commit_new_version(ctx, git, version)
        if isinstance(committed, Err):
            return committed
        return Ok(replace(s, state="committed"))

    async def push_step(s: ReleaseSession) -> Result[ReleaseSession, ReleaseError]:
        pushed = await push_release_branch(
            ctx, git, s.branch or release_branch_name(version), push=not options.no_push
        )
        if isinstance(pushed, Err):
            return pushed
        return Ok(replace(s, state="pushed"))

    async def handoff_step(s: ReleaseSession) -> Result[ReleaseSession, ReleaseError]:
        if not options.publish:
            console.success(f"Release branch for {version} is ready")
            return Ok(replace(s, state="done"))
        if publish is None:
            return Err(ReleaseError(kind="invalid_input", message="no publish runner configured"))
        return Ok(replace(s, state="publishing"))

    async def publish_step(s: ReleaseSession) -> Result[ReleaseSession, ReleaseError]:
        assert publish is not None
        published = await exec_publish(ctx, version, publish, sleep=sleep)
        if isinstance(published, Err):
            return published
        return Ok(replace(s, state="done"))

    return await run_state_machine(
        initial_state=ReleaseSession(version=version),
        get_step=lambda s: s.state,
        handlers={
            "init": changelog_step,
            "changelog_checked": git_state_step,
            "git_state_validated": branch_step,
            "branch_created": hook_step,
            "pre_release_run": commit_step,
            "committed": push_step,
            "pushed": handoff_step,
            "publishing": publish_step,
        },
        order=RELEASE_STATES,
        terminal=frozenset({"done"}),
        on_transition=lambda a, b: console.debug(f"release step: {a} -> {b}"),
    )

"""Git repository abstraction.

``Repository`` wraps the git CLI for a single working tree. All operations
are coroutines returning Result types.

Usage:
    repo = Repository(Path("."))
    match await repo.status():
        case Ok(status):
            print(f"Branch: {status.branch}")
        case Err(e):
            print(f"Error: {e.message}")
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from relay.core.result import Err, Ok, Result
from relay.platform.process import ProcessError
from relay.platform.process import run as run_process

_GIT_TIMEOUT_SECONDS = 30.0
_GIT_NETWORK_TIMEOUT_SECONDS = 3 * 60.0

# Unmerged XY codes, see git-status(1).
_CONFLICT_CODES = frozenset({"DD", "AU", "UD", "UA", "DU", "AA", "UU"})

__all__ = [
    "GitClient",
    "GitError",
    "GitStatus",
    "Repository",
    "StatusEntry",
]


@dataclass(frozen=True, slots=True)
class GitError:
    """Error from a git operation.

    Attributes:
        command: The git command that failed
        message: Error message
        returncode: Process return code
    """

    command: str
    message: str
    returncode: int = 1


@dataclass(frozen=True, slots=True)
class StatusEntry:
    """A single entry in git status.

    Attributes:
        xy: Two-character status code (e.g., "M ", " M", "??")
        path: File path
    """

    xy: str
    path: str

    @property
    def is_untracked(self) -> bool:
        return self.xy == "??"

    @property
    def is_conflicted(self) -> bool:
        return self.xy in _CONFLICT_CODES

    @property
    def is_staged(self) -> bool:
        """True if the index side has a change."""
        return not self.is_untracked and not self.is_conflicted and self.xy[0] not in " !"


@dataclass(frozen=True, slots=True)
class GitStatus:
    """Parsed ``git status --porcelain=v1 -b``.

    Attributes:
        branch: Current branch name ("" when detached)
        ahead: Number of commits ahead of upstream
        entries: All status entries
    """

    branch: str
    ahead: int = 0
    entries: tuple[StatusEntry, ...] = field(default_factory=tuple)

    def _tracked(self) -> list[StatusEntry]:
        return [e for e in self.entries if not e.is_untracked and not e.is_conflicted]

    @property
    def created(self) -> list[StatusEntry]:
        return [e for e in self._tracked() if e.xy[0] == "A"]

    @property
    def modified(self) -> list[StatusEntry]:
        return [e for e in self._tracked() if "M" in e.xy]

    @property
    def deleted(self) -> list[StatusEntry]:
        return [e for e in self._tracked() if "D" in e.xy]

    @property
    def renamed(self) -> list[StatusEntry]:
        return [e for e in self._tracked() if e.xy[0] == "R"]

    @property
    def staged(self) -> list[StatusEntry]:
        return [e for e in self.entries if e.is_staged]

    @property
    def conflicted(self) -> list[StatusEntry]:
        return [e for e in self.entries if e.is_conflicted]

    @property
    def is_dirty(self) -> bool:
        """True if any tracked change or conflict exists (untracked files ignored)."""
        return bool(
            self.conflicted
            or self.created
            or self.deleted
            or self.modified
            or self.renamed
            or self.staged
        )


class GitClient(Protocol):
    """The git operations the release pipeline needs."""

    async def check_is_repo(self) -> bool: ...

    async def status(self) -> Result[GitStatus, GitError]: ...

    async def revparse(self, ref: str) -> Result[str | None, GitError]: ...

    async def checkout_local_branch(self, name: str) -> Result[None, GitError]: ...

    async def commit(self, message: str, *, all_files: bool = False) -> Result[None, GitError]: ...

    async def push(
        self, remote: str, branch: str, *, set_upstream: bool = False
    ) -> Result[None, GitError]: ...


class Repository:
    """Git CLI wrapper for the repository at ``path``."""

    def __init__(self, path: Path) -> None:
        self.path = path

    async def check_is_repo(self) -> bool:
        result = await self._run(["rev-parse", "--is-inside-work-tree"])
        return isinstance(result, Ok) and result.value.strip() == "true"

    async def status(self) -> Result[GitStatus, GitError]:
        result = await self._run(["status", "--porcelain=v1", "-b"])
        match result:
            case Err(e):
                return Err(_git_error("status", e, "git status failed"))
            case Ok(stdout):
                return Ok(parse_status(stdout))

    async def revparse(self, ref: str) -> Result[str | None, GitError]:
        """Resolve ``ref`` to a commit SHA.

        Returns:
            Ok(sha), Ok(None) if the revision is unknown, Err on other failures.
        """
        result = await self._run(["rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}"])
        match result:
            case Ok(stdout):
                return Ok(stdout.strip())
            case Err(e) if e.returncode == 1 and not e.stderr.strip():
                return Ok(None)
            case Err(e):
                return Err(_git_error("rev-parse", e, f"cannot resolve {ref}"))

    async def checkout_local_branch(self, name: str) -> Result[None, GitError]:
        result = await self._run(["checkout", "-b", name])
        if isinstance(result, Err):
            return Err(_git_error("checkout -b", result.error, f"failed to create branch {name}"))
        return Ok(None)

    async def commit(self, message: str, *, all_files: bool = False) -> Result[None, GitError]:
        args = ["commit", "-m", message]
        if all_files:
            args.append("--all")
        result = await self._run(args)
        if isinstance(result, Err):
            return Err(_git_error("commit", result.error, "commit failed"))
        return Ok(None)

    async def push(
        self, remote: str, branch: str, *, set_upstream: bool = False
    ) -> Result[None, GitError]:
        args = ["push", remote, branch]
        if set_upstream:
            args.insert(1, "--set-upstream")
        result = await self._run(args)
        if isinstance(result, Err):
            return Err(_git_error("push", result.error, f"failed to push {branch}"))
        return Ok(None)

    async def _run(self, args: list[str]) -> Result[str, ProcessError]:
        command = args[0] if args else ""
        timeout = (
            _GIT_NETWORK_TIMEOUT_SECONDS
            if command in {"fetch", "pull", "push", "clone"}
            else _GIT_TIMEOUT_SECONDS
        )
        return await run_process(
            ["git", "-C", str(self.path), *args], cwd=self.path, timeout=timeout
        )


def _git_error(command: str, e: ProcessError, fallback: str) -> GitError:
    return GitError(
        command=command,
        message=e.stderr.strip() or e.stdout.strip() or fallback,
        returncode=e.returncode,
    )


def parse_status(output: str) -> GitStatus:
    """Parse ``git status --porcelain=v1 -b`` output."""
    lines = [ln for ln in output.splitlines() if ln.strip()]
    if not lines:
        return GitStatus(branch="")

    branch_line = lines[0]
    branch = _parse_branch_line(branch_line)
    ahead = _parse_ahead(branch_line)

    entries: list[StatusEntry] = []
    for line in lines[1:]:
        if len(line) < 4:
            continue
        entries.append(StatusEntry(xy=line[:2], path=line[3:]))

    return GitStatus(branch=branch, ahead=ahead, entries=tuple(entries))


def _parse_branch_line(line: str) -> str:
    """Branch name from ## branch...upstream [info]"""
    s = line.strip()
    if s.startswith("##"):
        s = s[2:].lstrip()

    if s.startswith("HEAD (no branch)"):
        return ""
    if s.startswith("No commits yet on "):
        s = s[len("No commits yet on ") :]

    s = s.split(" [", 1)[0].strip()
    return s.split("...", 1)[0].strip()


def _parse_ahead(line: str) -> int:
    match = re.search(r"\[[^\]]*ahead\s+(\d+)", line)
    return int(match.group(1)) if match else 0

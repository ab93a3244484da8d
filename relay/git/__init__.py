"""Git operations module.

Usage:
    from relay.git import Repository

    repo = Repository(Path("/path/to/repo"))
    status = await repo.status()
"""

from relay.git.repository import (
    GitClient,
    GitError,
    GitStatus,
    Repository,
    StatusEntry,
    parse_status,
)

__all__ = [
    "GitClient",
    "GitError",
    "GitStatus",
    "Repository",
    "StatusEntry",
    "parse_status",
]

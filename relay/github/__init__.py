"""GitHub REST API access."""

from relay.github.client import GithubClient, GithubRelease, get_github_token

__all__ = ["GithubClient", "GithubRelease", "get_github_token"]

from __future__ import annotations

import asyncio
import base64
import binascii
import json
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import quote

from relay.core.errors import ErrorKind, ReleaseError
from relay.core.result import Err, Ok, Result
from relay.core.structured import as_str_dict, get_int, get_str
from relay.platform.http import HttpClient, HttpError, HttpResponse, RealHttpClient

GITHUB_API_URL = "https://api.github.com"
TOKEN_ENV_VARS = ("GITHUB_API_TOKEN", "GITHUB_TOKEN")


@dataclass(frozen=True, slots=True)
class GithubRelease:
    id: int
    tag_name: str
    upload_url: str
    html_url: str = ""


def get_github_token(environ: Mapping[str, str] | None = None) -> Result[str, ReleaseError]:
    env = os.environ if environ is None else environ
    for name in TOKEN_ENV_VARS:
        token = env.get(name, "").strip()
        if token:
            return Ok(token)
    return Err(
        ReleaseError(
            kind="configuration",
            message="GitHub: GITHUB_API_TOKEN not found in the environment",
            hint="Export GITHUB_API_TOKEN (or GITHUB_TOKEN) with repo scope.",
        )
    )


def _kind_for_status(status: int) -> ErrorKind:
    if status == 404:
        return "not_found"
    if status == 409:
        return "conflict"
    return "transport"


def _release_from_payload(obj: object, *, what: str) -> Result[GithubRelease, ReleaseError]:
    data = as_str_dict(obj)
    if data is None:
        return Err(ReleaseError(kind="transport", message=f"unexpected release payload: {what}"))

    release_id = get_int(data, "id")
    tag = get_str(data, "tag_name")
    upload_url = get_str(data, "upload_url")
    if release_id is None or tag is None or upload_url is None:
        return Err(ReleaseError(kind="transport", message=f"incomplete release payload: {what}"))

    return Ok(
        GithubRelease(
            id=release_id,
            tag_name=tag,
            upload_url=upload_url,
            html_url=get_str(data, "html_url") or "",
        )
    )


class GithubClient:
    """Minimal GitHub REST client.

    Every request runs in a worker thread. Status codes are folded into
    ``ReleaseError.kind`` (404 -> ``not_found``, 409 -> ``conflict``,
    anything else -> ``transport``) so callers never inspect raw codes.
    """

    def __init__(
        self,
        token: str,
        http: HttpClient | None = None,
        *,
        api_url: str = GITHUB_API_URL,
    ) -> None:
        self._token = token
        self._http = http or RealHttpClient()
        self.api_url = api_url.rstrip("/")

    @classmethod
    def from_env(
        cls, environ: Mapping[str, str] | None = None
    ) -> Result[GithubClient, ReleaseError]:
        token = get_github_token(environ)
        if isinstance(token, Err):
            return token
        return Ok(cls(token.value))

    def _headers(self, content_type: str | None = None) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {self._token}",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if content_type is not None:
            headers["Content-Type"] = content_type
        return headers

    async def _call(
        self,
        method: str,
        endpoint: str,
        *,
        payload: object | None = None,
    ) -> Result[HttpResponse, ReleaseError]:
        url = endpoint if endpoint.startswith("https://") else f"{self.api_url}/{endpoint}"
        body = json.dumps(payload).encode("utf-8") if payload is not None else None
        headers = self._headers("application/json" if body is not None else None)
        result = await asyncio.to_thread(
            self._http.request, method, url, headers=headers, body=body
        )
        if isinstance(result, Err):
            return Err(_to_release_error(result.error, method=method, endpoint=endpoint))
        return result

    async def _call_json(
        self, method: str, endpoint: str, *, payload: object | None = None
    ) -> Result[object, ReleaseError]:
        response = await self._call(method, endpoint, payload=payload)
        if isinstance(response, Err):
            return response
        parsed = response.value.json()
        if isinstance(parsed, Err):
            return Err(
                ReleaseError(
                    kind="transport",
                    message=f"GitHub returned invalid JSON: {parsed.error.message}",
                    hint=endpoint,
                )
            )
        return parsed

    async def get_release_by_tag(
        self, owner: str, repo: str, tag: str
    ) -> Result[GithubRelease, ReleaseError]:
        """Fetch the release for ``tag``; ``not_found`` if there is none."""
        obj = await self._call_json("GET", f"repos/{owner}/{repo}/releases/tags/{quote(tag)}")
        if isinstance(obj, Err):
            return obj
        return _release_from_payload(obj.value, what=f"{owner}/{repo}@{tag}")

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
        obj = await self._call_json(
            "POST",
            f"repos/{owner}/{repo}/releases",
            payload={
                "tag_name": tag,
                "target_commitish": target_commitish,
                "name": name,
                "body": body,
                "draft": draft,
                "prerelease": prerelease,
            },
        )
        if isinstance(obj, Err):
            return obj
        return _release_from_payload(obj.value, what=f"{owner}/{repo}@{tag}")

    async def upload_asset(
        self,
        release: GithubRelease,
        *,
        name: str,
        path: Path,
        content_type: str,
    ) -> Result[None, ReleaseError]:
        """Stream ``path`` to the release's upload URL."""
        # upload_url is a URI template: ".../assets{?name,label}"
        base = release.upload_url.split("{", 1)[0]
        url = f"{base}?name={quote(name)}"
        headers = self._headers(content_type)
        headers["Content-Length"] = str(path.stat().st_size)

        def send() -> Result[HttpResponse, HttpError]:
            with path.open("rb") as fh:
                return self._http.request("POST", url, headers=headers, body=fh)

        result = await asyncio.to_thread(send)
        if isinstance(result, Err):
            return Err(_to_release_error(result.error, method="POST", endpoint=url))
        return Ok(None)

    async def get_file(
        self, owner: str, repo: str, path: str, ref: str
    ) -> Result[str | None, ReleaseError]:
        """Read a text file from the repository at ``ref``.

        Returns:
            Ok(text), Ok(None) if the file does not exist at ``ref``.
        """
        endpoint = f"repos/{owner}/{repo}/contents/{quote(path)}?ref={quote(ref)}"
        obj = await self._call_json("GET", endpoint)
        if isinstance(obj, Err):
            if obj.error.kind == "not_found":
                return Ok(None)
            return obj

        contents = _decode_contents(obj.value, what=f"{owner}/{repo}/{path}")
        if isinstance(contents, Err):
            return contents
        return Ok(contents.value)

    async def put_file(
        self,
        owner: str,
        repo: str,
        path: str,
        *,
        content: str,
        message: str,
        branch: str | None = None,
    ) -> Result[None, ReleaseError]:
        """Create or update a file through the contents API."""
        endpoint = f"repos/{owner}/{repo}/contents/{quote(path)}"
        payload: dict[str, object] = {
            "message": message,
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
        }
        if branch is not None:
            payload["branch"] = branch

        lookup = endpoint if branch is None else f"{endpoint}?ref={quote(branch)}"
        existing = await self._call_json("GET", lookup)
        if isinstance(existing, Ok):
            data = as_str_dict(existing.value)
            sha = get_str(data, "sha") if data is not None else None
            if sha is not None:
                payload["sha"] = sha
        elif existing.error.kind != "not_found":
            return existing

        result = await self._call("PUT", endpoint, payload=payload)
        if isinstance(result, Err):
            return result
        return Ok(None)

    async def get_default_branch(self, owner: str, repo: str) -> Result[str, ReleaseError]:
        obj = await self._call_json("GET", f"repos/{owner}/{repo}")
        if isinstance(obj, Err):
            return obj
        data = as_str_dict(obj.value)
        branch = get_str(data, "default_branch") if data is not None else None
        if branch is None:
            return Err(
                ReleaseError(kind="transport", message=f"missing default_branch: {owner}/{repo}")
            )
        return Ok(branch)

    async def get_branch_head(self, owner: str, repo: str, ref: str) -> Result[str, ReleaseError]:
        obj = await self._call_json("GET", f"repos/{owner}/{repo}/commits/{quote(ref)}")
        if isinstance(obj, Err):
            return obj

        data = as_str_dict(obj.value)
        sha = get_str(data, "sha") if data is not None else None
        if sha is None or len(sha) != 40:
            return Err(
                ReleaseError(
                    kind="transport",
                    message=f"invalid sha in commit payload: {owner}/{repo}@{ref}",
                )
            )
        return Ok(sha)

    async def merge_branch(
        self, owner: str, repo: str, *, head: str, base: str
    ) -> Result[str | None, ReleaseError]:
        """Merge ``head`` into ``base``.

        Returns:
            Ok(merge commit sha), Ok(None) when there was nothing to merge,
            Err with kind ``conflict`` when the merge is not automatic.
        """
        response = await self._call(
            "POST",
            f"repos/{owner}/{repo}/merges",
            payload={"base": base, "head": head},
        )
        if isinstance(response, Err):
            return response
        if response.value.status == 204:
            return Ok(None)

        parsed = response.value.json()
        data = as_str_dict(parsed.value) if isinstance(parsed, Ok) else None
        return Ok(get_str(data, "sha") if data is not None else None)

    async def delete_branch(self, owner: str, repo: str, branch: str) -> Result[None, ReleaseError]:
        result = await self._call("DELETE", f"repos/{owner}/{repo}/git/refs/heads/{branch}")
        if isinstance(result, Err):
            return result
        return Ok(None)


def _to_release_error(error: HttpError, *, method: str, endpoint: str) -> ReleaseError:
    return ReleaseError(
        kind=_kind_for_status(error.status),
        message=f"GitHub {method} failed: {error.message}",
        hint=endpoint,
    )


def _decode_contents(obj: object, *, what: str) -> Result[str, ReleaseError]:
    data = as_str_dict(obj)
    if data is None:
        return Err(ReleaseError(kind="transport", message=f"unexpected contents payload: {what}"))

    enc = get_str(data, "encoding")
    content = get_str(data, "content")
    if enc != "base64" or content is None:
        return Err(ReleaseError(kind="transport", message=f"unexpected contents encoding: {what}"))

    try:
        raw = base64.b64decode(content, validate=False)
    except (binascii.Error, ValueError) as e:
        return Err(ReleaseError(kind="transport", message=f"failed to decode contents: {e}"))

    try:
        return Ok(raw.decode("utf-8"))
    except UnicodeDecodeError as e:
        return Err(ReleaseError(kind="transport", message=f"invalid UTF-8 in contents: {e}"))


__all__ = [
    "GITHUB_API_URL",
    "GithubClient",
    "GithubRelease",
    "get_github_token",
]

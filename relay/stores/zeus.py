"""Zeus CI artifact store client.

Zeus keeps the build outputs of every revision. relay only reads from it:
the artifact listing, the aggregated revision status, and the files.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Mapping
from pathlib import Path
from urllib.parse import quote, urljoin

from relay.core.errors import ReleaseError
from relay.core.result import Err, Ok, Result
from relay.core.structured import as_obj_list, as_str_dict, get_str
from relay.platform.http import HttpClient, HttpError, RealHttpClient
from relay.stores.model import Artifact, RevisionInfo

DEFAULT_ZEUS_URL = "https://zeus.ci/"
ZEUS_URL_ENV = "ZEUS_SERVER_URL"
ZEUS_TOKEN_ENV = "ZEUS_API_TOKEN"

# Zeus namespaces repositories by provider; relay only handles GitHub.
_PROVIDER = "gh"


class ZeusClient:
    def __init__(
        self,
        http: HttpClient | None = None,
        *,
        server_url: str = DEFAULT_ZEUS_URL,
        token: str | None = None,
    ) -> None:
        self._http = http or RealHttpClient()
        self.server_url = server_url if server_url.endswith("/") else f"{server_url}/"
        self._token = token

    @classmethod
    def from_env(
        cls, environ: Mapping[str, str] | None = None, http: HttpClient | None = None
    ) -> ZeusClient:
        env = os.environ if environ is None else environ
        return cls(
            http,
            server_url=env.get(ZEUS_URL_ENV, "").strip() or DEFAULT_ZEUS_URL,
            token=env.get(ZEUS_TOKEN_ENV, "").strip() or None,
        )

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def _revision_url(self, owner: str, repo: str, revision: str) -> str:
        return urljoin(
            self.server_url,
            f"api/repos/{_PROVIDER}/{quote(owner)}/{quote(repo)}/revisions/{quote(revision)}",
        )

    async def _get_json(self, url: str, *, what: str) -> Result[object, ReleaseError]:
        response = await asyncio.to_thread(self._http.request, "GET", url, headers=self._headers())
        if isinstance(response, Err):
            return Err(_to_release_error(response.error, what=what))
        parsed = response.value.json()
        if isinstance(parsed, Err):
            return Err(ReleaseError(kind="transport", message=f"invalid JSON from Zeus: {what}"))
        return parsed

    async def list_artifacts_for_revision(
        self, owner: str, repo: str, revision: str
    ) -> Result[list[Artifact], ReleaseError]:
        url = f"{self._revision_url(owner, repo, revision)}/artifacts"
        obj = await self._get_json(url, what=f"artifacts of {revision}")
        if isinstance(obj, Err):
            return obj

        raw = as_obj_list(obj.value)
        if raw is None:
            return Err(
                ReleaseError(kind="transport", message=f"unexpected artifacts payload: {revision}")
            )

        artifacts: list[Artifact] = []
        for item in raw:
            artifact = Artifact.from_payload(item)
            if artifact is not None:
                artifacts.append(artifact)
        return Ok(artifacts)

    async def get_revision(
        self, owner: str, repo: str, revision: str
    ) -> Result[RevisionInfo, ReleaseError]:
        obj = await self._get_json(
            self._revision_url(owner, repo, revision), what=f"revision {revision}"
        )
        if isinstance(obj, Err):
            return obj

        data = as_str_dict(obj.value)
        status = get_str(data, "status") if data is not None else None
        if data is None or status is None:
            return Err(
                ReleaseError(kind="transport", message=f"unexpected revision payload: {revision}")
            )
        return Ok(RevisionInfo(status=status, result=get_str(data, "result") or "unknown"))

    async def download_artifact(
        self, artifact: Artifact, directory: Path
    ) -> Result[Path, ReleaseError]:
        url = urljoin(self.server_url, artifact.download_url)
        dest = directory / Path(artifact.name).name
        result = await asyncio.to_thread(self._http.download, url, dest, headers=self._headers())
        if isinstance(result, Err):
            return Err(
                ReleaseError(
                    kind="transport",
                    message=f"download failed: {artifact.name}",
                    hint=str(result.error),
                )
            )
        return result


def _to_release_error(error: HttpError, *, what: str) -> ReleaseError:
    if error.status == 404:
        return ReleaseError(kind="not_found", message=f"Zeus: {what} not found")
    return ReleaseError(kind="transport", message=f"Zeus request failed: {what}", hint=str(error))

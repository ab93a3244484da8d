"""HTTP client abstraction for the GitHub and artifact store APIs.

This module provides:
- HttpClient: Protocol for HTTP operations (injectable for tests)
- RealHttpClient: Real implementation using urllib
- MockHttpClient: Mock implementation for testing

The clients are synchronous; async callers hand them to
``asyncio.to_thread`` so requests never block the event loop.
"""

from __future__ import annotations

import http.client
import json
import ssl
import urllib.error
import urllib.request
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Protocol, runtime_checkable

from relay import __version__
from relay.core.result import Err, Ok, Result

__all__ = [
    "HttpClient",
    "HttpError",
    "HttpResponse",
    "MockHttpClient",
    "RealHttpClient",
]

RequestBody = bytes | BinaryIO


@dataclass(frozen=True, slots=True)
class HttpError:
    """HTTP error details.

    Attributes:
        url: The URL that failed
        status: HTTP status code (0 for network errors)
        message: Human-readable error message
    """

    url: str
    status: int
    message: str

    def __str__(self) -> str:
        if self.status:
            return f"HTTP {self.status}: {self.message} ({self.url})"
        return f"{self.message} ({self.url})"


@dataclass(frozen=True, slots=True)
class HttpResponse:
    status: int
    body: bytes = b""

    def json(self) -> Result[object, HttpError]:
        if not self.body:
            return Ok(None)
        try:
            return Ok(json.loads(self.body.decode("utf-8")))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            return Err(HttpError(url="", status=self.status, message=f"JSON parse error: {e}"))


@runtime_checkable
class HttpClient(Protocol):
    """Protocol for HTTP operations."""

    def request(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        body: RequestBody | None = None,
    ) -> Result[HttpResponse, HttpError]:
        """Send a request; non-2xx responses are returned as HttpError."""
        ...

    def download(
        self,
        url: str,
        dest: Path,
        *,
        headers: Mapping[str, str] | None = None,
    ) -> Result[Path, HttpError]:
        """Stream ``url`` into ``dest``."""
        ...


def _error_message(e: urllib.error.HTTPError) -> str:
    try:
        raw = e.read()
    except OSError:
        raw = b""
    try:
        payload: object = json.loads(raw.decode("utf-8")) if raw else None
    except (json.JSONDecodeError, UnicodeDecodeError):
        payload = None
    if isinstance(payload, dict) and isinstance(payload.get("message"), str):
        return str(payload["message"])
    return str(e.reason)


class RealHttpClient:
    """HTTP client using urllib with system certificates."""

    def __init__(self, timeout: float = 60.0, user_agent: str = f"relay/{__version__}") -> None:
        self.timeout = timeout
        self.user_agent = user_agent
        self._ssl_context = ssl.create_default_context()

    def _build(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str] | None,
        body: RequestBody | None,
    ) -> urllib.request.Request:
        all_headers = {"User-Agent": self.user_agent, **(headers or {})}
        return urllib.request.Request(url, data=body, headers=all_headers, method=method)

    def request(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        body: RequestBody | None = None,
    ) -> Result[HttpResponse, HttpError]:
        req = self._build(method, url, headers, body)
        try:
            with urllib.request.urlopen(
                req, timeout=self.timeout, context=self._ssl_context
            ) as response:
                return Ok(HttpResponse(status=response.status, body=response.read()))
        except urllib.error.HTTPError as e:
            return Err(HttpError(url=url, status=e.code, message=_error_message(e)))
        except urllib.error.URLError as e:
            return Err(HttpError(url=url, status=0, message=str(e.reason)))
        except TimeoutError:
            return Err(HttpError(url=url, status=0, message="Request timed out"))
        except http.client.HTTPException as e:
            return Err(HttpError(url=url, status=0, message=f"Connection error: {e!r}"))
        except (ValueError, OSError) as e:
            return Err(HttpError(url=url, status=0, message=str(e)))

    def download(
        self,
        url: str,
        dest: Path,
        *,
        headers: Mapping[str, str] | None = None,
    ) -> Result[Path, HttpError]:
        req = self._build("GET", url, headers, None)
        try:
            with urllib.request.urlopen(
                req, timeout=self.timeout, context=self._ssl_context
            ) as response:
                total = int(response.headers.get("Content-Length") or 0)
                downloaded = 0
                dest.parent.mkdir(parents=True, exist_ok=True)
                with open(dest, "wb") as f:
                    while True:
                        chunk = response.read(64 * 1024)
                        if not chunk:
                            break
                        f.write(chunk)
                        downloaded += len(chunk)

                if total and downloaded != total:
                    dest.unlink(missing_ok=True)
                    return Err(
                        HttpError(
                            url=url,
                            status=0,
                            message=f"incomplete download ({downloaded} of {total} bytes)",
                        )
                    )
                return Ok(dest)
        except urllib.error.HTTPError as e:
            return Err(HttpError(url=url, status=e.code, message=_error_message(e)))
        except urllib.error.URLError as e:
            return Err(HttpError(url=url, status=0, message=str(e.reason)))
        except TimeoutError:
            return Err(HttpError(url=url, status=0, message="Download timed out"))
        except http.client.HTTPException as e:
            dest.unlink(missing_ok=True)
            return Err(HttpError(url=url, status=0, message=f"incomplete download: {e!r}"))
        except (ValueError, OSError) as e:
            return Err(HttpError(url=url, status=0, message=str(e)))


@dataclass(frozen=True, slots=True)
class RecordedCall:
    method: str
    url: str
    headers: dict[str, str]
    body: bytes | None


def _empty_calls() -> list[RecordedCall]:
    return []


@dataclass
class MockHttpClient:
    """Mock HTTP client for testing.

    Responses are keyed by ``(method, url)``; unknown keys answer 404.

    Usage:
        client = MockHttpClient()
        client.set_json("GET", "https://api.example.com/data", {"key": "value"})
    """

    calls: list[RecordedCall] = field(default_factory=_empty_calls)
    _responses: dict[tuple[str, str], HttpResponse | HttpError] = field(default_factory=dict)
    _downloads: dict[str, bytes | HttpError] = field(default_factory=dict)

    def set_response(self, method: str, url: str, response: HttpResponse | HttpError) -> None:
        self._responses[(method, url)] = response

    def set_json(self, method: str, url: str, payload: object, status: int = 200) -> None:
        body = json.dumps(payload).encode()
        self.set_response(method, url, HttpResponse(status=status, body=body))

    def set_download(self, url: str, content: bytes | HttpError) -> None:
        self._downloads[url] = content

    def request(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        body: RequestBody | None = None,
    ) -> Result[HttpResponse, HttpError]:
        raw = body if isinstance(body, bytes) or body is None else body.read()
        self.calls.append(RecordedCall(method, url, dict(headers or {}), raw))

        response = self._responses.get((method, url))
        if response is None:
            return Err(HttpError(url=url, status=404, message="Not Found (mock)"))
        if isinstance(response, HttpError):
            return Err(response)
        return Ok(response)

    def download(
        self,
        url: str,
        dest: Path,
        *,
        headers: Mapping[str, str] | None = None,
    ) -> Result[Path, HttpError]:
        self.calls.append(RecordedCall("GET", url, dict(headers or {}), None))

        content = self._downloads.get(url)
        if content is None:
            return Err(HttpError(url=url, status=404, message="Not Found (mock)"))
        if isinstance(content, HttpError):
            return Err(content)

        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(content)
        return Ok(dest)

    def calls_for(self, method: str) -> list[RecordedCall]:
        return [c for c in self.calls if c.method == method]

"""Tests for platform/http.py."""

from __future__ import annotations

import io
import threading
from collections.abc import Iterator
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

import pytest

from relay.core.result import Err, Ok
from relay.platform.http import HttpError, HttpResponse, MockHttpClient, RealHttpClient


class TestHttpResponse:
    def test_json(self) -> None:
        assert HttpResponse(status=200, body=b'{"a": 1}').json() == Ok({"a": 1})

    def test_empty_body(self) -> None:
        assert HttpResponse(status=204).json() == Ok(None)

    def test_invalid_json(self) -> None:
        result = HttpResponse(status=200, body=b"<html>").json()
        assert isinstance(result, Err)
        assert "JSON parse error" in result.error.message


class TestHttpError:
    def test_str(self) -> None:
        assert str(HttpError(url="u", status=404, message="Not Found")) == "HTTP 404: Not Found (u)"
        assert str(HttpError(url="u", status=0, message="refused")) == "refused (u)"


class TestMockHttpClient:
    def test_unknown_url_is_404(self) -> None:
        client = MockHttpClient()
        result = client.request("GET", "https://example.com/x")
        assert isinstance(result, Err)
        assert result.error.status == 404

    def test_records_calls_and_stream_bodies(self) -> None:
        client = MockHttpClient()
        client.set_json("POST", "https://example.com/x", {"ok": True}, status=201)

        result = client.request("POST", "https://example.com/x", body=io.BytesIO(b"payload"))

        assert isinstance(result, Ok)
        assert result.value.status == 201
        assert client.calls_for("POST")[0].body == b"payload"

    def test_download(self, tmp_path: Path) -> None:
        client = MockHttpClient()
        client.set_download("https://example.com/f", b"data")

        result = client.download("https://example.com/f", tmp_path / "sub" / "f")

        assert result == Ok(tmp_path / "sub" / "f")
        assert (tmp_path / "sub" / "f").read_bytes() == b"data"


# =============================================================================
# RealHttpClient against a local server
# =============================================================================


class _ArtifactHandler(BaseHTTPRequestHandler):
    """Serves ``/full`` completely and ``/short`` with fewer bytes than declared."""

    def do_GET(self) -> None:
        declared = 10 if self.path == "/full" else 1000
        self.send_response(200)
        self.send_header("Content-Length", str(declared))
        self.end_headers()
        self.wfile.write(b"0123456789")

    def log_message(self, format: str, *args: object) -> None:
        pass


@pytest.fixture
def server_url() -> Iterator[str]:
    server = ThreadingHTTPServer(("127.0.0.1", 0), _ArtifactHandler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield f"http://127.0.0.1:{server.server_address[1]}"
    finally:
        server.shutdown()
        server.server_close()


class TestRealHttpClient:
    def test_download_complete(self, server_url: str, tmp_path: Path) -> None:
        dest = tmp_path / "a.whl"

        result = RealHttpClient(timeout=5).download(f"{server_url}/full", dest)

        assert result == Ok(dest)
        assert dest.read_bytes() == b"0123456789"

    def test_truncated_download_is_an_error(self, server_url: str, tmp_path: Path) -> None:
        dest = tmp_path / "a.whl"

        result = RealHttpClient(timeout=5).download(f"{server_url}/short", dest)

        assert isinstance(result, Err)
        assert result.error.status == 0
        assert "incomplete download" in result.error.message
        assert not dest.exists()

    def test_truncated_response_is_an_error(self, server_url: str) -> None:
        result = RealHttpClient(timeout=5).request("GET", f"{server_url}/short")

        assert isinstance(result, Err)
        assert result.error.status == 0
        assert "IncompleteRead" in result.error.message

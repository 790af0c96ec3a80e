"""Unit tests for the object store HTTP client."""

import base64
import hashlib
import io
import json
import posixpath

import httpx
import pytest

import objsync.api
from objsync.api import StoreClient
from objsync.exceptions import (
    StoreAPIError,
    StoreAuthenticationError,
    StoreConfigError,
    StoreInvalidResponseError,
    StoreNetworkError,
    StoreNotFoundError,
    StorePermissionError,
)
from objsync.models import DIRECTORY_CONTENT_TYPE


def make_client(handler, **kwargs):
    """Build a client whose requests are answered by ``handler``."""
    kwargs.setdefault("retry_delay", 0)
    return StoreClient(
        url="https://store.example",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


class TestStoreClient:
    """Tests for StoreClient initialization and basic functionality."""

    def test_init_with_url(self):
        client = StoreClient(url="https://store.example/")
        assert client.url == "https://store.example"

    def test_init_from_environment(self, monkeypatch):
        monkeypatch.setenv("OBJSYNC_URL", "https://env.example")
        monkeypatch.setenv("OBJSYNC_TOKEN", "env-token")
        client = StoreClient()
        assert client.url == "https://env.example"
        assert client.token == "env-token"

    def test_init_without_url_raises_error(self, monkeypatch):
        monkeypatch.delenv("OBJSYNC_URL", raising=False)
        with pytest.raises(StoreConfigError, match="not configured"):
            StoreClient()

    def test_bearer_token_and_quoting(self):
        """Test that requests carry the token and a quoted path."""
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, headers={"Content-Length": "0"})

        with make_client(handler, token="secret") as client:
            client.head_info("/u/stor/my file.txt")

        assert seen[0].headers["Authorization"] == "Bearer secret"
        assert seen[0].url.raw_path == b"/u/stor/my%20file.txt"


class TestHeadInfo:
    """Tests for metadata lookups."""

    def test_parses_size_and_base64_md5(self):
        digest = hashlib.md5(b"hello").digest()

        def handler(request):
            assert request.method == "HEAD"
            return httpx.Response(
                200,
                headers={
                    "Content-Length": "5",
                    "Content-MD5": base64.b64encode(digest).decode(),
                    "Content-Type": "text/plain",
                },
            )

        info = make_client(handler).head_info("/u/stor/a.txt")

        assert info.size == 5
        assert info.md5 == digest.hex()
        assert info.content_type == "text/plain"
        assert not info.is_directory

    def test_directory(self):
        def handler(request):
            return httpx.Response(200, headers={"Content-Type": DIRECTORY_CONTENT_TYPE})

        assert make_client(handler).head_info("/u/stor").is_directory

    def test_not_found(self):
        """Test that a 404 without a body maps to StoreNotFoundError."""
        client = make_client(lambda request: httpx.Response(404))

        with pytest.raises(StoreNotFoundError) as exc_info:
            client.head_info("/u/stor/missing")

        assert exc_info.value.status_code == 404
        assert exc_info.value.code == "NotFoundError"

    def test_error_body_sets_code(self):
        def handler(request):
            return httpx.Response(
                403, json={"code": "AuthorizationFailed", "message": "denied"}
            )

        with pytest.raises(StorePermissionError) as exc_info:
            make_client(handler).head_info("/u/stor/x")

        assert exc_info.value.code == "AuthorizationFailed"
        assert str(exc_info.value) == "denied"

    def test_unauthorized(self):
        client = make_client(lambda request: httpx.Response(401))
        with pytest.raises(StoreAuthenticationError):
            client.head_info("/u/stor/x")


class TestRetries:
    """Tests for the retry loop in _request."""

    def test_retries_server_errors(self):
        attempts = []

        def handler(request):
            attempts.append(request)
            if len(attempts) < 3:
                return httpx.Response(503)
            return httpx.Response(200, headers={"Content-Length": "1"})

        info = make_client(handler, max_retries=3).head_info("/x")

        assert info.size == 1
        assert len(attempts) == 3

    def test_gives_up_after_max_retries(self):
        attempts = []

        def handler(request):
            attempts.append(request)
            return httpx.Response(500, json={"code": "InternalError"})

        with pytest.raises(StoreAPIError) as exc_info:
            make_client(handler, max_retries=2).head_info("/x")

        assert len(attempts) == 3
        assert exc_info.value.code == "InternalError"

    def test_rate_limit_uses_retry_after(self, monkeypatch):
        delays = []
        monkeypatch.setattr(objsync.api.time, "sleep", delays.append)
        responses = iter(
            [httpx.Response(429, headers={"Retry-After": "7"}), httpx.Response(200)]
        )

        make_client(lambda request: next(responses)).head_info("/x")

        assert delays == [7.0]

    def test_no_retry_on_client_error(self):
        attempts = []

        def handler(request):
            attempts.append(request)
            return httpx.Response(404)

        with pytest.raises(StoreNotFoundError):
            make_client(handler).head_info("/x")
        assert len(attempts) == 1

    def test_network_error(self):
        attempts = []

        def handler(request):
            attempts.append(request)
            raise httpx.ConnectError("connection refused")

        with pytest.raises(StoreNetworkError, match="connection refused"):
            make_client(handler, max_retries=1).head_info("/x")
        assert len(attempts) == 2


class TestPut:
    """Tests for uploads and directory creation."""

    def test_put_streams_body(self):
        seen = []

        def handler(request):
            request.read()
            seen.append(request)
            return httpx.Response(204)

        make_client(handler).put("/u/stor/a.txt", io.BytesIO(b"hello"), size=5)

        assert seen[0].method == "PUT"
        assert seen[0].headers["Content-Length"] == "5"
        assert seen[0].content == b"hello"

    def test_put_creates_missing_parents(self):
        """Test that a 404 on PUT creates only the missing directories."""
        dirs = {"/u", "/u/stor"}
        log = []

        def handler(request):
            request.read()
            path = request.url.path
            if request.method == "HEAD":
                log.append(("HEAD", path))
                if path in dirs:
                    return httpx.Response(
                        200, headers={"Content-Type": DIRECTORY_CONTENT_TYPE}
                    )
                return httpx.Response(404)
            is_dir = request.headers.get("Content-Type") == DIRECTORY_CONTENT_TYPE
            log.append(("MKDIR" if is_dir else "PUT", path))
            if is_dir:
                dirs.add(path)
                return httpx.Response(204)
            if posixpath.dirname(path) not in dirs:
                return httpx.Response(404, json={"code": "DirectoryDoesNotExist"})
            assert request.content == b"data"
            return httpx.Response(204)

        make_client(handler).put(
            "/u/stor/sub/deep/b.txt", io.BytesIO(b"data"), size=4
        )

        assert log == [
            ("PUT", "/u/stor/sub/deep/b.txt"),
            ("HEAD", "/u/stor/sub/deep"),
            ("HEAD", "/u/stor/sub"),
            ("HEAD", "/u/stor"),
            ("MKDIR", "/u/stor/sub"),
            ("MKDIR", "/u/stor/sub/deep"),
            ("PUT", "/u/stor/sub/deep/b.txt"),
        ]

    def test_mkdirp_never_writes_existing_ancestors(self):
        """Test that the account root and other existing directories are left alone."""
        writes = []

        def handler(request):
            if request.method == "HEAD":
                return httpx.Response(
                    200, headers={"Content-Type": DIRECTORY_CONTENT_TYPE}
                )
            writes.append(request.url.path)
            return httpx.Response(204)

        make_client(handler).mkdirp("/u/stor/existing")

        assert writes == []

    def test_mkdirp_stops_at_root(self):
        created = []

        def handler(request):
            if request.method == "HEAD":
                return httpx.Response(404)
            created.append(request.url.path)
            return httpx.Response(204)

        make_client(handler).mkdirp("/a/b")

        assert created == ["/a", "/a/b"]

    def test_put_without_mkdirs_raises(self):
        client = make_client(lambda request: httpx.Response(404))
        with pytest.raises(StoreNotFoundError):
            client.put("/u/stor/a", io.BytesIO(b"x"), size=1, mkdirs=False)

    def test_put_rewinds_stream_on_retry(self):
        bodies = []

        def handler(request):
            bodies.append(request.read())
            if len(bodies) == 1:
                return httpx.Response(502)
            return httpx.Response(204)

        make_client(handler).put("/a", io.BytesIO(b"payload"), size=7)

        assert bodies == [b"payload", b"payload"]


class TestUnlinkAndList:
    """Tests for DELETE and directory listings."""

    def test_unlink(self):
        seen = []

        def handler(request):
            seen.append((request.method, request.url.path))
            return httpx.Response(204)

        make_client(handler).unlink("/u/stor/old.txt")

        assert seen == [("DELETE", "/u/stor/old.txt")]

    def test_list_directory_paginates(self, monkeypatch):
        """Test that the repeated marker entry is skipped between pages."""
        monkeypatch.setattr(objsync.api, "LIST_PAGE_SIZE", 2)
        names = ["a", "b", "c"]
        params = []

        def handler(request):
            marker = request.url.params.get("marker")
            limit = int(request.url.params["limit"])
            params.append(marker)
            start = names.index(marker) if marker else 0
            page = names[start : start + limit]
            body = "\n".join(
                json.dumps({"name": n, "type": "object", "size": 1}) for n in page
            )
            return httpx.Response(200, text=body + "\n")

        entries = list(make_client(handler).list_directory("/u/stor"))

        assert [e.name for e in entries] == ["a", "b", "c"]
        assert params == [None, "b", "c"]

    def test_list_directory_types(self):
        body = (
            '{"name": "d", "type": "directory", "mtime": "2024-01-01T00:00:00Z"}\n'
            '{"name": "f", "type": "object", "size": 42}\n'
        )
        entries = list(
            make_client(lambda r: httpx.Response(200, text=body)).list_directory("/x")
        )

        assert entries[0].is_directory
        assert entries[1].size == 42

    def test_list_directory_invalid_line(self):
        client = make_client(lambda r: httpx.Response(200, text="not json\n"))
        with pytest.raises(StoreInvalidResponseError):
            list(client.list_directory("/x"))

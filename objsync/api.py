"""HTTP client for a hierarchical object store."""

from __future__ import annotations

import json
import logging
import posixpath
import random
import time
from collections.abc import Iterator
from typing import Any, BinaryIO
from urllib.parse import quote

import httpx

from .config import config
from .exceptions import (
    StoreAPIError,
    StoreAuthenticationError,
    StoreConfigError,
    StoreInvalidResponseError,
    StoreNetworkError,
    StoreNotFoundError,
    StorePermissionError,
    StoreRateLimitError,
)
from .models import DIRECTORY_CONTENT_TYPE, DirectoryEntry, RemoteObjectInfo
from .utils import DEFAULT_MAX_RETRIES, DEFAULT_RETRY_DELAY

logger = logging.getLogger(__name__)

# Entries requested per listing page
LIST_PAGE_SIZE = 1000


class StoreClient:
    """Client for a path-addressed object store.

    Objects and directories are addressed by absolute paths such as
    ``/user/stor/backups/a.txt``. HEAD returns object metadata, PUT writes an
    object (or creates a directory), DELETE removes one, and GET on a
    directory returns its children as newline-delimited JSON.

    The underlying ``httpx.Client`` is thread-safe, so one StoreClient can
    be shared by every worker of the sync engine.
    """

    def __init__(
        self,
        url: str | None = None,
        token: str | None = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        timeout: float = 30.0,
        max_connections: int = 100,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize the store client.

        Args:
            url: Base URL of the store (uses config if not provided)
            token: Optional bearer token (uses config if not provided)
            max_retries: Maximum number of retry attempts (default: 3)
            retry_delay: Initial delay between retries in seconds (default: 1.0)
            timeout: Request timeout in seconds (default: 30.0)
            max_connections: Connection pool size; keep it at or above the
                sync concurrency so workers do not queue on the pool
            transport: Optional httpx transport (used by tests)
        """
        self.url = (url or config.url or "").rstrip("/")
        self.token = token or config.token
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout
        self.max_connections = max_connections
        self._transport = transport

        if not self.url:
            raise StoreConfigError(
                "Store URL not configured. Please set OBJSYNC_URL environment variable."
            )

        self._client: httpx.Client | None = None

    def _get_client(self) -> httpx.Client:
        """Get or create the httpx client."""
        if self._client is None or self._client.is_closed:
            headers = {}
            if self.token:
                headers["Authorization"] = f"Bearer {self.token}"
            self._client = httpx.Client(
                headers=headers,
                timeout=httpx.Timeout(self.timeout),
                limits=httpx.Limits(max_connections=self.max_connections),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    def close(self) -> None:
        """Close the client and release connections."""
        if self._client is not None and not self._client.is_closed:
            self._client.close()
            self._client = None

    def __enter__(self) -> StoreClient:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def _url_for(self, path: str) -> str:
        """Build the request URL for a remote path."""
        return f"{self.url}/{quote(path.lstrip('/'))}"

    def _calculate_retry_delay(self, attempt: int) -> float:
        """Calculate delay before next retry using exponential backoff.

        Args:
            attempt: Current attempt number (0-based)

        Returns:
            Delay in seconds
        """
        base_delay = self.retry_delay * (2**attempt)
        # Add jitter: +/- 25% of base delay
        jitter = base_delay * 0.25 * (2 * random.random() - 1)
        return base_delay + jitter

    def _error_from_response(self, response: httpx.Response) -> StoreAPIError:
        """Map an error response to the matching exception.

        The store sends ``{"code": ..., "message": ...}`` bodies on errors;
        HEAD responses have no body, so only the status is available there.
        """
        status_code = response.status_code
        error_code: str | None = None
        message: str | None = None

        if response.content:
            try:
                body = response.json()
                if isinstance(body, dict):
                    error_code = body.get("code")
                    message = body.get("message")
            except ValueError:
                # Not a JSON error body, use the status-based message
                pass

        if status_code == 401:
            return StoreAuthenticationError(
                message or "Invalid token or unauthorized access",
                error_code or "AuthenticationError",
                status_code,
            )
        elif status_code == 403:
            return StorePermissionError(
                message or "Access forbidden - check your permissions",
                error_code or "PermissionError",
                status_code,
            )
        elif status_code == 404:
            return StoreNotFoundError(
                message or "Resource not found",
                error_code or "NotFoundError",
                status_code,
            )
        elif status_code == 429:
            return StoreRateLimitError(
                message or "Rate limit exceeded - please try again later",
                error_code or "RateLimitError",
                status_code,
            )

        error_msg = f"Request failed with status {status_code}"
        if message:
            error_msg = f"{error_msg}: {message}"
        return StoreAPIError(error_msg, error_code or f"HTTP{status_code}", status_code)

    def _should_retry(self, error: StoreAPIError, attempt: int) -> bool:
        """Determine if a request should be retried.

        Args:
            error: The mapped exception
            attempt: Current attempt number (0-based)

        Returns:
            True if the request should be retried, False otherwise
        """
        if attempt >= self.max_retries:
            return False

        # Network errors and throttling are transient
        if isinstance(error, (StoreNetworkError, StoreRateLimitError)):
            return True

        # Retry on server errors (5xx status codes)
        if error.status_code is not None and 500 <= error.status_code < 600:
            return True

        # Don't retry on client errors (authentication, not found, etc.)
        return False

    def _request(
        self,
        method: str,
        path: str,
        rewind: BinaryIO | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Make a request with retry logic.

        Args:
            method: HTTP method
            path: Remote path
            rewind: Seekable body that must be rewound before each retry
            **kwargs: Additional arguments passed to httpx

        Returns:
            The successful response

        Raises:
            StoreAPIError: If the request fails after all retries
        """
        url = self._url_for(path)
        client = self._get_client()
        start = rewind.tell() if rewind is not None else 0

        for attempt in range(self.max_retries + 1):
            if rewind is not None and attempt > 0:
                rewind.seek(start)
            try:
                response = client.request(method, url, **kwargs)
            except httpx.RequestError as e:
                error: StoreAPIError = StoreNetworkError(
                    f"Network error: {e}", "NetworkError"
                )
                if self._should_retry(error, attempt):
                    delay = self._calculate_retry_delay(attempt)
                    logger.debug(
                        "%s %s failed (%s), retrying in %.1fs", method, path, e, delay
                    )
                    time.sleep(delay)
                    continue
                raise error from e

            if response.is_success:
                return response

            error = self._error_from_response(response)
            if not self._should_retry(error, attempt):
                raise error

            # Special handling for rate limits: use Retry-After header
            retry_after = response.headers.get("Retry-After")
            is_rate_limit = isinstance(error, StoreRateLimitError)
            if is_rate_limit and retry_after and retry_after.isdigit():
                delay = float(retry_after)
            else:
                delay = self._calculate_retry_delay(attempt)
            logger.debug(
                "%s %s returned %d, retrying in %.1fs",
                method,
                path,
                response.status_code,
                delay,
            )
            time.sleep(delay)

        raise StoreAPIError("Request failed after all retry attempts")

    # =========================
    # Object Operations
    # =========================

    def head_info(self, path: str) -> RemoteObjectInfo:
        """Fetch metadata for a remote path.

        Args:
            path: Remote path of the object

        Returns:
            RemoteObjectInfo with size and content MD5 (if reported)

        Raises:
            StoreNotFoundError: If nothing exists at the path
            StoreAPIError: On any other failure
        """
        response = self._request("HEAD", path)
        return RemoteObjectInfo.from_headers(path, response.headers)

    def put(
        self,
        path: str,
        stream: BinaryIO,
        size: int,
        mkdirs: bool = True,
        content_type: str = "application/octet-stream",
    ) -> None:
        """Upload an object.

        Args:
            path: Remote path of the object
            stream: Binary file object positioned at the start of the payload
            size: Payload size in bytes, sent as Content-Length
            mkdirs: Create missing parent directories and retry once
            content_type: Content type stored with the object

        Raises:
            StoreAPIError: If the upload fails
        """
        headers = {"Content-Length": str(size), "Content-Type": content_type}
        start = stream.tell()
        try:
            self._request("PUT", path, rewind=stream, content=stream, headers=headers)
        except StoreNotFoundError:
            if not mkdirs:
                raise
            logger.debug("Parent of %s missing, creating it", path)
            self.mkdirp(posixpath.dirname(path))
            stream.seek(start)
            self._request("PUT", path, rewind=stream, content=stream, headers=headers)

    def mkdir(self, path: str) -> None:
        """Create a single directory (no error if it already exists)."""
        self._request(
            "PUT",
            path,
            headers={"Content-Type": DIRECTORY_CONTENT_TYPE},
        )

    def mkdirp(self, path: str) -> None:
        """Create a directory and all of its missing parents.

        Walks up with HEAD until an existing directory is found, then
        creates the missing ones top-down. Existing ancestors (the account
        root in particular) are never written to.

        Raises:
            StoreAPIError: If a lookup or a directory creation fails
        """
        missing: list[str] = []
        current = posixpath.normpath(path) if path else "/"
        while current not in ("/", "."):
            try:
                self.head_info(current)
            except StoreNotFoundError:
                missing.append(current)
                current = posixpath.dirname(current)
                continue
            break

        for directory in reversed(missing):
            logger.debug("Creating directory %s", directory)
            self.mkdir(directory)

    def unlink(self, path: str) -> None:
        """Delete an object or an empty directory.

        Raises:
            StoreAPIError: If the delete fails
        """
        self._request("DELETE", path)

    def list_directory(self, path: str) -> Iterator[DirectoryEntry]:
        """List the children of a remote directory.

        Pages through the listing with ``limit``/``marker``. The store
        repeats the marker entry at the start of each following page; it is
        skipped.

        Args:
            path: Remote directory path

        Yields:
            DirectoryEntry for each child

        Raises:
            StoreAPIError: If any page fails to load
        """
        marker: str | None = None

        while True:
            params: dict[str, Any] = {"limit": LIST_PAGE_SIZE}
            if marker is not None:
                params["marker"] = marker
            response = self._request("GET", path, params=params)

            count = 0
            last_name: str | None = None
            for line in response.text.splitlines():
                if not line.strip():
                    continue
                try:
                    entry = DirectoryEntry.from_api_response(json.loads(line))
                except (ValueError, KeyError) as e:
                    raise StoreInvalidResponseError(
                        f"Invalid listing entry for {path}: {line[:80]}",
                        "InvalidResponse",
                    ) from e
                count += 1
                last_name = entry.name
                if marker is not None and entry.name == marker:
                    continue
                yield entry

            if count < LIST_PAGE_SIZE or last_name is None or last_name == marker:
                break
            marker = last_name

"""Exceptions raised by objsync."""

from typing import Optional


class ObjSyncError(Exception):
    """Base exception for all objsync errors."""


class StoreAPIError(ObjSyncError):
    """An object store request failed.

    Attributes:
        error_code: Error code reported by the store (e.g. ``ResourceNotFound``)
        status_code: HTTP status code, if the failure came from a response
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.error_code = error_code
        self.status_code = status_code

    @property
    def code(self) -> str:
        """Error code, falling back to the exception class name."""
        return self.error_code or type(self).__name__


class StoreConfigError(StoreAPIError):
    """The store client is missing required configuration."""


class StoreAuthenticationError(StoreAPIError):
    """The store rejected our credentials (HTTP 401)."""


class StorePermissionError(StoreAPIError):
    """The store denied access to a path (HTTP 403)."""


class StoreNotFoundError(StoreAPIError):
    """The requested path does not exist (HTTP 404)."""


class StoreRateLimitError(StoreAPIError):
    """The store is throttling requests (HTTP 429)."""


class StoreNetworkError(StoreAPIError):
    """The request never produced a response."""


class StoreInvalidResponseError(StoreAPIError):
    """The store returned a body we could not parse."""


class SyncError(ObjSyncError):
    """Base class for errors raised by the sync engine."""


class EnumerationError(SyncError):
    """Listing a local or remote tree failed."""


class RemoteEnumerationError(EnumerationError):
    """Listing the remote tree failed; the partial result is unusable."""

    def __init__(self, path: str, cause: Exception):
        code = cause.code if isinstance(cause, StoreAPIError) else str(cause)
        super().__init__(f"error listing remote files under {path}: {code}")
        self.path = path
        self.cause = cause


class MetadataError(SyncError):
    """Fetching remote metadata failed with anything other than not-found."""

    def __init__(
        self,
        path: str,
        cause: Optional[Exception] = None,
        message: Optional[str] = None,
    ):
        if message is None:
            code = cause.code if isinstance(cause, StoreAPIError) else str(cause)
            message = f"unknown error: {code}"
        super().__init__(message)
        self.path = path
        self.cause = cause


class LocalReadError(SyncError):
    """A local file could not be read."""

    def __init__(self, path: str, cause: OSError):
        super().__init__(f"read error: {cause.strerror or cause}")
        self.path = path
        self.cause = cause


class TransferError(SyncError):
    """Uploading or deleting a single object failed."""

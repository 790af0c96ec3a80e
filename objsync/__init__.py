"""objsync - one-way directory sync to a hierarchical object store."""

from .api import StoreClient
from .exceptions import (
    EnumerationError,
    LocalReadError,
    MetadataError,
    ObjSyncError,
    RemoteEnumerationError,
    StoreAPIError,
    StoreAuthenticationError,
    StoreConfigError,
    StoreInvalidResponseError,
    StoreNetworkError,
    StoreNotFoundError,
    StorePermissionError,
    StoreRateLimitError,
    SyncError,
    TransferError,
)
from .utils import normalize_md5, remote_path_for

__version__ = "0.1.0"

__all__ = [
    "StoreClient",
    "ObjSyncError",
    "StoreAPIError",
    "StoreAuthenticationError",
    "StoreConfigError",
    "StoreInvalidResponseError",
    "StoreNetworkError",
    "StoreNotFoundError",
    "StorePermissionError",
    "StoreRateLimitError",
    "SyncError",
    "EnumerationError",
    "RemoteEnumerationError",
    "MetadataError",
    "LocalReadError",
    "TransferError",
    "normalize_md5",
    "remote_path_for",
]

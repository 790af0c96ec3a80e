"""Change detection: decide whether a local file must be uploaded."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..api import StoreClient
from ..exceptions import (
    LocalReadError,
    MetadataError,
    StoreAPIError,
    StoreNotFoundError,
)
from ..models import RemoteObjectInfo
from ..utils import EMPTY_MD5, md5_file, remote_path_for
from .scanner import LocalFile

logger = logging.getLogger(__name__)


class CompareStrategy(str, Enum):
    """How local and remote files are compared."""

    SIZE = "size"
    """Compare byte sizes (default, one HEAD per file)"""

    HASH = "hash"
    """Compare MD5 digests (reads every local file in full)"""


class SyncAction(str, Enum):
    """Actions that can be taken for a local file."""

    UPLOAD = "upload"
    """Upload local file to remote"""

    SKIP = "skip"
    """Skip file (remote copy matches)"""


class UploadReason(str, Enum):
    """Why a file was flagged for upload."""

    NOT_FOUND = "not found"
    SIZE_MISMATCH = "size is different"
    HASH_MISMATCH = "md5 is different"


@dataclass(frozen=True)
class SyncItem:
    """A local file paired with the remote path it maps to.

    The remote path is computed once, when the item is created, and used
    as the join key everywhere after that.
    """

    local_file: LocalFile
    remote_path: str

    @classmethod
    def create(cls, local_file: LocalFile, remote_root: str) -> "SyncItem":
        return cls(
            local_file=local_file,
            remote_path=remote_path_for(remote_root, local_file.relative_path),
        )


@dataclass
class SyncDecision:
    """Represents a decision about how to sync a file."""

    action: SyncAction
    """Action to take"""

    reason: str
    """Human-readable reason for this decision"""

    item: SyncItem
    """File the decision is about"""

    upload_reason: Optional[UploadReason] = None
    """Set when action is UPLOAD"""

    @property
    def local_file(self) -> LocalFile:
        return self.item.local_file

    @property
    def remote_path(self) -> str:
        return self.item.remote_path

    @property
    def is_upload(self) -> bool:
        return self.action == SyncAction.UPLOAD


class ChangeDetector:
    """Compares local files against their remote counterparts.

    One strategy is chosen for the whole run. A remote object that does not
    exist is always an upload, never an error; any other lookup failure is
    raised as MetadataError so the caller can record it and leave the file
    out of both the upload and the skip outcome.
    """

    def __init__(
        self,
        client: StoreClient,
        strategy: CompareStrategy = CompareStrategy.SIZE,
    ):
        """Initialize change detector.

        Args:
            client: Store client used for HEAD requests
            strategy: Comparison strategy for the run
        """
        self.client = client
        self.strategy = strategy

    def check(self, item: SyncItem) -> SyncDecision:
        """Decide what to do with one local file.

        Args:
            item: Local file and its remote path

        Returns:
            SyncDecision with action UPLOAD or SKIP

        Raises:
            MetadataError: If the remote lookup fails for a reason other
                than the object not existing, or the remote path is a
                directory
            LocalReadError: If the local file cannot be read for hashing
        """
        try:
            info = self.client.head_info(item.remote_path)
        except StoreNotFoundError:
            return self._upload(item, UploadReason.NOT_FOUND)
        except StoreAPIError as e:
            raise MetadataError(item.remote_path, e) from e

        if info.is_directory:
            # A file cannot replace a directory; neither size nor md5 applies
            raise MetadataError(item.remote_path, message="remote path is a directory")

        if self.strategy == CompareStrategy.HASH:
            return self._compare_hash(item, info)
        return self._compare_size(item, info)

    def _compare_size(self, item: SyncItem, info: RemoteObjectInfo) -> SyncDecision:
        """Compare sizes; a store that reports no size never matches."""
        if info.size is not None and info.size == item.local_file.size:
            return SyncDecision(
                action=SyncAction.SKIP,
                reason="size same as local file",
                item=item,
            )
        return self._upload(item, UploadReason.SIZE_MISMATCH)

    def _compare_hash(self, item: SyncItem, info: RemoteObjectInfo) -> SyncDecision:
        """Compare MD5 digests; a missing remote digest means an empty payload."""
        try:
            local_md5 = md5_file(item.local_file.path)
        except OSError as e:
            raise LocalReadError(item.remote_path, e) from e

        remote_md5 = info.md5 or EMPTY_MD5
        logger.debug(
            "%s: local md5 %s, remote md5 %s", item.remote_path, local_md5, remote_md5
        )
        if local_md5 == remote_md5:
            return SyncDecision(
                action=SyncAction.SKIP,
                reason="md5 same as local file",
                item=item,
            )
        return self._upload(item, UploadReason.HASH_MISMATCH)

    def _upload(self, item: SyncItem, reason: UploadReason) -> SyncDecision:
        return SyncDecision(
            action=SyncAction.UPLOAD,
            reason=f"{reason.value}, adding to put list",
            item=item,
            upload_reason=reason,
        )

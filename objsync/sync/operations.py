"""Mutating store operations with dry-run support."""

import logging

from ..api import StoreClient
from ..exceptions import LocalReadError, StoreAPIError, TransferError
from .comparator import SyncItem
from .scanner import RemoteEntry

logger = logging.getLogger(__name__)


class SyncOperations:
    """Uploads and deletes, short-circuited with a synthetic success in dry-run mode."""

    def __init__(self, client: StoreClient, dry_run: bool = False):
        """Initialize sync operations.

        Args:
            client: Store client
            dry_run: If True, never issue a PUT or DELETE
        """
        self.client = client
        self.dry_run = dry_run

    def upload_file(self, item: SyncItem) -> int:
        """Upload a local file to its remote path, creating parent directories.

        Args:
            item: Local file and its remote path

        Returns:
            Number of bytes sent (the local size, also in dry-run mode)

        Raises:
            LocalReadError: If the local file cannot be opened
            TransferError: If the store rejects the upload
        """
        local_file = item.local_file
        if self.dry_run:
            logger.debug(f"Dry run: skipping PUT of {item.remote_path}")
            return local_file.size

        try:
            stream = open(local_file.path, "rb")
        except OSError as e:
            raise LocalReadError(item.remote_path, e) from e

        with stream:
            try:
                self.client.put(
                    item.remote_path,
                    stream,
                    size=local_file.size,
                    mkdirs=True,
                )
            except StoreAPIError as e:
                raise TransferError(f"error uploading: {e.code}") from e
            except OSError as e:
                # Read failure while streaming the body
                raise LocalReadError(item.remote_path, e) from e
        return local_file.size

    def delete_remote(self, entry: RemoteEntry) -> None:
        """Delete a remote object.

        Args:
            entry: Remote object to delete

        Raises:
            TransferError: If the store rejects the delete
        """
        if self.dry_run:
            logger.debug(f"Dry run: skipping DELETE of {entry.path}")
            return

        try:
            self.client.unlink(entry.path)
        except StoreAPIError as e:
            raise TransferError(f"error deleting: {e.code}") from e

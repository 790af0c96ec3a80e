"""Deletion of remote objects that no longer exist locally."""

import logging
from collections.abc import Set
from typing import Callable, Optional

from .queue import TaskQueue
from .scanner import RemoteEntry, RemoteScanner

logger = logging.getLogger(__name__)


class DeletionReconciler:
    """Finds remote objects with no local counterpart and deletes them.

    ``known_paths`` must be complete before ``reconcile`` is called, and any
    upload queue must already have drained. Otherwise a file that is queued
    for upload but not yet visible remotely could be taken for an orphan.
    """

    def __init__(self, scanner: RemoteScanner, queue: TaskQueue[RemoteEntry, None]):
        """Initialize the reconciler.

        Args:
            scanner: Remote scanner used for the full-tree walk
            queue: Queue whose worker deletes one remote object
        """
        self.scanner = scanner
        self.queue = queue

    def find_orphans(self, remote_root: str, known_paths: Set[str]) -> list[RemoteEntry]:
        """Walk the remote tree and return objects absent from ``known_paths``.

        Raises:
            RemoteEnumerationError: If the walk fails; no partial result is
                returned
        """
        orphans = [
            entry
            for entry in self.scanner.walk(remote_root)
            if entry.is_object and entry.path not in known_paths
        ]
        orphans.sort(key=lambda e: e.path)
        logger.debug(f"Found {len(orphans)} remote object(s) without a local file")
        return orphans

    def reconcile(
        self,
        remote_root: str,
        known_paths: Set[str],
        on_found: Optional[Callable[[list[RemoteEntry]], None]] = None,
    ) -> list[RemoteEntry]:
        """Delete every remote object under ``remote_root`` not in ``known_paths``.

        Blocks until the delete queue has drained. Nothing is pushed if the
        remote walk fails.

        Args:
            remote_root: Remote sync root
            known_paths: Remote paths derived from every local file
            on_found: Called with the orphans before any delete is pushed

        Returns:
            The objects scheduled for deletion

        Raises:
            RemoteEnumerationError: If the remote walk fails
        """
        orphans = self.find_orphans(remote_root, known_paths)
        if on_found is not None:
            on_found(orphans)
        if orphans:
            self.queue.push(orphans)
            self.queue.wait()
        return orphans

"""Run-wide counters and error list."""

import threading
from dataclasses import dataclass, field
from typing import Optional

from ..utils import format_size


@dataclass
class SyncReport:
    """Accumulated results of one sync run.

    Queue callbacks run on worker threads, so every mutation goes through a
    method that holds the report's lock.
    """

    dry_run: bool = False

    uploaded: int = 0
    """Files uploaded (or that would be, in dry-run mode)"""

    matched: int = 0
    """Files whose remote copy already matched"""

    deleted: int = 0
    """Remote objects deleted (or that would be, in dry-run mode)"""

    failed: int = 0
    """Files that hit a metadata, read, upload or delete error"""

    bytes_uploaded: int = 0

    errors: list[str] = field(default_factory=list)
    """Error messages in the order they were recorded"""

    _lock: threading.Lock = field(
        default_factory=threading.Lock, init=False, repr=False, compare=False
    )

    def record_upload(self, size: int) -> None:
        with self._lock:
            self.uploaded += 1
            self.bytes_uploaded += size

    def record_match(self) -> None:
        with self._lock:
            self.matched += 1

    def record_delete(self) -> None:
        with self._lock:
            self.deleted += 1

    def record_error(self, message: str, failed: bool = True) -> None:
        """Append an error message.

        Args:
            message: Message naming the path and the error
            failed: Count the error against a file; False for run-level
                errors such as a failed remote listing
        """
        with self._lock:
            self.errors.append(message)
            if failed:
                self.failed += 1

    @property
    def success(self) -> bool:
        """True when no error was recorded."""
        with self._lock:
            return not self.errors

    @property
    def exit_code(self) -> int:
        """Process exit status for this run."""
        return 0 if self.success else 1

    def to_dict(self) -> dict:
        """Convert report to a dictionary for JSON output."""
        with self._lock:
            return {
                "dry_run": self.dry_run,
                "uploaded": self.uploaded,
                "matched": self.matched,
                "deleted": self.deleted,
                "failed": self.failed,
                "bytes_uploaded": self.bytes_uploaded,
                "errors": list(self.errors),
            }

    def summary(self, elapsed: Optional[float] = None) -> str:
        """One-line human-readable summary."""
        with self._lock:
            text = (
                f"{self.uploaded} uploaded ({format_size(self.bytes_uploaded)}), "
                f"{self.matched} matched, {self.deleted} deleted, "
                f"{len(self.errors)} error(s)"
            )
        if elapsed is not None:
            text = f"{text} in {elapsed:.1f}s"
        return text

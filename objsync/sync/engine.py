"""Core sync engine: sequences the scan, diff, upload and delete phases."""

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from rich.progress import Progress, SpinnerColumn, TextColumn

from ..api import StoreClient
from ..exceptions import RemoteEnumerationError, SyncError
from ..output import OutputFormatter
from ..utils import DEFAULT_CONCURRENCY, format_size
from .comparator import ChangeDetector, CompareStrategy, SyncDecision, SyncItem
from .operations import SyncOperations
from .queue import TaskQueue
from .reconciler import DeletionReconciler
from .report import SyncReport
from .scanner import LocalScanner, RemoteEntry, RemoteScanner

logger = logging.getLogger(__name__)


class SyncPhase(str, Enum):
    """States of a sync run, in the order they are entered."""

    SCANNING_LOCAL = "scanning-local"
    DIFFING = "diffing"
    UPLOADING = "uploading"
    DELETING = "deleting"
    DONE = "done"


@dataclass
class SyncOptions:
    """Settings for one sync run."""

    local_root: Path
    """Local directory whose contents are synced"""

    remote_root: str
    """Remote directory the local tree maps onto"""

    concurrency: int = DEFAULT_CONCURRENCY
    """Maximum in-flight requests per queue"""

    strategy: CompareStrategy = CompareStrategy.SIZE
    """How local and remote files are compared"""

    delete: bool = False
    """Delete remote objects with no local counterpart after uploading"""

    delete_only: bool = False
    """Skip the diff and upload phases; only delete remote orphans"""

    dry_run: bool = False
    """Never issue a PUT or DELETE; count them as if they succeeded"""

    @property
    def delete_enabled(self) -> bool:
        return self.delete or self.delete_only


class SyncEngine:
    """Core sync engine that orchestrates a one-way local-to-remote sync.

    A run moves through SCANNING_LOCAL, DIFFING, UPLOADING, DELETING and
    DONE. Metadata checks start while the local scan is still running, but
    uploads wait for every check to finish and deletions wait for every
    upload to finish. Each phase has its own TaskQueue capped at the
    configured concurrency.
    """

    def __init__(
        self,
        client: StoreClient,
        output: Optional[OutputFormatter] = None,
    ):
        """Initialize sync engine.

        Args:
            client: Store client
            output: Output formatter for displaying progress/status
        """
        self.client = client
        self.output = output or OutputFormatter()
        self.phase: Optional[SyncPhase] = None
        self.report: Optional[SyncReport] = None

        self._lock = threading.Lock()
        self._queues: dict[str, TaskQueue[Any, Any]] = {}
        self._items: list[SyncItem] = []
        self._candidates: list[SyncDecision] = []
        self._scan_complete = False
        self._progress = {"info": 0, "put": 0, "delete": 0}
        self._delete_total = 0

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    @property
    def queues(self) -> dict[str, TaskQueue[Any, Any]]:
        """Queues of the current run, keyed by name (info, put, delete)."""
        return dict(self._queues)

    @property
    def upload_candidates(self) -> list[SyncDecision]:
        """Upload decisions of the current run, sorted by remote path."""
        with self._lock:
            return sorted(self._candidates, key=lambda d: d.remote_path)

    def describe_queues(self) -> dict[str, list[str]]:
        """Remote paths of the not-yet-started items of every queue.

        Read-only; safe to call from a signal handler while a run is active.
        """
        return {name: queue.describe_pending() for name, queue in self._queues.items()}

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    def run(self, options: SyncOptions) -> SyncReport:
        """Run one sync.

        Args:
            options: Sync settings

        Returns:
            The final SyncReport; ``report.exit_code`` is the process status

        Raises:
            ValueError: If the local root is not a directory or the
                concurrency is not positive

        Examples:
            >>> engine = SyncEngine(client)
            >>> report = engine.run(SyncOptions(Path("/data"), "/me/stor/data"))
            >>> print(report.summary())
        """
        local_root = Path(options.local_root).resolve()
        if not local_root.exists():
            raise ValueError(f"Local directory does not exist: {options.local_root}")
        if not local_root.is_dir():
            raise ValueError(f"Local path is not a directory: {options.local_root}")
        if options.concurrency < 1:
            raise ValueError(
                f"Concurrency must be a positive integer, got {options.concurrency}"
            )

        report = SyncReport(dry_run=options.dry_run)
        self.report = report
        self._items = []
        self._candidates = []
        self._scan_complete = False
        self._progress = {"info": 0, "put": 0, "delete": 0}
        self._delete_total = 0

        operations = SyncOperations(self.client, dry_run=options.dry_run)
        detector = ChangeDetector(self.client, options.strategy)
        self._queues = {
            "info": TaskQueue(
                detector.check,
                concurrency=options.concurrency,
                name="info",
                describe=_describe_item,
                on_result=self._on_decision,
                on_error=self._on_check_error,
            ),
            "put": TaskQueue(
                operations.upload_file,
                concurrency=options.concurrency,
                name="put",
                describe=_describe_item,
                on_result=self._on_uploaded,
                on_error=self._on_upload_error,
            ),
            "delete": TaskQueue(
                operations.delete_remote,
                concurrency=options.concurrency,
                name="delete",
                describe=_describe_entry,
                on_result=self._on_deleted,
                on_error=self._on_delete_error,
            ),
        }

        if options.dry_run:
            self.output.info("== dry run ==")

        start_time = time.time()
        try:
            self._run_phases(options, local_root)
        except KeyboardInterrupt:
            self._interrupt()
        finally:
            for queue in self._queues.values():
                queue.shutdown(wait=True)

        self.phase = SyncPhase.DONE
        self._display_report(report, time.time() - start_time)
        return report

    def _run_phases(self, options: SyncOptions, local_root: Path) -> None:
        """Drive the state machine from SCANNING_LOCAL up to DONE."""
        self._scan_local(options, local_root)
        known_paths = frozenset(item.remote_path for item in self._items)

        if not self._items:
            # Nothing to diff or upload
            if options.delete_only:
                self._delete_remote(options, known_paths)
            return

        if not options.delete_only:
            self._diff()
            self._upload()

        if options.delete_enabled:
            self._delete_remote(options, known_paths)

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def _scan_local(self, options: SyncOptions, local_root: Path) -> None:
        """SCANNING_LOCAL: build the local file list, feeding the info queue."""
        self.phase = SyncPhase.SCANNING_LOCAL
        self.output.info("building local file list...")
        scan_start = time.time()

        scanner = LocalScanner(
            on_error=lambda path, e: self.output.warning(f"skipping {path}: {e}")
        )
        info_queue = self._queues["info"]
        files = scanner.iter_files(local_root)

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=self.output.console,
            transient=True,
            disable=self.output.quiet or self.output.json_output,
        ) as progress:
            task = progress.add_task("Scanning local directory...", total=None)
            try:
                for local_file in files:
                    item = SyncItem.create(local_file, options.remote_root)
                    with self._lock:
                        self._items.append(item)
                    if not options.delete_only:
                        info_queue.push([item])
                    progress.update(
                        task, description=f"Found {len(self._items)} local file(s)"
                    )
            finally:
                files.close()
        with self._lock:
            self._scan_complete = True

        logger.debug(
            f"Local scan took {time.time() - scan_start:.2f}s "
            f"for {len(self._items)} files"
        )
        self.output.info(
            f"local file list built, {len(self._items)} files found\n"
        )

    def _diff(self) -> None:
        """DIFFING: wait for every metadata check to finish."""
        self.phase = SyncPhase.DIFFING
        diff_start = time.time()
        self._queues["info"].wait()
        self.output.info(
            f"\nupload list built, {len(self._candidates)} files staged for "
            f"uploading (took {time.time() - diff_start:.2f}s)\n"
        )

    def _upload(self) -> None:
        """UPLOADING: push every candidate and wait for the put queue to drain."""
        if not self._candidates:
            return
        self.phase = SyncPhase.UPLOADING
        put_start = time.time()
        put_queue = self._queues["put"]
        put_queue.push([d.item for d in self.upload_candidates])
        put_queue.wait()

        report = self.report
        assert report is not None
        self.output.info(
            f"\n{report.uploaded} files ({format_size(report.bytes_uploaded)}) "
            f"put successfully, {put_queue.failed} files failed to put "
            f"(took {time.time() - put_start:.2f}s)"
        )

    def _delete_remote(self, options: SyncOptions, known_paths: frozenset) -> None:
        """DELETING: remove remote objects that have no local counterpart."""
        self.phase = SyncPhase.DELETING
        report = self.report
        assert report is not None

        self.output.info("\nbuilding remote file list for deletion...")
        delete_start = time.time()
        scanner = RemoteScanner(self.client, concurrency=options.concurrency)
        delete_queue = self._queues["delete"]
        reconciler = DeletionReconciler(scanner, delete_queue)

        def on_found(orphans: list[RemoteEntry]) -> None:
            with self._lock:
                self._delete_total = len(orphans)
            self.output.info(
                f"remote file list built, {len(orphans)} files to delete\n"
            )

        try:
            orphans = reconciler.reconcile(
                options.remote_root, known_paths, on_found=on_found
            )
        except RemoteEnumerationError as e:
            message = str(e)
            report.record_error(message, failed=False)
            self.output.error(message)
            return

        if not orphans:
            return
        self.output.info(
            f"\n{report.deleted} files deleted successfully, "
            f"{delete_queue.failed} files failed to delete "
            f"(took {time.time() - delete_start:.2f}s)"
        )

    def _interrupt(self) -> None:
        """Stop enqueuing work, let in-flight requests finish, and record it."""
        self.output.warning("\nSync interrupted, waiting for in-flight requests...")
        for queue in self._queues.values():
            dropped = queue.clear()
            if dropped:
                logger.debug(f"Dropped {len(dropped)} pending {queue.name} task(s)")
        for queue in self._queues.values():
            queue.wait()
        if self.report is not None:
            self.report.record_error("sync interrupted by user", failed=False)

    # ------------------------------------------------------------------
    # Queue callbacks (run on worker threads)
    # ------------------------------------------------------------------

    def _tick(self, counter: str) -> int:
        with self._lock:
            self._progress[counter] += 1
            return self._progress[counter]

    def _info_progress(self) -> str:
        """Progress counter for metadata checks.

        The total is only known once the local scan has finished.
        """
        n = self._tick("info")
        with self._lock:
            if not self._scan_complete:
                return f"({n})"
            total = len(self._items)
        return f"({n}/{total})"

    def _on_decision(self, item: SyncItem, decision: SyncDecision) -> None:
        progress = self._info_progress()
        report = self.report
        assert report is not None
        if decision.is_upload:
            with self._lock:
                self._candidates.append(decision)
        else:
            report.record_match()
        suffix = "" if decision.is_upload else ", skipping"
        self.output.info(f"{item.remote_path}... {decision.reason}{suffix} {progress}")

    def _on_check_error(self, item: SyncItem, error: Exception) -> None:
        self._record_failure(item.remote_path, error, self._info_progress())

    def _on_uploaded(self, item: SyncItem, size: int) -> None:
        report = self.report
        assert report is not None
        report.record_upload(size)
        n = self._tick("put")
        suffix = " (dry run)" if report.dry_run else ""
        self.output.info(
            f"{item.remote_path}... uploaded{suffix} ({n}/{len(self._candidates)})"
        )

    def _on_upload_error(self, item: SyncItem, error: Exception) -> None:
        n = self._tick("put")
        self._record_failure(
            item.remote_path, error, f"({n}/{len(self._candidates)})"
        )

    def _on_deleted(self, entry: RemoteEntry, _result: None) -> None:
        report = self.report
        assert report is not None
        report.record_delete()
        n = self._tick("delete")
        suffix = " (dry run)" if report.dry_run else ""
        self.output.info(f"{entry.path}... deleted{suffix} ({n}/{self._delete_total})")

    def _on_delete_error(self, entry: RemoteEntry, error: Exception) -> None:
        n = self._tick("delete")
        self._record_failure(entry.path, error, f"({n}/{self._delete_total})")

    def _record_failure(self, path: str, error: Exception, progress: str) -> None:
        """Append a per-file error to the report and print it."""
        if isinstance(error, SyncError):
            detail = str(error)
        else:
            logger.debug("Unexpected error for %s", path, exc_info=error)
            detail = f"unexpected error: {error}"
        message = f"{path}... {detail} {progress}"
        report = self.report
        assert report is not None
        report.record_error(message)
        self.output.error(message)

    # ------------------------------------------------------------------
    # Report
    # ------------------------------------------------------------------

    def _display_report(self, report: SyncReport, elapsed: float) -> None:
        """Print the final counters and every collected error."""
        if report.errors:
            self.output.error("\n== errors\n")
            for error in report.errors:
                self.output.error(error)

        self.output.print("")
        if report.dry_run:
            self.output.success("Dry run complete!")
        else:
            self.output.success("Sync complete!")
        self.output.info(report.summary(elapsed))


def _describe_item(item: SyncItem) -> str:
    return item.remote_path


def _describe_entry(entry: RemoteEntry) -> str:
    return entry.path

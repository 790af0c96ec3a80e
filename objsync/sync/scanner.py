"""Directory scanning for sync operations.

Both scanners walk a tree concurrently and stream what they find. They
share one completion technique: every listing or stat call increments a
pending counter when it is dispatched and decrements it when it finishes.
Work discovered by a running call is dispatched before that call's own
decrement, so the counter only reaches zero once the whole tree has been
visited, however deep or irregular it is.
"""

import logging
import os
import queue
import stat as stat_module
import threading
from collections.abc import Iterator
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional, Union

from ..api import StoreClient
from ..exceptions import RemoteEnumerationError
from ..utils import DEFAULT_CONCURRENCY, join_remote

logger = logging.getLogger(__name__)

# Local filesystem calls are cheap; a small pool is enough to overlap them
DEFAULT_SCAN_WORKERS = 8


@dataclass(frozen=True)
class LocalFile:
    """Represents a local file with metadata."""

    path: Path
    """Absolute path to the file"""

    relative_path: str
    """Relative path (using forward slashes for cross-platform compatibility)"""

    size: int
    """File size in bytes"""

    mtime: float
    """Last modification time (Unix timestamp)"""

    @classmethod
    def from_stat(
        cls, file_path: Path, stat: os.stat_result, base_path: Path
    ) -> "LocalFile":
        """Create LocalFile from a path and its stat result.

        Args:
            file_path: Absolute path to the file
            stat: Result of stat() on the file
            base_path: Base path for calculating relative paths

        Returns:
            LocalFile instance
        """
        # Use as_posix() to ensure forward slashes on all platforms
        relative_path = file_path.relative_to(base_path).as_posix()
        return cls(
            path=file_path,
            relative_path=relative_path,
            size=stat.st_size,
            mtime=stat.st_mtime,
        )

    @classmethod
    def from_path(cls, file_path: Path, base_path: Path) -> "LocalFile":
        """Create LocalFile by stat'ing a path."""
        return cls.from_stat(file_path, file_path.stat(), base_path)


class ScanEventKind(str, Enum):
    """Kinds of events produced by the local scanner."""

    FILE = "file"
    DIRECTORY = "directory"
    END = "end"


@dataclass(frozen=True)
class ScanEvent:
    """A discovery made by the local scanner."""

    kind: ScanEventKind
    path: Path
    stat: Optional[os.stat_result] = None


@dataclass(frozen=True)
class RemoteEntry:
    """An object or directory found under the remote root."""

    path: str
    """Full remote path"""

    name: str
    """Entry name within its parent"""

    parent: str
    """Remote path of the parent directory"""

    type: str
    """Either "object" or "directory" """

    size: Optional[int] = None

    @property
    def is_object(self) -> bool:
        return self.type == "object"

    @property
    def is_directory(self) -> bool:
        return self.type == "directory"


class _PendingCounter:
    """Counts dispatched-but-unfinished operations for one walk."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._pending = 0

    def increment(self) -> None:
        with self._lock:
            self._pending += 1

    def decrement(self) -> bool:
        """Decrement and report whether the walk just finished."""
        with self._lock:
            self._pending -= 1
            return self._pending == 0


class _Walk:
    """Dispatch machinery shared by the local and remote scanners."""

    def __init__(self, max_workers: int, name: str, on_finished: Callable[[], None]):
        self.executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix=f"objsync-{name}"
        )
        self.stopped = threading.Event()
        self._counter = _PendingCounter()
        self._on_finished = on_finished

    def dispatch(self, fn: Callable[..., None], *args: Any) -> None:
        """Run fn(*args) on the pool, tracking it in the pending counter."""
        self._counter.increment()
        try:
            self.executor.submit(self._run, fn, *args)
        except RuntimeError:
            # Pool already shut down because the consumer stopped
            self._finish()

    def _run(self, fn: Callable[..., None], *args: Any) -> None:
        try:
            if not self.stopped.is_set():
                fn(*args)
        except Exception:
            logger.exception("Unexpected error while scanning %s", args)
        finally:
            self._finish()

    def _finish(self) -> None:
        if self._counter.decrement():
            self._on_finished()

    def close(self) -> None:
        """Stop dispatching and wait for in-flight calls to return."""
        self.stopped.set()
        self.executor.shutdown(wait=True)


class LocalScanner:
    """Concurrently walks a local directory tree.

    Symlinks get no special treatment: each entry is stat'ed, which follows
    links, and classified by what it resolves to. Entries that are neither
    regular files nor directories are skipped. A directory that cannot be
    listed or a path that cannot be stat'ed is logged and skipped; the rest
    of the tree is still walked.

    Examples:
        >>> scanner = LocalScanner()
        >>> for event in scanner.scan(Path("/sync/folder")):
        ...     if event.kind == ScanEventKind.FILE:
        ...         print(event.path, event.stat.st_size)
    """

    def __init__(
        self,
        max_workers: int = DEFAULT_SCAN_WORKERS,
        on_error: Optional[Callable[[Path, OSError], None]] = None,
    ):
        """Initialize local scanner.

        Args:
            max_workers: Number of threads issuing listing and stat calls
            on_error: Called with (path, error) for every skipped path
        """
        self.max_workers = max_workers
        self.on_error = on_error
        self.errors: list[tuple[Path, OSError]] = []
        self._errors_lock = threading.Lock()

    def _record_error(self, path: Path, error: OSError) -> None:
        logger.warning(f"Skipping {path}: {error}")
        with self._errors_lock:
            self.errors.append((path, error))
        if self.on_error is not None:
            self.on_error(path, error)

    def scan(self, root: Path) -> Iterator[ScanEvent]:
        """Walk ``root`` and stream what is found.

        Yields a FILE event for every regular file and a DIRECTORY event for
        every subdirectory, in no particular order, followed by exactly one
        END event once every listing and stat call has completed. Closing
        the generator early stops further dispatch.

        Args:
            root: Directory to scan

        Yields:
            ScanEvent instances
        """
        root = Path(root)
        events: "queue.Queue[ScanEvent]" = queue.Queue()
        walk = _Walk(
            self.max_workers,
            "scan",
            on_finished=lambda: events.put(ScanEvent(ScanEventKind.END, root)),
        )

        def list_dir(directory: Path) -> None:
            try:
                children = list(directory.iterdir())
            except OSError as e:
                self._record_error(directory, e)
                return
            for child in children:
                walk.dispatch(stat_entry, child)

        def stat_entry(path: Path) -> None:
            try:
                st = path.stat()
            except OSError as e:
                self._record_error(path, e)
                return
            if stat_module.S_ISDIR(st.st_mode):
                events.put(ScanEvent(ScanEventKind.DIRECTORY, path, st))
                walk.dispatch(list_dir, path)
            elif stat_module.S_ISREG(st.st_mode):
                events.put(ScanEvent(ScanEventKind.FILE, path, st))

        walk.dispatch(list_dir, root)
        try:
            while True:
                event = events.get()
                yield event
                if event.kind == ScanEventKind.END:
                    return
        finally:
            walk.close()

    def iter_files(self, root: Path) -> Iterator[LocalFile]:
        """Stream LocalFile objects for every regular file under ``root``."""
        root = Path(root)
        for event in self.scan(root):
            if event.kind == ScanEventKind.FILE and event.stat is not None:
                yield LocalFile.from_stat(event.path, event.stat, root)

    def list_files(self, root: Path) -> list[LocalFile]:
        """Scan ``root`` and return every regular file found.

        Returns:
            LocalFile objects sorted by relative path
        """
        files = list(self.iter_files(root))
        files.sort(key=lambda f: f.relative_path)
        return files


class _WalkFailed:
    """Queue marker carrying the error that ended a remote walk."""

    def __init__(self, error: RemoteEnumerationError):
        self.error = error


class _WalkDone:
    """Queue marker signalling that the remote walk completed."""


class RemoteScanner:
    """Recursively lists a remote tree through the store's listing call.

    Listings run on a pool of ``concurrency`` threads, so no more than that
    many listing requests are open at once regardless of tree depth. A
    failure on any directory is fatal to the whole walk: it is raised once
    as RemoteEnumerationError and nothing is emitted after it.
    """

    def __init__(self, client: StoreClient, concurrency: int = DEFAULT_CONCURRENCY):
        """Initialize remote scanner.

        Args:
            client: Store client used for directory listings
            concurrency: Maximum number of listing requests in flight
        """
        if concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {concurrency}")
        self.client = client
        self.concurrency = concurrency

    def walk(self, root: str) -> Iterator[RemoteEntry]:
        """Walk the remote tree below ``root``.

        Args:
            root: Remote directory to walk (not itself emitted)

        Yields:
            RemoteEntry for every object and directory found

        Raises:
            RemoteEnumerationError: If any listing fails
        """
        events: "queue.Queue[Union[RemoteEntry, _WalkFailed, _WalkDone]]" = (
            queue.Queue()
        )
        failed = threading.Event()
        failure_lock = threading.Lock()
        walk = _Walk(
            self.concurrency,
            "ls",
            on_finished=lambda: events.put(_WalkDone()),
        )

        def fail(directory: str, error: Exception) -> None:
            with failure_lock:
                if failed.is_set():
                    return
                failed.set()
            walk.stopped.set()
            logger.debug(f"Listing {directory} failed: {error}")
            events.put(_WalkFailed(RemoteEnumerationError(directory, error)))

        def list_one(directory: str) -> None:
            try:
                for child in self.client.list_directory(directory):
                    if walk.stopped.is_set():
                        return
                    entry = RemoteEntry(
                        path=join_remote(directory, child.name),
                        name=child.name,
                        parent=directory,
                        type="directory" if child.is_directory else "object",
                        size=child.size,
                    )
                    events.put(entry)
                    if entry.is_directory:
                        walk.dispatch(list_one, entry.path)
            except Exception as e:
                fail(directory, e)

        walk.dispatch(list_one, root)
        try:
            while True:
                item = events.get()
                if isinstance(item, _WalkFailed):
                    raise item.error
                if isinstance(item, _WalkDone):
                    if failed.is_set():
                        # The failure marker is already queued behind us
                        continue
                    return
                if not failed.is_set():
                    yield item
        finally:
            walk.close()

    def list_objects(self, root: str) -> list[RemoteEntry]:
        """Return every object (not directory) under ``root``.

        Raises:
            RemoteEnumerationError: If any listing fails
        """
        return [entry for entry in self.walk(root) if entry.is_object]

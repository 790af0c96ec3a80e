"""Bounded-concurrency work queue used for HEAD, PUT and DELETE requests."""

import logging
import threading
from collections import deque
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Generic, Optional, TypeVar

from ..utils import DEFAULT_CONCURRENCY

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class TaskQueue(Generic[T, R]):
    """FIFO work queue running at most ``concurrency`` workers at a time.

    Items start in push order; completion order is unspecified. A worker
    finishes an item by returning (the result goes to ``on_result``) or by
    raising (the exception goes to ``on_error``). Either way the item's
    concurrency slot is released exactly once and the rest of the queue
    keeps going.

    ``on_drain`` fires exactly once each time the queue goes from having
    work to having no pending and no running items. Pushing after a drain
    starts a new cycle; pushing an empty batch onto an idle queue completes
    an empty cycle immediately.

    Examples:
        >>> results = []
        >>> queue = TaskQueue(lambda n: n * 2, concurrency=4,
        ...                   on_result=lambda item, r: results.append(r))
        >>> queue.push([1, 2, 3])
        >>> queue.wait()
        True
        >>> sorted(results)
        [2, 4, 6]
        >>> queue.shutdown()
    """

    def __init__(
        self,
        worker: Callable[[T], R],
        concurrency: int = DEFAULT_CONCURRENCY,
        name: str = "tasks",
        describe: Optional[Callable[[T], str]] = None,
        on_result: Optional[Callable[[T, R], None]] = None,
        on_error: Optional[Callable[[T, Exception], None]] = None,
        on_drain: Optional[Callable[[], None]] = None,
    ):
        """Initialize the queue.

        Args:
            worker: Function called once per item, in a worker thread
            concurrency: Maximum number of items processed at the same time
            name: Queue name used in logs and diagnostics
            describe: Returns a human-readable identifier for an item
            on_result: Called with (item, result) when a worker returns
            on_error: Called with (item, exception) when a worker raises
            on_drain: Called when all pushed work has completed
        """
        if concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {concurrency}")

        self.name = name
        self.concurrency = concurrency
        self._worker = worker
        self._describe = describe or str
        self._on_result = on_result
        self._on_error = on_error
        self._on_drain = on_drain

        self._executor = ThreadPoolExecutor(
            max_workers=concurrency, thread_name_prefix=f"objsync-{name}"
        )
        # Reentrant: the diagnostic signal handler runs on the main thread and
        # may interrupt it inside a locked section
        self._lock = threading.RLock()
        self._pending: deque[T] = deque()
        self._running = 0
        self._cycle_open = False
        self._draining = 0
        self._drained = threading.Event()
        self._drained.set()

        self.processed = 0
        self.failed = 0

    def __len__(self) -> int:
        """Number of items waiting to start."""
        with self._lock:
            return len(self._pending)

    @property
    def running(self) -> int:
        """Number of items currently being processed."""
        with self._lock:
            return self._running

    @property
    def idle(self) -> bool:
        """True when nothing is pending or running."""
        with self._lock:
            return not self._pending and self._running == 0

    def pending_items(self) -> list[T]:
        """Snapshot of the items that have not started yet."""
        with self._lock:
            return list(self._pending)

    def describe_pending(self) -> list[str]:
        """Human-readable identifiers of the items that have not started yet."""
        return [self._describe(item) for item in self.pending_items()]

    def push(self, items: Iterable[T]) -> None:
        """Add items to the end of the queue and start as many as allowed."""
        batch = list(items)
        with self._lock:
            self._pending.extend(batch)
            self._cycle_open = True
            self._drained.clear()
            ready = self._take_ready()

        for item in ready:
            self._executor.submit(self._run, item)
        self._check_drain()

    def clear(self) -> list[T]:
        """Drop every item that has not started yet.

        Running items are left alone and still complete normally.

        Returns:
            The dropped items
        """
        with self._lock:
            dropped = list(self._pending)
            self._pending.clear()

        if dropped:
            logger.debug("Queue %s: dropped %d pending item(s)", self.name, len(dropped))
        self._check_drain()
        return dropped

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the queue has drained.

        Args:
            timeout: Maximum seconds to wait, None to wait indefinitely

        Returns:
            True if the queue drained, False on timeout
        """
        if timeout is not None:
            return self._drained.wait(timeout)
        # Short waits keep the main thread responsive to Ctrl+C
        while not self._drained.wait(0.2):
            pass
        return True

    def shutdown(self, wait: bool = True) -> None:
        """Release the worker threads. The queue cannot be used afterwards."""
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> "TaskQueue[T, R]":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.shutdown(wait=exc_type is None)

    def _take_ready(self) -> list[T]:
        """Claim slots for pending items. Caller must hold the lock."""
        ready: list[T] = []
        while self._pending and self._running < self.concurrency:
            ready.append(self._pending.popleft())
            self._running += 1
        return ready

    def _run(self, item: T) -> None:
        """Process one item in a worker thread."""
        try:
            result = self._worker(item)
        except Exception as e:
            with self._lock:
                self.failed += 1
            self._notify(self._on_error, item, e, error=e)
        else:
            self._notify(self._on_result, item, result)
        finally:
            self._complete()

    def _notify(
        self,
        callback: Optional[Callable[..., None]],
        *args: Any,
        error: Optional[Exception] = None,
    ) -> None:
        """Invoke a per-item callback without letting it break the queue."""
        if callback is None:
            if error is not None:
                logger.warning(
                    "Queue %s: %s failed: %s", self.name, self._describe(args[0]), error
                )
            return
        try:
            callback(*args)
        except Exception:
            logger.exception("Queue %s: callback for %s failed", self.name, args[0])

    def _complete(self) -> None:
        """Release a slot and start the next pending item."""
        with self._lock:
            self._running -= 1
            self.processed += 1
            ready = self._take_ready()

        for item in ready:
            self._executor.submit(self._run, item)
        self._check_drain()

    def _check_drain(self) -> None:
        """Fire the drain notification if this cycle just finished."""
        with self._lock:
            if not self._cycle_open or self._pending or self._running:
                return
            self._cycle_open = False
            self._draining += 1

        logger.debug("Queue %s drained (%d processed)", self.name, self.processed)
        if self._on_drain is not None:
            try:
                self._on_drain()
            except Exception:
                logger.exception("Queue %s: drain callback failed", self.name)

        with self._lock:
            self._draining -= 1
            # on_drain may have pushed a new cycle
            if not self._cycle_open and not self._draining:
                self._drained.set()

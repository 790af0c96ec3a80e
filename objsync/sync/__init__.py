"""Sync engine for objsync - one-way local to remote synchronization."""

from .comparator import (
    ChangeDetector,
    CompareStrategy,
    SyncAction,
    SyncDecision,
    SyncItem,
    UploadReason,
)
from .engine import SyncEngine, SyncOptions, SyncPhase
from .operations import SyncOperations
from .queue import TaskQueue
from .reconciler import DeletionReconciler
from .report import SyncReport
from .scanner import (
    LocalFile,
    LocalScanner,
    RemoteEntry,
    RemoteScanner,
    ScanEvent,
    ScanEventKind,
)

__all__ = [
    "SyncEngine",
    "SyncOptions",
    "SyncPhase",
    "SyncReport",
    "SyncOperations",
    "TaskQueue",
    "DeletionReconciler",
    "ChangeDetector",
    "CompareStrategy",
    "SyncAction",
    "SyncDecision",
    "SyncItem",
    "UploadReason",
    "LocalFile",
    "LocalScanner",
    "RemoteEntry",
    "RemoteScanner",
    "ScanEvent",
    "ScanEventKind",
]

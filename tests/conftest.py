"""Shared fixtures for objsync tests."""

import hashlib
import posixpath
import tempfile
import threading
from pathlib import Path

import pytest

from objsync.exceptions import StoreNotFoundError
from objsync.models import DIRECTORY_CONTENT_TYPE, DirectoryEntry, RemoteObjectInfo
from objsync.output import OutputFormatter


class FakeStore:
    """In-memory stand-in for StoreClient.

    Tracks every call in ``calls`` as (method, path) tuples so tests can
    check ordering between phases. Errors can be injected per path through
    the ``fail_*`` dicts.
    """

    def __init__(self, report_size=True, report_md5=True):
        self.objects = {}
        self.dirs = {"/"}
        self.calls = []
        self.report_size = report_size
        self.report_md5 = report_md5
        self.fail_head = {}
        self.fail_put = {}
        self.fail_list = {}
        self.fail_unlink = {}
        self.closed = False
        self._lock = threading.Lock()

    def add(self, path, data=b""):
        """Create an object and all of its parent directories."""
        with self._lock:
            self._add_parents(path)
            self.objects[path] = data

    def _add_parents(self, path):
        parent = posixpath.dirname(path)
        while parent not in self.dirs:
            self.dirs.add(parent)
            parent = posixpath.dirname(parent)

    def _record(self, method, path):
        with self._lock:
            self.calls.append((method, path))

    def paths(self, method):
        with self._lock:
            return [p for m, p in self.calls if m == method]

    def head_info(self, path):
        self._record("HEAD", path)
        if path in self.fail_head:
            raise self.fail_head[path]
        with self._lock:
            if path in self.objects:
                data = self.objects[path]
                return RemoteObjectInfo(
                    path=path,
                    size=len(data) if self.report_size else None,
                    md5=hashlib.md5(data).hexdigest() if self.report_md5 else None,
                    content_type="application/octet-stream",
                )
            if path in self.dirs:
                return RemoteObjectInfo(path=path, content_type=DIRECTORY_CONTENT_TYPE)
        raise StoreNotFoundError(f"{path} not found", "ResourceNotFound", 404)

    def put(self, path, stream, size, mkdirs=True, content_type=None):
        self._record("PUT", path)
        if path in self.fail_put:
            raise self.fail_put[path]
        data = stream.read()
        assert len(data) == size
        self.add(path, data)

    def mkdirp(self, path):
        self._record("MKDIR", path)
        with self._lock:
            self._add_parents(posixpath.join(path, "x"))

    def unlink(self, path):
        self._record("DELETE", path)
        if path in self.fail_unlink:
            raise self.fail_unlink[path]
        with self._lock:
            if self.objects.pop(path, None) is None:
                raise StoreNotFoundError(f"{path} not found", "ResourceNotFound", 404)

    def list_directory(self, path):
        self._record("LIST", path)
        if path in self.fail_list:
            raise self.fail_list[path]
        with self._lock:
            if path not in self.dirs:
                raise StoreNotFoundError(f"{path} not found", "ResourceNotFound", 404)
            entries = []
            for d in sorted(self.dirs):
                if d != path and posixpath.dirname(d) == path:
                    entries.append(DirectoryEntry(posixpath.basename(d), "directory"))
            for p, data in sorted(self.objects.items()):
                if posixpath.dirname(p) == path:
                    entries.append(
                        DirectoryEntry(posixpath.basename(p), "object", size=len(data))
                    )
        yield from entries

    def close(self):
        self.closed = True


@pytest.fixture
def store():
    """Provide an empty in-memory store."""
    return FakeStore()


@pytest.fixture
def quiet_output():
    """Output formatter that prints nothing."""
    return OutputFormatter(quiet=True)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def local_tree(temp_dir):
    """Local tree with ``a.txt`` and ``sub/b.txt``."""
    (temp_dir / "a.txt").write_bytes(b"hello")
    (temp_dir / "sub").mkdir()
    (temp_dir / "sub" / "b.txt").write_bytes(b"world!!")
    return temp_dir

"""Tests for the local and remote scanners."""

from pathlib import Path

import pytest

from objsync.exceptions import RemoteEnumerationError, StoreAPIError
from objsync.sync import LocalScanner, RemoteScanner, ScanEventKind


class TestLocalScanner:
    """Test LocalScanner functionality."""

    def test_scan_emits_single_end_last(self, local_tree):
        """Test that END is emitted exactly once, after everything else."""
        events = list(LocalScanner().scan(local_tree))

        kinds = [e.kind for e in events]
        assert kinds.count(ScanEventKind.END) == 1
        assert kinds[-1] == ScanEventKind.END

        files = {e.path for e in events if e.kind == ScanEventKind.FILE}
        dirs = {e.path for e in events if e.kind == ScanEventKind.DIRECTORY}
        assert files == {local_tree / "a.txt", local_tree / "sub" / "b.txt"}
        assert dirs == {local_tree / "sub"}

    def test_scan_empty_directory(self, temp_dir):
        """Test that an empty root still produces one END event."""
        events = list(LocalScanner().scan(temp_dir))
        assert [e.kind for e in events] == [ScanEventKind.END]

    def test_list_files_deep_tree(self, temp_dir):
        """Test that every file of an irregular tree is found."""
        expected = []
        for i in range(5):
            level = temp_dir.joinpath(*[f"d{j}" for j in range(i)])
            level.mkdir(parents=True, exist_ok=True)
            for k in range(3):
                (level / f"f{k}.bin").write_bytes(b"x" * (i + k))
                rel = "/".join([f"d{j}" for j in range(i)] + [f"f{k}.bin"])
                expected.append(rel)

        files = LocalScanner(max_workers=2).list_files(temp_dir)

        assert [f.relative_path for f in files] == sorted(expected)
        sizes = {f.relative_path: f.size for f in files}
        assert sizes["d0/d1/f2.bin"] == 4

    def test_unreadable_directory_is_skipped(self, local_tree, monkeypatch):
        """Test that a directory that cannot be listed does not stop the walk."""
        locked = local_tree / "locked"
        locked.mkdir()
        (locked / "hidden.txt").write_text("secret")

        original_iterdir = Path.iterdir

        def iterdir(self):
            if self == locked:
                raise PermissionError(13, "Permission denied", str(self))
            return original_iterdir(self)

        monkeypatch.setattr(Path, "iterdir", iterdir)
        skipped = []
        scanner = LocalScanner(on_error=lambda path, e: skipped.append(path))

        files = scanner.list_files(local_tree)

        assert [f.relative_path for f in files] == ["a.txt", "sub/b.txt"]
        assert skipped == [locked]
        assert scanner.errors[0][0] == locked

    def test_unstattable_file_is_skipped(self, local_tree, monkeypatch):
        """Test that a path that cannot be stat'ed is recorded and skipped."""
        broken = local_tree / "a.txt"
        original_stat = Path.stat

        def stat(self, *args, **kwargs):
            if self == broken:
                raise PermissionError(13, "Permission denied", str(self))
            return original_stat(self, *args, **kwargs)

        monkeypatch.setattr(Path, "stat", stat)
        scanner = LocalScanner()

        events = list(scanner.scan(local_tree))

        kinds = [e.kind for e in events]
        assert kinds.count(ScanEventKind.END) == 1
        assert kinds[-1] == ScanEventKind.END
        files = [e.path for e in events if e.kind == ScanEventKind.FILE]
        assert files == [local_tree / "sub" / "b.txt"]
        assert [path for path, _ in scanner.errors] == [broken]
        assert isinstance(scanner.errors[0][1], PermissionError)

    def test_symlink_to_file_is_followed(self, local_tree):
        """Test that a link is classified by what it points to."""
        link = local_tree / "link.txt"
        try:
            link.symlink_to(local_tree / "a.txt")
        except OSError:
            pytest.skip("symlinks not supported")

        files = LocalScanner().list_files(local_tree)

        by_name = {f.relative_path: f for f in files}
        assert "link.txt" in by_name
        assert by_name["link.txt"].size == 5


class TestRemoteScanner:
    """Test RemoteScanner functionality."""

    def test_rejects_non_positive_concurrency(self, store):
        with pytest.raises(ValueError):
            RemoteScanner(store, concurrency=0)

    def test_walk_finds_nested_entries(self, store):
        """Test that objects in every subdirectory are emitted."""
        store.add("/u/stor/foo/a.txt", b"a")
        store.add("/u/stor/foo/x/y/z.txt", b"zz")
        store.add("/u/stor/foo/x/c.txt", b"c")

        entries = list(RemoteScanner(store, concurrency=2).walk("/u/stor/foo"))

        objects = sorted(e.path for e in entries if e.is_object)
        directories = sorted(e.path for e in entries if e.is_directory)
        assert objects == [
            "/u/stor/foo/a.txt",
            "/u/stor/foo/x/c.txt",
            "/u/stor/foo/x/y/z.txt",
        ]
        assert directories == ["/u/stor/foo/x", "/u/stor/foo/x/y"]

        z = next(e for e in entries if e.name == "z.txt")
        assert z.parent == "/u/stor/foo/x/y"
        assert z.size == 2

    def test_list_objects_excludes_directories(self, store):
        store.add("/r/a", b"1")
        store.add("/r/d/b", b"2")

        paths = sorted(e.path for e in RemoteScanner(store).list_objects("/r"))

        assert paths == ["/r/a", "/r/d/b"]

    def test_missing_root_is_fatal(self, store):
        """Test that a nonexistent remote root raises once."""
        with pytest.raises(RemoteEnumerationError, match="/nowhere"):
            list(RemoteScanner(store).walk("/nowhere"))

    def test_subdirectory_failure_is_fatal(self, store):
        """Test that one failed listing aborts the whole walk."""
        store.add("/r/a", b"1")
        store.add("/r/bad/b", b"2")
        store.add("/r/good/c", b"3")
        store.fail_list["/r/bad"] = StoreAPIError("boom", "InternalError", 500)

        with pytest.raises(RemoteEnumerationError) as exc_info:
            list(RemoteScanner(store, concurrency=1).walk("/r"))

        assert exc_info.value.path == "/r/bad"
        assert "InternalError" in str(exc_info.value)

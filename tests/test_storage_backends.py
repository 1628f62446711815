"""Tests for the filesystem and in-memory storage backends.

Both backends must honour the same contract:
- Staged writes are invisible until committed and discarded on every other exit
- Missing paths raise FileNotFoundError
- Logical paths cannot escape the storage root
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from locals3.storage.errors import PathTraversalError
from locals3.storage.filesystem_backend import STAGING_DIRECTORY, FilesystemBackend
from locals3.storage.memory_backend import InMemoryBackend


@pytest.fixture(params=["filesystem", "memory"])
def backend(request: pytest.FixtureRequest, tmp_path: Path) -> Any:
    """Each storage backend over an empty root."""
    if request.param == "filesystem":
        return FilesystemBackend(tmp_path / "root")
    return InMemoryBackend()


class TestStagedWrites:
    """Tests for stage/commit/discard semantics."""

    def test_committed_write_is_readable(self, backend: Any) -> None:
        """Committed bytes appear at the target path."""
        with backend.stage("bucket/a/b.txt") as staged:
            staged.write(b"hello ")
            staged.write(b"world")
            staged.commit()

        assert staged.committed is True
        assert backend.read("bucket/a/b.txt") == b"hello world"

    def test_uncommitted_write_is_discarded(self, backend: Any) -> None:
        """Leaving the context without commit publishes nothing."""
        with backend.stage("bucket/file.txt") as staged:
            staged.write(b"draft")

        assert staged.committed is False
        with pytest.raises(FileNotFoundError):
            backend.read("bucket/file.txt")

    def test_exception_discards_staged_content(self, backend: Any) -> None:
        """An exception inside the context discards the staged bytes."""
        with pytest.raises(RuntimeError), backend.stage("bucket/file.txt") as staged:
            staged.write(b"partial")
            raise RuntimeError("producer failed")

        with pytest.raises(FileNotFoundError):
            backend.read("bucket/file.txt")

    def test_commit_replaces_existing_file(self, backend: Any) -> None:
        """A commit atomically replaces the previous content."""
        backend.write("bucket/file.txt", b"v1")
        backend.write("bucket/file.txt", b"v2")

        assert backend.read("bucket/file.txt") == b"v2"

    def test_failed_stage_keeps_previous_content(self, backend: Any) -> None:
        """Discarded staging leaves the existing file untouched."""
        backend.write("bucket/file.txt", b"original")

        with pytest.raises(RuntimeError), backend.stage("bucket/file.txt") as staged:
            staged.write(b"replacement")
            raise RuntimeError("boom")

        assert backend.read("bucket/file.txt") == b"original"

    def test_commit_is_idempotent(self, backend: Any) -> None:
        """Committing twice publishes once and does not fail."""
        with backend.stage("bucket/file.txt") as staged:
            staged.write(b"data")
            staged.commit()
            staged.commit()

        assert backend.read("bucket/file.txt") == b"data"


class TestFileOperations:
    """Tests for read/open/stat/delete."""

    def test_read_missing_raises_file_not_found(self, backend: Any) -> None:
        """Reading a missing path raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            backend.read("bucket/missing.txt")

    def test_open_streams_content(self, backend: Any) -> None:
        """open() returns a readable binary handle."""
        backend.write("bucket/file.bin", b"0123456789")

        with backend.open("bucket/file.bin") as f:
            assert f.read(4) == b"0123"
            assert f.read() == b"456789"

    def test_stat_reports_size(self, backend: Any) -> None:
        """stat() returns the size and a timezone-aware mtime."""
        backend.write("bucket/file.bin", b"12345")

        stat = backend.stat("bucket/file.bin")

        assert stat.size == 5
        assert stat.modified.tzinfo is not None

    def test_stat_directory_raises_file_not_found(self, backend: Any) -> None:
        """A directory is not a file."""
        backend.make_dirs("bucket/dir")

        with pytest.raises(FileNotFoundError):
            backend.stat("bucket/dir")

    def test_delete_removes_file(self, backend: Any) -> None:
        """delete() removes the file."""
        backend.write("bucket/file.txt", b"x")

        backend.delete("bucket/file.txt")

        with pytest.raises(FileNotFoundError):
            backend.read("bucket/file.txt")

    def test_delete_missing_raises_file_not_found(self, backend: Any) -> None:
        """Deleting a missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            backend.delete("bucket/missing.txt")


class TestDirectories:
    """Tests for directory operations."""

    def test_make_dirs_is_idempotent(self, backend: Any) -> None:
        """Creating an existing directory succeeds."""
        backend.make_dirs("bucket/a/b")
        backend.make_dirs("bucket/a/b")

        assert backend.is_dir("bucket/a/b")
        assert backend.is_dir("bucket/a")

    def test_list_dirs_returns_immediate_children(self, backend: Any) -> None:
        """Only direct subdirectories are listed."""
        backend.make_dirs("alpha/nested")
        backend.make_dirs("beta")
        backend.write("gamma.txt", b"file, not dir")

        names = [d for d in backend.list_dirs("") if not d.startswith(".")]
        assert sorted(names) == ["alpha", "beta"]

    def test_list_returns_relative_paths(self, backend: Any) -> None:
        """Recursive listing is relative to the scanned directory."""
        backend.write("bucket/a.txt", b"1")
        backend.write("bucket/x/y/b.txt", b"2")
        backend.write("other/c.txt", b"3")

        assert sorted(backend.list("bucket")) == ["a.txt", "x/y/b.txt"]
        assert backend.list("bucket", "x/") == ["x/y/b.txt"]

    def test_remove_tree(self, backend: Any) -> None:
        """remove_tree deletes the directory and its content."""
        backend.write("bucket/a/b.txt", b"1")

        backend.remove_tree("bucket")

        assert not backend.is_dir("bucket")
        with pytest.raises(FileNotFoundError):
            backend.read("bucket/a/b.txt")

    def test_remove_tree_refuses_root(self, backend: Any) -> None:
        """The storage root itself can never be removed."""
        with pytest.raises(PathTraversalError):
            backend.remove_tree("")

    def test_prune_removes_empty_ancestors(self, backend: Any) -> None:
        """prune() reclaims empty directories up to, not including, stop_at."""
        backend.write("bucket/a/b/c.txt", b"1")
        backend.delete("bucket/a/b/c.txt")

        backend.prune("bucket/a/b", "bucket")

        assert not backend.is_dir("bucket/a")
        assert backend.is_dir("bucket")

    def test_prune_keeps_non_empty_directories(self, backend: Any) -> None:
        """prune() stops at the first directory that still has entries."""
        backend.write("bucket/a/keep.txt", b"1")
        backend.write("bucket/a/b/c.txt", b"2")
        backend.delete("bucket/a/b/c.txt")

        backend.prune("bucket/a/b", "bucket")

        assert not backend.is_dir("bucket/a/b")
        assert backend.read("bucket/a/keep.txt") == b"1"


class TestPathContainment:
    """Tests for logical paths escaping the root."""

    @pytest.mark.parametrize("path", ["../escape.txt", "bucket/../../escape.txt"])
    def test_escaping_paths_rejected(self, backend: Any, path: str) -> None:
        """Paths that normalize outside the root raise PathTraversalError."""
        with pytest.raises(PathTraversalError):
            backend.read(path)
        with pytest.raises(PathTraversalError), backend.stage(path):
            pass


class TestFilesystemBackend:
    """Filesystem-specific behaviour."""

    def test_root_is_created(self, tmp_path: Path) -> None:
        """The root directory is created on construction."""
        root = tmp_path / "new" / "root"

        backend = FilesystemBackend(root)

        assert root.is_dir()
        assert backend.root == root.resolve()
        assert backend.backend_name == "filesystem"

    def test_staging_directory_is_empty_after_writes(self, tmp_path: Path) -> None:
        """Committed and discarded writes both leave no staging files behind."""
        backend = FilesystemBackend(tmp_path)
        backend.write("bucket/ok.txt", b"ok")
        with backend.stage("bucket/dropped.txt") as staged:
            staged.write(b"dropped")

        assert list((tmp_path / STAGING_DIRECTORY).iterdir()) == []

    def test_files_land_at_logical_paths(self, tmp_path: Path) -> None:
        """Logical paths map directly below the root."""
        backend = FilesystemBackend(tmp_path)
        backend.write("bucket/a/b.txt", b"content")

        assert (tmp_path / "bucket" / "a" / "b.txt").read_bytes() == b"content"


class TestInMemoryBackend:
    """In-memory-specific behaviour."""

    def test_backend_name(self) -> None:
        """The backend reports itself as memory."""
        assert InMemoryBackend().backend_name == "memory"

    def test_file_under_file_rejected(self) -> None:
        """A file cannot become the parent directory of another file."""
        backend = InMemoryBackend()
        backend.write("bucket/a", b"file")

        with pytest.raises(NotADirectoryError):
            backend.write("bucket/a/b", b"nested")

    def test_list_missing_directory_is_empty(self) -> None:
        """Listing a missing directory yields nothing."""
        assert InMemoryBackend().list("nope") == []

    def test_has_no_host_root(self) -> None:
        """Nothing is stored on disk, so there is no root directory."""
        assert InMemoryBackend().root is None

    def test_store_layout_without_root(self) -> None:
        """The store layout of an in-memory store carries no root."""
        from locals3.storage.object_store import ObjectStore

        layout = ObjectStore(InMemoryBackend()).initialize()

        assert layout.root is None
        assert layout.to_dict() == {"root": None, "metadataDir": ".metadata"}

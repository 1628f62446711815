"""locals3 filesystem storage backend.

Stores every logical path as a regular file under a root directory:
    {root}/{bucket}/{key}                          # object content
    {root}/.metadata/{bucket}/{key}.meta.json      # sidecar
    {root}/.staging/{uuid}.tmp                     # in-flight writes

Writes go to a staging file first and are published with ``os.replace``, so a
reader never observes a partially written file at its final path.
"""

from __future__ import annotations

import errno
import logging
import os
import shutil
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import BinaryIO

from locals3.storage.backend import StagedWrite, StorageBackend
from locals3.storage.errors import PathTraversalError
from locals3.storage.models import FileStat
from locals3.storage.traversal import cleanup_empty_directories, list_files_recursively

logger = logging.getLogger(__name__)

STAGING_DIRECTORY = ".staging"
_TMP_SUFFIX = ".tmp"


class _FileStagedWrite(StagedWrite):
    """Staged write backed by a temporary file in the staging directory."""

    def __init__(self, path: str, target: Path, tmp_file: Path) -> None:
        self._path = path
        self._target = target
        self._tmp_file = tmp_file
        self._handle = tmp_file.open("xb")
        self._committed = False

    @property
    def path(self) -> str:
        return self._path

    @property
    def committed(self) -> bool:
        return self._committed

    def write(self, data: bytes) -> None:
        self._handle.write(data)

    def commit(self) -> None:
        if self._committed:
            return
        try:
            self._handle.flush()
            os.fsync(self._handle.fileno())
            self._handle.close()
            self._target.parent.mkdir(parents=True, exist_ok=True)
            self._tmp_file.replace(self._target)
        except OSError:
            self.discard()
            raise
        self._committed = True

    def discard(self) -> None:
        if not self._handle.closed:
            self._handle.close()
        if not self._committed:
            self._tmp_file.unlink(missing_ok=True)


class FilesystemBackend(StorageBackend):
    """Host filesystem implementation of StorageBackend."""

    def __init__(self, root_dir: str | Path) -> None:
        """Initialize the backend, creating the root directory if needed.

        Args:
            root_dir: Storage root. Relative paths are resolved against the
                current working directory.
        """
        self._root = Path(root_dir).resolve()
        self._staging_dir = self._root / STAGING_DIRECTORY
        self._root.mkdir(parents=True, exist_ok=True)
        logger.debug("FilesystemBackend initialized with root=%s", self._root)

    @property
    def backend_name(self) -> str:
        """Return the backend identifier."""
        return "filesystem"

    @property
    def root(self) -> Path:
        """Return the storage root directory."""
        return self._root

    def _resolve(self, path: str) -> Path:
        """Map a logical path to a filesystem path inside the root."""
        resolved = (self._root / path).resolve()
        if not resolved.is_relative_to(self._root):
            raise PathTraversalError(
                message="Path resolves outside storage root directory",
                key=path,
            )
        return resolved

    def _resolve_file(self, path: str) -> Path:
        """Resolve a path that must name a file, not a directory."""
        resolved = self._resolve(path)
        if resolved.is_dir():
            raise FileNotFoundError(errno.ENOENT, "Not a file", path)
        return resolved

    def read(self, path: str) -> bytes:
        return self._resolve_file(path).read_bytes()

    def open(self, path: str) -> BinaryIO:
        return self._resolve_file(path).open("rb")

    @contextmanager
    def stage(self, path: str) -> Iterator[StagedWrite]:
        target = self._resolve(path)
        self._staging_dir.mkdir(parents=True, exist_ok=True)
        tmp_file = self._staging_dir / f"{uuid.uuid4().hex}{_TMP_SUFFIX}"
        staged = _FileStagedWrite(path, target, tmp_file)
        try:
            yield staged
        finally:
            staged.discard()

    def delete(self, path: str) -> None:
        self._resolve_file(path).unlink()

    def stat(self, path: str) -> FileStat:
        st = self._resolve_file(path).stat()
        return FileStat(
            size=st.st_size,
            modified=datetime.fromtimestamp(st.st_mtime, tz=UTC),
        )

    def list(self, directory: str, prefix: str = "") -> list[str]:
        base = self._resolve(directory)
        return [p.relative_to(base).as_posix() for p in list_files_recursively(base, prefix)]

    def make_dirs(self, path: str) -> None:
        self._resolve(path).mkdir(parents=True, exist_ok=True)

    def is_dir(self, path: str) -> bool:
        return self._resolve(path).is_dir()

    def list_dirs(self, path: str = "") -> list[str]:
        with os.scandir(self._resolve(path)) as entries:
            return [entry.name for entry in entries if entry.is_dir(follow_symlinks=False)]

    def remove_tree(self, path: str) -> None:
        resolved = self._resolve(path)
        if resolved == self._root:
            raise PathTraversalError(message="Refusing to remove the storage root", key=path)
        shutil.rmtree(resolved)

    def prune(self, directory: str, stop_at: str) -> None:
        cleanup_empty_directories(self._resolve(directory), self._resolve(stop_at))

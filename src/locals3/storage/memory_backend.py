"""locals3 in-memory storage backend.

Keeps files and directories in process-local dictionaries with the same
semantics as the filesystem backend. Nothing survives the process; intended
for tests and for embedding where durability is not needed.
"""

from __future__ import annotations

import errno
import io
import logging
import os
import posixpath
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import BinaryIO

from locals3.storage.backend import StagedWrite, StorageBackend
from locals3.storage.errors import PathTraversalError
from locals3.storage.models import FileStat

logger = logging.getLogger(__name__)


def _not_found(path: str) -> FileNotFoundError:
    return FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), path)


def _normalize(path: str) -> str:
    """Normalize a logical path, rejecting paths that escape the root."""
    if not path:
        return ""
    normalized = posixpath.normpath(path)
    if normalized == ".":
        return ""
    if normalized.startswith("/") or normalized == ".." or normalized.startswith("../"):
        raise PathTraversalError(message="Path resolves outside storage root", key=path)
    return normalized


def _children_prefix(path: str) -> str:
    return f"{path}/" if path else ""


class _MemoryStagedWrite(StagedWrite):
    """Staged write buffered in memory until committed."""

    def __init__(self, backend: InMemoryBackend, path: str, normalized: str) -> None:
        self._backend = backend
        self._path = path
        self._normalized = normalized
        self._buffer: io.BytesIO | None = io.BytesIO()
        self._committed = False

    @property
    def path(self) -> str:
        return self._path

    @property
    def committed(self) -> bool:
        return self._committed

    def write(self, data: bytes) -> None:
        if self._buffer is None:
            raise ValueError("write to a discarded staged file")
        self._buffer.write(data)

    def commit(self) -> None:
        if self._committed:
            return
        if self._buffer is None:
            raise ValueError("commit of a discarded staged file")
        try:
            self._backend._publish(self._normalized, self._buffer.getvalue())
        except OSError:
            self.discard()
            raise
        self._committed = True
        self._buffer = None

    def discard(self) -> None:
        self._buffer = None


class InMemoryBackend(StorageBackend):
    """Dictionary-backed implementation of StorageBackend."""

    def __init__(self) -> None:
        self._files: dict[str, tuple[bytes, datetime]] = {}
        self._dirs: set[str] = {""}

    @property
    def backend_name(self) -> str:
        """Return the backend identifier."""
        return "memory"

    def _ensure_parents(self, path: str) -> None:
        """Create the ancestors of ``path``, failing if one of them is a file."""
        missing: list[str] = []
        parent = posixpath.dirname(path)
        while parent not in self._dirs:
            if parent in self._files:
                raise NotADirectoryError(errno.ENOTDIR, os.strerror(errno.ENOTDIR), parent)
            missing.append(parent)
            parent = posixpath.dirname(parent)
        self._dirs.update(missing)

    def _publish(self, path: str, data: bytes) -> None:
        if path in self._dirs:
            raise IsADirectoryError(errno.EISDIR, os.strerror(errno.EISDIR), path)
        self._ensure_parents(path)
        self._files[path] = (data, datetime.now(UTC))

    def _get(self, path: str) -> tuple[bytes, datetime]:
        try:
            return self._files[_normalize(path)]
        except KeyError:
            raise _not_found(path) from None

    def read(self, path: str) -> bytes:
        return self._get(path)[0]

    def open(self, path: str) -> BinaryIO:
        return io.BytesIO(self.read(path))

    @contextmanager
    def stage(self, path: str) -> Iterator[StagedWrite]:
        staged = _MemoryStagedWrite(self, path, _normalize(path))
        try:
            yield staged
        finally:
            staged.discard()

    def delete(self, path: str) -> None:
        if self._files.pop(_normalize(path), None) is None:
            raise _not_found(path)

    def stat(self, path: str) -> FileStat:
        data, modified = self._get(path)
        return FileStat(size=len(data), modified=modified)

    def list(self, directory: str, prefix: str = "") -> list[str]:
        base = _normalize(directory)
        if base not in self._dirs:
            logger.warning("Skipping unreadable directory %s: not found", directory)
            return []
        base_prefix = _children_prefix(base)
        results: list[str] = []
        for path in self._files:
            if not path.startswith(base_prefix):
                continue
            relative = path[len(base_prefix) :]
            if not prefix or relative.startswith(prefix):
                results.append(relative)
        return results

    def make_dirs(self, path: str) -> None:
        normalized = _normalize(path)
        if normalized in self._files:
            raise FileExistsError(errno.EEXIST, os.strerror(errno.EEXIST), path)
        if normalized in self._dirs:
            return
        self._ensure_parents(normalized)
        self._dirs.add(normalized)

    def is_dir(self, path: str) -> bool:
        return _normalize(path) in self._dirs

    def list_dirs(self, path: str = "") -> list[str]:
        base = _normalize(path)
        if base not in self._dirs:
            raise _not_found(path)
        base_prefix = _children_prefix(base)
        names = {
            d[len(base_prefix) :]
            for d in self._dirs
            if d != base and d.startswith(base_prefix) and "/" not in d[len(base_prefix) :]
        }
        return sorted(names)

    def remove_tree(self, path: str) -> None:
        base = _normalize(path)
        if not base:
            raise PathTraversalError(message="Refusing to remove the storage root", key=path)
        if base not in self._dirs:
            raise _not_found(path)
        base_prefix = _children_prefix(base)
        self._dirs = {d for d in self._dirs if d != base and not d.startswith(base_prefix)}
        self._files = {p: v for p, v in self._files.items() if not p.startswith(base_prefix)}

    def _has_children(self, path: str) -> bool:
        path_prefix = _children_prefix(path)
        return any(p.startswith(path_prefix) for p in self._files) or any(
            d != path and d.startswith(path_prefix) for d in self._dirs
        )

    def prune(self, directory: str, stop_at: str) -> None:
        current = _normalize(directory)
        stop = _normalize(stop_at)
        stop_prefix = _children_prefix(stop)
        while current != stop and current.startswith(stop_prefix):
            if current in self._dirs:
                if self._has_children(current):
                    return
                self._dirs.discard(current)
            current = posixpath.dirname(current)

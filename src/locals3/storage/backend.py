"""locals3 storage backend interface.

The object store orchestrates buckets, sidecars and hashing on top of this
capability interface, so alternative backends (in-memory, remote) can be
substituted without touching orchestration logic.

Paths are logical POSIX paths relative to the storage root, e.g.
``"photos/2024/a.jpg"`` or ``".metadata/photos/2024/a.jpg.meta.json"``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from pathlib import Path
from typing import BinaryIO

from locals3.storage.models import FileStat


class StagedWrite(ABC):
    """Bytes destined for a path, invisible there until committed.

    Implementations publish the staged bytes with a single atomic step on
    ``commit`` and drop them on ``discard``. ``discard`` after ``commit`` is a
    no-op.
    """

    @property
    @abstractmethod
    def path(self) -> str:
        """Logical target path."""
        ...

    @property
    @abstractmethod
    def committed(self) -> bool:
        """Whether the staged bytes have been published."""
        ...

    @abstractmethod
    def write(self, data: bytes) -> None:
        """Append bytes to the staged content.

        Raises:
            OSError: If the bytes cannot be written.
        """
        ...

    @abstractmethod
    def commit(self) -> None:
        """Publish the staged content at ``path``, creating parent directories.

        Raises:
            OSError: If publishing fails; the staged content is then discarded.
        """
        ...

    @abstractmethod
    def discard(self) -> None:
        """Drop the staged content unless it was committed."""
        ...


class StorageBackend(ABC):
    """Abstract base class for storage backends.

    Missing paths raise ``FileNotFoundError``; any other failure raises
    ``OSError``. Translation into storage errors is the caller's job.

    Implementations:
    - FilesystemBackend: host filesystem under a root directory
    - InMemoryBackend: process-local dictionaries
    """

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Return the backend identifier for observability."""
        ...

    @property
    def root(self) -> Path | None:
        """Return the host directory holding the data, or None when not on disk."""
        return None

    @abstractmethod
    def read(self, path: str) -> bytes:
        """Return the full content of the file at ``path``."""
        ...

    @abstractmethod
    def open(self, path: str) -> BinaryIO:
        """Open the file at ``path`` for binary reading.

        The returned object is a context manager; the caller closes it.
        """
        ...

    @abstractmethod
    def stage(self, path: str) -> AbstractContextManager[StagedWrite]:
        """Acquire a staged write for ``path``.

        The staged content is discarded on every exit from the context that
        did not commit it, including exceptions and interpreter interrupts.
        """
        ...

    def write(self, path: str, data: bytes) -> None:
        """Atomically replace the file at ``path`` with ``data``."""
        with self.stage(path) as staged:
            staged.write(data)
            staged.commit()

    @abstractmethod
    def delete(self, path: str) -> None:
        """Delete the file at ``path``."""
        ...

    @abstractmethod
    def stat(self, path: str) -> FileStat:
        """Return size and modification time of the file at ``path``."""
        ...

    @abstractmethod
    def list(self, directory: str, prefix: str = "") -> list[str]:
        """List files below ``directory`` recursively.

        Args:
            directory: Directory to scan.
            prefix: Only include files whose path relative to ``directory``
                starts with this string.

        Returns:
            Paths relative to ``directory``, in traversal order. Unreadable
            subdirectories are skipped rather than failing the listing.
        """
        ...

    @abstractmethod
    def make_dirs(self, path: str) -> None:
        """Create the directory ``path`` and any missing parents."""
        ...

    @abstractmethod
    def is_dir(self, path: str) -> bool:
        """Return True if ``path`` is an existing directory."""
        ...

    @abstractmethod
    def list_dirs(self, path: str = "") -> list[str]:
        """Return names of the immediate subdirectories of ``path``."""
        ...

    @abstractmethod
    def remove_tree(self, path: str) -> None:
        """Remove the directory ``path`` and everything below it."""
        ...

    @abstractmethod
    def prune(self, directory: str, stop_at: str) -> None:
        """Remove ``directory`` and its ancestors while empty, never ``stop_at``."""
        ...

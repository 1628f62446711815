"""Directory traversal helpers for the filesystem backend.

Recursive file listing with prefix filtering, and upward reclamation of
directories left empty after a delete.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)


def _may_contain_prefix(relative_dir: str, prefix: str) -> bool:
    """Return True if files below ``relative_dir`` can start with ``prefix``."""
    if not prefix or not relative_dir:
        return True
    dir_prefix = relative_dir + "/"
    return dir_prefix.startswith(prefix) or prefix.startswith(dir_prefix)


def list_files_recursively(root: str | Path, prefix: str = "") -> list[Path]:
    """List every regular file below ``root``.

    Args:
        root: Directory to scan.
        prefix: Optional filter applied to each file's path relative to
            ``root`` (always with "/" separators).

    Returns:
        File paths in traversal order. Directories that cannot be read are
        skipped with a warning; symlinked directories are not followed.
    """
    root_path = Path(root)
    results: list[Path] = []
    pending: list[tuple[Path, str]] = [(root_path, "")]

    while pending:
        directory, relative_dir = pending.pop()
        try:
            with os.scandir(directory) as entries:
                children = list(entries)
        except OSError as e:
            logger.warning("Skipping unreadable directory %s: %s", directory, e)
            continue

        subdirs: list[tuple[Path, str]] = []
        for entry in children:
            relative = f"{relative_dir}/{entry.name}" if relative_dir else entry.name
            try:
                if entry.is_dir(follow_symlinks=False):
                    if _may_contain_prefix(relative, prefix):
                        subdirs.append((Path(entry.path), relative))
                    continue
                if not entry.is_file():
                    continue
            except OSError as e:
                logger.warning("Skipping unreadable entry %s: %s", entry.path, e)
                continue

            if not prefix or relative.startswith(prefix):
                results.append(Path(entry.path))

        # Reversed so the stack visits subdirectories in scandir order.
        pending.extend(reversed(subdirs))

    return results


def cleanup_empty_directories(directory: str | Path, stop_at: str | Path) -> None:
    """Remove ``directory`` and its ancestors while they are empty.

    Stops at the first non-empty directory, at ``stop_at`` itself, or once the
    walk leaves ``stop_at``'s subtree. ``stop_at`` is never removed.
    """
    stop = Path(os.path.abspath(stop_at))
    current = Path(os.path.abspath(directory))

    while current != stop and current.is_relative_to(stop):
        try:
            with os.scandir(current) as entries:
                if next(entries, None) is not None:
                    return
            current.rmdir()
            logger.debug("Removed empty directory %s", current)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.debug("Stopped directory cleanup at %s: %s", current, e)
            return
        current = current.parent

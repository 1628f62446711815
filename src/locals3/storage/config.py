"""locals3 storage configuration.

Environment variables:
    LOCALS3_ROOT_DIR: Storage root directory (default: ./local-s3)
    LOCALS3_BACKEND: "filesystem" or "memory" (default: "filesystem")
    LOCALS3_CHUNK_SIZE: Bytes per read when streaming a file-like source
        (default: 65536)
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Final

ENV_ROOT_DIR: Final[str] = "LOCALS3_ROOT_DIR"
ENV_BACKEND: Final[str] = "LOCALS3_BACKEND"
ENV_CHUNK_SIZE: Final[str] = "LOCALS3_CHUNK_SIZE"

DEFAULT_ROOT_DIRECTORY: Final[str] = "local-s3"
DEFAULT_BACKEND: Final[str] = "filesystem"
DEFAULT_CHUNK_SIZE: Final[int] = 64 * 1024

SUPPORTED_BACKENDS: Final[frozenset[str]] = frozenset({"filesystem", "memory"})


class StorageConfigError(Exception):
    """Raised when storage configuration is invalid."""


@dataclass(frozen=True)
class StorageConfig:
    """Storage configuration (immutable).

    Attributes:
        root_dir: Root directory for the filesystem backend.
        backend: Backend identifier ("filesystem" or "memory").
        chunk_size: Bytes per read when draining file-like sources.
    """

    root_dir: Path
    backend: str = DEFAULT_BACKEND
    chunk_size: int = DEFAULT_CHUNK_SIZE

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.backend not in SUPPORTED_BACKENDS:
            raise StorageConfigError(
                f"{ENV_BACKEND} must be one of {sorted(SUPPORTED_BACKENDS)}, got '{self.backend}'"
            )
        if self.chunk_size <= 0:
            raise StorageConfigError(
                f"{ENV_CHUNK_SIZE} must be a positive integer, got {self.chunk_size}"
            )


def _parse_positive_int(env_var: str, default: int) -> int:
    """Parse a positive integer from an environment variable.

    Raises:
        StorageConfigError: If the value is set but not a positive integer.
    """
    raw = os.environ.get(env_var)
    if raw is None:
        return default

    raw = raw.strip()
    if not raw:
        return default

    try:
        value = int(raw)
    except ValueError as e:
        raise StorageConfigError(f"{env_var} must be a positive integer, got '{raw}'") from e

    if value <= 0:
        raise StorageConfigError(f"{env_var} must be a positive integer, got {value}")

    return value


def load_storage_config(root_dir: str | Path | None = None) -> StorageConfig:
    """Load storage configuration from environment variables.

    Args:
        root_dir: Explicit root directory; overrides LOCALS3_ROOT_DIR.

    Returns:
        StorageConfig with validated values.

    Raises:
        StorageConfigError: If any value is invalid.
    """
    if root_dir is None:
        root_dir = os.environ.get(ENV_ROOT_DIR, "").strip() or None

    if root_dir is None:
        root_path = Path.cwd() / DEFAULT_ROOT_DIRECTORY
    else:
        root_path = Path(root_dir)

    backend = os.environ.get(ENV_BACKEND, "").strip().lower() or DEFAULT_BACKEND

    return StorageConfig(
        root_dir=root_path,
        backend=backend,
        chunk_size=_parse_positive_int(ENV_CHUNK_SIZE, DEFAULT_CHUNK_SIZE),
    )

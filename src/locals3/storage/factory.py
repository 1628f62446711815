"""Construction of object stores from configuration."""

from __future__ import annotations

import logging

from locals3.storage.backend import StorageBackend
from locals3.storage.config import StorageConfig, load_storage_config
from locals3.storage.filesystem_backend import FilesystemBackend
from locals3.storage.memory_backend import InMemoryBackend
from locals3.storage.object_store import ObjectStore

logger = logging.getLogger(__name__)


def create_backend(config: StorageConfig) -> StorageBackend:
    """Create the storage backend named by ``config.backend``."""
    if config.backend == "memory":
        return InMemoryBackend()
    return FilesystemBackend(config.root_dir)


def create_object_store(config: StorageConfig | None = None) -> ObjectStore:
    """Factory function to create an object store.

    Args:
        config: Storage configuration. If None, it is loaded from environment
            variables.

    Returns:
        Initialized ObjectStore instance.

    Raises:
        StorageConfigError: If the environment configuration is invalid.
        StorageBackendError: If the storage root cannot be prepared.
    """
    if config is None:
        config = load_storage_config()

    store = ObjectStore(create_backend(config), chunk_size=config.chunk_size)
    logger.debug("Created object store: backend=%s root=%s", config.backend, config.root_dir)
    return store

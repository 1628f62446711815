"""locals3 object storage engine.

Provides S3-style buckets and objects on a local directory tree, with JSON
sidecar metadata, MD5 etags and atomic writes.

Backends:
- FilesystemBackend: Host filesystem under a root directory
- InMemoryBackend: Process-local dictionaries (tests, embedding)

Environment Variables:
    LOCALS3_ROOT_DIR: Storage root directory (default: ./local-s3)
    LOCALS3_BACKEND: "filesystem" or "memory" (default: "filesystem")
    LOCALS3_CHUNK_SIZE: Bytes per read when streaming a file-like source
        (default: 65536)
"""

from locals3.storage.backend import StagedWrite, StorageBackend
from locals3.storage.config import StorageConfig, StorageConfigError, load_storage_config
from locals3.storage.errors import (
    BucketNotEmptyError,
    BucketNotFoundError,
    InvalidMetadataError,
    InvalidNameError,
    ObjectNotFoundError,
    ObjectStorageError,
    PathTraversalError,
    StorageBackendError,
    StreamIngestionError,
)
from locals3.storage.factory import create_backend, create_object_store
from locals3.storage.filesystem_backend import FilesystemBackend
from locals3.storage.memory_backend import InMemoryBackend
from locals3.storage.metadata import MetadataStore
from locals3.storage.models import (
    BucketInfo,
    ObjectInfo,
    ObjectMetadata,
    PutObjectResult,
    StorageLayout,
    StoredObject,
    SystemMetadata,
)
from locals3.storage.object_store import ObjectStore
from locals3.storage.validation import validate_bucket_name, validate_object_key

__all__ = [
    "ObjectStore",
    "MetadataStore",
    "StorageBackend",
    "StagedWrite",
    "FilesystemBackend",
    "InMemoryBackend",
    "StorageConfig",
    "StorageConfigError",
    "load_storage_config",
    "create_backend",
    "create_object_store",
    "BucketInfo",
    "ObjectInfo",
    "ObjectMetadata",
    "PutObjectResult",
    "StorageLayout",
    "StoredObject",
    "SystemMetadata",
    "validate_bucket_name",
    "validate_object_key",
    "ObjectStorageError",
    "InvalidNameError",
    "PathTraversalError",
    "InvalidMetadataError",
    "BucketNotFoundError",
    "BucketNotEmptyError",
    "ObjectNotFoundError",
    "StorageBackendError",
    "StreamIngestionError",
]

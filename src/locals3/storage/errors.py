"""locals3 storage error types.

Every failure raised by the engine is an ObjectStorageError subclass. Validation
and pre-existence errors are raised before anything is written; backend errors
wrap the underlying OSError as ``cause``.
"""

from __future__ import annotations


class ObjectStorageError(Exception):
    """Base exception for object storage operations.

    Attributes:
        message: Human-readable error message.
        bucket: Bucket associated with the operation (if applicable).
        key: Object key associated with the operation (if applicable).
    """

    def __init__(
        self,
        message: str,
        *,
        bucket: str | None = None,
        key: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.bucket = bucket
        self.key = key

    def __str__(self) -> str:
        parts = [self.message]
        if self.bucket:
            parts.append(f"bucket={self.bucket}")
        if self.key:
            parts.append(f"key={self.key}")
        return " ".join(parts)


class InvalidNameError(ObjectStorageError):
    """Raised when a bucket name or object key fails validation."""

    def __init__(
        self,
        message: str = "Invalid name",
        *,
        bucket: str | None = None,
        key: str | None = None,
    ) -> None:
        super().__init__(message, bucket=bucket, key=key)


class PathTraversalError(InvalidNameError):
    """Raised when a logical path would resolve outside the storage root."""

    def __init__(
        self,
        message: str = "Invalid path: resolves outside storage root",
        *,
        bucket: str | None = None,
        key: str | None = None,
    ) -> None:
        super().__init__(message, bucket=bucket, key=key)


class InvalidMetadataError(ObjectStorageError):
    """Raised when caller-supplied metadata cannot be stored as JSON."""


class BucketNotFoundError(ObjectStorageError):
    """Raised when the target bucket does not exist."""

    def __init__(
        self,
        message: str = "Bucket not found",
        *,
        bucket: str | None = None,
        key: str | None = None,
    ) -> None:
        super().__init__(message, bucket=bucket, key=key)


class BucketNotEmptyError(ObjectStorageError):
    """Raised when deleting a bucket that still holds objects."""

    def __init__(
        self,
        message: str = "Cannot delete non-empty bucket",
        *,
        bucket: str | None = None,
    ) -> None:
        super().__init__(message, bucket=bucket)


class ObjectNotFoundError(ObjectStorageError):
    """Raised when an object's content file does not exist."""

    def __init__(
        self,
        message: str = "Object not found",
        *,
        bucket: str | None = None,
        key: str | None = None,
    ) -> None:
        super().__init__(message, bucket=bucket, key=key)


class StorageBackendError(ObjectStorageError):
    """Raised when the storage backend cannot complete an operation.

    This indicates the backend itself failed (disk full, permission denied,
    unreadable sidecar) rather than a logical error like object not found.
    Never retried internally.
    """

    def __init__(
        self,
        message: str = "Storage backend error",
        *,
        bucket: str | None = None,
        key: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, bucket=bucket, key=key)
        self.cause = cause


class StreamIngestionError(StorageBackendError):
    """Raised when a streamed source fails while it is being drained.

    The partially received content is discarded before this propagates; the
    producer's exception is available as ``cause`` and ``__cause__``.
    """

    def __init__(
        self,
        message: str = "Stream ingestion failed",
        *,
        bucket: str | None = None,
        key: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, bucket=bucket, key=key, cause=cause)

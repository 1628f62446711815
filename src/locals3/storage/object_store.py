"""locals3 object store.

Bucket lifecycle and object CRUD/copy/list on top of a StorageBackend.

Every put stages the content and its sidecar side by side and publishes them
with two consecutive atomic renames, content first. A failure before the
renames leaves nothing behind; a crash between them leaves content without a
sidecar, which reads back through metadata synthesis. There is no locking:
concurrent writers of the same key race and the last rename of each artifact
wins.
"""

from __future__ import annotations

import hashlib
import logging
import posixpath
from collections.abc import Iterable, Iterator, Mapping
from datetime import UTC, datetime
from typing import Any, BinaryIO, TypeAlias

from locals3.storage.backend import StagedWrite, StorageBackend
from locals3.storage.config import DEFAULT_CHUNK_SIZE
from locals3.storage.errors import (
    BucketNotEmptyError,
    BucketNotFoundError,
    InvalidNameError,
    ObjectNotFoundError,
    ObjectStorageError,
    StorageBackendError,
    StreamIngestionError,
)
from locals3.storage.metadata import (
    METADATA_DIRECTORY,
    MetadataStore,
    check_user_metadata,
    resolve_object_path,
)
from locals3.storage.models import (
    DEFAULT_CONTENT_TYPE,
    SYSTEM_METADATA_FIELD,
    BucketInfo,
    ObjectInfo,
    ObjectMetadata,
    PutObjectResult,
    StorageLayout,
    StoredObject,
    SystemMetadata,
)
from locals3.storage.tracing import traced_storage_operation
from locals3.storage.validation import validate_bucket_name, validate_object_key

logger = logging.getLogger(__name__)

ObjectSource: TypeAlias = "bytes | bytearray | memoryview | BinaryIO | Iterable[bytes]"

_BUFFER_TYPES = (bytes, bytearray, memoryview)


def _compute_etag(data: bytes) -> str:
    """Compute the MD5 etag of data and return it as a hex string."""
    return hashlib.md5(data, usedforsecurity=False).hexdigest()


class ObjectStore:
    """Local object store organised into buckets.

    Construct one per storage root and pass it to whoever needs it:

        store = ObjectStore(FilesystemBackend("/var/lib/media"))
        store.create_bucket("media")
        store.put_object("media", "2024/cat.jpg", data, content_type="image/jpeg")
    """

    def __init__(self, backend: StorageBackend, *, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        """Initialize the store and its metadata directory.

        Args:
            backend: Storage backend holding content and sidecars.
            chunk_size: Bytes per read when draining a file-like source.
        """
        self._backend = backend
        self._metadata = MetadataStore(backend)
        self._chunk_size = chunk_size
        self.initialize()

    @property
    def backend_name(self) -> str:
        """Return the backend identifier."""
        return self._backend.backend_name

    @property
    def backend(self) -> StorageBackend:
        """Return the underlying storage backend."""
        return self._backend

    @property
    def metadata(self) -> MetadataStore:
        """Return the sidecar metadata store."""
        return self._metadata

    def initialize(self) -> StorageLayout:
        """Create the metadata directory if it does not exist yet. Idempotent."""
        try:
            self._backend.make_dirs(METADATA_DIRECTORY)
        except OSError as e:
            logger.error("Failed to initialize storage: %s", e)
            raise StorageBackendError(
                message=f"Failed to initialize storage: {e}",
                cause=e,
            ) from e
        return StorageLayout(
            root=self._backend.root,
            metadata_dir=METADATA_DIRECTORY,
        )

    def _require_bucket_name(self, bucket: str) -> None:
        if not validate_bucket_name(bucket):
            raise InvalidNameError(message="Invalid bucket name", bucket=bucket)

    def _require_key(self, bucket: str, key: str) -> None:
        if not validate_object_key(key):
            raise InvalidNameError(message="Invalid object key", bucket=bucket, key=key)

    def _require_bucket(self, bucket: str) -> None:
        if not self._backend.is_dir(bucket):
            raise BucketNotFoundError(message=f"Bucket {bucket} does not exist", bucket=bucket)

    # Buckets

    def bucket_exists(self, name: str) -> bool:
        """Return True if a bucket with a valid name exists."""
        return validate_bucket_name(name) and self._backend.is_dir(name)

    @traced_storage_operation("create_bucket")
    def create_bucket(self, name: str) -> BucketInfo:
        """Create a bucket.

        Creating a bucket that already exists succeeds without changes.

        Raises:
            InvalidNameError: If the name fails validation.
            StorageBackendError: If the directories cannot be created.
        """
        self._require_bucket_name(name)
        try:
            self._backend.make_dirs(name)
            self._metadata.create_bucket(name)
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to create bucket: {e}",
                bucket=name,
                cause=e,
            ) from e

        logger.info("Created bucket %s", name)
        return BucketInfo(name=name, creation_date=datetime.now(UTC))

    @traced_storage_operation("delete_bucket")
    def delete_bucket(self, name: str) -> str:
        """Delete an empty bucket and its metadata directory.

        Returns:
            The name of the deleted bucket.

        Raises:
            InvalidNameError: If the name fails validation.
            BucketNotFoundError: If the bucket does not exist.
            BucketNotEmptyError: If the bucket still contains objects.
            StorageBackendError: If the directories cannot be removed.
        """
        self._require_bucket_name(name)
        self._require_bucket(name)

        try:
            remaining = self._backend.list(name)
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to list bucket: {e}",
                bucket=name,
                cause=e,
            ) from e
        if remaining:
            raise BucketNotEmptyError(bucket=name)

        try:
            self._backend.remove_tree(name)
            self._metadata.remove_bucket(name)
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to delete bucket: {e}",
                bucket=name,
                cause=e,
            ) from e

        logger.info("Deleted bucket %s", name)
        return name

    @traced_storage_operation("list_buckets")
    def list_buckets(self) -> list[BucketInfo]:
        """List buckets sorted by name.

        Creation dates are not persisted; every entry carries the call time.
        """
        try:
            names = self._backend.list_dirs("")
        except OSError as e:
            raise StorageBackendError(message=f"Failed to list buckets: {e}", cause=e) from e

        now = datetime.now(UTC)
        return [
            BucketInfo(name=name, creation_date=now)
            for name in sorted(names)
            if not name.startswith(".")
        ]

    # Objects

    @traced_storage_operation("put_object", keyed=True)
    def put_object(
        self,
        bucket: str,
        key: str,
        source: ObjectSource,
        metadata: Mapping[str, Any] | None = None,
        *,
        content_type: str | None = None,
    ) -> PutObjectResult:
        """Store an object, replacing any object with the same key.

        Args:
            bucket: Existing bucket name.
            key: Object key; "/" separates nested path segments.
            source: Bytes (buffered), a binary file object, or an iterable
                yielding bytes chunks (streamed).
            metadata: Caller-defined fields stored at the top level of the
                sidecar. The ``systemMetadata`` field is reserved.
            content_type: MIME type; defaults to ``metadata["contentType"]``
                and then to application/octet-stream.

        Returns:
            PutObjectResult with the MD5 etag and size of the stored content.

        Raises:
            InvalidNameError: If the bucket name or key fails validation.
            InvalidMetadataError: If metadata is not JSON-serializable.
            BucketNotFoundError: If the bucket does not exist.
            StreamIngestionError: If a streamed source fails while draining.
            StorageBackendError: If content or sidecar cannot be written.
            TypeError: If source is not a supported type.
        """
        self._require_bucket_name(bucket)
        self._require_key(bucket, key)
        if isinstance(source, str):
            raise TypeError("source must be bytes, a binary file object or an iterable of bytes")

        user_fields = {k: v for k, v in (metadata or {}).items() if k != SYSTEM_METADATA_FIELD}
        check_user_metadata(user_fields)
        self._require_bucket(bucket)

        resolved_type = content_type or user_fields.get("contentType") or DEFAULT_CONTENT_TYPE
        object_path = resolve_object_path(bucket, key)

        try:
            with self._backend.stage(object_path) as content:
                if isinstance(source, _BUFFER_TYPES):
                    data = bytes(source)
                    content.write(data)
                    etag = _compute_etag(data)
                    size = len(data)
                else:
                    etag, size = self._ingest_stream(bucket, key, source, content)

                record = ObjectMetadata(
                    system=SystemMetadata(
                        content_type=str(resolved_type),
                        size=size,
                        last_modified=datetime.now(UTC),
                        etag=etag,
                    ),
                    user=user_fields,
                )
                with self._metadata.stage_metadata(bucket, key, record) as sidecar:
                    content.commit()
                    sidecar.commit()
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to store object: {e}",
                bucket=bucket,
                key=key,
                cause=e,
            ) from e

        logger.debug("Stored object: bucket=%s key=%s size=%d etag=%s", bucket, key, size, etag)
        return PutObjectResult(etag=etag, key=key, bucket=bucket, size=size)

    def _ingest_stream(
        self, bucket: str, key: str, source: Any, sink: StagedWrite
    ) -> tuple[str, int]:
        """Copy a streamed source into ``sink``, hashing and counting as it goes."""
        hasher = hashlib.md5(usedforsecurity=False)
        size = 0
        for chunk in self._drain(bucket, key, source):
            hasher.update(chunk)
            sink.write(chunk)
            size += len(chunk)
        return hasher.hexdigest(), size

    def _drain(self, bucket: str, key: str, source: Any) -> Iterator[bytes]:
        """Yield the chunks of a streamed source.

        Failures raised by the producer become StreamIngestionError; failures
        writing the chunks surface separately as OSError.
        """
        if hasattr(source, "read"):
            reader = source
            chunks: Iterator[Any] = iter(lambda: reader.read(self._chunk_size), b"")
        else:
            try:
                chunks = iter(source)
            except TypeError as e:
                raise TypeError(
                    "source must be bytes, a binary file object or an iterable of bytes"
                ) from e

        while True:
            try:
                chunk = next(chunks)
            except StopIteration:
                return
            except Exception as e:
                logger.warning(
                    "Stream failed for bucket=%s key=%s; discarding partial content: %s",
                    bucket,
                    key,
                    e,
                )
                raise StreamIngestionError(
                    message=f"Stream ingestion failed: {e}",
                    bucket=bucket,
                    key=key,
                    cause=e,
                ) from e

            if not isinstance(chunk, _BUFFER_TYPES):
                raise StreamIngestionError(
                    message=f"Stream yielded {type(chunk).__name__}, expected bytes",
                    bucket=bucket,
                    key=key,
                )
            if chunk:
                yield bytes(chunk)

    @traced_storage_operation("get_object", keyed=True)
    def get_object(self, bucket: str, key: str) -> StoredObject:
        """Retrieve an object's metadata and full content.

        Raises:
            InvalidNameError: If the bucket name or key fails validation.
            ObjectNotFoundError: If the content file does not exist.
            StorageBackendError: If metadata or content cannot be read.
        """
        self._require_bucket_name(bucket)
        self._require_key(bucket, key)

        metadata = self._metadata.read_metadata(bucket, key)
        try:
            body = self._backend.read(resolve_object_path(bucket, key))
        except FileNotFoundError as e:
            raise ObjectNotFoundError(bucket=bucket, key=key) from e
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to read object: {e}",
                bucket=bucket,
                key=key,
                cause=e,
            ) from e

        return StoredObject(metadata=metadata, body=body)

    @traced_storage_operation("get_object_metadata", keyed=True)
    def get_object_metadata(self, bucket: str, key: str) -> ObjectMetadata:
        """Get object metadata without reading content.

        Raises:
            InvalidNameError: If the bucket name or key fails validation.
            ObjectNotFoundError: If neither sidecar nor content exists.
            StorageBackendError: If the sidecar cannot be read.
        """
        self._require_bucket_name(bucket)
        self._require_key(bucket, key)
        return self._metadata.read_metadata(bucket, key)

    @traced_storage_operation("delete_object", keyed=True)
    def delete_object(self, bucket: str, key: str) -> str:
        """Delete an object and its sidecar, then prune emptied directories.

        Returns:
            The key of the deleted object.

        Raises:
            InvalidNameError: If the bucket name or key fails validation.
            ObjectNotFoundError: If the content file does not exist.
            StorageBackendError: If a file cannot be removed.
        """
        self._require_bucket_name(bucket)
        self._require_key(bucket, key)

        object_path = resolve_object_path(bucket, key)
        try:
            self._backend.delete(object_path)
        except FileNotFoundError as e:
            raise ObjectNotFoundError(bucket=bucket, key=key) from e
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to delete object: {e}",
                bucket=bucket,
                key=key,
                cause=e,
            ) from e

        self._metadata.delete_metadata(bucket, key)
        self._backend.prune(posixpath.dirname(object_path), bucket)
        logger.debug("Deleted object: bucket=%s key=%s", bucket, key)
        return key

    @traced_storage_operation("copy_object", keyed=True)
    def copy_object(
        self,
        src_bucket: str,
        src_key: str,
        dst_bucket: str,
        dst_key: str,
    ) -> PutObjectResult:
        """Copy an object, streaming its content into the destination.

        User metadata and content type are carried over; size, etag and
        last-modified are recomputed. Copying an object onto itself is safe.

        Raises:
            InvalidNameError: If a bucket name or key fails validation.
            ObjectNotFoundError: If the source object does not exist.
            BucketNotFoundError: If the destination bucket does not exist.
            StorageBackendError: If the copy cannot be completed.
        """
        self._require_bucket_name(src_bucket)
        self._require_key(src_bucket, src_key)
        self._require_bucket_name(dst_bucket)
        self._require_key(dst_bucket, dst_key)

        source_metadata = self._metadata.read_metadata(src_bucket, src_key)
        try:
            reader = self._backend.open(resolve_object_path(src_bucket, src_key))
        except FileNotFoundError as e:
            raise ObjectNotFoundError(bucket=src_bucket, key=src_key) from e
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to open source object: {e}",
                bucket=src_bucket,
                key=src_key,
                cause=e,
            ) from e

        with reader:
            return self.put_object(
                dst_bucket,
                dst_key,
                reader,
                source_metadata.user,
                content_type=source_metadata.content_type,
            )

    @traced_storage_operation("list_objects")
    def list_objects(self, bucket: str, prefix: str = "") -> list[ObjectInfo]:
        """List the objects of a bucket whose key starts with ``prefix``.

        Entries whose attributes or metadata cannot be read are skipped with a
        warning. Order follows directory traversal and is not sorted.

        Raises:
            InvalidNameError: If the bucket name fails validation.
            BucketNotFoundError: If the bucket does not exist.
        """
        self._require_bucket_name(bucket)
        self._require_bucket(bucket)

        try:
            keys = self._backend.list(bucket, prefix)
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to list objects: {e}",
                bucket=bucket,
                cause=e,
            ) from e

        objects: list[ObjectInfo] = []
        for key in keys:
            try:
                self._backend.stat(resolve_object_path(bucket, key))
                metadata = self._metadata.read_metadata(bucket, key)
            except (ObjectStorageError, OSError) as e:
                logger.warning("Skipping object bucket=%s key=%s: %s", bucket, key, e)
                continue

            objects.append(
                ObjectInfo(
                    key=key,
                    last_modified=metadata.last_modified,
                    size=metadata.size,
                    etag=metadata.etag,
                )
            )

        return objects

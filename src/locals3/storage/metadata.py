"""locals3 sidecar metadata store.

Each object's metadata lives in a JSON sidecar whose path mirrors the object
key under a parallel metadata tree:

    {bucket}/{key}                         -> content
    .metadata/{bucket}/{key}.meta.json     -> sidecar

When a sidecar is missing the record is synthesized from the content file's
attributes, with an empty etag meaning "not computed".
"""

from __future__ import annotations

import json
import logging
import posixpath
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from locals3.storage.backend import StagedWrite, StorageBackend
from locals3.storage.errors import (
    InvalidMetadataError,
    ObjectNotFoundError,
    StorageBackendError,
)
from locals3.storage.models import (
    SYSTEM_METADATA_FIELD,
    FileStat,
    ObjectMetadata,
    SystemMetadata,
)
from locals3.storage.validation import SIDECAR_SUFFIX

logger = logging.getLogger(__name__)

METADATA_DIRECTORY = ".metadata"
METADATA_SUFFIX = SIDECAR_SUFFIX


def resolve_object_path(bucket: str, key: str) -> str:
    """Return the logical content path of an object."""
    return f"{bucket}/{key}"


def resolve_metadata_path(bucket: str, key: str) -> str:
    """Return the logical sidecar path of an object."""
    return f"{METADATA_DIRECTORY}/{bucket}/{key}{METADATA_SUFFIX}"


def resolve_bucket_metadata_dir(bucket: str) -> str:
    """Return the logical metadata directory of a bucket."""
    return f"{METADATA_DIRECTORY}/{bucket}"


def encode_metadata(record: ObjectMetadata) -> bytes:
    """Serialize a record to sidecar JSON.

    Raises:
        InvalidMetadataError: If a user field is not JSON-serializable.
    """
    try:
        return json.dumps(record.to_dict(), indent=2).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise InvalidMetadataError(f"Metadata is not JSON-serializable: {e}") from e


def check_user_metadata(fields: dict[str, Any]) -> None:
    """Fail early if caller metadata cannot be written to a sidecar."""
    try:
        json.dumps(fields)
    except (TypeError, ValueError) as e:
        raise InvalidMetadataError(f"Metadata is not JSON-serializable: {e}") from e


class MetadataStore:
    """Reads and writes object sidecars through a storage backend."""

    def __init__(self, backend: StorageBackend) -> None:
        self._backend = backend

    def create_bucket(self, bucket: str) -> None:
        """Create the metadata directory of a bucket."""
        self._backend.make_dirs(resolve_bucket_metadata_dir(bucket))

    def remove_bucket(self, bucket: str) -> None:
        """Remove a bucket's metadata tree, tolerating its absence."""
        try:
            self._backend.remove_tree(resolve_bucket_metadata_dir(bucket))
        except FileNotFoundError:
            logger.debug("No metadata directory for bucket %s", bucket)

    @contextmanager
    def stage_metadata(
        self, bucket: str, key: str, record: ObjectMetadata
    ) -> Iterator[StagedWrite]:
        """Stage a sidecar; it is published only when the caller commits it."""
        payload = encode_metadata(record)
        with self._backend.stage(resolve_metadata_path(bucket, key)) as staged:
            staged.write(payload)
            yield staged

    def write_metadata(self, bucket: str, key: str, record: ObjectMetadata) -> None:
        """Write (or overwrite) the sidecar of an object.

        Raises:
            InvalidMetadataError: If the record cannot be serialized.
            StorageBackendError: If the sidecar cannot be written.
        """
        try:
            with self.stage_metadata(bucket, key, record) as staged:
                staged.commit()
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to write metadata: {e}",
                bucket=bucket,
                key=key,
                cause=e,
            ) from e

    def read_metadata(self, bucket: str, key: str) -> ObjectMetadata:
        """Read the metadata of an object.

        Returns the persisted sidecar, or a record synthesized from the
        content file when no sidecar exists.

        Raises:
            ObjectNotFoundError: If neither sidecar nor content exists.
            StorageBackendError: If the sidecar exists but cannot be read or
                decoded.
        """
        metadata_path = resolve_metadata_path(bucket, key)
        try:
            raw = self._backend.read(metadata_path)
        except FileNotFoundError:
            return self._synthesize(bucket, key)
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to read metadata: {e}",
                bucket=bucket,
                key=key,
                cause=e,
            ) from e

        try:
            data = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise StorageBackendError(
                message=f"Corrupt metadata sidecar: {e}",
                bucket=bucket,
                key=key,
                cause=e,
            ) from e
        if not isinstance(data, dict):
            raise StorageBackendError(
                message="Corrupt metadata sidecar: expected a JSON object",
                bucket=bucket,
                key=key,
            )

        if not isinstance(data.get(SYSTEM_METADATA_FIELD), dict):
            # Older or hand-written sidecars: fill system fields from the file.
            return ObjectMetadata.from_dict(data, self._stat_content(bucket, key))
        return ObjectMetadata.from_dict(data)

    def delete_metadata(self, bucket: str, key: str) -> bool:
        """Delete an object's sidecar and prune emptied metadata directories.

        Returns:
            True if a sidecar was removed, False if there was none.
        """
        metadata_path = resolve_metadata_path(bucket, key)
        try:
            self._backend.delete(metadata_path)
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to delete metadata: {e}",
                bucket=bucket,
                key=key,
                cause=e,
            ) from e
        self._backend.prune(posixpath.dirname(metadata_path), resolve_bucket_metadata_dir(bucket))
        return True

    def _stat_content(self, bucket: str, key: str) -> FileStat:
        try:
            return self._backend.stat(resolve_object_path(bucket, key))
        except FileNotFoundError as e:
            raise ObjectNotFoundError(bucket=bucket, key=key) from e
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to stat object: {e}",
                bucket=bucket,
                key=key,
                cause=e,
            ) from e

    def _synthesize(self, bucket: str, key: str) -> ObjectMetadata:
        stat = self._stat_content(bucket, key)
        logger.debug("No sidecar for bucket=%s key=%s; synthesizing metadata", bucket, key)
        return ObjectMetadata(system=SystemMetadata.synthesize(stat))

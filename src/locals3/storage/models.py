"""locals3 storage data models.

Provides typed dataclasses for object metadata, operation results and backend
file attributes. ``to_dict`` methods emit the sidecar/wire field names.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

DEFAULT_CONTENT_TYPE = "application/octet-stream"
SYSTEM_METADATA_FIELD = "systemMetadata"


def format_timestamp(value: datetime) -> str:
    """Format a datetime as ISO-8601 UTC with millisecond precision and a Z suffix."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    text = value.astimezone(UTC).isoformat(timespec="milliseconds")
    return text.replace("+00:00", "Z")


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 timestamp, returning None when it is missing or malformed."""
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


@dataclass(frozen=True)
class FileStat:
    """Raw attributes of a stored file.

    Attributes:
        size: Size of the file in bytes.
        modified: Last modification time (UTC).
    """

    size: int
    modified: datetime


@dataclass(frozen=True)
class SystemMetadata:
    """Engine-managed metadata kept under the reserved ``systemMetadata`` field.

    Attributes:
        content_type: MIME type of the content.
        size: Size of the content in bytes.
        last_modified: Time the object was last written.
        etag: MD5 hex digest of the content; empty when it was never computed.
    """

    content_type: str
    size: int
    last_modified: datetime
    etag: str

    def to_dict(self) -> dict[str, Any]:
        """Convert to the sidecar JSON shape."""
        return {
            "contentType": self.content_type,
            "size": self.size,
            "lastModified": format_timestamp(self.last_modified),
            "etag": self.etag,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], fallback: FileStat | None = None) -> SystemMetadata:
        """Create system metadata from its sidecar JSON shape.

        Missing or malformed fields are filled from ``fallback`` file attributes
        when given.
        """
        last_modified = parse_timestamp(data.get("lastModified"))
        if last_modified is None:
            last_modified = fallback.modified if fallback else datetime.now(UTC)

        size_raw = data.get("size")
        if isinstance(size_raw, int) and not isinstance(size_raw, bool):
            size = size_raw
        else:
            size = fallback.size if fallback else 0

        content_type_raw = data.get("contentType")
        content_type = str(content_type_raw) if content_type_raw else DEFAULT_CONTENT_TYPE

        etag_raw = data.get("etag")
        etag = str(etag_raw) if etag_raw else ""

        return cls(
            content_type=content_type,
            size=size,
            last_modified=last_modified,
            etag=etag,
        )

    @classmethod
    def synthesize(cls, stat: FileStat) -> SystemMetadata:
        """Build metadata for content that has no sidecar."""
        return cls(
            content_type=DEFAULT_CONTENT_TYPE,
            size=stat.size,
            last_modified=stat.modified,
            etag="",
        )


@dataclass(frozen=True)
class ObjectMetadata:
    """Complete metadata record of an object.

    Attributes:
        system: Engine-managed attributes.
        user: Caller-defined top-level fields.
    """

    system: SystemMetadata
    user: dict[str, Any] = field(default_factory=dict)

    @property
    def content_type(self) -> str:
        return self.system.content_type

    @property
    def size(self) -> int:
        return self.system.size

    @property
    def etag(self) -> str:
        return self.system.etag

    @property
    def last_modified(self) -> datetime:
        return self.system.last_modified

    def to_dict(self) -> dict[str, Any]:
        """Convert to the sidecar JSON document."""
        data = {k: v for k, v in self.user.items() if k != SYSTEM_METADATA_FIELD}
        data[SYSTEM_METADATA_FIELD] = self.system.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any], fallback: FileStat | None = None) -> ObjectMetadata:
        """Create a record from a sidecar JSON document."""
        system_raw = data.get(SYSTEM_METADATA_FIELD)
        if not isinstance(system_raw, dict):
            system_raw = {}
        user = {k: v for k, v in data.items() if k != SYSTEM_METADATA_FIELD}
        return cls(system=SystemMetadata.from_dict(system_raw, fallback), user=user)


@dataclass(frozen=True)
class StoredObject:
    """An object with its metadata and full body content."""

    metadata: ObjectMetadata
    body: bytes


@dataclass(frozen=True)
class PutObjectResult:
    """Result of storing an object."""

    etag: str
    key: str
    bucket: str
    size: int

    def to_dict(self) -> dict[str, Any]:
        return {"etag": self.etag, "key": self.key, "bucket": self.bucket, "size": self.size}


@dataclass(frozen=True)
class ObjectInfo:
    """One entry of an object listing."""

    key: str
    last_modified: datetime
    size: int
    etag: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "lastModified": format_timestamp(self.last_modified),
            "size": self.size,
            "etag": self.etag,
        }


@dataclass(frozen=True)
class BucketInfo:
    """A bucket and its (call-time) creation date.

    Creation dates are not persisted; they are synthesized when the bucket is
    created or listed.
    """

    name: str
    creation_date: datetime

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "creationDate": format_timestamp(self.creation_date)}


@dataclass(frozen=True)
class StorageLayout:
    """Directories prepared by ``ObjectStore.initialize``."""

    root: Path | None
    metadata_dir: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "root": str(self.root) if self.root is not None else None,
            "metadataDir": self.metadata_dir,
        }

"""Bucket name and object key validation.

Pure predicates; callers decide which error to raise.
"""

from __future__ import annotations

import re
from typing import Final

MIN_BUCKET_NAME_LENGTH: Final[int] = 3
MAX_BUCKET_NAME_LENGTH: Final[int] = 63
MAX_OBJECT_KEY_BYTES: Final[int] = 1024

# Sidecars are stored as "{key}.meta.json"; a directory segment with this suffix
# would occupy the path of another key's sidecar.
SIDECAR_SUFFIX: Final[str] = ".meta.json"

_BUCKET_CHARS_PATTERN = re.compile(r"[a-z0-9.-]+")
_BUCKET_EDGE_PATTERN = re.compile(r"\A[.-]|[.-]\Z")
_BUCKET_ADJACENT_SPECIALS_PATTERN = re.compile(r"\.\.|--|\.-|-\.")
_IPV4_PATTERN = re.compile(r"\d+\.\d+\.\d+\.\d+")

_UNSAFE_BUCKET_CHARS = ("/", "\\", ":")
_UNSAFE_KEY_CHARS = ("\\", ":", "\x00")


def validate_bucket_name(name: str) -> bool:
    """Check a bucket name against S3-style naming rules.

    Names are 3-63 characters of lowercase letters, digits, dots and hyphens,
    do not start or end with a dot or hyphen, have no adjacent dot/hyphen pairs
    and are not shaped like an IPv4 address.
    """
    if not isinstance(name, str):
        return False

    if not MIN_BUCKET_NAME_LENGTH <= len(name) <= MAX_BUCKET_NAME_LENGTH:
        return False

    if not _BUCKET_CHARS_PATTERN.fullmatch(name):
        return False

    if _BUCKET_EDGE_PATTERN.search(name):
        return False

    if _BUCKET_ADJACENT_SPECIALS_PATTERN.search(name):
        return False

    if _IPV4_PATTERN.fullmatch(name):
        return False

    return not any(ch in name for ch in _UNSAFE_BUCKET_CHARS)


def validate_object_key(key: str) -> bool:
    """Check that an object key is non-empty, at most 1024 UTF-8 bytes and maps
    to a path inside its bucket.

    Rejects backslashes, colons, NUL bytes, absolute or home-relative keys,
    trailing slashes, empty, ``.`` or ``..`` segments, and directory segments
    ending in the sidecar suffix.
    """
    if not isinstance(key, str) or not key:
        return False

    try:
        encoded = key.encode("utf-8")
    except UnicodeEncodeError:
        return False
    if len(encoded) > MAX_OBJECT_KEY_BYTES:
        return False

    if any(ch in key for ch in _UNSAFE_KEY_CHARS):
        return False

    if key.startswith(("/", "~")) or key.endswith("/"):
        return False

    segments = key.split("/")
    if any(segment in ("", ".", "..") for segment in segments):
        return False

    return not any(segment.lower().endswith(SIDECAR_SUFFIX) for segment in segments[:-1])

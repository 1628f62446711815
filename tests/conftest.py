"""Pytest configuration and fixtures for locals3 tests.

This module provides common fixtures and configuration for all tests.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

LOCALS3_ENV_VARS = (
    "LOCALS3_ROOT_DIR",
    "LOCALS3_BACKEND",
    "LOCALS3_CHUNK_SIZE",
    "LOCALS3_LOG_LEVEL",
    "LOCALS3_OTEL_ENABLED",
    "LOCALS3_REQUIRE_OTEL",
    "LOCALS3_OTEL_SERVICE_NAME",
    "LOCALS3_OTEL_EXPORTER",
    "LOCALS3_OTEL_TEST_CAPTURE",
    "LOCALS3_OTEL_EXPORTER_OTLP_ENDPOINT",
    "LOCALS3_OTEL_EXPORTER_OTLP_PROTOCOL",
    "LOCALS3_OTEL_RESOURCE_ATTRS",
)


@pytest.fixture(autouse=True)
def clean_locals3_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Start every test without LOCALS3_* configuration from the host."""
    for name in LOCALS3_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def storage_root(tmp_path: Path) -> Path:
    """Return a fresh storage root directory."""
    return tmp_path / "local-s3"


@pytest.fixture
def fs_store(storage_root: Path) -> Any:
    """Create an ObjectStore over a FilesystemBackend in a temp directory."""
    from locals3.storage import FilesystemBackend, ObjectStore

    return ObjectStore(FilesystemBackend(storage_root))


@pytest.fixture
def memory_store() -> Any:
    """Create an ObjectStore over an InMemoryBackend."""
    from locals3.storage import InMemoryBackend, ObjectStore

    return ObjectStore(InMemoryBackend())


@pytest.fixture(params=["filesystem", "memory"])
def any_store(request: pytest.FixtureRequest, storage_root: Path) -> Any:
    """ObjectStore over each backend, for behaviour both must share."""
    from locals3.storage import FilesystemBackend, InMemoryBackend, ObjectStore

    if request.param == "filesystem":
        return ObjectStore(FilesystemBackend(storage_root))
    return ObjectStore(InMemoryBackend())

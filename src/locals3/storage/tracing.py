"""locals3 object store OpenTelemetry tracing integration.

Provides the tracing decorator applied to every public ObjectStore operation.

Span attributes are limited to safe identifiers:
    - bucket names and a SHA256 of the object key, never the raw key
    - no absolute filesystem paths
"""

from __future__ import annotations

import functools
import hashlib
import logging
import os
from collections.abc import Callable
from typing import Any, TypeVar, cast

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def _is_otel_enabled() -> bool:
    """Check if OpenTelemetry tracing is enabled."""
    return os.environ.get("LOCALS3_OTEL_ENABLED", "").strip().lower() in ("1", "true", "yes")


def _call_identity(args: tuple[Any, ...], kwargs: dict[str, Any]) -> tuple[Any, Any]:
    """Extract (bucket, key) from the positional or keyword arguments of a call."""
    bucket = args[0] if args else kwargs.get("bucket", kwargs.get("name"))
    key = args[1] if len(args) > 1 else kwargs.get("key")
    return bucket, key


def traced_storage_operation(operation: str, *, keyed: bool = False) -> Callable[[F], F]:
    """Decorator to trace object store operations with OpenTelemetry.

    Args:
        operation: Operation name (e.g., "put_object", "list_buckets").
        keyed: Whether the second positional argument is an object key.

    Returns:
        Decorated function that emits spans when tracing is enabled.
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(self: Any, *args: Any, **kwargs: Any) -> Any:
            if not _is_otel_enabled():
                return func(self, *args, **kwargs)

            from opentelemetry import trace

            tracer = trace.get_tracer("locals3.object_store")
            span_name = f"locals3.object_store.{operation}"

            with tracer.start_as_current_span(span_name) as span:
                bucket, key = _call_identity(args, kwargs)
                if isinstance(bucket, str):
                    span.set_attribute("locals3.bucket", bucket)
                if keyed and isinstance(key, str):
                    # Keys may carry user data; export only their hash.
                    key_sha256 = hashlib.sha256(key.encode("utf-8")).hexdigest()
                    span.set_attribute("locals3.object_key_sha256", key_sha256)
                span.set_attribute("storage.backend", getattr(self, "backend_name", "unknown"))

                try:
                    result = func(self, *args, **kwargs)
                except Exception as e:
                    span.set_attribute("error", True)
                    span.set_attribute("error.type", type(e).__name__)
                    raise

                if result is not None:
                    _add_result_attributes(span, result)
                return result

        return cast(F, wrapper)

    return decorator


def _add_result_attributes(span: Any, result: Any) -> None:
    """Add result-based attributes to span safely.

    Only adds etag, size, content type and result counts.
    """
    try:
        from locals3.storage.models import ObjectMetadata, PutObjectResult, StoredObject

        metadata: ObjectMetadata | None = None
        if isinstance(result, ObjectMetadata):
            metadata = result
        elif isinstance(result, StoredObject):
            metadata = result.metadata

        if metadata is not None:
            span.set_attribute("locals3.object_etag", metadata.etag)
            span.set_attribute("locals3.object_size_bytes", metadata.size)
            span.set_attribute("locals3.object_content_type", metadata.content_type)
        elif isinstance(result, PutObjectResult):
            span.set_attribute("locals3.object_etag", result.etag)
            span.set_attribute("locals3.object_size_bytes", result.size)
        elif isinstance(result, list):
            span.set_attribute("locals3.result_count", len(result))

    except Exception as e:
        logger.debug("Failed to add result attributes to span: %s", e)

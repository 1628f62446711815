"""OpenTelemetry setup for locals3 processes.

ObjectStore operations emit spans through the global tracer (see
``locals3.storage.tracing``); this module installs the provider those spans go
to. Nothing is installed unless tracing is enabled.

Environment Variables:
    LOCALS3_OTEL_ENABLED: "1" to enable tracing (default: disabled)
    LOCALS3_REQUIRE_OTEL: "1" to raise instead of continuing untraced when
        setup fails
    LOCALS3_OTEL_SERVICE_NAME: service.name resource attribute (default: "locals3")
    LOCALS3_OTEL_EXPORTER: "otlp" or "console" (default: "otlp")
    LOCALS3_OTEL_EXPORTER_OTLP_ENDPOINT: collector endpoint (optional)
    LOCALS3_OTEL_EXPORTER_OTLP_PROTOCOL: "grpc" or "http" (default: "grpc")
    LOCALS3_OTEL_RESOURCE_ATTRS: extra resource attributes as k=v,k=v
    LOCALS3_OTEL_TEST_CAPTURE: "1" to keep spans in memory for tests

The OTLP exporters come from the optional ``otlp`` extra.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Final

if TYPE_CHECKING:
    from opentelemetry.sdk.trace import ReadableSpan, SpanProcessor, TracerProvider
    from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

logger = logging.getLogger(__name__)

ENV_ENABLED: Final[str] = "LOCALS3_OTEL_ENABLED"
ENV_REQUIRED: Final[str] = "LOCALS3_REQUIRE_OTEL"
ENV_SERVICE_NAME: Final[str] = "LOCALS3_OTEL_SERVICE_NAME"
ENV_EXPORTER: Final[str] = "LOCALS3_OTEL_EXPORTER"
ENV_OTLP_ENDPOINT: Final[str] = "LOCALS3_OTEL_EXPORTER_OTLP_ENDPOINT"
ENV_OTLP_PROTOCOL: Final[str] = "LOCALS3_OTEL_EXPORTER_OTLP_PROTOCOL"
ENV_RESOURCE_ATTRS: Final[str] = "LOCALS3_OTEL_RESOURCE_ATTRS"
ENV_TEST_CAPTURE: Final[str] = "LOCALS3_OTEL_TEST_CAPTURE"

EXPORTER_OTLP: Final[str] = "otlp"
EXPORTER_CONSOLE: Final[str] = "console"
EXPORTER_MEMORY: Final[str] = "memory"
SUPPORTED_EXPORTERS: Final[frozenset[str]] = frozenset(
    {EXPORTER_OTLP, EXPORTER_CONSOLE, EXPORTER_MEMORY}
)
SUPPORTED_OTLP_PROTOCOLS: Final[frozenset[str]] = frozenset({"grpc", "http"})

DEFAULT_SERVICE_NAME: Final[str] = "locals3"

# One provider per process: OpenTelemetry refuses to replace the global one.
_provider: TracerProvider | None = None
_memory_exporter: InMemorySpanExporter | None = None


class TracingConfigError(Exception):
    """Raised when tracing settings are invalid or setup fails while required."""


@dataclass(frozen=True)
class TracingConfig:
    """Tracing settings (immutable).

    Attributes:
        enabled: Whether a provider should be installed at all.
        required: Raise TracingConfigError when setup fails.
        service_name: Value of the service.name resource attribute.
        exporter: "otlp", "console" or "memory".
        otlp_endpoint: Collector endpoint; exporter default when None.
        otlp_protocol: "grpc" or "http".
        resource_attributes: Extra resource attributes.
    """

    enabled: bool = False
    required: bool = False
    service_name: str = DEFAULT_SERVICE_NAME
    exporter: str = EXPORTER_OTLP
    otlp_endpoint: str | None = None
    otlp_protocol: str = "grpc"
    resource_attributes: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate exporter and protocol names."""
        if self.exporter not in SUPPORTED_EXPORTERS:
            raise TracingConfigError(
                f"{ENV_EXPORTER} must be one of {sorted(SUPPORTED_EXPORTERS)}, "
                f"got '{self.exporter}'"
            )
        if self.otlp_protocol not in SUPPORTED_OTLP_PROTOCOLS:
            raise TracingConfigError(
                f"{ENV_OTLP_PROTOCOL} must be one of {sorted(SUPPORTED_OTLP_PROTOCOLS)}, "
                f"got '{self.otlp_protocol}'"
            )


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in ("1", "true", "yes")


def parse_resource_attributes(raw: str) -> dict[str, str]:
    """Parse "k=v,k=v" into a dict; entries without "=" are ignored."""
    attributes: dict[str, str] = {}
    for pair in raw.split(","):
        name, sep, value = pair.partition("=")
        if sep and name.strip():
            attributes[name.strip()] = value.strip()
    return attributes


def load_tracing_config() -> TracingConfig:
    """Load tracing settings from LOCALS3_OTEL_* environment variables.

    Exporter settings are only read when tracing is enabled.

    Raises:
        TracingConfigError: If an exporter or protocol name is not supported.
    """
    if not _env_flag(ENV_ENABLED):
        return TracingConfig(required=_env_flag(ENV_REQUIRED))

    if _env_flag(ENV_TEST_CAPTURE):
        exporter = EXPORTER_MEMORY
    else:
        exporter = os.environ.get(ENV_EXPORTER, "").strip().lower() or EXPORTER_OTLP

    return TracingConfig(
        enabled=True,
        required=_env_flag(ENV_REQUIRED),
        service_name=os.environ.get(ENV_SERVICE_NAME, "").strip() or DEFAULT_SERVICE_NAME,
        exporter=exporter,
        otlp_endpoint=os.environ.get(ENV_OTLP_ENDPOINT, "").strip() or None,
        otlp_protocol=os.environ.get(ENV_OTLP_PROTOCOL, "").strip().lower() or "grpc",
        resource_attributes=parse_resource_attributes(os.environ.get(ENV_RESOURCE_ATTRS, "")),
    )


def _build_span_processor(config: TracingConfig) -> SpanProcessor:
    """Create the exporter selected by ``config`` wrapped in its span processor."""
    global _memory_exporter

    from opentelemetry.sdk.trace.export import (
        BatchSpanProcessor,
        ConsoleSpanExporter,
        SimpleSpanProcessor,
    )

    if config.exporter == EXPORTER_MEMORY:
        from opentelemetry.sdk.trace.export.in_memory_span_exporter import (
            InMemorySpanExporter,
        )

        _memory_exporter = InMemorySpanExporter()
        return SimpleSpanProcessor(_memory_exporter)

    if config.exporter == EXPORTER_CONSOLE:
        return SimpleSpanProcessor(ConsoleSpanExporter())

    kwargs: dict[str, str] = {}
    if config.otlp_endpoint:
        kwargs["endpoint"] = config.otlp_endpoint

    if config.otlp_protocol == "http":
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import (
            OTLPSpanExporter as HTTPExporter,
        )

        return BatchSpanProcessor(HTTPExporter(**kwargs))

    from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
        OTLPSpanExporter as GRPCExporter,
    )

    return BatchSpanProcessor(GRPCExporter(**kwargs))


def configure_tracing(config: TracingConfig | None = None) -> bool:
    """Install the tracer provider described by ``config``.

    Without a config the environment is read. The first successful call wins
    for the lifetime of the process; later calls report it as active.

    Returns:
        True if a provider is active, False if tracing stays off.

    Raises:
        TracingConfigError: If tracing is required and cannot be set up.
    """
    global _provider

    if config is None:
        try:
            config = load_tracing_config()
        except TracingConfigError as e:
            if _env_flag(ENV_REQUIRED):
                raise
            logger.error("Invalid tracing configuration, continuing untraced: %s", e)
            return False

    if not config.enabled:
        logger.debug("OpenTelemetry tracing disabled (%s not set)", ENV_ENABLED)
        return False

    if _provider is not None:
        return True

    try:
        from opentelemetry import trace
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider

        resource = Resource.create(
            {"service.name": config.service_name, **config.resource_attributes}
        )
        provider = TracerProvider(resource=resource)
        provider.add_span_processor(_build_span_processor(config))
        trace.set_tracer_provider(provider)
    except Exception as e:
        logger.error("Failed to configure OpenTelemetry tracing: %s", e)
        if config.required:
            raise TracingConfigError(
                f"OpenTelemetry tracing required but configuration failed: {e}"
            ) from e
        return False

    _provider = provider
    logger.info(
        "OpenTelemetry tracing configured: service=%s, exporter=%s",
        config.service_name,
        config.exporter,
    )
    return True


def flush_tracing() -> None:
    """Export spans still held by batch processors.

    The CLI calls this before exiting.
    """
    if _provider is None:
        return
    try:
        _provider.force_flush()
    except Exception as e:
        logger.warning("Failed to flush OpenTelemetry spans: %s", e)


def get_test_spans() -> list[ReadableSpan]:
    """Return spans kept by the in-memory exporter, if it is installed."""
    if _memory_exporter is None:
        return []
    return list(_memory_exporter.get_finished_spans())


def clear_test_spans() -> None:
    """Drop spans kept by the in-memory exporter."""
    if _memory_exporter is not None:
        _memory_exporter.clear()


def reset_tracing() -> None:
    """Clear captured spans between tests.

    The installed provider cannot be replaced, so it stays active.
    """
    clear_test_spans()

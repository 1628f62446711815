"""locals3 Observability module.

Provides the OpenTelemetry tracing setup for object store spans.
"""

from locals3.observability.tracing import (
    TracingConfig,
    TracingConfigError,
    configure_tracing,
    flush_tracing,
    load_tracing_config,
)

__all__ = [
    "TracingConfig",
    "TracingConfigError",
    "configure_tracing",
    "flush_tracing",
    "load_tracing_config",
]

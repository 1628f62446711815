"""Tests for locals3 OpenTelemetry tracing configuration.

- Tracing OFF by default, ON via LOCALS3_OTEL_ENABLED=1
- Spans are not emitted by the store while tracing is disabled
- Tests use the in-memory exporter (no external collector required)
"""

from __future__ import annotations

from typing import Any

import pytest


@pytest.fixture(autouse=True)
def reset_tracing_state() -> Any:
    """Reset tracing state before and after each test."""
    from locals3.observability.tracing import reset_tracing

    reset_tracing()
    yield
    reset_tracing()


class TestTracingConfiguration:
    """Tests for tracing configuration behavior."""

    def test_tracing_disabled_by_default(self) -> None:
        """Tracing should be OFF when LOCALS3_OTEL_ENABLED is not set."""
        from locals3.observability.tracing import configure_tracing, get_test_spans

        assert configure_tracing() is False
        assert get_test_spans() == []

    @pytest.mark.parametrize("value", ["0", "false", "no", "maybe"])
    def test_non_truthy_values_keep_tracing_off(
        self, monkeypatch: pytest.MonkeyPatch, value: str
    ) -> None:
        """Only 1/true/yes enable tracing."""
        from locals3.observability.tracing import configure_tracing

        monkeypatch.setenv("LOCALS3_OTEL_ENABLED", value)

        assert configure_tracing() is False

    def test_tracing_enabled_with_test_capture(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Tracing should be ON when LOCALS3_OTEL_ENABLED=1."""
        from locals3.observability.tracing import configure_tracing

        monkeypatch.setenv("LOCALS3_OTEL_ENABLED", "1")
        monkeypatch.setenv("LOCALS3_OTEL_TEST_CAPTURE", "1")

        assert configure_tracing() is True

    def test_configure_is_idempotent(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Repeated configuration keeps reporting success."""
        from locals3.observability.tracing import configure_tracing

        monkeypatch.setenv("LOCALS3_OTEL_ENABLED", "1")
        monkeypatch.setenv("LOCALS3_OTEL_TEST_CAPTURE", "1")

        assert configure_tracing() is True
        assert configure_tracing() is True

    def test_flush_without_provider_is_noop(self) -> None:
        """Flushing before configuration does nothing."""
        from locals3.observability.tracing import flush_tracing

        flush_tracing()


class TestResourceAttributes:
    """Tests for LOCALS3_OTEL_RESOURCE_ATTRS parsing."""

    def test_parses_pairs(self) -> None:
        """Comma-separated k=v pairs become a dict."""
        from locals3.observability.tracing import parse_resource_attributes

        assert parse_resource_attributes("env=dev, team = storage") == {
            "env": "dev",
            "team": "storage",
        }

    def test_ignores_malformed_pairs(self) -> None:
        """Entries without '=' or a name are skipped; values may contain '='."""
        from locals3.observability.tracing import parse_resource_attributes

        assert parse_resource_attributes("novalue,=orphan,a=b=c") == {"a": "b=c"}

    def test_empty_string(self) -> None:
        """No attributes for an empty string."""
        from locals3.observability.tracing import parse_resource_attributes

        assert parse_resource_attributes("") == {}


class TestLoadTracingConfig:
    """Tests for load_tracing_config and TracingConfig validation."""

    def test_disabled_config_ignores_exporter_settings(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Exporter settings are not validated while tracing is off."""
        from locals3.observability.tracing import load_tracing_config

        monkeypatch.setenv("LOCALS3_OTEL_EXPORTER", "zipkin")

        config = load_tracing_config()

        assert config.enabled is False

    def test_enabled_config_reads_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """All LOCALS3_OTEL_* settings end up in the config."""
        from locals3.observability.tracing import load_tracing_config

        monkeypatch.setenv("LOCALS3_OTEL_ENABLED", "yes")
        monkeypatch.setenv("LOCALS3_OTEL_SERVICE_NAME", "media-store")
        monkeypatch.setenv("LOCALS3_OTEL_EXPORTER", "Console")
        monkeypatch.setenv("LOCALS3_OTEL_EXPORTER_OTLP_PROTOCOL", "http")
        monkeypatch.setenv("LOCALS3_OTEL_EXPORTER_OTLP_ENDPOINT", "http://collector:4318")
        monkeypatch.setenv("LOCALS3_OTEL_RESOURCE_ATTRS", "env=dev")

        config = load_tracing_config()

        assert config.enabled is True
        assert config.service_name == "media-store"
        assert config.exporter == "console"
        assert config.otlp_protocol == "http"
        assert config.otlp_endpoint == "http://collector:4318"
        assert config.resource_attributes == {"env": "dev"}

    def test_test_capture_selects_memory_exporter(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """LOCALS3_OTEL_TEST_CAPTURE overrides the exporter choice."""
        from locals3.observability.tracing import EXPORTER_MEMORY, load_tracing_config

        monkeypatch.setenv("LOCALS3_OTEL_ENABLED", "1")
        monkeypatch.setenv("LOCALS3_OTEL_EXPORTER", "console")
        monkeypatch.setenv("LOCALS3_OTEL_TEST_CAPTURE", "1")

        assert load_tracing_config().exporter == EXPORTER_MEMORY

    def test_unknown_exporter_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Unsupported exporters fail configuration."""
        from locals3.observability.tracing import TracingConfigError, load_tracing_config

        monkeypatch.setenv("LOCALS3_OTEL_ENABLED", "1")
        monkeypatch.setenv("LOCALS3_OTEL_EXPORTER", "zipkin")

        with pytest.raises(TracingConfigError, match="LOCALS3_OTEL_EXPORTER"):
            load_tracing_config()

    def test_unknown_protocol_rejected(self) -> None:
        """Only grpc and http are accepted OTLP protocols."""
        from locals3.observability.tracing import TracingConfig, TracingConfigError

        with pytest.raises(TracingConfigError, match="PROTOCOL"):
            TracingConfig(enabled=True, otlp_protocol="thrift")

    def test_invalid_environment_keeps_tracing_off(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Without LOCALS3_REQUIRE_OTEL an invalid setting disables tracing."""
        from locals3.observability.tracing import configure_tracing

        monkeypatch.setenv("LOCALS3_OTEL_ENABLED", "1")
        monkeypatch.setenv("LOCALS3_OTEL_EXPORTER", "zipkin")

        assert configure_tracing() is False

    def test_invalid_environment_raises_when_required(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """With LOCALS3_REQUIRE_OTEL=1 an invalid setting is an error."""
        from locals3.observability.tracing import TracingConfigError, configure_tracing

        monkeypatch.setenv("LOCALS3_OTEL_ENABLED", "1")
        monkeypatch.setenv("LOCALS3_REQUIRE_OTEL", "1")
        monkeypatch.setenv("LOCALS3_OTEL_EXPORTER", "zipkin")

        with pytest.raises(TracingConfigError):
            configure_tracing()

    def test_explicit_disabled_config(self) -> None:
        """An explicit disabled config installs nothing."""
        from locals3.observability.tracing import TracingConfig, configure_tracing

        assert configure_tracing(TracingConfig()) is False


class TestStoreSpans:
    """Tests for span emission from the object store."""

    def test_no_spans_when_disabled(self, memory_store: Any) -> None:
        """Operations emit nothing while tracing is off."""
        from locals3.observability.tracing import get_test_spans

        memory_store.create_bucket("quiet")
        memory_store.put_object("quiet", "a.txt", b"a")

        assert [s for s in get_test_spans() if s.name.startswith("locals3.")] == []

    def test_memory_backend_name_in_spans(
        self, memory_store: Any, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Spans identify the backend that served the operation."""
        from locals3.observability.tracing import (
            clear_test_spans,
            configure_tracing,
            get_test_spans,
        )

        monkeypatch.setenv("LOCALS3_OTEL_ENABLED", "1")
        monkeypatch.setenv("LOCALS3_OTEL_TEST_CAPTURE", "1")
        assert configure_tracing() is True
        clear_test_spans()

        memory_store.create_bucket("traced")

        spans = [s for s in get_test_spans() if s.name == "locals3.object_store.create_bucket"]
        assert len(spans) == 1
        assert spans[0].attributes["storage.backend"] == "memory"
        assert spans[0].attributes["locals3.bucket"] == "traced"

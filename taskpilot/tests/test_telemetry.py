"""Tests for telemetry module.

These tests verify OpenTelemetry setup and the metric helpers.
"""

import os
from unittest.mock import MagicMock, patch

import pytest

from taskpilot import telemetry
from taskpilot.config import TaskpilotConfig


@pytest.fixture(autouse=True)
def reset_instruments(monkeypatch):
    """Start every test without metric instruments."""
    for name in ["tasks_counter", "plans_counter", "fallback_plans_counter", "task_duration"]:
        monkeypatch.setattr(telemetry, name, None)


class TestSetupTelemetry:
    """Test setup_telemetry function."""

    def test_setup_returns_tracer_and_meter(self):
        """setup_telemetry should return a tracer and meter."""
        with patch.dict(os.environ, {"OTLP_ENABLED": "false"}):
            tracer, meter = telemetry.setup_telemetry(TaskpilotConfig())

        assert tracer is not None
        assert meter is not None

    def test_tracer_can_start_spans(self):
        """The returned tracer creates usable spans."""
        tracer, _ = telemetry.setup_telemetry(TaskpilotConfig(service_name="taskpilot-test"))

        with tracer.start_as_current_span("taskpilot.test") as span:
            span.set_attribute("plan.id", "abc")

    def test_uses_otlp_endpoint_from_config(self):
        """Should use OTLP endpoint from config when enabled."""
        config = TaskpilotConfig(otlp_endpoint="http://custom:4317")

        with patch.dict(os.environ, {"OTLP_ENABLED": "true"}):
            with patch(
                "opentelemetry.exporter.otlp.proto.grpc.trace_exporter.OTLPSpanExporter"
            ) as mock_span_exporter:
                with patch(
                    "opentelemetry.exporter.otlp.proto.grpc.metric_exporter.OTLPMetricExporter"
                ) as mock_metric_exporter:
                    telemetry.setup_telemetry(config)

        mock_span_exporter.assert_called_with(endpoint="http://custom:4317")
        mock_metric_exporter.assert_called_with(endpoint="http://custom:4317")

    def test_providers_carry_service_name(self):
        """Installed providers are tagged with the configured service name."""
        config = TaskpilotConfig(service_name="taskpilot-test")

        with patch.dict(os.environ, {"OTLP_ENABLED": "false"}):
            with patch("taskpilot.telemetry.trace.set_tracer_provider") as set_tracer:
                with patch("taskpilot.telemetry.metrics.set_meter_provider"):
                    telemetry.setup_telemetry(config)

        provider = set_tracer.call_args.args[0]
        assert provider.resource.attributes["service.name"] == "taskpilot-test"


class TestCreateMetrics:
    """Test create_metrics function."""

    def test_creates_instruments(self):
        """Counters and the duration histogram are created by name."""
        meter = MagicMock()

        telemetry.create_metrics(meter)

        counter_names = [call[0][0] for call in meter.create_counter.call_args_list]
        assert counter_names == [
            "taskpilot_tasks_total",
            "taskpilot_plans_total",
            "taskpilot_fallback_plans_total",
        ]
        meter.create_histogram.assert_called_once()
        assert meter.create_histogram.call_args[0][0] == "taskpilot_task_duration_seconds"


class TestRecordHelpers:
    """Test the record_* helpers."""

    def test_noop_before_create_metrics(self):
        """Recording without instruments does nothing."""
        telemetry.record_task("completed", 1.5)
        telemetry.record_plan_outcome("completed")
        telemetry.record_fallback_plan("transport")

    def test_record_task(self):
        """A task increments the counter and records its duration."""
        meter = MagicMock()
        counter, histogram = MagicMock(), MagicMock()
        meter.create_counter.return_value = counter
        meter.create_histogram.return_value = histogram
        telemetry.create_metrics(meter)

        telemetry.record_task("failed", 2.0)

        counter.add.assert_called_with(1, {"status": "failed"})
        histogram.record.assert_called_with(2.0, {"status": "failed"})

    def test_record_plan_and_fallback(self):
        """Plan outcomes and fallbacks carry their labels."""
        meter = MagicMock()
        counter = MagicMock()
        meter.create_counter.return_value = counter
        telemetry.create_metrics(meter)

        telemetry.record_plan_outcome("cancelled")
        telemetry.record_fallback_plan("format")

        counter.add.assert_any_call(1, {"outcome": "cancelled"})
        counter.add.assert_any_call(1, {"reason": "format"})

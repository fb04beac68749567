"""Telemetry setup for OpenTelemetry traces and metrics.

Spans cover plan generation, plan execution, individual tasks and agent
selection. Metrics count tasks by status, plans by outcome and fallback plans,
and record task durations.

OTLP export is opt-in via OTLP_ENABLED=true; otherwise in-process providers
are installed and nothing leaves the process. Until create_metrics() runs,
the record_* helpers are no-ops.
"""

import logging
import os

from opentelemetry import metrics, trace
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider

from taskpilot.config import TaskpilotConfig

# Suppress gRPC warnings when collector is unavailable
logging.getLogger("opentelemetry.exporter.otlp.proto.grpc").setLevel(logging.ERROR)

# Module-level metric instruments (set by create_metrics)
tasks_counter: metrics.Counter | None = None
plans_counter: metrics.Counter | None = None
fallback_plans_counter: metrics.Counter | None = None
task_duration: metrics.Histogram | None = None


def setup_telemetry(config: TaskpilotConfig) -> tuple[trace.Tracer, metrics.Meter]:
    """Install tracer and meter providers tagged with the service name.

    Spans and metrics are exported over OTLP when OTLP_ENABLED=true and an
    endpoint is configured; otherwise they stay in process.

    Returns:
        Tuple of (tracer, meter) for creating spans and recording metrics
    """
    resource = Resource.create({"service.name": config.service_name})
    export = os.getenv("OTLP_ENABLED", "false").lower() == "true" and config.otlp_endpoint

    if export:
        tracer_provider, meter_provider = _exporting_providers(resource, config.otlp_endpoint)
    else:
        tracer_provider = TracerProvider(resource=resource)
        meter_provider = MeterProvider(resource=resource)

    trace.set_tracer_provider(tracer_provider)
    metrics.set_meter_provider(meter_provider)
    return trace.get_tracer(config.service_name), metrics.get_meter(config.service_name)


def _exporting_providers(
    resource: Resource, endpoint: str
) -> tuple[TracerProvider, MeterProvider]:
    # The exporters live in the optional "otlp" extra
    from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import (
        OTLPMetricExporter,
    )
    from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
        OTLPSpanExporter,
    )
    from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
    from opentelemetry.sdk.trace.export import BatchSpanProcessor

    tracer_provider = TracerProvider(resource=resource)
    tracer_provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))

    reader = PeriodicExportingMetricReader(OTLPMetricExporter(endpoint=endpoint))
    return tracer_provider, MeterProvider(resource=resource, metric_readers=[reader])


def create_metrics(meter: metrics.Meter) -> None:
    """Create metric instruments for planning and execution.

    Args:
        meter: OpenTelemetry meter for creating instruments
    """
    global tasks_counter, plans_counter, fallback_plans_counter, task_duration

    tasks_counter = meter.create_counter(
        "taskpilot_tasks_total",
        description="Total tasks finished, by status",
    )
    plans_counter = meter.create_counter(
        "taskpilot_plans_total",
        description="Total plan executions, by outcome",
    )
    fallback_plans_counter = meter.create_counter(
        "taskpilot_fallback_plans_total",
        description="Plans that fell back to a single manual task",
    )
    task_duration = meter.create_histogram(
        "taskpilot_task_duration_seconds",
        description="Task execution duration",
        unit="s",
    )


def record_task(status: str, duration_seconds: float) -> None:
    if tasks_counter is not None:
        tasks_counter.add(1, {"status": status})
    if task_duration is not None:
        task_duration.record(duration_seconds, {"status": status})


def record_plan_outcome(outcome: str) -> None:
    if plans_counter is not None:
        plans_counter.add(1, {"outcome": outcome})


def record_fallback_plan(reason: str) -> None:
    if fallback_plans_counter is not None:
        fallback_plans_counter.add(1, {"reason": reason})

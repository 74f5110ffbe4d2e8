"""OTel provider configuration for gateway clients.

Components take providers by injection. :func:`configure_telemetry` and
:func:`configure_metrics` build SDK providers without touching the global
OTel state; :func:`get_default_providers` lazily builds one console-logging
pair that components fall back to when nothing is injected.
"""

from opentelemetry.sdk._logs import LoggerProvider
from opentelemetry.sdk._logs.export import (
    BatchLogRecordProcessor,
    LogRecordExporter,
    SimpleLogRecordProcessor,
)
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import (
    ConsoleMetricExporter,
    MetricExporter,
    PeriodicExportingMetricReader,
)
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, SpanExporter

from .exporters import ConsoleLogRecordExporter


def _resource(service_name: str, service_version: str) -> Resource:
    return Resource.create(
        {
            "service.name": service_name,
            "service.version": service_version,
        }
    )


def configure_telemetry(
    service_name: str = "rxgateway",
    service_version: str = "",
    span_exporter: SpanExporter | None = None,
    log_exporter: LogRecordExporter | None = None,
    batch_logs: bool = True,
) -> tuple[TracerProvider, LoggerProvider]:
    """Create a tracer and logger provider pair.

    Args:
        service_name: ``service.name`` resource attribute.
        service_version: ``service.version`` resource attribute.
        span_exporter: Optional span exporter.
        log_exporter: Optional log exporter.
        batch_logs: Batch log export (network exporters) instead of
            exporting each record immediately (console).

    Example:
        >>> tracer_provider, logger_provider = configure_telemetry(
        ...     service_name="my-bot",
        ...     log_exporter=ConsoleLogRecordExporter(),
        ...     batch_logs=False,
        ... )
        >>> client, ready = await GatewayClient.connect(
        ...     url, token, logger_provider=logger_provider,
        ...     tracer_provider=tracer_provider,
        ... )
    """
    resource = _resource(service_name, service_version)

    tracer_provider = TracerProvider(resource=resource)
    if span_exporter:
        tracer_provider.add_span_processor(BatchSpanProcessor(span_exporter))

    logger_provider = LoggerProvider(resource=resource)
    if log_exporter:
        processor = (
            BatchLogRecordProcessor(log_exporter)
            if batch_logs
            else SimpleLogRecordProcessor(log_exporter)
        )
        logger_provider.add_log_record_processor(processor)

    return tracer_provider, logger_provider


_default_tracer_provider: TracerProvider | None = None
_default_logger_provider: LoggerProvider | None = None


def get_default_providers(
    service_name: str = "rxgateway",
) -> tuple[TracerProvider, LoggerProvider]:
    """Return the shared console-logging providers, creating them once.

    ``service_name`` only matters on the first call.
    """
    global _default_tracer_provider, _default_logger_provider

    if _default_logger_provider is None:
        _default_tracer_provider, _default_logger_provider = configure_telemetry(
            service_name=service_name,
            log_exporter=ConsoleLogRecordExporter(),
            batch_logs=False,
        )

    assert _default_tracer_provider is not None
    return _default_tracer_provider, _default_logger_provider


def configure_metrics(
    service_name: str = "rxgateway",
    service_version: str = "",
    metric_exporter: MetricExporter | None = None,
    export_interval_ms: int = 10_000,
) -> MeterProvider:
    """Build a MeterProvider exporting periodically.

    Falls back to ``ConsoleMetricExporter`` when no exporter is given.
    """
    exporter = metric_exporter if metric_exporter is not None else ConsoleMetricExporter()
    reader = PeriodicExportingMetricReader(exporter, export_interval_millis=export_interval_ms)
    return MeterProvider(
        resource=_resource(service_name, service_version),
        metric_readers=[reader],
    )

"""
OpenTelemetry SDK configuration and initialization.

Configures TracerProvider, MeterProvider, and auto-instrumentation
for FastAPI, HTTPX (Turnstile, GitHub, OpenAI transport), and logging.
"""

import logging
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from backend.settings import Settings

logger = logging.getLogger(__name__)

# Track initialization state
_initialized = False


def configure_observability(settings: "Settings") -> None:
    """
    Configure OpenTelemetry SDK with tracing, metrics, and auto-instrumentation.

    Safe to call more than once; only the first call with otel_enabled
    installs providers.

    Args:
        settings: Application settings with OTel configuration.
    """
    global _initialized

    if _initialized:
        logger.debug("OpenTelemetry already initialized, skipping")
        return

    if not settings.otel_enabled:
        logger.info("OpenTelemetry disabled via settings")
        return

    try:
        from opentelemetry import trace
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.sampling import TraceIdRatioBased
        from opentelemetry.sdk.resources import Resource, SERVICE_NAME, SERVICE_VERSION

        resource_attributes = {
            SERVICE_NAME: settings.otel_service_name,
            SERVICE_VERSION: "1.0.0",
            "deployment.environment": settings.environment,
        }
        if settings.render_git_commit:
            resource_attributes["service.instance.id"] = settings.render_git_commit

        resource = Resource.create(resource_attributes)
        tracer_provider = TracerProvider(
            resource=resource,
            sampler=TraceIdRatioBased(settings.otel_traces_sample_rate),
        )

        if settings.otel_exporter_otlp_endpoint:
            _configure_otlp_exporters(
                tracer_provider,
                settings.otel_exporter_otlp_endpoint,
                settings.otel_exporter_otlp_protocol,
            )
        else:
            # Console exporter for development
            _configure_console_exporters(tracer_provider)

        trace.set_tracer_provider(tracer_provider)

        _configure_meter_provider(
            resource,
            settings.otel_exporter_otlp_endpoint,
            settings.otel_exporter_otlp_protocol,
            settings.otel_metrics_export_interval_ms,
        )

        _configure_auto_instrumentation(settings.otel_log_correlation)

        _initialized = True
        logger.info(
            "OpenTelemetry initialized: service=%s, sample_rate=%.2f, endpoint=%s",
            settings.otel_service_name,
            settings.otel_traces_sample_rate,
            settings.otel_exporter_otlp_endpoint or "console",
        )

    except ImportError as e:
        logger.warning("OpenTelemetry packages not installed: %s", e)
    except Exception as e:
        logger.error("Failed to initialize OpenTelemetry: %s", e)


def _configure_otlp_exporters(tracer_provider, endpoint: str, protocol: str) -> None:
    """Configure OTLP exporters for traces."""
    from opentelemetry.sdk.trace.export import BatchSpanProcessor

    if protocol == "grpc":
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
        span_exporter = OTLPSpanExporter(endpoint=endpoint)
    else:
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
        # HTTP endpoint needs the /v1/traces suffix
        span_exporter = OTLPSpanExporter(endpoint=endpoint.rstrip("/") + "/v1/traces")

    tracer_provider.add_span_processor(BatchSpanProcessor(span_exporter))


def _configure_console_exporters(tracer_provider) -> None:
    """Configure console exporters for development."""
    from opentelemetry.sdk.trace.export import SimpleSpanProcessor, ConsoleSpanExporter

    tracer_provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))


def _configure_meter_provider(
    resource,
    endpoint: Optional[str],
    protocol: str,
    metrics_interval_ms: int,
) -> None:
    """Configure MeterProvider with an OTLP reader when an endpoint is set."""
    from opentelemetry import metrics
    from opentelemetry.sdk.metrics import MeterProvider
    from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader

    readers = []

    if endpoint:
        if protocol == "grpc":
            from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
            metric_exporter = OTLPMetricExporter(endpoint=endpoint)
        else:
            from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
            metric_exporter = OTLPMetricExporter(endpoint=endpoint.rstrip("/") + "/v1/metrics")

        readers.append(PeriodicExportingMetricReader(
            metric_exporter,
            export_interval_millis=metrics_interval_ms,
        ))

    metrics.set_meter_provider(MeterProvider(resource=resource, metric_readers=readers))


def _configure_auto_instrumentation(log_correlation: bool) -> None:
    """Configure auto-instrumentation for FastAPI, HTTPX, and logging."""
    try:
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
        FastAPIInstrumentor().instrument()
        logger.debug("FastAPI auto-instrumentation enabled")
    except ImportError:
        logger.debug("FastAPI instrumentation not available")

    try:
        from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
        HTTPXClientInstrumentor().instrument()
        logger.debug("HTTPX auto-instrumentation enabled")
    except ImportError:
        logger.debug("HTTPX instrumentation not available")

    if log_correlation:
        try:
            from opentelemetry.instrumentation.logging import LoggingInstrumentor
            LoggingInstrumentor().instrument(set_logging_format=True)
            logger.debug("Logging auto-instrumentation enabled")
        except ImportError:
            logger.debug("Logging instrumentation not available")


def shutdown_observability() -> None:
    """Shutdown OpenTelemetry providers gracefully."""
    global _initialized

    if not _initialized:
        return

    try:
        from opentelemetry import trace, metrics

        tracer_provider = trace.get_tracer_provider()
        if hasattr(tracer_provider, "shutdown"):
            tracer_provider.shutdown()

        meter_provider = metrics.get_meter_provider()
        if hasattr(meter_provider, "shutdown"):
            meter_provider.shutdown()

        _initialized = False
        logger.info("OpenTelemetry shutdown complete")
    except Exception as e:
        logger.error("Error during OpenTelemetry shutdown: %s", e)

"""Distributed tracing with OpenTelemetry and pluggable exporters.

The tracer provider is created once at startup by :func:`setup_tracing` and
handed to the components that need it; it is never registered as the global
provider. :func:`shutdown_tracing` flushes and closes it during shutdown.

Exporters:
- **console**: spans are written through Loguru (development)
- **otlp**: OTLP over gRPC to a collector (Jaeger, Tempo, vendor agents)
- **none**: spans are sampled but not exported
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Final

from loguru import logger
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import ReadableSpan, TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    SpanExporter,
    SpanExportResult,
)
from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased
from opentelemetry.trace import format_span_id, format_trace_id

from starterkit.core.constants import MILLISECONDS_PER_SECOND

if TYPE_CHECKING:
    from collections.abc import Sequence

    from fastapi import FastAPI

    from starterkit.core.config import Settings

SERVICE_NAME_KEY: Final[str] = "service.name"
SERVICE_VERSION_KEY: Final[str] = "service.version"
ENVIRONMENT_KEY: Final[str] = "deployment.environment"

DEFAULT_OTLP_ENDPOINT: Final[str] = "http://localhost:4317"
EXCLUDED_URLS: Final[str] = "/health,/docs,/redoc,/openapi.json"

# Low-level ASGI spans that only add noise to console output
_NOISY_SPANS: Final[frozenset[str]] = frozenset(
    {"connect", "http send", "http receive", "cursor.execute"}
)


class LoguruSpanExporter(SpanExporter):
    """Span exporter that writes finished spans through Loguru."""

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        """Log one DEBUG record per finished span."""
        for span in spans:
            span_context = span.get_span_context()
            if not span_context or span.name in _NOISY_SPANS:
                continue

            duration_ms = None
            if span.end_time and span.start_time:
                duration_ms = (span.end_time - span.start_time) // 1_000_000

            attributes = dict(span.attributes or {})
            logger.bind(
                trace_id=format_trace_id(span_context.trace_id),
                span_id=format_span_id(span_context.span_id),
                correlation_id=attributes.get("correlation_id"),
                span_name=span.name,
                span_kind=span.kind.name,
                duration_ms=duration_ms,
                status=span.status.status_code.name,
            ).debug("Trace span completed: {}", span.name)

        return SpanExportResult.SUCCESS


def get_span_exporter(settings: Settings) -> SpanExporter | None:
    """Get the span exporter selected by configuration.

    Args:
        settings: Application settings.

    Returns:
        SpanExporter | None: Configured exporter or None if export is disabled.
    """
    exporter_type = settings.observability_config.exporter_type

    if exporter_type == "console":
        logger.info("Using Loguru span exporter")
        return LoguruSpanExporter()

    if exporter_type == "otlp":
        endpoint = settings.observability_config.exporter_endpoint or (
            DEFAULT_OTLP_ENDPOINT
        )
        logger.info("Using OTLP span exporter at {}", endpoint)
        return OTLPSpanExporter(
            endpoint=endpoint,
            insecure=settings.environment == "development",
        )

    logger.info("Span export disabled")
    return None


def setup_tracing(settings: Settings) -> TracerProvider | None:
    """Create the tracer provider for this process.

    Args:
        settings: Application settings.

    Returns:
        TracerProvider | None: The provider, or None when tracing is disabled.
    """
    if not settings.observability_config.enable_tracing:
        logger.info("Tracing disabled by configuration")
        return None

    resource = Resource.create(
        {
            SERVICE_NAME_KEY: settings.app_name,
            SERVICE_VERSION_KEY: settings.app_version,
            ENVIRONMENT_KEY: settings.environment,
        }
    )

    tracer_provider = TracerProvider(
        resource=resource,
        sampler=ParentBased(
            TraceIdRatioBased(settings.observability_config.trace_sample_rate)
        ),
    )

    exporter = get_span_exporter(settings)
    if exporter:
        tracer_provider.add_span_processor(BatchSpanProcessor(exporter))

    logger.info(
        "Tracing configured",
        exporter_type=settings.observability_config.exporter_type,
        sample_rate=settings.observability_config.trace_sample_rate,
    )
    return tracer_provider


def instrument_app(app: FastAPI, tracer_provider: TracerProvider) -> None:
    """Instrument the application and database access with ``tracer_provider``.

    Must run after all middleware is registered so that the server span wraps
    the whole middleware chain.

    Args:
        app: FastAPI application to instrument.
        tracer_provider: Provider returned by :func:`setup_tracing`.
    """
    FastAPIInstrumentor.instrument_app(
        app,
        tracer_provider=tracer_provider,
        excluded_urls=EXCLUDED_URLS,
    )

    instrumentor = SQLAlchemyInstrumentor()
    if not instrumentor.is_instrumented_by_opentelemetry:
        instrumentor.instrument(tracer_provider=tracer_provider)

    logger.info("Application instrumented for tracing")


def shutdown_tracing(tracer_provider: TracerProvider, timeout: float) -> None:
    """Flush buffered spans and shut the provider down.

    Blocking; the lifecycle manager runs it off the event loop.

    Args:
        tracer_provider: Provider returned by :func:`setup_tracing`.
        timeout: Seconds allowed for the flush.
    """
    flushed = tracer_provider.force_flush(
        timeout_millis=int(timeout * MILLISECONDS_PER_SECOND)
    )
    if not flushed:
        logger.warning("Span flush did not complete within {}s", timeout)
    tracer_provider.shutdown()
    logger.info("Tracer provider shut down")

"""OpenTelemetry tracing for the usage service.

Spans go to an OTLP collector when ``OTLP_ENDPOINT`` is set (the ``otlp``
extra provides the exporter) and to the console in debug mode. Usage
operations run inside ``usage.<operation>`` spans tagged with the user,
the tier and the counters the operation left behind.
"""

import logging
import uuid
from contextlib import contextmanager
from typing import Any, Iterator, Optional

from opentelemetry import trace
from opentelemetry.propagate import set_global_textmap
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter, SpanExporter
from opentelemetry.trace import Span, SpanContext, Status, StatusCode
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

logger = logging.getLogger(__name__)

USAGE_SPAN_PREFIX = "usage."
USAGE_COUNTER_FIELDS = (
    "services_used",
    "discounts_saved",
    "discounts_overflow",
    "priority_bookings",
    "emergency_services",
)

_provider: Optional[TracerProvider] = None
_tracer: Optional[trace.Tracer] = None


def _span_exporters(otlp_endpoint: Optional[str], console: bool) -> list[SpanExporter]:
    exporters: list[SpanExporter] = []
    if otlp_endpoint:
        try:
            from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
        except ImportError:
            logger.warning("OTLP_ENDPOINT is set but the otlp extra is not installed")
        else:
            exporters.append(OTLPSpanExporter(endpoint=otlp_endpoint))
    if console:
        exporters.append(ConsoleSpanExporter())
    return exporters


def setup_tracing(
    service_name: str,
    service_version: str,
    environment: str = "development",
    otlp_endpoint: Optional[str] = None,
    enable_console_export: bool = False,
) -> trace.Tracer:
    """Install the tracer provider and W3C trace-context propagation.

    Returns:
        The tracer used for every span this service opens
    """
    global _provider, _tracer

    _provider = TracerProvider(resource=Resource.create({
        SERVICE_NAME: service_name,
        SERVICE_VERSION: service_version,
        "deployment.environment": environment,
    }))
    exporters = _span_exporters(otlp_endpoint, enable_console_export)
    for exporter in exporters:
        _provider.add_span_processor(BatchSpanProcessor(exporter))

    trace.set_tracer_provider(_provider)
    set_global_textmap(TraceContextTextMapPropagator())

    _tracer = _provider.get_tracer(service_name, service_version)
    logger.info(
        f"Tracing initialized for {service_name} v{service_version}",
        extra={"exporters": [type(e).__name__ for e in exporters]},
    )
    return _tracer


def get_tracer() -> trace.Tracer:
    """The service tracer; a no-op tracer until ``setup_tracing`` runs."""
    return _tracer or trace.get_tracer(__name__)


def _current_context() -> Optional[SpanContext]:
    context = trace.get_current_span().get_span_context()
    return context if context.is_valid else None


def get_trace_id() -> Optional[str]:
    context = _current_context()
    return format(context.trace_id, "032x") if context else None


def get_span_id() -> Optional[str]:
    context = _current_context()
    return format(context.span_id, "016x") if context else None


@contextmanager
def create_span(
    name: str,
    attributes: Optional[dict[str, Any]] = None,
    kind: trace.SpanKind = trace.SpanKind.INTERNAL,
) -> Iterator[Span]:
    with get_tracer().start_as_current_span(name, kind=kind, attributes=attributes or {}) as span:
        yield span


def add_span_attributes(attributes: dict[str, Any]) -> None:
    span = trace.get_current_span()
    for key, value in attributes.items():
        if value is not None:
            span.set_attribute(key, value)


def record_exception(exception: Exception) -> None:
    """Attach ``exception`` to the current span and mark the span failed."""
    span = trace.get_current_span()
    span.record_exception(exception)
    span.set_status(Status(StatusCode.ERROR, str(exception)))


# ==================== Usage spans ====================

@contextmanager
def usage_span(
    operation: str,
    user_id: uuid.UUID,
    tier: Any = None,
    **attributes: Any,
) -> Iterator[Span]:
    """Span ``usage.<operation>`` tagged with the user and tier.

    Extra keyword attributes are recorded under the ``usage.`` namespace.
    An exception leaving the block is recorded on the span by the SDK.
    """
    tags: dict[str, Any] = {"usage.user_id": str(user_id)}
    if tier is not None:
        tags["usage.tier"] = getattr(tier, "value", tier)
    for key, value in attributes.items():
        if value is not None:
            tags[f"usage.{key}"] = value

    with create_span(USAGE_SPAN_PREFIX + operation, attributes=tags) as span:
        yield span


def record_usage_counters(period: Any) -> None:
    """Copy a usage period's counters onto the current span."""
    add_span_attributes({
        f"usage.{field}": getattr(period, field, None)
        for field in USAGE_COUNTER_FIELDS
    })


def shutdown_tracing() -> None:
    """Flush pending spans and drop the provider."""
    global _provider, _tracer

    if _provider is not None:
        _provider.shutdown()
        logger.info("Tracing shutdown complete")
    _provider = None
    _tracer = None

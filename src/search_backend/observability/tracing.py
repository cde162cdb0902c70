"""OpenTelemetry tracing for refresh cycles and queries."""

from __future__ import annotations

from contextlib import contextmanager
import logging
from typing import TYPE_CHECKING, Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import SpanKind, Status, StatusCode

from search_backend.observability.context import current_document_type, update_span_id


if TYPE_CHECKING:
    from collections.abc import Iterator

    from opentelemetry.trace import Span

logger = logging.getLogger(__name__)

TRACER_NAME = "search_backend"


def init_tracing(service_name: str = "search-backend", **resource_attributes: str) -> TracerProvider:
    """Install an SDK tracer provider tagged with ``service_name``."""
    provider = TracerProvider(resource=Resource.create({"service.name": service_name, **resource_attributes}))
    trace.set_tracer_provider(provider)
    logger.info("Tracing initialized for service: %s", service_name)
    return provider


def configure_trace_exporter(endpoint: str, provider: TracerProvider | None = None) -> bool:
    """Ship spans to an OTLP/HTTP collector.

    Returns False when no endpoint is given or the exporter cannot be built;
    tracing then stays local and the service keeps running.
    """
    if not endpoint:
        return False
    if provider is None:
        current = trace.get_tracer_provider()
        provider = current if isinstance(current, TracerProvider) else init_tracing()
    try:
        exporter = OTLPSpanExporter(endpoint=endpoint)
    except Exception as exc:
        logger.error("Failed to configure OTLP exporter for %s: %s", endpoint, exc)
        return False
    provider.add_span_processor(BatchSpanProcessor(exporter))
    logger.info("OTLP trace export enabled to %s", endpoint)
    return True


@contextmanager
def create_span(
    name: str,
    kind: SpanKind = SpanKind.INTERNAL,
    attributes: dict[str, Any] | None = None,
) -> Iterator[Span]:
    """Open a span, tagging it with the active document type if there is one.

    Exceptions escaping the block mark the span as failed and propagate.
    """
    span_attributes = dict(attributes or {})
    document_type = current_document_type()
    if document_type is not None:
        span_attributes.setdefault("index.type", document_type)

    tracer = trace.get_tracer(TRACER_NAME)
    with tracer.start_as_current_span(name, kind=kind, attributes=span_attributes) as span:
        update_span_id(format(span.get_span_context().span_id, "016x"))
        try:
            yield span
        except Exception as exc:
            span.set_status(Status(StatusCode.ERROR, str(exc)))
            span.record_exception(exc)
            raise

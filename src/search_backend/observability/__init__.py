"""Logging, tracing and metrics for the indexing pipeline."""

from search_backend.observability.context import document_type_context, get_trace_context
from search_backend.observability.logging import JsonFormatter, configure_logging
from search_backend.observability.metrics import (
    INDEX_CYCLE_DURATION,
    INDEX_CYCLES,
    INDEX_DOC_COUNT,
    SEARCH_LATENCY,
    MetricBridge,
    get_metrics,
    get_metrics_content_type,
    track_latency,
)
from search_backend.observability.tracing import configure_trace_exporter, create_span, init_tracing


__all__ = [
    "INDEX_CYCLES",
    "INDEX_CYCLE_DURATION",
    "INDEX_DOC_COUNT",
    "SEARCH_LATENCY",
    "JsonFormatter",
    "MetricBridge",
    "configure_logging",
    "configure_trace_exporter",
    "create_span",
    "document_type_context",
    "get_metrics",
    "get_metrics_content_type",
    "get_trace_context",
    "init_tracing",
    "track_latency",
]

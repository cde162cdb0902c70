"""Indexing and query metrics.

Every metric is recorded twice: in the Prometheus registry scraped from
``/metrics`` and on an OpenTelemetry instrument of the same name, so an OTLP
metrics pipeline sees the same signals. The OTel meter is resolved lazily
because the provider may be installed after this module is imported.
"""

from __future__ import annotations

from contextlib import contextmanager
import time
from typing import TYPE_CHECKING, Literal

from opentelemetry import metrics as otel_metrics
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest


if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

MetricKind = Literal["counter", "histogram", "gauge"]

_PROMETHEUS_TYPES = {"counter": Counter, "histogram": Histogram, "gauge": Gauge}


class MetricBridge:
    """A Prometheus metric mirrored onto an OpenTelemetry instrument."""

    def __init__(
        self,
        kind: MetricKind,
        name: str,
        description: str,
        labelnames: Sequence[str],
        *,
        buckets: Sequence[float] | None = None,
    ) -> None:
        extra = {"buckets": tuple(buckets)} if buckets is not None else {}
        self.kind = kind
        self.name = name
        self.description = description
        self.prometheus = _PROMETHEUS_TYPES[kind](name, description, list(labelnames), **extra)
        self._instrument = None
        # OTel has no settable gauge here; gauges are emitted as up-down deltas.
        self._gauge_values: dict[tuple[tuple[str, str], ...], float] = {}

    def labels(self, **labels: str) -> BoundMetric:
        return BoundMetric(self, labels)

    def _otel(self):
        if self._instrument is None:
            meter = otel_metrics.get_meter("search_backend")
            if self.kind == "counter":
                self._instrument = meter.create_counter(self.name, description=self.description)
            elif self.kind == "histogram":
                self._instrument = meter.create_histogram(self.name, description=self.description, unit="s")
            else:
                self._instrument = meter.create_up_down_counter(self.name, description=self.description)
        return self._instrument


class BoundMetric:
    """One label set of a ``MetricBridge``."""

    def __init__(self, bridge: MetricBridge, labels: dict[str, str]) -> None:
        self._bridge = bridge
        self._labels = labels

    def inc(self, amount: float = 1.0) -> None:
        self._bridge.prometheus.labels(**self._labels).inc(amount)
        self._bridge._otel().add(amount, self._labels)

    def observe(self, value: float) -> None:
        self._bridge.prometheus.labels(**self._labels).observe(value)
        self._bridge._otel().record(value, self._labels)

    def set(self, value: float) -> None:
        self._bridge.prometheus.labels(**self._labels).set(value)
        key = tuple(sorted(self._labels.items()))
        delta = value - self._bridge._gauge_values.get(key, 0.0)
        self._bridge._gauge_values[key] = value
        if delta:
            self._bridge._otel().add(delta, self._labels)


INDEX_CYCLES = MetricBridge("counter", "index_cycles_total", "Refresh cycles by outcome", ["type", "status"])
INDEX_CYCLE_DURATION = MetricBridge(
    "histogram",
    "index_cycle_duration_seconds",
    "Wall time of one refresh cycle",
    ["type"],
    buckets=(0.1, 0.5, 1.0, 5.0, 15.0, 60.0, 300.0, 900.0),
)
INDEX_DOC_COUNT = MetricBridge("gauge", "index_document_count", "Documents in the committed index", ["type"])
SEARCH_LATENCY = MetricBridge(
    "histogram",
    "search_query_latency_seconds",
    "Search query latency",
    ["engine"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0),
)


@contextmanager
def track_latency(histogram: MetricBridge, **labels: str) -> Iterator[None]:
    """Observe the wall time of the block, including when it raises."""
    start = time.perf_counter()
    try:
        yield
    finally:
        histogram.labels(**labels).observe(time.perf_counter() - start)


def get_metrics() -> bytes:
    return generate_latest()


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST

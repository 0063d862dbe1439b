from __future__ import annotations

import threading
from collections.abc import Iterable, Sequence
from typing import Optional, Protocol

import structlog
from prometheus_client import REGISTRY, CollectorRegistry, Gauge

from billing_exporter.modules.collection.domain.mapper import MetricEmission

logger = structlog.get_logger()


class MetricSink(Protocol):
    """Destination for gauge emissions. Must tolerate calls from concurrent tasks."""

    def emit_gauge(
        self, name: str, value: float, labels: Sequence[tuple[str, str]]
    ) -> None: ...


def emit_all(sink: MetricSink, emissions: Iterable[MetricEmission]) -> int:
    count = 0
    for emission in emissions:
        sink.emit_gauge(emission.name, emission.value, emission.labels)
        count += 1
    return count


class PrometheusMetricSink:
    """
    Publishes emissions as prometheus_client gauges.

    One Gauge is registered per metric name on first emission; its label names
    are fixed by that first emission. Setting an existing label combination
    overwrites the previous value.
    """

    def __init__(
        self,
        registry: Optional[CollectorRegistry] = None,
        namespace: str = "",
    ):
        self.registry = registry if registry is not None else REGISTRY
        self.namespace = namespace
        self._gauges: dict[str, tuple[Gauge, tuple[str, ...]]] = {}
        self._lock = threading.Lock()

    def _gauge_for(self, name: str, label_names: tuple[str, ...]) -> Gauge:
        with self._lock:
            entry = self._gauges.get(name)
            if entry is None:
                gauge = Gauge(
                    name,
                    f"Collected {name.replace('_', ' ')}",
                    labelnames=label_names,
                    namespace=self.namespace,
                    registry=self.registry,
                )
                self._gauges[name] = (gauge, label_names)
                logger.debug("metric_gauge_registered", metric=name, labels=label_names)
                return gauge
            gauge, registered = entry
            if registered != label_names:
                raise ValueError(
                    f"Metric {name} registered with labels {registered}, "
                    f"got {label_names}"
                )
            return gauge

    def emit_gauge(
        self, name: str, value: float, labels: Sequence[tuple[str, str]]
    ) -> None:
        label_names = tuple(key for key, _ in labels)
        gauge = self._gauge_for(name, label_names)
        if label_names:
            gauge.labels(*(label_value for _, label_value in labels)).set(value)
        else:
            gauge.set(value)

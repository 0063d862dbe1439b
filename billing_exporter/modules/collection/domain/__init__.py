"""
Collection Domain - Package Entry Point

Exports the collection pass engine, the metric sink and the mapper types.
"""

from .collector import CollectionScheduler, CollectorState, PassReport, StepFailure
from .mapper import MetricEmission
from .sink import MetricSink, PrometheusMetricSink

__all__ = [
    "CollectionScheduler",
    "CollectorState",
    "PassReport",
    "StepFailure",
    "MetricEmission",
    "MetricSink",
    "PrometheusMetricSink",
]

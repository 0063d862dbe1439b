"""Periodic billing and cluster-state collector exposing Prometheus gauges."""

__version__ = "0.1.0"

"""Metrics — Prometheus metrics collection and exposure."""

from __future__ import annotations

from mizito_forwarder.metrics.collector import ForwarderMetrics, MetricsCollector

__all__ = ["ForwarderMetrics", "MetricsCollector"]

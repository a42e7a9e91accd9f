"""Metrics collector — Prometheus counters and histograms.

- ``mizito_deliveries_total`` counter-vec (outcome)
- ``mizito_delivery_duration_seconds`` histogram
- ``mizito_delivery_attempts`` histogram
- ``mizito_logins_total`` counter-vec (outcome)
- ``mizito_token_refreshes_total`` counter
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import TYPE_CHECKING

from prometheus_client import CollectorRegistry, Counter, Histogram

if TYPE_CHECKING:
    from collections.abc import Iterator

_PREFIX = "mizito"


class MetricsCollector:
    """Low-level Prometheus collector that owns the registry.

    Use :class:`ForwarderMetrics` for the high-level tracking interface.
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self._registry = registry or CollectorRegistry()

    @property
    def registry(self) -> CollectorRegistry:
        """Return the underlying Prometheus registry."""
        return self._registry

    def histogram(
        self,
        name: str,
        doc: str,
        labels: tuple[str, ...] = (),
        buckets: tuple[float, ...] = Histogram.DEFAULT_BUCKETS,
    ) -> Histogram:
        """Register and return a Histogram."""
        return Histogram(name, doc, labels, registry=self._registry, buckets=buckets)

    def counter(self, name: str, doc: str, labels: tuple[str, ...] = ()) -> Counter:
        """Register and return a Counter."""
        return Counter(name, doc, labels, registry=self._registry)


class ForwarderMetrics:
    """Delivery and credential metrics for the forwarder."""

    def __init__(self, collector: MetricsCollector | None = None) -> None:
        self._collector = collector or MetricsCollector()

        self._deliveries = self._collector.counter(
            f"{_PREFIX}_deliveries_total",
            "Message deliveries by terminal outcome",
            ("outcome",),
        )
        self._delivery_duration = self._collector.histogram(
            f"{_PREFIX}_delivery_duration_seconds",
            "Duration of message deliveries including retries",
        )
        self._delivery_attempts = self._collector.histogram(
            f"{_PREFIX}_delivery_attempts",
            "Send attempts used per delivery",
            buckets=(1, 2, 3, 4, 5, 10),
        )
        self._logins = self._collector.counter(
            f"{_PREFIX}_logins_total",
            "Upstream login exchanges by outcome",
            ("outcome",),
        )
        self._refreshes = self._collector.counter(
            f"{_PREFIX}_token_refreshes_total",
            "Forced session token refreshes after an authorization failure",
        )

    @property
    def registry(self) -> CollectorRegistry:
        """Return the underlying Prometheus registry."""
        return self._collector.registry

    def record_delivery(self, outcome: str, attempts: int) -> None:
        """Count a finished delivery and the attempts it used."""
        self._deliveries.labels(outcome=outcome).inc()
        self._delivery_attempts.observe(attempts)

    def record_login(self, outcome: str) -> None:
        self._logins.labels(outcome=outcome).inc()

    def record_refresh(self) -> None:
        self._refreshes.inc()

    @contextmanager
    def track_delivery(self) -> Iterator[None]:
        """Track the duration of a delivery."""
        start = time.monotonic()
        try:
            yield
        finally:
            self._delivery_duration.observe(time.monotonic() - start)

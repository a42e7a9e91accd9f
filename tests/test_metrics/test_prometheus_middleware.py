"""Tests for the Prometheus middleware and forwarder metrics."""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.testclient import TestClient
from prometheus_client import CollectorRegistry

from mizito_forwarder.api.app import create_app
from mizito_forwarder.metrics.collector import ForwarderMetrics, MetricsCollector
from mizito_forwarder.metrics.middleware import UNMATCHED_ROUTE, PrometheusMiddleware


def _app_with_middleware(registry: CollectorRegistry) -> FastAPI:
    app = FastAPI()
    app.add_middleware(PrometheusMiddleware, registry=registry)

    @app.get("/ping")
    async def ping():
        return {"ok": True}

    @app.get("/items/{item_id}")
    async def item(item_id: int):
        return {"id": item_id}

    return app


def _route_labels(registry: CollectorRegistry) -> set[str]:
    return {
        sample.labels["route"]
        for metric in registry.collect()
        if metric.name == "http_request"
        for sample in metric.samples
        if sample.name == "http_request_total"
    }


class TestPrometheusMiddleware:
    def test_counts_requests(self):
        registry = CollectorRegistry()
        client = TestClient(_app_with_middleware(registry))
        client.get("/ping")
        client.get("/ping")
        value = registry.get_sample_value(
            "http_request_total",
            {"method": "GET", "route": "/ping", "status_code": "200", "app": "mizito-forwarder"},
        )
        assert value == 2

    def test_records_duration(self):
        registry = CollectorRegistry()
        client = TestClient(_app_with_middleware(registry))
        client.get("/ping")
        count = registry.get_sample_value(
            "http_request_duration_seconds_count",
            {"method": "GET", "route": "/ping", "app": "mizito-forwarder"},
        )
        assert count == 1

    def test_path_parameters_use_template(self):
        registry = CollectorRegistry()
        client = TestClient(_app_with_middleware(registry))
        for i in range(5):
            client.get(f"/items/{i}")
        assert _route_labels(registry) == {"/items/{item_id}"}

    def test_unknown_paths_share_one_label(self):
        registry = CollectorRegistry()
        client = TestClient(_app_with_middleware(registry))
        client.get("/missing")
        value = registry.get_sample_value(
            "http_request_total",
            {
                "method": "GET",
                "route": UNMATCHED_ROUTE,
                "status_code": "404",
                "app": "mizito-forwarder",
            },
        )
        assert value == 1

    def test_scanned_paths_stay_bounded(self, app_config):
        app = create_app(config=app_config, sender=object())
        with TestClient(app) as client:
            for i in range(50):
                client.get(f"/scan/{i}")
            client.get("/health")
            client.get("/api/v1/health")
        labels = _route_labels(app.state.metrics.registry)
        assert labels == {UNMATCHED_ROUTE, "/health", "/api/v1/health"}


class TestForwarderMetrics:
    def test_separate_registries(self):
        a = ForwarderMetrics()
        b = ForwarderMetrics()
        a.record_refresh()
        assert a.registry.get_sample_value("mizito_token_refreshes_total") == 1
        assert b.registry.get_sample_value("mizito_token_refreshes_total") == 0

    def test_shared_collector(self):
        collector = MetricsCollector()
        metrics = ForwarderMetrics(collector)
        assert metrics.registry is collector.registry

    def test_record_delivery(self):
        metrics = ForwarderMetrics()
        metrics.record_delivery("done", 3)
        registry = metrics.registry
        assert registry.get_sample_value("mizito_deliveries_total", {"outcome": "done"}) == 1
        assert registry.get_sample_value("mizito_delivery_attempts_sum") == 3

    def test_track_delivery_observes_on_error(self):
        metrics = ForwarderMetrics()
        try:
            with metrics.track_delivery():
                raise ValueError("boom")
        except ValueError:
            pass
        assert metrics.registry.get_sample_value("mizito_delivery_duration_seconds_count") == 1

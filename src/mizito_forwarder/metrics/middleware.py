"""HTTP request metrics for the forwarder's FastAPI app.

Series are labelled with the matched route template (``/api/v1/message``),
never the raw URL, so the label set is bounded by the routes the app
defines. Requests that match no route share the ``<unmatched>`` label.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from prometheus_client import Counter, Histogram
from starlette.middleware.base import BaseHTTPMiddleware

if TYPE_CHECKING:
    from collections.abc import Callable

    from prometheus_client import CollectorRegistry
    from starlette.requests import Request
    from starlette.responses import Response

APP_LABEL = "mizito-forwarder"
UNMATCHED_ROUTE = "<unmatched>"


def route_template(request: Request) -> str:
    """Return the path template of the route that handled *request*."""
    route = request.scope.get("route")
    path = getattr(route, "path", None)
    return path if isinstance(path, str) else UNMATCHED_ROUTE


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Counts requests and observes their latency per route."""

    def __init__(self, app: object, *, registry: CollectorRegistry) -> None:
        super().__init__(app)  # type: ignore[arg-type]
        self._requests = Counter(
            "http_request_total",
            "HTTP requests handled, by route template and status",
            ("method", "route", "status_code", "app"),
            registry=registry,
        )
        self._latency = Histogram(
            "http_request_duration_seconds",
            "Time spent handling HTTP requests, by route template",
            ("method", "route", "app"),
            registry=registry,
        )

    async def dispatch(self, request: Request, call_next: Callable) -> Response:  # type: ignore[type-arg]
        start = time.monotonic()
        response: Response = await call_next(request)
        elapsed = time.monotonic() - start

        # The router records the matched route in the shared scope.
        route = route_template(request)
        self._requests.labels(request.method, route, str(response.status_code), APP_LABEL).inc()
        self._latency.labels(request.method, route, APP_LABEL).observe(elapsed)
        return response

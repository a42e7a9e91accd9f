"""Request logging middleware."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from starlette.middleware.base import BaseHTTPMiddleware

if TYPE_CHECKING:
    from collections.abc import Callable

    from starlette.requests import Request
    from starlette.responses import Response

logger = logging.getLogger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs every request with its status and duration."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:  # type: ignore[type-arg]
        start = time.monotonic()
        client = request.client.host if request.client else "-"
        logger.debug(
            "HTTP request %s %s from %s (%s)",
            request.method,
            request.url.path,
            client,
            request.headers.get("user-agent", ""),
        )

        response: Response = await call_next(request)

        logger.info(
            "HTTP request completed %s %s status=%d duration=%.3fs",
            request.method,
            request.url.path,
            response.status_code,
            time.monotonic() - start,
        )
        return response

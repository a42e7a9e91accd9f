"""FastAPI application factory."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from prometheus_client import generate_latest
from starlette.responses import Response

from mizito_forwarder import __version__
from mizito_forwarder.api.middleware.logging import RequestLoggingMiddleware
from mizito_forwarder.api.routes import router
from mizito_forwarder.api.schemas import ServiceInfoResponse
from mizito_forwarder.config.settings import AppConfig
from mizito_forwarder.credentials.login import LoginExchange
from mizito_forwarder.credentials.store import CredentialStore
from mizito_forwarder.credentials.supervisor import CredentialSupervisor
from mizito_forwarder.delivery.pipeline import DeliveryPipeline
from mizito_forwarder.errors import ForwarderError, PersistenceError
from mizito_forwarder.errors.definitions import ErrInvalidJSON
from mizito_forwarder.metrics.collector import ForwarderMetrics
from mizito_forwarder.metrics.middleware import PrometheusMiddleware

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from mizito_forwarder.delivery.pipeline import MessageSender

logger = logging.getLogger(__name__)


def build_pipeline(
    config: AppConfig,
    metrics: ForwarderMetrics | None = None,
) -> tuple[CredentialStore, LoginExchange, DeliveryPipeline]:
    """Wire store → login exchange → supervisor → pipeline from *config*."""
    store = CredentialStore(
        config.token.file,
        ttl=timedelta(hours=config.token.ttl_hours),
    )
    login = LoginExchange(config.mizito, store)
    supervisor = CredentialSupervisor(store, login, metrics=metrics)
    pipeline = DeliveryPipeline(config.mizito, supervisor, metrics=metrics)
    return store, login, pipeline


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup / shutdown lifecycle hooks.

    Builds the delivery stack unless a sender was injected, loads any
    persisted session token, and closes HTTP clients on exit.
    """
    if app.state.sender is not None:
        yield
        return

    config: AppConfig = app.state.config
    store, login, pipeline = build_pipeline(config, app.state.metrics)

    logger.info("Loading existing session token from %s", store.path)
    try:
        if store.load() is not None:
            logger.info("Existing session token loaded successfully")
    except PersistenceError as exc:
        # A token is obtained on the first delivery instead.
        logger.warning("Failed to load existing session token on startup: %s", exc)

    await login.connect()
    await pipeline.connect()
    app.state.sender = pipeline
    logger.info("Mizito Forwarder started")
    try:
        yield
    finally:
        app.state.sender = None
        await pipeline.close()
        await login.close()
        logger.info("Mizito Forwarder shut down")


def create_app(
    *,
    config: AppConfig | None = None,
    sender: MessageSender | None = None,
) -> FastAPI:
    """Build and return the FastAPI application.

    Args:
        config: Optional AppConfig. If *None*, a config is created from
            environment variables.
        sender: Optional message sender; when given, the lifespan does not
            build the Mizito delivery stack.
    """
    if config is None:
        config = AppConfig()

    app = FastAPI(
        title="mizito-forwarder",
        version=__version__,
        description="Forwards Gotify-style notifications to a Mizito chat",
        lifespan=_lifespan,
    )

    app.state.config = config
    app.state.sender = sender
    app.state.metrics = ForwarderMetrics() if config.metrics.enabled else None

    # -- Middleware --
    if app.state.metrics is not None:
        app.add_middleware(PrometheusMiddleware, registry=app.state.metrics.registry)
    app.add_middleware(RequestLoggingMiddleware)

    # -- Error handlers --
    @app.exception_handler(ForwarderError)
    async def _forwarder_error_handler(request: Request, exc: ForwarderError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"code": exc.code, "message": exc.message},
        )

    @app.exception_handler(RequestValidationError)
    async def _validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        logger.error("Failed to parse request body: %s", exc.errors())
        return JSONResponse(
            status_code=ErrInvalidJSON.status_code,
            content={"code": ErrInvalidJSON.code, "message": ErrInvalidJSON.message},
        )

    # -- Base routes --
    @app.get("/", tags=["base"])
    async def service_info() -> ServiceInfoResponse:
        return ServiceInfoResponse(version=__version__)

    @app.get("/metrics", tags=["base"], include_in_schema=False)
    async def metrics_endpoint() -> Response:
        """Prometheus metrics endpoint."""
        metrics = app.state.metrics
        body = generate_latest(metrics.registry) if metrics is not None else b""
        return Response(
            content=body,
            media_type="text/plain; version=0.0.4; charset=utf-8",
        )

    app.include_router(router)
    app.include_router(router, prefix="/api/v1")

    return app

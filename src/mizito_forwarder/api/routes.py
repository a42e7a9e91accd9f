"""Notification and health routes.

Mounted twice: at the root and under ``/api/v1``.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from mizito_forwarder.api.dependencies import get_sender, require_app_token
from mizito_forwarder.api.schemas import (
    ErrorResponse,
    GotifyNotification,
    HealthResponse,
    NotificationResponse,
)
from mizito_forwarder.delivery.pipeline import MessageSender  # noqa: TC001
from mizito_forwarder.errors import ForwarderError
from mizito_forwarder.errors.definitions import ErrEmptyNotification

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health", tags=["base"])
async def health() -> HealthResponse:
    return HealthResponse()


@router.post(
    "/message",
    tags=["notifications"],
    dependencies=[Depends(require_app_token)],
    response_model=NotificationResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid JSON or empty notification"},
        401: {"model": ErrorResponse, "description": "Missing or wrong app token"},
        500: {"model": NotificationResponse, "description": "Delivery to Mizito failed"},
        503: {"model": ErrorResponse, "description": "Delivery pipeline not running"},
    },
)
async def send_notification(
    notification: GotifyNotification,
    sender: Annotated[MessageSender, Depends(get_sender)],
) -> NotificationResponse | JSONResponse:
    """Forward a Gotify-style notification to the Mizito chat."""
    logger.info("Received Gotify notification request (priority=%d)", notification.priority)
    text = notification.to_text()
    if not text:
        logger.warning("Empty notification request")
        raise ErrEmptyNotification

    try:
        await sender.send_message(text)
    except ForwarderError as exc:
        logger.error("Failed to send message to Mizito: %s", exc)
        body = NotificationResponse(
            success=False,
            message=f"Failed to send notification: {exc.message}",
        )
        return JSONResponse(status_code=500, content=body.model_dump(mode="json"))

    logger.info("Notification processed successfully")
    return NotificationResponse(success=True, message="Notification sent successfully")

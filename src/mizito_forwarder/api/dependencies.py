"""FastAPI dependency injection helpers.

Usage in a route::

    @router.post("/message", dependencies=[Depends(require_app_token)])
    async def send(sender: MessageSender = Depends(get_sender)) -> ...:
        ...
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Header, Query, Request

from mizito_forwarder.api.middleware.auth import (
    AUTH_HEADER_GOTIFY,
    AUTH_QUERY_PARAM,
    check_app_token,
    extract_app_token,
)
from mizito_forwarder.delivery.pipeline import MessageSender  # noqa: TC001
from mizito_forwarder.errors import CredentialUnavailableError


def get_sender(request: Request) -> MessageSender:
    """Retrieve the message sender from ``app.state``.

    Raises:
        CredentialUnavailableError: If the delivery stack is not running.
    """
    sender: MessageSender | None = getattr(request.app.state, "sender", None)
    if sender is None:
        msg = "delivery pipeline is not initialized"
        raise CredentialUnavailableError(msg)
    return sender


def require_app_token(
    request: Request,
    token: Annotated[str, Query(alias=AUTH_QUERY_PARAM)] = "",
    authorization: Annotated[str, Header()] = "",
    x_gotify_key: Annotated[str, Header(alias=AUTH_HEADER_GOTIFY)] = "",
) -> None:
    """Reject the request unless it carries the configured app token."""
    expected: str = request.app.state.config.app_token
    provided = extract_app_token(
        query_token=token,
        authorization=authorization,
        gotify_key=x_gotify_key,
    )
    check_app_token(expected, provided)
